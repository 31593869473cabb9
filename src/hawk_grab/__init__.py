# =============================================================================
# Hawk-Grab: Incremental IMAP Mailbox Mirroring
# =============================================================================
#
#   "The hawk grabs what's new and leaves the rest."
#
# Hawk-Grab downloads the messages of remote IMAP folders into local Maildir
# folders. Every run only fetches what is not stored locally yet.
#
# Features:
#   - Async IMAP via aioimaplib, TLS by default
#   - Streaming downloads with bounded buffering
#   - Cooperative Ctrl+C handling that keeps everything already downloaded
#   - Several folders in parallel, one connection per folder
#   - Passwords from the system keyring
#   - XDG Base Directory compliant
#
# =============================================================================

__version__ = "0.1.0"
__author__ = "Kord"
__app_name__ = "hawk-grab"

__all__ = ["__version__", "__app_name__"]
