# =============================================================================
# IMAP Exceptions
# =============================================================================
# Every error raised by the IMAP layer derives from IMAPError, so callers
# that do not care about the details can catch a single type.
#
# Errors raised inside background producer tasks are not raised at all:
# they are recorded in an ErrorCounter and become visible once the caller
# has drained the corresponding channel.
# =============================================================================


class IMAPError(Exception):
    """Base exception for IMAP operations."""
    pass


class ValidationError(IMAPError, ValueError):
    """Raised for malformed input, such as a UID that is not positive."""
    pass


class PolicyError(IMAPError):
    """Raised when an insecure connection is requested to a non-loopback host."""
    pass


class IMAPConnectionError(IMAPError):
    """Raised when unable to connect to the IMAP server."""
    pass


class AuthError(IMAPError):
    """Raised when the password is empty or the server rejects the login."""
    pass


class SessionStateError(IMAPError):
    """Raised when a command is issued in the wrong session state."""
    pass


class FolderError(IMAPError):
    """Raised when a folder cannot be selected."""
    pass


class ProtocolError(IMAPError):
    """Raised when the server answers a LIST or FETCH with an error."""
    pass


class RetrievalInterrupted(IMAPError):
    """
    Recorded (never raised) when a retrieval was interrupted.

    It ends up in the retrieval's ErrorCounter next to real failures, so an
    interrupted run reports a non-zero error count while everything that was
    delivered before the interrupt remains usable.
    """
    pass
