# =============================================================================
# Storage Module
# =============================================================================
# Local persistence of downloaded mail. Messages are written to Maildir
# folders using the standard library mailbox module.
# =============================================================================

from hawk_grab.storage.maildir import MaildirSink, MessageSink, folder_dir_name

__all__ = [
    "MaildirSink",
    "MessageSink",
    "folder_dir_name",
]
