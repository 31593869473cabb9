# =============================================================================
# Hawk-Grab Core Module
# =============================================================================
# Core domain models for Hawk-Grab. These are plain dataclasses with no
# external dependencies, so they can be imported anywhere without causing
# circular imports.
#
#   - Uid / UidFolder / UidExt: message identity within and across runs
#   - SequenceSet: compact IMAP message-number sets
#   - FolderInfo / MailboxStatus: what LIST and EXAMINE report
#   - RawMessage / RetrievedMessage: fetched message data
# =============================================================================

from hawk_grab.core.ids import SequenceSet, Uid, UidExt, UidFolder
from hawk_grab.core.mailbox import FolderInfo, MailboxStatus
from hawk_grab.core.message import RawMessage, RetrievedMessage

__all__ = [
    "Uid",
    "UidFolder",
    "UidExt",
    "SequenceSet",
    "FolderInfo",
    "MailboxStatus",
    "RawMessage",
    "RetrievedMessage",
]
