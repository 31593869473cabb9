# =============================================================================
# IMAP Module
# =============================================================================
# Everything that talks to the IMAP server:
#   - Connecting and authenticating a Session (TLS, or plaintext to localhost)
#   - Listing and selecting folders
#   - Enumerating the UIDs of a mailbox
#   - Streaming message bodies with cooperative cancellation
#   - Downloading whole folders into a local sink
#
# The wire protocol itself is handled by aioimaplib, wrapped in
# hawk_grab.imap.transport.
# =============================================================================

from hawk_grab.imap.errors import (
    AuthError,
    FolderError,
    IMAPConnectionError,
    IMAPError,
    PolicyError,
    ProtocolError,
    RetrievalInterrupted,
    SessionStateError,
    ValidationError,
)
from hawk_grab.imap.folders import list_folders, select_folder
from hawk_grab.imap.retrieval import StreamingRetrieval, retrieve
from hawk_grab.imap.session import Session, SessionState, authenticate
from hawk_grab.imap.sync import SyncManager, SyncResult
from hawk_grab.imap.transport import AioImapTransport, ImapTransport, connect_transport
from hawk_grab.imap.uids import enumerate_ids

__all__ = [
    # Errors
    "IMAPError",
    "ValidationError",
    "PolicyError",
    "IMAPConnectionError",
    "AuthError",
    "SessionStateError",
    "FolderError",
    "ProtocolError",
    "RetrievalInterrupted",
    # Transport
    "ImapTransport",
    "AioImapTransport",
    "connect_transport",
    # Session
    "Session",
    "SessionState",
    "authenticate",
    # Operations
    "list_folders",
    "select_folder",
    "enumerate_ids",
    "retrieve",
    "StreamingRetrieval",
    # Sync
    "SyncManager",
    "SyncResult",
]
