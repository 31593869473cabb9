# =============================================================================
# Message Models
# =============================================================================
# Two views of a fetched message:
#
#   - RawMessage: what the transport produces for one FETCH response item.
#     Some servers (and some client libraries) occasionally hand back empty
#     items; those show up as None or as a RawMessage without a UID, and
#     the pipeline drops them.
#
#   - RetrievedMessage: the public representation handed to consumers. It
#     knows the UIDVALIDITY of the mailbox it came from, so it can produce
#     the durable UidExt key used for deduplication.
# =============================================================================

import email
import email.policy
from dataclasses import dataclass
from datetime import datetime
from email.message import EmailMessage

from hawk_grab.core.ids import Uid, UidExt, UidFolder


@dataclass
class RawMessage:
    """
    One item of a FETCH response, as parsed by the transport.

    Attributes:
        seq: Message sequence number within the selected mailbox.
        uid: UID of the message (0 if the server did not send one).
        internal_date: INTERNALDATE reported by the server, if requested.
        body: Full RFC822 message, if requested.
    """
    seq: int = 0
    uid: int = 0
    internal_date: datetime | None = None
    body: bytes | None = None

    def __bool__(self) -> bool:
        # An item without a UID cannot be attributed to any message
        return self.uid > 0


@dataclass(frozen=True)
class RetrievedMessage:
    """
    A fully downloaded message.

    Attributes:
        uid: UID of the message within its mailbox.
        uid_validity: UIDVALIDITY of the mailbox at download time.
        internal_date: Date the server received the message.
        body: The raw RFC822 message bytes.
    """
    uid: Uid
    uid_validity: UidFolder
    internal_date: datetime | None
    body: bytes

    @property
    def uid_ext(self) -> UidExt:
        """Durable identifier of this message."""
        return UidExt(self.uid_validity, self.uid)

    @classmethod
    def from_raw(cls, raw: RawMessage, uid_validity: UidFolder) -> "RetrievedMessage":
        return cls(
            uid=Uid(raw.uid),
            uid_validity=uid_validity,
            internal_date=raw.internal_date,
            body=raw.body or b"",
        )

    def as_email(self) -> EmailMessage:
        """Parse the raw body with the standard library email package."""
        return email.message_from_bytes(self.body, policy=email.policy.default)

    def __repr__(self) -> str:
        return (
            f"RetrievedMessage(uid_ext={str(self.uid_ext)!r}, "
            f"internal_date={self.internal_date!r}, size={len(self.body)})"
        )
