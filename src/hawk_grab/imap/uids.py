# =============================================================================
# UID Enumeration
# =============================================================================
# Find out which messages a selected mailbox contains, as UidExt values.
#
# We ask for the UID (and INTERNALDATE) of every message in the sequence
# range 1:<message count>. That is cheap compared to downloading bodies and
# lets the caller work out which messages are new.
# =============================================================================

import asyncio
import logging

from hawk_grab.concurrency import Channel, ErrorCounter
from hawk_grab.core import MailboxStatus, RawMessage, SequenceSet, Uid, UidExt
from hawk_grab.imap.errors import IMAPError
from hawk_grab.imap.session import Session

logger = logging.getLogger(__name__)

# Buffer between the FETCH producer and the consumer
MESSAGE_RETRIEVAL_BUFFER = 20

# Identity metadata only, no bodies
UID_FETCH_ITEMS = ("UID", "INTERNALDATE")


async def _produce_messages(
    session: Session,
    seqset: SequenceSet,
    messages: Channel[RawMessage | None],
    errors: ErrorCounter,
) -> None:
    try:
        async for message in session.fetch(seqset, UID_FETCH_ITEMS):
            await messages.send(message)
    except IMAPError as e:
        logger.error(f"Cannot enumerate messages: {e}")
        errors.record(e)
    finally:
        await messages.close()


async def enumerate_ids(
    session: Session,
    status: MailboxStatus,
) -> tuple[list[UidExt], IMAPError | None]:
    """
    List the identity of every message in the selected mailbox.

    Args:
        session: Session with `status.name` selected.
        status: Status returned when the mailbox was selected.

    Returns:
        Tuple of (ids, error). On failure, `ids` holds whatever was received
        before the error and `error` is the failure; otherwise `error` is None.
    """
    logger.info("Retrieving information about emails stored on server")

    # Empty folders need no round trip at all
    if status.messages == 0:
        return [], None

    seqset = SequenceSet()
    seqset.add_range(1, status.messages)

    messages: Channel[RawMessage | None] = Channel(MESSAGE_RETRIEVAL_BUFFER)
    errors = ErrorCounter()
    producer = asyncio.create_task(
        _produce_messages(session, seqset, messages, errors),
        name=f"enumerate-{status.name}",
    )

    uids: list[UidExt] = []
    async for message in messages:
        # Some servers send empty items; they carry no UID to record
        if not message:
            continue
        uids.append(UidExt(status.uid_validity, Uid(message.uid)))
    await producer

    logger.info(f"Received information for {len(uids)} emails")
    return uids, errors.first
