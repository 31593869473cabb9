# =============================================================================
# Streaming Retrieval
# =============================================================================
# Downloads full messages by UID and streams them to a consumer.
#
# Two tasks cooperate per retrieval:
#
#   fetch task        UID FETCH (UID INTERNALDATE RFC822) -> raw queue
#   translation task  raw queue -> RetrievedMessage -> output channel
#
# The fetch task does not start before the `start` event is set. This lets
# a caller set up many retrievals, register all of them with a WaitGroup,
# and only then let them hit the network.
#
# Completion is signalled through a Once: the fetch task fires it when the
# server is done, the translation task fires it when interrupted. Whoever is
# first decrements the WaitGroup; the second call is a no-op.
#
# Interruption is cooperative. The translation task waits for "next raw
# message" and "interrupted" at the same time, so an interrupt is noticed
# even while the server is slow to answer. An interrupt is counted as an
# error (RetrievalInterrupted), and messages delivered before it stay valid.
# The fetch task is left to finish on its own after an interrupt; its
# outcome is no longer reported to the caller.
# =============================================================================

import asyncio
import logging
from typing import Iterable

from hawk_grab.concurrency import Channel, ErrorCounter, Once, WaitGroup
from hawk_grab.core import RawMessage, RetrievedMessage, SequenceSet, UidFolder
from hawk_grab.imap.errors import FolderError, IMAPError, RetrievalInterrupted, ValidationError
from hawk_grab.imap.session import Session

logger = logging.getLogger(__name__)

# Buffer between the translation task and the consumer
MESSAGE_RETRIEVAL_BUFFER = 20

RETRIEVAL_FETCH_ITEMS = ("UID", "INTERNALDATE", "RFC822")

# Put on the raw queue by the fetch task when the server is done
_FETCH_DONE = object()
# Returned by _next_raw() when the interrupt event won
_INTERRUPTED = object()


class StreamingRetrieval:
    """
    A running retrieval.

    Iterate over it (or over `messages`) to receive the downloaded
    messages. The stream can only be consumed once. After it has been
    drained, `errors` holds everything that went wrong, including an
    interrupt.

    Usage:
        >>> retrieval = retrieve(session, uids, interrupted)
        >>> async for message in retrieval:
        ...     store(message)
        >>> if retrieval.errors.count:
        ...     logger.warning("retrieval incomplete")

    Attributes:
        uids: The requested UIDs as a sequence set.
        uid_validity: UIDVALIDITY of the mailbox being read.
        messages: Output channel of RetrievedMessage objects.
        errors: Errors recorded by both tasks.
        done: Completion signal, fired exactly once.
    """

    def __init__(
        self,
        session: Session,
        uids: SequenceSet,
        uid_validity: UidFolder,
        interrupted: asyncio.Event,
        done: Once,
        start: asyncio.Event | None = None,
    ) -> None:
        self.uids = uids
        self.uid_validity = uid_validity
        self.messages: Channel[RetrievedMessage] = Channel(MESSAGE_RETRIEVAL_BUFFER)
        self.errors = ErrorCounter()
        self.done = done

        self._session = session
        self._interrupted = interrupted
        self._start = start
        self._raw: asyncio.Queue = asyncio.Queue()

        self._fetch_task = asyncio.create_task(self._fetch(), name="retrieval-fetch")
        self._translate_task = asyncio.create_task(self._translate(), name="retrieval-translate")

    def __aiter__(self) -> Channel[RetrievedMessage]:
        return self.messages

    async def wait(self) -> None:
        """
        Wait until the output stream has been closed.

        The fetch task is not awaited: after an interrupt it may still be
        running.
        """
        await self._translate_task

    # -------------------------------------------------------------------------
    # Fetch Task
    # -------------------------------------------------------------------------

    async def _fetch(self) -> None:
        try:
            # Do not start before the entire pipeline has been set up
            if self._start is not None:
                await self._start.wait()
            if not self.uids:
                return
            async for raw in self._session.uid_fetch(self.uids, RETRIEVAL_FETCH_ITEMS):
                self._raw.put_nowait(raw)
        except IMAPError as e:
            logger.error(f"Retrieval failed: {e}")
            self.errors.record(e)
        except Exception as e:
            logger.exception(f"Unexpected error during retrieval: {e}")
            self.errors.record(e)
        finally:
            self._raw.put_nowait(_FETCH_DONE)
            self.done.call()

    # -------------------------------------------------------------------------
    # Translation Task
    # -------------------------------------------------------------------------

    async def _next_raw(self) -> object:
        """Wait for whichever comes first: the next raw item or an interrupt."""
        if self._interrupted.is_set():
            return _INTERRUPTED

        getter = asyncio.ensure_future(self._raw.get())
        waiter = asyncio.ensure_future(self._interrupted.wait())
        try:
            finished, _ = await asyncio.wait(
                {getter, waiter}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            getter.cancel()
            waiter.cancel()

        # An item already taken off the queue is never dropped; the next
        # call sees the interrupt instead
        if getter in finished:
            return getter.result()
        return _INTERRUPTED

    async def _translate(self) -> None:
        delivered: set[int] = set()
        try:
            while not (self.done.called and self._raw.empty()):
                raw = await self._next_raw()

                if raw is _INTERRUPTED:
                    self.errors.record(RetrievalInterrupted("Retrieval interrupted"))
                    self.done.call()
                    logger.warning("Caught interrupt, abandoning retrieval")
                    break
                if raw is _FETCH_DONE:
                    break
                # Ignore empty items that some servers send for no reason, and
                # unsolicited FETCH items (e.g. flag updates) without a body
                if not raw or raw.body is None:
                    continue
                if raw.uid in delivered:
                    logger.debug(f"Dropping duplicate FETCH item for UID {raw.uid}")
                    continue
                delivered.add(raw.uid)

                await self.messages.send(RetrievedMessage.from_raw(raw, self.uid_validity))
        finally:
            await self.messages.close()


def retrieve(
    session: Session,
    uids: Iterable[int],
    interrupted: asyncio.Event,
    *,
    tracker: WaitGroup | None = None,
    start: asyncio.Event | None = None,
) -> StreamingRetrieval:
    """
    Start downloading messages by UID from the selected mailbox.

    Must be called from a running event loop. Nothing is sent to the
    server when validation fails.

    Args:
        session: Authenticated session with a mailbox selected.
        uids: UIDs to download. All of them must be positive.
        interrupted: Set this event to stop the retrieval early.
        tracker: WaitGroup counting in-flight retrievals. Incremented here
                 and decremented exactly once when the retrieval completes.
        start: Setup barrier. If given, nothing is fetched before it is set.

    Returns:
        The running StreamingRetrieval.

    Raises:
        ValidationError: If any UID is not a positive integer.
        SessionStateError: If the session is not authenticated.
        FolderError: If no mailbox is selected.
    """
    uids = list(uids)
    for uid in uids:
        if isinstance(uid, bool) or not isinstance(uid, int) or uid <= 0:
            raise ValidationError(f"Detected an invalid UID {uid!r}, aborting")

    session.require_authenticated()
    if session.selected is None:
        raise FolderError("No folder selected")

    # Messages are requested as one sequence set
    seqset = SequenceSet(uids)

    if tracker is not None:
        tracker.add(1)
        done = Once(tracker.done)
    else:
        done = Once()

    logger.debug(f"Retrieving {len(seqset)} messages from {session.selected.name}")
    return StreamingRetrieval(
        session,
        seqset,
        session.selected.uid_validity,
        interrupted,
        done,
        start,
    )
