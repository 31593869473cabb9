# =============================================================================
# Concurrency Primitives
# =============================================================================
# Small building blocks used by the retrieval pipeline:
#
#   - Once:         runs a hook at most once and can be asked whether it has
#                   already run (functools/threading offer neither directly)
#   - WaitGroup:    counts in-flight work and lets a caller wait for zero
#   - ErrorCounter: collects errors from several tasks; writes are locked
#   - Channel:      an asyncio.Queue that can be closed, so consumers can
#                   simply `async for` over it until the producer is done
#
# All of them are meant to be used from a single event loop. Once and
# ErrorCounter additionally guard their state with a threading.Lock so that
# calls from worker threads cannot fire a hook twice or lose an error.
# Once.call() wakes its waiters through the loop they run on; its hook runs
# in the calling thread.
# =============================================================================

import asyncio
import threading
from typing import Callable, Generic, TypeVar

T = TypeVar("T")


class Once:
    """
    Single-fire completion signal.

    Behaves like a "do once" primitive around a hook, but the fired state
    can also be queried through `called` and awaited through `wait()`.

    Usage:
        >>> done = Once(tracker.done)
        >>> done.call()   # runs tracker.done()
        True
        >>> done.call()   # no-op
        False
        >>> done.called
        True
    """

    def __init__(self, hook: Callable[[], None] | None = None) -> None:
        self._hook = hook
        self._lock = threading.Lock()
        self._called = False
        self._fired = asyncio.Event()
        # Loop of the first waiter, the one `_fired` belongs to
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def called(self) -> bool:
        """True once `call()` has been invoked, and forever after."""
        return self._called

    def call(self) -> bool:
        """
        Fire the signal, running the hook if this is the first call.

        Concurrent callers block until the first caller's hook returned.

        Returns:
            True if this call fired the signal, False if it had already fired.
        """
        with self._lock:
            if self._called:
                return False
            # Mark first so that a failing hook still counts as fired
            self._called = True
            try:
                if self._hook is not None:
                    self._hook()
            finally:
                self._set_fired()
        return True

    def _set_fired(self) -> None:
        # asyncio.Event is not thread-safe: from another thread, hand the
        # wakeup to the loop the waiters run on
        loop = self._loop
        if loop is not None and not _running_in(loop):
            loop.call_soon_threadsafe(self._fired.set)
        else:
            self._fired.set()

    async def wait(self) -> None:
        """Block until the signal has fired."""
        with self._lock:
            if self._loop is None:
                self._loop = asyncio.get_running_loop()
        await self._fired.wait()


def _running_in(loop: asyncio.AbstractEventLoop) -> bool:
    try:
        return asyncio.get_running_loop() is loop
    except RuntimeError:
        return False


class WaitGroup:
    """
    Counts outstanding units of work.

    `add()` registers work, `done()` finishes one unit and `wait()` blocks
    until the count is back to zero. Going below zero is a programming
    error and raises ValueError.
    """

    def __init__(self) -> None:
        self._count = 0
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def count(self) -> int:
        return self._count

    def add(self, delta: int = 1) -> None:
        count = self._count + delta
        if count < 0:
            raise ValueError("WaitGroup counter went negative")
        self._count = count
        if count == 0:
            self._idle.set()
        else:
            self._idle.clear()

    def done(self) -> None:
        self.add(-1)

    async def wait(self) -> None:
        await self._idle.wait()


class ErrorCounter:
    """
    Thread-safe collection of errors shared between tasks.

    The number of recorded errors is what callers usually look at; the
    errors themselves are kept for logging and reporting.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._errors: list[BaseException] = []

    def record(self, error: BaseException) -> None:
        with self._lock:
            self._errors.append(error)

    @property
    def count(self) -> int:
        with self._lock:
            return len(self._errors)

    @property
    def errors(self) -> list[BaseException]:
        with self._lock:
            return list(self._errors)

    @property
    def first(self) -> BaseException | None:
        with self._lock:
            return self._errors[0] if self._errors else None

    def __len__(self) -> int:
        return self.count

    def __repr__(self) -> str:
        return f"ErrorCounter(count={self.count})"


# Marks the end of a channel. Never handed to consumers.
_CLOSED = object()


class ChannelClosedError(Exception):
    """Raised when sending on a channel that has already been closed."""
    pass


class Channel(Generic[T]):
    """
    A closable asyncio queue.

    The producer calls `send()` for every item and `close()` exactly once at
    the end (calling it again is a no-op). Consumers iterate with
    `async for` and stop once everything sent before `close()` has been
    received. Iteration is forward-only: items are gone once received.

    Args:
        maxsize: Buffer size. `send()` blocks while the buffer is full.
                 0 means unbounded.
    """

    def __init__(self, maxsize: int = 0) -> None:
        self._queue: asyncio.Queue = asyncio.Queue(maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def maxsize(self) -> int:
        return self._queue.maxsize

    async def send(self, item: T) -> None:
        if self._closed:
            raise ChannelClosedError("send on closed channel")
        await self._queue.put(item)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._queue.put(_CLOSED)

    async def receive(self) -> T:
        """
        Receive the next item.

        Raises:
            StopAsyncIteration: If the channel is closed and drained.
        """
        item = await self._queue.get()
        if item is _CLOSED:
            # Put the marker back so every other consumer stops as well
            self._queue.put_nowait(_CLOSED)
            raise StopAsyncIteration
        return item

    def __aiter__(self) -> "Channel[T]":
        return self

    async def __anext__(self) -> T:
        return await self.receive()
