# =============================================================================
# Message Identifiers
# =============================================================================
# IMAP identifies a message by its UID, but a UID is only meaningful while
# the mailbox's UIDVALIDITY stays the same. If the server ever changes the
# UIDVALIDITY of a mailbox, every UID we know for it is invalid.
#
# To get a durable key for deduplication we therefore combine both values:
#
#     UidExt(folder=<UIDVALIDITY>, msg=<UID>)  ->  "42/7"
#
# This module also contains SequenceSet, the compact "1:3,7,9:12" syntax
# used to request many messages in a single FETCH command.
# =============================================================================

from dataclasses import dataclass
from typing import Iterable, NewType

# Separate types so a UID never gets mixed up with a UIDVALIDITY by accident
Uid = NewType("Uid", int)
UidFolder = NewType("UidFolder", int)


@dataclass(frozen=True, order=True)
class UidExt:
    """
    Unique identifier of a message across sync runs.

    Attributes:
        folder: UIDVALIDITY of the mailbox the message lives in.
        msg: UID of the message within that mailbox.

    Example:
        >>> str(UidExt(UidFolder(42), Uid(7)))
        '42/7'
    """
    folder: UidFolder
    msg: Uid

    def __str__(self) -> str:
        return f"{self.folder}/{self.msg}"

    @classmethod
    def parse(cls, value: str) -> "UidExt":
        """
        Parse the "<folder>/<msg>" string form back into a UidExt.

        Raises:
            ValueError: If the string is not in canonical form.
        """
        folder, sep, msg = value.strip().partition("/")
        if not sep:
            raise ValueError(f"Not an extended UID: {value!r}")
        return cls(UidFolder(int(folder)), Uid(int(msg)))


class SequenceSet:
    """
    A set of message numbers in IMAP sequence-set syntax.

    Numbers are kept as a set, so adding the same number twice is harmless.
    When rendered, contiguous runs are coalesced into ranges:

        >>> seqset = SequenceSet()
        >>> seqset.add_range(1, 3)
        >>> seqset.add_num(7)
        >>> str(seqset)
        '1:3,7'

    Only positive numbers are valid. Zero and negative values have no
    meaning in IMAP and are rejected before anything reaches the network.
    """

    def __init__(self, nums: Iterable[int] = ()) -> None:
        self._nums: set[int] = set()
        for num in nums:
            self.add_num(num)

    def add_num(self, num: int) -> None:
        if num <= 0:
            raise ValueError(f"Sequence numbers must be positive, got {num}")
        self._nums.add(num)

    def add_range(self, start: int, stop: int) -> None:
        """Add every number from start to stop, both inclusive."""
        if start <= 0 or stop <= 0:
            raise ValueError(f"Sequence numbers must be positive, got {start}:{stop}")
        if start > stop:
            start, stop = stop, start
        self._nums.update(range(start, stop + 1))

    def __len__(self) -> int:
        return len(self._nums)

    def __bool__(self) -> bool:
        return bool(self._nums)

    def __contains__(self, num: object) -> bool:
        return num in self._nums

    def __iter__(self):
        return iter(sorted(self._nums))

    def __str__(self) -> str:
        parts: list[str] = []
        run_start: int | None = None
        prev: int | None = None

        for num in sorted(self._nums):
            if run_start is None:
                run_start = prev = num
            elif num == prev + 1:
                prev = num
            else:
                parts.append(_format_run(run_start, prev))
                run_start = prev = num

        if run_start is not None:
            parts.append(_format_run(run_start, prev))

        return ",".join(parts)

    def __repr__(self) -> str:
        return f"SequenceSet({str(self)!r})"


def _format_run(start: int, stop: int) -> str:
    return str(start) if start == stop else f"{start}:{stop}"
