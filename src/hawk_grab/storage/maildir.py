# =============================================================================
# Maildir Storage
# =============================================================================
# Writes downloaded messages into one Maildir per IMAP folder:
#
#     <base>/INBOX/{cur,new,tmp}
#     <base>/Work.Projects/{cur,new,tmp}
#
# Every stored message carries an X-Hawk-Grab-Id header with its UidExt
# ("<uidvalidity>/<uid>"). That header is how we know on the next run which
# messages are already present, so no separate state file is needed.
#
# The standard library mailbox module does blocking file I/O, so all of it
# runs in a worker thread via asyncio.to_thread().
# =============================================================================

import asyncio
import email.parser
import email.policy
import logging
import mailbox
import re
from pathlib import Path
from typing import Protocol

from hawk_grab.core import RetrievedMessage, UidExt

logger = logging.getLogger(__name__)

# Header recording the durable identity of a stored message
ID_HEADER = "X-Hawk-Grab-Id"

# Everything except word characters and a few safe symbols is %-escaped.
# "_" is escaped too, which leaves it free as the hidden-name prefix below.
_UNSAFE_CHARS = re.compile(r"[^\w@+=,-]|_")


class MessageSink(Protocol):
    """Where downloaded messages go."""

    async def known_ids(self, folder: str) -> set[UidExt]: ...

    async def store(self, folder: str, message: RetrievedMessage) -> None: ...


def folder_dir_name(folder: str, delimiter: str = "/") -> str:
    """
    Turn an IMAP folder name into a safe directory name.

    Hierarchy delimiters become dots (the Maildir++ convention). Anything
    else that is not safe in a file name, literal dots included, is
    %-escaped, so different folders never share a directory:

        "Work/Projects" -> "Work.Projects"
        "Work.Projects" -> "Work%2EProjects"
        "My Folder"     -> "My%20Folder"
    """
    parts = folder.split(delimiter) if delimiter else [folder]
    name = ".".join(_UNSAFE_CHARS.sub(_escape_char, part) for part in parts)
    # Never empty, never a hidden directory
    if not name or name.startswith("."):
        name = "_" + name
    return name


def _escape_char(match: re.Match) -> str:
    return "".join(f"%{byte:02X}" for byte in match.group().encode("utf-8"))


class MaildirSink:
    """
    Stores messages in Maildir folders below a base directory.

    Attributes:
        base: Directory containing one Maildir per IMAP folder.
    """

    def __init__(self, base: Path) -> None:
        self.base = Path(base)
        self._boxes: dict[str, mailbox.Maildir] = {}

    def _box(self, folder: str) -> mailbox.Maildir:
        if folder not in self._boxes:
            path = self.base / folder_dir_name(folder)
            self._boxes[folder] = mailbox.Maildir(path, factory=None, create=True)
        return self._boxes[folder]

    def _read_ids(self, folder: str) -> set[UidExt]:
        box = self._box(folder)
        parser = email.parser.BytesHeaderParser(policy=email.policy.compat32)
        ids: set[UidExt] = set()

        for key in box.iterkeys():
            with box.get_file(key) as f:
                value = parser.parse(f).get(ID_HEADER)
            if not value:
                continue
            try:
                ids.add(UidExt.parse(str(value)))
            except ValueError:
                logger.warning(f"Ignoring malformed {ID_HEADER} header in {folder}: {value!r}")

        return ids

    def _write(self, folder: str, message: RetrievedMessage) -> str:
        header = f"{ID_HEADER}: {message.uid_ext}\r\n".encode("ascii")
        msg = mailbox.MaildirMessage(header + message.body)
        if message.internal_date is not None:
            msg.set_date(message.internal_date.timestamp())
        return self._box(folder).add(msg)

    async def known_ids(self, folder: str) -> set[UidExt]:
        """Return the ids of all messages already stored for a folder."""
        ids = await asyncio.to_thread(self._read_ids, folder)
        logger.debug(f"Found {len(ids)} stored messages for {folder}")
        return ids

    async def store(self, folder: str, message: RetrievedMessage) -> None:
        key = await asyncio.to_thread(self._write, folder, message)
        logger.debug(f"Stored {message.uid_ext} from {folder} as {key}")
