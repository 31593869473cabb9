# =============================================================================
# IMAP Transport
# =============================================================================
# The wire-level IMAP protocol is handled by aioimaplib. This module adapts
# it to the small capability the rest of Hawk-Grab relies on:
#
#     login, list, select, fetch, uid_fetch, logout, terminate
#
# ImapTransport describes that capability as a typing.Protocol. The session
# layer only ever talks to an ImapTransport, which is created by a factory
# passed in explicitly. Tests pass a factory producing an in-memory fake;
# production code uses connect_transport() below.
#
# aioimaplib returns complete responses (a result code plus a list of
# lines), not streams. The adapter parses those lines and yields the items
# one by one, so callers can treat LIST and FETCH results as async streams.
# =============================================================================

import asyncio
import logging
import re
from datetime import datetime
from typing import AsyncIterator, Awaitable, Callable, Iterable, Iterator, Protocol, Sequence

from aioimaplib import aioimaplib

from hawk_grab.core import FolderInfo, MailboxStatus, RawMessage, SequenceSet, UidFolder
from hawk_grab.imap.errors import IMAPConnectionError, ProtocolError

logger = logging.getLogger(__name__)

# Errors aioimaplib lets through when a command cannot complete
_TRANSPORT_ERRORS = (aioimaplib.AioImapException, asyncio.TimeoutError, OSError)


class ImapTransport(Protocol):
    """The IMAP commands Hawk-Grab needs from a client library."""

    async def login(self, user: str, password: str) -> None: ...

    def list(self, reference: str, pattern: str) -> AsyncIterator[FolderInfo]: ...

    async def select(self, name: str, readonly: bool = True) -> MailboxStatus: ...

    def fetch(
        self, seqset: SequenceSet, items: Sequence[str]
    ) -> AsyncIterator[RawMessage | None]: ...

    def uid_fetch(
        self, seqset: SequenceSet, items: Sequence[str]
    ) -> AsyncIterator[RawMessage | None]: ...

    async def logout(self) -> None: ...

    async def terminate(self) -> None: ...


# Creates a connected (not yet authenticated) transport: (host, port, secure)
TransportFactory = Callable[[str, int, bool], Awaitable[ImapTransport]]


def _quote_folder_name(name: str) -> str:
    """
    Quote an IMAP folder name if it contains special characters.

    IMAP folder names with spaces or special characters must be quoted.
    Internal quotes and backslashes are escaped.
    """
    if ' ' in name or '"' in name or '\\' in name or any(c in name for c in '(){}[]'):
        escaped = name.replace('\\', '\\\\').replace('"', '\\"')
        return f'"{escaped}"'
    return name


def _format_items(items: Sequence[str]) -> str:
    return "(" + " ".join(items) + ")"


class AioImapTransport:
    """
    ImapTransport backed by an aioimaplib client.

    Attributes:
        TIMEOUT: Timeout for IMAP operations (seconds).
    """

    TIMEOUT = 30

    def __init__(self, client: aioimaplib.IMAP4) -> None:
        self._client = client

    async def _command(self, name: str, coro: Awaitable) -> aioimaplib.Response:
        try:
            response = await coro
        except _TRANSPORT_ERRORS as e:
            raise ProtocolError(f"{name} failed: {e}") from e

        if response.result != "OK":
            raise ProtocolError(f"{name} rejected by server: {response.result} {response.lines}")
        return response

    # =========================================================================
    # Session Commands
    # =========================================================================

    async def login(self, user: str, password: str) -> None:
        await self._command("LOGIN", self._client.login(user, password))

    async def logout(self) -> None:
        await self._command("LOGOUT", self._client.logout())

    async def terminate(self) -> None:
        """Drop the connection without saying goodbye to the server."""
        transport = getattr(self._client.protocol, "transport", None)
        if transport is not None:
            transport.close()

    # =========================================================================
    # Folder Commands
    # =========================================================================

    async def list(self, reference: str, pattern: str) -> AsyncIterator[FolderInfo]:
        # An empty reference must be sent as a quoted empty string
        response = await self._command(
            "LIST", self._client.list(reference or '""', pattern)
        )
        for folder in parse_list_lines(response.lines):
            yield folder

    async def select(self, name: str, readonly: bool = True) -> MailboxStatus:
        quoted = _quote_folder_name(name)
        if readonly:
            response = await self._command("EXAMINE", self._client.examine(quoted))
        else:
            response = await self._command("SELECT", self._client.select(quoted))
        return parse_select_lines(name, response.lines)

    # =========================================================================
    # Message Commands
    # =========================================================================

    async def fetch(
        self, seqset: SequenceSet, items: Sequence[str]
    ) -> AsyncIterator[RawMessage | None]:
        response = await self._command(
            "FETCH", self._client.fetch(str(seqset), _format_items(items))
        )
        for message in parse_fetch_lines(response.lines):
            yield message

    async def uid_fetch(
        self, seqset: SequenceSet, items: Sequence[str]
    ) -> AsyncIterator[RawMessage | None]:
        response = await self._command(
            "UID FETCH", self._client.uid("FETCH", str(seqset), _format_items(items))
        )
        for message in parse_fetch_lines(response.lines):
            yield message


async def connect_transport(host: str, port: int, secure: bool) -> ImapTransport:
    """
    Open a connection to an IMAP server.

    Args:
        host: Server hostname or address.
        port: Server port (usually 993 for TLS, 143 for plaintext).
        secure: Use implicit TLS. Plaintext is only ever requested for
                loopback addresses, see Session.connect().

    Returns:
        A connected, unauthenticated transport.

    Raises:
        IMAPConnectionError: If the server cannot be reached.
    """
    if secure:
        client = aioimaplib.IMAP4_SSL(host=host, port=port, timeout=AioImapTransport.TIMEOUT)
    else:
        client = aioimaplib.IMAP4(host=host, port=port, timeout=AioImapTransport.TIMEOUT)

    try:
        await client.wait_hello_from_server()
    except asyncio.TimeoutError as e:
        raise IMAPConnectionError(f"Connection timed out to {host}:{port}") from e
    except OSError as e:
        raise IMAPConnectionError(f"Failed to connect to {host}:{port}: {e}") from e

    return AioImapTransport(client)


# =============================================================================
# Response Parsing
# =============================================================================

_LIST_RE = re.compile(r'\(([^)]*)\)\s+(?:"([^"]*)"|NIL)\s+(.+)$', re.IGNORECASE)
_FETCH_START_RE = re.compile(rb"^(\d+)\s+FETCH\s*\(", re.IGNORECASE)
_UID_RE = re.compile(rb"\bUID\s+(\d+)", re.IGNORECASE)
_INTERNALDATE_RE = re.compile(rb'INTERNALDATE\s+"([^"]+)"', re.IGNORECASE)
_LITERAL_RE = re.compile(rb"\{(\d+)\}\s*$")
_COMPLETED_RE = re.compile(rb"\bcompleted\b", re.IGNORECASE)


def _to_text(line: bytes | bytearray | str) -> str:
    if isinstance(line, (bytes, bytearray)):
        return bytes(line).decode("utf-8", errors="replace")
    return str(line)


def _to_bytes(line: bytes | bytearray | str) -> bytes:
    if isinstance(line, (bytes, bytearray)):
        return bytes(line)
    return str(line).encode("utf-8")


def parse_list_lines(lines: Iterable[bytes | str]) -> Iterator[FolderInfo]:
    """
    Parse LIST response lines into FolderInfo objects.

    LIST response format:
        (\\HasNoChildren) "/" "INBOX"
        (\\HasNoChildren \\Sent) "/" Sent
    """
    for raw in lines:
        line = _to_text(raw).strip()

        # Folder entries start with their attribute list; anything else is
        # a status or completion line such as "LIST completed."
        if not line.startswith("("):
            continue

        match = _LIST_RE.match(line)
        if not match:
            logger.warning(f"Could not parse folder line: {line}")
            continue

        attributes, delimiter, name = match.groups()
        name = name.strip()
        if len(name) >= 2 and name.startswith('"') and name.endswith('"'):
            name = name[1:-1].replace('\\"', '"').replace('\\\\', '\\')

        yield FolderInfo(
            name=name,
            delimiter=delimiter or "",
            attributes=tuple(attributes.split()),
        )


def parse_select_lines(name: str, lines: Iterable[bytes | str]) -> MailboxStatus:
    """Parse a SELECT/EXAMINE response into a MailboxStatus."""
    messages = 0
    uid_validity = 0
    flags: tuple[str, ...] = ()

    for raw in lines:
        line = _to_text(raw)

        match = re.search(r"(\d+)\s+EXISTS", line, re.IGNORECASE)
        if match:
            messages = int(match.group(1))

        match = re.search(r"UIDVALIDITY\s+(\d+)", line, re.IGNORECASE)
        if match:
            uid_validity = int(match.group(1))

        # PERMANENTFLAGS also contains "FLAGS (", only take the plain one
        match = re.match(r"\s*FLAGS\s*\(([^)]*)\)", line, re.IGNORECASE)
        if match:
            flags = tuple(match.group(1).split())

    return MailboxStatus(
        name=name,
        messages=messages,
        uid_validity=UidFolder(uid_validity),
        flags=flags,
    )


def parse_internal_date(value: str) -> datetime | None:
    """Parse an INTERNALDATE value such as '17-Jul-1996 02:44:25 -0700'."""
    try:
        return datetime.strptime(value.strip(), "%d-%b-%Y %H:%M:%S %z")
    except ValueError:
        logger.debug(f"Unparseable INTERNALDATE: {value!r}")
        return None


def _apply_attributes(message: RawMessage, line: bytes) -> None:
    match = _UID_RE.search(line)
    if match:
        message.uid = int(match.group(1))

    match = _INTERNALDATE_RE.search(line)
    if match:
        message.internal_date = parse_internal_date(match.group(1).decode("ascii", "replace"))


def parse_fetch_lines(lines: Iterable[bytes | bytearray | str]) -> Iterator[RawMessage]:
    """
    Parse FETCH / UID FETCH response lines into RawMessage objects.

    aioimaplib returns each message as a header line, optionally followed
    by a literal (the body) and a closing line:

        b'1 FETCH (UID 7 INTERNALDATE "..." RFC822 {342}'
        bytearray(b'From: ...')
        b')'

    Attributes may also appear after the literal, on the closing line.
    Lines that do not belong to any message are ignored.
    """
    current: RawMessage | None = None
    expect_literal = False

    for raw in lines:
        data = _to_bytes(raw)

        if expect_literal and current is not None:
            current.body = data
            expect_literal = False
            continue

        match = _FETCH_START_RE.match(data)
        if match:
            if current is not None:
                yield current
            current = RawMessage(seq=int(match.group(1)))
        elif current is None or _COMPLETED_RE.search(data):
            continue

        _apply_attributes(current, data)
        expect_literal = bool(_LITERAL_RE.search(data))

    if current is not None:
        yield current
