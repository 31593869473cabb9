# =============================================================================
# Pytest Configuration and Fixtures
# =============================================================================
# Shared fixtures for the Hawk-Grab test suite.
#
# FakeServer/FakeTransport stand in for a real IMAP server. They implement
# the ImapTransport protocol in memory and record every command, so tests
# can check both results and which commands reached the "network".
# =============================================================================

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone

import pytest
import pytest_asyncio

from hawk_grab.config import AccountConfig
from hawk_grab.core import FolderInfo, MailboxStatus, RawMessage, UidFolder
from hawk_grab.imap.errors import ProtocolError
from hawk_grab.imap.session import Session


def make_body(uid: int, subject: str | None = None) -> bytes:
    subject = subject or f"Message {uid}"
    return (
        f"From: sender@example.com\r\n"
        f"To: recipient@example.com\r\n"
        f"Subject: {subject}\r\n"
        f"Message-ID: <{uid}@example.com>\r\n"
        f"\r\n"
        f"Body of message {uid}.\r\n"
    ).encode("ascii")


@dataclass
class FakeMailbox:
    """Contents of one folder on the fake server."""
    uid_validity: int
    messages: dict[int, bytes] = field(default_factory=dict)
    flags: tuple[str, ...] = ("\\Seen", "\\Answered", "\\Flagged")

    @property
    def uids(self) -> list[int]:
        return sorted(self.messages)


class FakeServer:
    """
    In-memory IMAP server shared by all transports it hands out.

    Attributes:
        mailboxes: Folder name -> FakeMailbox.
        calls: Every command received, by any transport, in order.
        reject_login: Answer LOGIN with NO.
        fail_list / fail_fetch / fail_uid_fetch: Raise after streaming items.
        inject_empty: Interleave None and empty items with real results.
        hold_after: Pause UID FETCH after this many messages until `release`
                    is set.
        unsolicited: Items sent at the start of every UID FETCH answer.
        crash: Raised by UID FETCH after streaming items, instead of an
               IMAP error.
    """

    def __init__(self, mailboxes: dict[str, FakeMailbox] | None = None) -> None:
        self.mailboxes = mailboxes or {}
        self.calls: list[str] = []
        self.connections: list[tuple[str, int, bool]] = []
        self.transports: list["FakeTransport"] = []
        self.reject_login = False
        self.fail_list = False
        self.fail_fetch = False
        self.fail_uid_fetch = False
        self.inject_empty = False
        self.unsolicited: list[RawMessage] = []
        self.crash: Exception | None = None
        self.hold_after: int | None = None
        self.release = asyncio.Event()
        self.held = asyncio.Event()

    async def factory(self, host: str, port: int, secure: bool) -> "FakeTransport":
        self.connections.append((host, port, secure))
        transport = FakeTransport(self)
        self.transports.append(transport)
        return transport

    def commands(self, name: str) -> list[str]:
        return [c for c in self.calls if c == name]


class FakeTransport:
    """ImapTransport implementation talking to a FakeServer."""

    def __init__(self, server: FakeServer) -> None:
        self.server = server
        self.selected: FakeMailbox | None = None
        self.terminated = False
        self.logged_out = False

    async def login(self, user: str, password: str) -> None:
        self.server.calls.append("login")
        if self.server.reject_login:
            raise ProtocolError("LOGIN rejected by server: NO")

    async def list(self, reference: str, pattern: str):
        self.server.calls.append("list")
        for name in self.server.mailboxes:
            if self.server.inject_empty:
                yield None
            yield FolderInfo(name=name, delimiter="/", attributes=("\\HasNoChildren",))
        if self.server.fail_list:
            raise ProtocolError("LIST rejected by server: BAD")

    async def select(self, name: str, readonly: bool = True) -> MailboxStatus:
        self.server.calls.append("select")
        mailbox = self.server.mailboxes.get(name)
        if mailbox is None:
            raise ProtocolError(f"EXAMINE rejected by server: NO [NONEXISTENT] {name}")
        self.selected = mailbox
        return MailboxStatus(
            name=name,
            messages=len(mailbox.messages),
            uid_validity=UidFolder(mailbox.uid_validity),
            flags=mailbox.flags,
        )

    async def fetch(self, seqset, items):
        self.server.calls.append("fetch")
        uids = self.selected.uids
        for seq in seqset:
            if self.server.inject_empty:
                yield None
                yield RawMessage(seq=seq)
            if seq <= len(uids):
                yield RawMessage(seq=seq, uid=uids[seq - 1])
        if self.server.fail_fetch:
            raise ProtocolError("FETCH rejected by server: BAD")

    async def uid_fetch(self, seqset, items):
        self.server.calls.append("uid_fetch")
        uids = self.selected.uids
        for item in self.server.unsolicited:
            yield item
        sent = 0
        for uid in seqset:
            if uid not in self.selected.messages:
                continue
            if self.server.hold_after is not None and sent == self.server.hold_after:
                self.server.held.set()
                await self.server.release.wait()
            if self.server.inject_empty:
                yield None
            yield RawMessage(
                seq=uids.index(uid) + 1,
                uid=uid,
                internal_date=datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc),
                body=self.selected.messages[uid],
            )
            sent += 1
        if self.server.crash is not None:
            raise self.server.crash
        if self.server.fail_uid_fetch:
            raise ProtocolError("UID FETCH rejected by server: NO")

    async def logout(self) -> None:
        self.server.calls.append("logout")
        self.logged_out = True

    async def terminate(self) -> None:
        self.server.calls.append("terminate")
        self.terminated = True


@pytest.fixture
def server():
    """Fake server with an INBOX of three messages and an empty Archive."""
    return FakeServer({
        "INBOX": FakeMailbox(uid_validity=42, messages={uid: make_body(uid) for uid in (1, 2, 3)}),
        "Archive": FakeMailbox(uid_validity=7),
    })


@pytest.fixture
def account():
    """Account pointing at a local plaintext server."""
    return AccountConfig(
        name="test",
        server="127.0.0.1",
        user="test@example.com",
        port=143,
        insecure=True,
    )


@pytest_asyncio.fixture
async def session(server):
    """Authenticated session on the fake server."""
    session = await Session.connect("127.0.0.1:143", True, factory=server.factory)
    await session.login("test@example.com", "secret")
    server.calls.clear()
    return session


@pytest_asyncio.fixture
async def inbox(session, server):
    """Session with INBOX selected."""
    await session.select("INBOX")
    server.calls.clear()
    return session
