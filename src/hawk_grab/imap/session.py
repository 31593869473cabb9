# =============================================================================
# IMAP Session
# =============================================================================
# A Session owns exactly one transport (one connection) and tracks where in
# the IMAP state machine it is:
#
#     DISCONNECTED -> CONNECTED -> AUTHENTICATED -> TERMINATED
#
# Design notes:
#   - Plaintext connections are only allowed to 127.0.0.1. Anything else
#     with insecure_allowed=True is refused before a connection is attempted.
#   - An empty password is refused without contacting the server.
#   - IMAP connections are not re-entrant: every command holds the
#     session's lock, so concurrent callers are serialized. Use one Session
#     per folder to work on several folders in parallel.
#   - The transport factory is passed in explicitly, which is how tests
#     substitute a fake server.
# =============================================================================

import asyncio
import logging
from enum import Enum, auto
from typing import TYPE_CHECKING, AsyncIterator, Sequence

from hawk_grab.core import FolderInfo, MailboxStatus, RawMessage, SequenceSet
from hawk_grab.imap.errors import (
    AuthError,
    FolderError,
    PolicyError,
    ProtocolError,
    SessionStateError,
    ValidationError,
)
from hawk_grab.imap.transport import ImapTransport, TransportFactory, connect_transport

if TYPE_CHECKING:
    from hawk_grab.config import AccountConfig

logger = logging.getLogger(__name__)

# The only host plaintext IMAP may be used with
LOOPBACK_HOST = "127.0.0.1"


class SessionState(Enum):
    """Where a session is in the IMAP connection lifecycle."""
    DISCONNECTED = auto()   # No transport yet
    CONNECTED = auto()      # Transport open, not logged in
    AUTHENTICATED = auto()  # Logged in, commands allowed
    TERMINATED = auto()     # Logged out or dropped


def split_address(address: str) -> tuple[str, int]:
    """
    Split a "host:port" address.

    IPv6 hosts must be given in brackets, e.g. "[::1]:143".

    Raises:
        ValidationError: If the address has no valid port.
    """
    host, sep, port = address.rpartition(":")
    if not sep or not host or not port.isdigit():
        raise ValidationError(f"Expected an address of the form host:port, got {address!r}")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    return host, int(port)


class Session:
    """
    One connection to an IMAP server.

    Usage:
        >>> session = await Session.connect("imap.example.com:993")
        >>> await session.login("user@example.com", password)
        >>> status = await session.select("INBOX")
        >>> await session.logout()

    Attributes:
        address: The "host:port" this session is connected to.
        state: Current SessionState.
        selected: Status of the currently selected mailbox, if any.
    """

    def __init__(self, transport: ImapTransport, address: str) -> None:
        self._transport = transport
        self._lock = asyncio.Lock()
        self.address = address
        self.state = SessionState.CONNECTED
        self.selected: MailboxStatus | None = None

    # =========================================================================
    # Connection Management
    # =========================================================================

    @classmethod
    async def connect(
        cls,
        address: str,
        insecure_allowed: bool = False,
        *,
        factory: TransportFactory = connect_transport,
    ) -> "Session":
        """
        Connect to an IMAP server.

        Args:
            address: Server address as "host:port".
            insecure_allowed: Use a plaintext connection. Only permitted for
                              the loopback address 127.0.0.1.
            factory: Creates the underlying transport.

        Raises:
            PolicyError: If a plaintext connection to another host is requested.
            IMAPConnectionError: If the server cannot be reached.
        """
        host, port = split_address(address)

        if insecure_allowed:
            if host != LOOPBACK_HOST:
                raise PolicyError(
                    f"Not allowing insecure connection to non-localhost address {address}, "
                    f"use {LOOPBACK_HOST}"
                )
            logger.warning("Using insecure connection to localhost")

        logger.info(f"Connecting to server {address}")
        transport = await factory(host, port, not insecure_allowed)
        logger.info("Connected")
        return cls(transport, address)

    async def login(self, user: str, password: str) -> None:
        """
        Authenticate with the server.

        Raises:
            AuthError: If the password is empty or the server rejects the login.
            SessionStateError: If the session is not freshly connected.
        """
        if not password:
            logger.error("Empty password detected")
            raise AuthError("Password not set")

        if self.state is not SessionState.CONNECTED:
            raise SessionStateError(f"Cannot log in while {self.state.name.lower()}")

        logger.info(f"Logging in as {user} with provided password")
        async with self._lock:
            try:
                await self._transport.login(user, password)
            except ProtocolError as e:
                logger.error("Cannot log in")
                raise AuthError(f"Authentication failed for {user}: {e}") from e

        self.state = SessionState.AUTHENTICATED
        logger.info("Logged in")

    async def logout(self) -> None:
        """Log out and close the connection. Safe to call more than once."""
        if self.state is SessionState.TERMINATED:
            return

        async with self._lock:
            try:
                await self._transport.logout()
            except ProtocolError as e:
                logger.warning(f"Error during logout: {e}")
            finally:
                self.state = SessionState.TERMINATED
                self.selected = None

    async def terminate(self) -> None:
        """
        Drop the connection immediately.

        Does not take the session lock, so it also works while a command
        is still running in the background.
        """
        if self.state is SessionState.TERMINATED:
            return
        self.state = SessionState.TERMINATED
        self.selected = None
        await self._transport.terminate()

    # =========================================================================
    # Protocol Primitives
    # =========================================================================

    @property
    def is_authenticated(self) -> bool:
        return self.state is SessionState.AUTHENTICATED

    def require_authenticated(self) -> None:
        if not self.is_authenticated:
            raise SessionStateError(
                f"Session is {self.state.name.lower()}, log in first"
            )

    async def list(self, reference: str = "", pattern: str = "*") -> AsyncIterator[FolderInfo]:
        self.require_authenticated()
        async with self._lock:
            async for folder in self._transport.list(reference, pattern):
                yield folder

    async def select(self, name: str, readonly: bool = True) -> MailboxStatus:
        """
        Select a folder.

        Raises:
            FolderError: If the folder does not exist or cannot be selected.
        """
        self.require_authenticated()
        async with self._lock:
            try:
                status = await self._transport.select(name, readonly)
            except ProtocolError as e:
                self.selected = None
                raise FolderError(f"Failed to select folder '{name}': {e}") from e

        self.selected = status
        return status

    async def fetch(
        self, seqset: SequenceSet, items: Sequence[str]
    ) -> AsyncIterator[RawMessage | None]:
        self.require_authenticated()
        async with self._lock:
            async for message in self._transport.fetch(seqset, items):
                yield message

    async def uid_fetch(
        self, seqset: SequenceSet, items: Sequence[str]
    ) -> AsyncIterator[RawMessage | None]:
        self.require_authenticated()
        async with self._lock:
            async for message in self._transport.uid_fetch(seqset, items):
                yield message

    def __repr__(self) -> str:
        return f"Session(address={self.address!r}, state={self.state.name})"


async def authenticate(
    account: "AccountConfig",
    password: str,
    *,
    factory: TransportFactory = connect_transport,
) -> Session:
    """
    Connect and log in using an account configuration.

    Args:
        account: Server, port, user and insecure flag.
        password: Password for the account.
        factory: Creates the underlying transport.

    Returns:
        An authenticated Session.
    """
    if not password:
        logger.error("Empty password detected")
        raise AuthError("Password not set")

    session = await Session.connect(
        account.address,
        account.insecure,
        factory=factory,
    )
    try:
        await session.login(account.user, password)
    except BaseException:
        await session.terminate()
        raise
    return session
