# =============================================================================
# Folder Download Manager
# =============================================================================
# Mirrors IMAP folders into a local MessageSink.
#
# Per folder the pipeline is strictly sequential:
#
#   authenticate -> select -> enumerate UIDs -> diff with sink -> retrieve
#
# Several folders are processed in parallel, each over its own Session
# (IMAP connections cannot run two commands at once). Folders are handled
# in waves of `threads` folders:
#
#   1. Set up every pipeline of the wave. Each retrieval registers itself
#      with a shared WaitGroup but does not fetch yet.
#   2. Set the shared start event. Now all retrievals hit the network.
#   3. Drain every retrieval into the sink, wait for the WaitGroup, log out.
#
# Key concepts:
#   - UIDVALIDITY: part of every stored id, so a changed UIDVALIDITY simply
#     makes every message of that folder "new" again
#   - A failing folder is reported in SyncResult.errors and does not stop
#     the other folders. Nothing is retried.
#   - Interrupts are cooperative: set the `interrupted` event and every
#     running retrieval stops after the message it is working on.
# =============================================================================

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

from hawk_grab.concurrency import WaitGroup
from hawk_grab.imap.folders import list_folders, select_folder
from hawk_grab.imap.retrieval import StreamingRetrieval, retrieve
from hawk_grab.imap.session import Session, authenticate
from hawk_grab.imap.transport import TransportFactory, connect_transport
from hawk_grab.imap.uids import enumerate_ids

if TYPE_CHECKING:
    from hawk_grab.config import AccountConfig
    from hawk_grab.storage import MessageSink

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    """
    Result of a download run.

    Attributes:
        success: True if every folder was downloaded without errors.
        folders: Number of folders processed.
        new_messages: Messages downloaded and stored.
        skipped_messages: Messages already present locally.
        errors: Error messages encountered, one per problem.
        duration_seconds: Time taken for the run.
    """
    success: bool = True
    folders: int = 0
    new_messages: int = 0
    skipped_messages: int = 0
    errors: list[str] = field(default_factory=list)
    duration_seconds: float = 0.0


@dataclass
class _FolderPipeline:
    """A folder whose retrieval has been set up but not consumed yet."""
    folder: str
    session: Session
    retrieval: StreamingRetrieval
    skipped: int = 0


class SyncManager:
    """
    Downloads folders of one account into a MessageSink.

    Usage:
        >>> manager = SyncManager(account, password, threads=4)
        >>> folders = await manager.get_all_folders()
        >>> result = await manager.download_folders(folders, MaildirSink(path))

    Attributes:
        account: Account configuration (server, port, user, insecure flag).
        threads: Number of folders downloaded in parallel.
    """

    def __init__(
        self,
        account: "AccountConfig",
        password: str,
        *,
        factory: TransportFactory = connect_transport,
        threads: int = 1,
    ) -> None:
        if threads < 1:
            raise ValueError(f"threads must be at least 1, got {threads}")
        self.account = account
        self.threads = threads
        self._password = password
        self._factory = factory

    async def _authenticate(self) -> Session:
        return await authenticate(self.account, self._password, factory=self._factory)

    async def get_all_folders(self) -> list[str]:
        """List the names of all folders of the account."""
        session = await self._authenticate()
        try:
            return await list_folders(session)
        finally:
            await session.logout()

    async def download_folders(
        self,
        folders: list[str],
        sink: "MessageSink",
        *,
        interrupted: asyncio.Event | None = None,
    ) -> SyncResult:
        """
        Download every message of the given folders not yet in the sink.

        Args:
            folders: Folder names to download.
            sink: Destination for the messages; also knows what is stored.
            interrupted: Set this event to stop the run early.

        Returns:
            SyncResult with statistics and errors.
        """
        start_time = datetime.now()
        result = SyncResult()
        if interrupted is None:
            interrupted = asyncio.Event()

        logger.info(f"Downloading {len(folders)} folders for account {self.account.name}")

        for i in range(0, len(folders), self.threads):
            if interrupted.is_set():
                result.errors.append("Interrupted before all folders were processed")
                break
            await self._download_wave(folders[i:i + self.threads], sink, interrupted, result)

        result.success = not result.errors
        result.duration_seconds = (datetime.now() - start_time).total_seconds()

        logger.info(
            f"Download complete: {result.new_messages} new, "
            f"{result.skipped_messages} already present, "
            f"{len(result.errors)} errors"
        )
        return result

    async def _download_wave(
        self,
        folders: list[str],
        sink: "MessageSink",
        interrupted: asyncio.Event,
        result: SyncResult,
    ) -> None:
        tracker = WaitGroup()
        start = asyncio.Event()

        setups = await asyncio.gather(
            *(self._prepare(folder, sink, interrupted, tracker, start) for folder in folders),
            return_exceptions=True,
        )

        pipelines: list[_FolderPipeline] = []
        fatal: BaseException | None = None
        for folder, setup in zip(folders, setups):
            if isinstance(setup, Exception):
                error_msg = f"Error syncing {folder}: {setup}"
                logger.error(error_msg)
                result.errors.append(error_msg)
            elif isinstance(setup, BaseException):
                fatal = fatal or setup
            else:
                pipelines.append(setup)

        if fatal is not None:
            # Drop the connections first, so the released retrievals end
            # without fetching anything
            try:
                for pipeline in pipelines:
                    await pipeline.session.terminate()
            finally:
                start.set()
            raise fatal

        # Every retrieval of this wave is registered, let them fetch
        start.set()

        try:
            await asyncio.gather(*(self._consume(p, sink, result) for p in pipelines))
            await tracker.wait()
        finally:
            for pipeline in pipelines:
                if interrupted.is_set():
                    # A fetch may still be running; don't wait for it
                    await pipeline.session.terminate()
                else:
                    await pipeline.session.logout()

    async def _prepare(
        self,
        folder: str,
        sink: "MessageSink",
        interrupted: asyncio.Event,
        tracker: WaitGroup,
        start: asyncio.Event,
    ) -> _FolderPipeline:
        session = await self._authenticate()
        try:
            status = await select_folder(session, folder)

            uids, error = await enumerate_ids(session, status)
            if error is not None:
                raise error

            known = await sink.known_ids(folder)
            missing = [uid.msg for uid in uids if uid not in known]
            logger.info(
                f"{folder}: {len(missing)} new messages, {len(uids) - len(missing)} already stored"
            )

            retrieval = retrieve(session, missing, interrupted, tracker=tracker, start=start)
        except BaseException:
            await session.terminate()
            raise

        return _FolderPipeline(
            folder=folder,
            session=session,
            retrieval=retrieval,
            skipped=len(uids) - len(missing),
        )

    async def _consume(
        self,
        pipeline: _FolderPipeline,
        sink: "MessageSink",
        result: SyncResult,
    ) -> None:
        stored = 0
        async for message in pipeline.retrieval:
            try:
                await sink.store(pipeline.folder, message)
            except OSError as e:
                # Keep draining so the retrieval can finish
                error_msg = f"Cannot store {message.uid_ext} from {pipeline.folder}: {e}"
                logger.error(error_msg)
                result.errors.append(error_msg)
                continue
            stored += 1

        await pipeline.retrieval.wait()

        # Only meaningful once the stream has been drained
        for error in pipeline.retrieval.errors.errors:
            result.errors.append(f"Error syncing {pipeline.folder}: {error}")

        result.folders += 1
        result.new_messages += stored
        result.skipped_messages += pipeline.skipped
        logger.info(f"{pipeline.folder}: stored {stored} messages")
