"""Tests for the folder download manager."""

import asyncio
from unittest.mock import patch

import pytest

from conftest import FakeMailbox, make_body
from hawk_grab.core import RetrievedMessage, UidExt
from hawk_grab.imap import SyncManager, select_folder


class MemorySink:
    """MessageSink keeping everything in a dict."""

    def __init__(self):
        self.folders: dict[str, dict[UidExt, RetrievedMessage]] = {}
        self.fail_on: set[int] = set()
        self.on_store = None

    async def known_ids(self, folder):
        return set(self.folders.get(folder, {}))

    async def store(self, folder, message):
        if message.uid in self.fail_on:
            raise OSError("disk full")
        self.folders.setdefault(folder, {})[message.uid_ext] = message
        if self.on_store is not None:
            self.on_store()


@pytest.fixture
def sink():
    return MemorySink()


@pytest.fixture
def manager(account, server):
    return SyncManager(account, "secret", factory=server.factory)


def test_threads_must_be_positive(account):
    with pytest.raises(ValueError):
        SyncManager(account, "secret", threads=0)


@pytest.mark.asyncio
async def test_get_all_folders(manager, server):
    assert await manager.get_all_folders() == ["INBOX", "Archive"]
    assert server.calls[-1] == "logout"


@pytest.mark.asyncio
async def test_downloads_everything_once(manager, server, sink):
    result = await manager.download_folders(["INBOX", "Archive"], sink)

    assert result.success
    assert result.folders == 2
    assert result.new_messages == 3
    assert result.skipped_messages == 0
    assert [str(uid) for uid in sorted(sink.folders["INBOX"])] == ["42/1", "42/2", "42/3"]
    assert all(t.logged_out for t in server.transports)


@pytest.mark.asyncio
async def test_second_run_downloads_nothing(manager, server, sink):
    await manager.download_folders(["INBOX"], sink)
    server.calls.clear()

    result = await manager.download_folders(["INBOX"], sink)

    assert result.success
    assert result.new_messages == 0
    assert result.skipped_messages == 3
    assert "uid_fetch" not in server.calls


@pytest.mark.asyncio
async def test_only_new_messages_downloaded(manager, server, sink):
    await manager.download_folders(["INBOX"], sink)
    server.mailboxes["INBOX"].messages[4] = make_body(4)

    result = await manager.download_folders(["INBOX"], sink)

    assert result.new_messages == 1
    assert result.skipped_messages == 3
    assert len(sink.folders["INBOX"]) == 4


@pytest.mark.asyncio
async def test_uid_validity_change_downloads_again(manager, server, sink):
    await manager.download_folders(["INBOX"], sink)
    server.mailboxes["INBOX"].uid_validity = 43

    result = await manager.download_folders(["INBOX"], sink)

    assert result.new_messages == 3
    assert len(sink.folders["INBOX"]) == 6


@pytest.mark.asyncio
async def test_missing_folder_reported(manager, server, sink):
    result = await manager.download_folders(["INBOX", "Nope"], sink)

    assert not result.success
    assert result.new_messages == 3
    assert len(result.errors) == 1
    assert "Nope" in result.errors[0]
    # The failed folder's connection is dropped, the other one logged out
    assert sorted(t.terminated or t.logged_out for t in server.transports) == [True, True]


@pytest.mark.asyncio
async def test_parallel_folders(account, server, sink):
    server.mailboxes["Sent"] = FakeMailbox(uid_validity=5, messages={10: make_body(10)})
    manager = SyncManager(account, "secret", factory=server.factory, threads=2)

    result = await manager.download_folders(["INBOX", "Archive", "Sent"], sink)

    assert result.success
    assert result.folders == 3
    assert result.new_messages == 4
    assert len(server.connections) == 3
    assert [str(uid) for uid in sink.folders["Sent"]] == ["5/10"]


@pytest.mark.asyncio
async def test_store_failure_keeps_going(manager, sink):
    sink.fail_on = {2}

    result = await manager.download_folders(["INBOX"], sink)

    assert not result.success
    assert result.new_messages == 2
    assert len(result.errors) == 1


@pytest.mark.asyncio
async def test_retrieval_error_reported(manager, server, sink):
    server.fail_uid_fetch = True

    result = await manager.download_folders(["INBOX"], sink)

    assert not result.success
    assert result.new_messages == 3
    assert any("INBOX" in error for error in result.errors)


@pytest.mark.asyncio
async def test_wrong_password(manager, server, sink):
    server.reject_login = True

    result = await manager.download_folders(["INBOX"], sink)

    assert not result.success
    assert result.new_messages == 0


@pytest.mark.asyncio
async def test_interrupted_before_start(manager, server, sink):
    interrupted = asyncio.Event()
    interrupted.set()

    result = await manager.download_folders(["INBOX"], sink, interrupted=interrupted)

    assert not result.success
    assert result.new_messages == 0
    assert server.connections == []


@pytest.mark.asyncio
async def test_interrupted_mid_download(manager, server, sink):
    server.hold_after = 1
    interrupted = asyncio.Event()

    sink.on_store = interrupted.set

    result = await asyncio.wait_for(
        manager.download_folders(["INBOX"], sink, interrupted=interrupted),
        timeout=1,
    )

    assert not result.success
    assert result.new_messages == 1
    assert server.transports[-1].terminated
    assert server.held.is_set()

    # Let the abandoned fetch finish
    server.release.set()
    await asyncio.sleep(0.01)


class SetupAborted(BaseException):
    pass


@pytest.mark.asyncio
async def test_aborted_setup_releases_other_folders(account, server, sink):
    manager = SyncManager(account, "secret", factory=server.factory, threads=2)

    async def select(session, name):
        if name == "Archive":
            raise SetupAborted()
        return await select_folder(session, name)

    with patch("hawk_grab.imap.sync.select_folder", new=select):
        with pytest.raises(SetupAborted):
            await manager.download_folders(["INBOX", "Archive"], sink)

    # Let the released retrievals run to their end
    await asyncio.sleep(0.01)

    assert len(server.transports) == 2
    assert all(t.terminated for t in server.transports)
    assert "uid_fetch" not in server.calls
    assert sink.folders == {}


@pytest.mark.asyncio
async def test_unexpected_retrieval_error_fails_run(manager, server, sink):
    server.crash = RuntimeError("unexpected end of stream")

    result = await manager.download_folders(["INBOX"], sink)

    assert not result.success
    assert any("unexpected end of stream" in error for error in result.errors)
