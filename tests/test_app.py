"""Tests for the command line interface."""

from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from hawk_grab.app import main, parse_args
from hawk_grab.config import AccountConfig, Config, SyncConfig
from hawk_grab.imap import SyncResult
from hawk_grab.imap.errors import AuthError


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.toml"
    Config(
        default_account="local",
        accounts={"local": AccountConfig(name="local", server="127.0.0.1", port=143, insecure=True)},
        sync=SyncConfig(threads=2, maildir=str(tmp_path / "mail")),
    ).save(path)
    return path


class TestParseArgs:
    """Tests for argument parsing."""

    def test_download_options(self):
        args = parse_args([
            "download", "--account", "work", "--folder", "INBOX", "--folder", "Sent",
            "--threads", "4", "--maildir", "/srv/mail",
        ])

        assert args.command == "download"
        assert args.account == "work"
        assert args.folder == ["INBOX", "Sent"]
        assert args.threads == 4
        assert args.maildir == Path("/srv/mail")

    def test_list(self):
        args = parse_args(["--debug", "list"])
        assert args.command == "list"
        assert args.debug

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc:
            parse_args(["--version"])
        assert exc.value.code == 0
        assert "hawk-grab" in capsys.readouterr().out


class TestMain:
    """Tests for the main entry point."""

    def test_paths(self, capsys):
        assert main(["--paths"]) == 0
        assert "config.toml" in capsys.readouterr().out

    def test_no_command(self):
        assert main([]) == 2

    def test_invalid_config(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text("not = = toml")

        assert main(["--config", str(path), "list"]) == 1

    def test_unknown_account(self, config_file):
        assert main(["--config", str(config_file), "list", "--account", "nope"]) == 1

    def test_list(self, config_file, capsys):
        with patch("hawk_grab.app.SyncManager") as manager_cls, \
                patch.object(AccountConfig, "get_password", return_value="secret"):
            manager_cls.return_value.get_all_folders = AsyncMock(return_value=["INBOX", "Sent"])

            assert main(["--config", str(config_file), "list"]) == 0

        assert capsys.readouterr().out.split() == ["INBOX", "Sent"]
        manager_cls.assert_called_once()

    def test_download_uses_config(self, config_file, tmp_path):
        with patch("hawk_grab.app.SyncManager") as manager_cls, \
                patch.object(AccountConfig, "get_password", return_value="secret"):
            manager = manager_cls.return_value
            manager.download_folders = AsyncMock(return_value=SyncResult(new_messages=2))

            assert main(["--config", str(config_file), "download", "--folder", "INBOX"]) == 0

        assert manager_cls.call_args.kwargs["threads"] == 2
        folders, sink = manager.download_folders.await_args.args
        assert folders == ["INBOX"]
        assert sink.base == tmp_path / "mail"

    def test_download_failure(self, config_file):
        with patch("hawk_grab.app.SyncManager") as manager_cls, \
                patch.object(AccountConfig, "get_password", return_value="secret"):
            manager_cls.return_value.download_folders = AsyncMock(
                return_value=SyncResult(success=False, errors=["Error syncing INBOX: boom"])
            )

            assert main(["--config", str(config_file), "download", "--folder", "INBOX"]) == 1

    def test_imap_error(self, config_file):
        with patch("hawk_grab.app.SyncManager") as manager_cls, \
                patch.object(AccountConfig, "get_password", return_value=""):
            manager_cls.return_value.get_all_folders = AsyncMock(side_effect=AuthError("Password not set"))

            assert main(["--config", str(config_file), "list"]) == 1
