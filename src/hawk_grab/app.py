# =============================================================================
# Hawk-Grab Command Line Interface
# =============================================================================
# Entry point for the `hawk-grab` command:
#
#   hawk-grab list                      List the folders of an account
#   hawk-grab download                  Download new mail into Maildir folders
#   hawk-grab --paths                   Show where config and data live
#
# The CLI is a thin layer: it loads the configuration, sets up logging,
# turns Ctrl+C into a cooperative interrupt, and hands over to SyncManager.
# =============================================================================

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

from hawk_grab import __app_name__, __version__
from hawk_grab.config import AccountConfig, Config, ConfigError, print_paths
from hawk_grab.imap import IMAPError, SyncManager
from hawk_grab.storage import MaildirSink

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments namespace.
    """
    parser = argparse.ArgumentParser(
        prog=__app_name__,
        description="Hawk-Grab: incrementally mirror IMAP folders to local Maildirs",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    parser.add_argument(
        "--paths",
        action="store_true",
        help="Print configuration paths and exit",
    )

    parser.add_argument(
        "--config",
        type=Path,
        help="Path to config file (default: XDG config location)",
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug mode (verbose logging)",
    )

    subparsers = parser.add_subparsers(dest="command")

    list_parser = subparsers.add_parser("list", help="List all folders of an account")
    list_parser.add_argument("--account", help="Account name (default: default_account)")

    download_parser = subparsers.add_parser("download", help="Download new messages")
    download_parser.add_argument("--account", help="Account name (default: default_account)")
    download_parser.add_argument(
        "--folder",
        action="append",
        default=[],
        help="Folder to download (repeatable, default: configured folders or all)",
    )
    download_parser.add_argument(
        "--threads",
        type=int,
        help="Number of folders to download in parallel",
    )
    download_parser.add_argument(
        "--maildir",
        type=Path,
        help="Base directory for the Maildir folders",
    )

    return parser.parse_args(argv)


def setup_logging(debug: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _install_interrupt_handler(interrupted: asyncio.Event) -> None:
    """Turn SIGINT into a cooperative interrupt instead of KeyboardInterrupt."""
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, interrupted.set)
    except NotImplementedError:
        # Not available on Windows event loops; Ctrl+C stays a hard stop there
        logger.debug("Cannot install SIGINT handler on this platform")


async def run_list(account: AccountConfig, password: str) -> int:
    manager = SyncManager(account, password)
    for folder in await manager.get_all_folders():
        print(folder)
    return 0


async def run_download(
    account: AccountConfig,
    password: str,
    folders: list[str],
    threads: int,
    maildir: Path,
) -> int:
    interrupted = asyncio.Event()
    _install_interrupt_handler(interrupted)

    manager = SyncManager(account, password, threads=threads)
    if not folders:
        folders = await manager.get_all_folders()

    result = await manager.download_folders(folders, MaildirSink(maildir), interrupted=interrupted)

    for error in result.errors:
        logger.error(error)
    print(
        f"{result.new_messages} new, {result.skipped_messages} already present, "
        f"{len(result.errors)} errors in {result.duration_seconds:.1f}s"
    )
    return 0 if result.success else 1


def main(argv: list[str] | None = None) -> int:
    """
    Main entry point for Hawk-Grab.

    This function:
        1. Parses command-line arguments
        2. Handles special commands (--paths, --version)
        3. Loads configuration and the account password
        4. Runs the requested command

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    args = parse_args(argv)
    setup_logging(args.debug)

    if args.paths:
        print_paths()
        return 0

    if args.command is None:
        print("No command given, use 'list' or 'download' (see --help)", file=sys.stderr)
        return 2

    try:
        config = Config.load(args.config)
        account = config.get_account(args.account)
    except ConfigError as e:
        print(f"Config error: {e}", file=sys.stderr)
        return 1

    password = account.get_password()

    try:
        if args.command == "list":
            return asyncio.run(run_list(account, password))
        return asyncio.run(
            run_download(
                account,
                password,
                args.folder or account.folders,
                args.threads or config.sync.threads,
                args.maildir or config.sync.maildir_path,
            )
        )
    except IMAPError as e:
        logger.error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
