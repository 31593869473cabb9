# =============================================================================
# Folder Operations
# =============================================================================
# Listing the folders of an account and selecting one of them.
#
# Folder names are streamed: a producer task runs the LIST command and
# pushes names into a small bounded channel while the caller drains it.
# Errors from the producer are only looked at after the channel is closed.
# =============================================================================

import asyncio
import logging

from hawk_grab.concurrency import Channel, ErrorCounter
from hawk_grab.core import MailboxStatus
from hawk_grab.imap.errors import IMAPError
from hawk_grab.imap.session import Session

logger = logging.getLogger(__name__)

# Buffer between the LIST producer and the consumer
FOLDER_LIST_BUFFER = 10


async def _produce_folder_names(
    session: Session,
    names: Channel[str],
    errors: ErrorCounter,
) -> None:
    try:
        async for folder in session.list("", "*"):
            if folder is not None and folder.name:
                await names.send(folder.name)
    except IMAPError as e:
        logger.error(f"Cannot list folders: {e}")
        errors.record(e)
    finally:
        await names.close()


async def list_folders(session: Session) -> list[str]:
    """
    Retrieve the names of all folders of the account.

    Args:
        session: An authenticated session.

    Returns:
        Folder names in the order the server listed them. An account
        without folders gives an empty list.

    Raises:
        SessionStateError: If the session is not authenticated.
        IMAPError: If the server failed to list the folders.
    """
    session.require_authenticated()
    logger.info("Retrieving folders")

    names: Channel[str] = Channel(FOLDER_LIST_BUFFER)
    errors = ErrorCounter()
    producer = asyncio.create_task(
        _produce_folder_names(session, names, errors),
        name="list-folders",
    )

    folders = [name async for name in names]
    await producer

    logger.info(f"Retrieved {len(folders)} folders")
    if errors.first is not None:
        raise errors.first
    return folders


async def select_folder(session: Session, name: str) -> MailboxStatus:
    """
    Open a folder read-only.

    Args:
        session: An authenticated session.
        name: Folder to select.

    Returns:
        Snapshot of the folder's status.

    Raises:
        FolderError: If the folder does not exist or cannot be selected.
    """
    logger.info(f"Selecting folder: {name}")
    status = await session.select(name, readonly=True)
    logger.info(f"Flags for selected folder are {list(status.flags)}")
    logger.info(f"Selected folder contains {status.messages} emails")
    return status
