# =============================================================================
# Mailbox Models
# =============================================================================
# FolderInfo is one entry of a LIST response. MailboxStatus is the snapshot
# a server hands back when a mailbox is selected (EXAMINE in our case, since
# we never modify the remote side).
#
# MailboxStatus is frozen on purpose: it describes the mailbox at the moment
# of selection and is never updated afterwards.
# =============================================================================

from dataclasses import dataclass, field

from hawk_grab.core.ids import UidFolder


@dataclass(frozen=True)
class FolderInfo:
    """
    A single folder as reported by the LIST command.

    Attributes:
        name: Full folder name (e.g., "INBOX", "Work/Projects").
        delimiter: Hierarchy delimiter used by the server ("/" or ".").
        attributes: Name attributes such as "\\HasNoChildren" or "\\Sent".
    """
    name: str
    delimiter: str = "/"
    attributes: tuple[str, ...] = ()

    @property
    def selectable(self) -> bool:
        """Folders flagged \\Noselect only exist as hierarchy nodes."""
        return not any(a.upper() == "\\NOSELECT" for a in self.attributes)


@dataclass(frozen=True)
class MailboxStatus:
    """
    State of a mailbox at the time it was selected.

    Attributes:
        name: Name of the selected folder.
        messages: Number of messages in the mailbox (EXISTS).
        uid_validity: UIDVALIDITY of the mailbox. All known UIDs become
                      invalid when this value changes between runs.
        flags: Flags defined for this mailbox (FLAGS response).
    """
    name: str
    messages: int = 0
    uid_validity: UidFolder = UidFolder(0)
    flags: tuple[str, ...] = field(default_factory=tuple)
