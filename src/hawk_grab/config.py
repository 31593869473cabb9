# =============================================================================
# Configuration Management
# =============================================================================
# Handles loading, saving, and validating Hawk-Grab configuration.
#
# XDG Base Directory Compliance (https://specifications.freedesktop.org/basedir-spec/):
#   - Config:  $XDG_CONFIG_HOME/hawk-grab/  (default: ~/.config/hawk-grab/)
#   - Data:    $XDG_DATA_HOME/hawk-grab/    (default: ~/.local/share/hawk-grab/)
#
# Files:
#   - config.toml: User configuration (accounts, sync settings)
#   - maildir/:    Default location of the downloaded mail (in data directory)
#
# Passwords are NOT stored in config.toml. They are looked up in the system
# keyring (service "hawk-grab:<account>") and, failing that, in the
# HAWK_GRAB_PASSWORD environment variable.
# =============================================================================

import logging
import os
import tomllib  # Built into Python 3.11+
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import keyring
import keyring.errors
import tomli_w  # For writing TOML (tomllib is read-only)

logger = logging.getLogger(__name__)


# =============================================================================
# XDG Directory Management
# =============================================================================

# Application identifier used in all XDG paths
APP_NAME = "hawk-grab"

# Environment variable consulted when the keyring has no password
PASSWORD_ENV = "HAWK_GRAB_PASSWORD"


def get_xdg_config_home() -> Path:
    """
    Returns the XDG config directory for Hawk-Grab.

    Respects $XDG_CONFIG_HOME if set, otherwise uses ~/.config/hawk-grab/
    """
    xdg_config = os.environ.get("XDG_CONFIG_HOME")
    if xdg_config:
        base = Path(xdg_config)
    else:
        base = Path.home() / ".config"
    return base / APP_NAME


def get_xdg_data_home() -> Path:
    """
    Returns the XDG data directory for Hawk-Grab.

    Respects $XDG_DATA_HOME if set, otherwise uses ~/.local/share/hawk-grab/
    This is where downloaded mail lives unless configured otherwise.
    """
    xdg_data = os.environ.get("XDG_DATA_HOME")
    if xdg_data:
        base = Path(xdg_data)
    else:
        base = Path.home() / ".local" / "share"
    return base / APP_NAME


def ensure_directories() -> dict[str, Path]:
    """
    Creates all required XDG directories if they don't exist.

    Returns:
        Dictionary mapping directory type to path.
    """
    dirs = {
        "config": get_xdg_config_home(),
        "data": get_xdg_data_home(),
    }

    for dir_path in dirs.values():
        dir_path.mkdir(parents=True, exist_ok=True)

    return dirs


# =============================================================================
# Configuration Data Structures
# =============================================================================

@dataclass
class AccountConfig:
    """
    Connection settings for one IMAP account.

    Attributes:
        name: Unique identifier for this account (e.g., "personal").
              Used as the key in config files and for keyring lookups.
        server: Hostname of the IMAP server (e.g., "imap.example.com").
        user: Login name, usually the email address.
        port: IMAP port. 993 for TLS (the default).
        insecure: Connect without TLS. Only accepted for 127.0.0.1, meant
                  for local bridges such as a local IMAP proxy.
        folders: Folders to download. Empty means all folders.

    Example:
        >>> account = AccountConfig(
        ...     name="personal",
        ...     server="imap.example.com",
        ...     user="user@example.com",
        ... )
        >>> account.address
        'imap.example.com:993'
    """
    name: str
    server: str = ""
    user: str = ""
    port: int = 993
    insecure: bool = False
    folders: list[str] = field(default_factory=list)

    @property
    def address(self) -> str:
        """Server address in "host:port" form."""
        host = f"[{self.server}]" if ":" in self.server else self.server
        return f"{host}:{self.port}"

    @property
    def keyring_service(self) -> str:
        """
        Service name used for keyring password storage:
            keyring set hawk-grab:personal user@example.com
        """
        return f"{APP_NAME}:{self.name}"

    def get_password(self) -> str:
        """
        Look up the password for this account.

        Tries the system keyring first, then the HAWK_GRAB_PASSWORD
        environment variable.

        Returns:
            The password, or an empty string if none was found.
        """
        try:
            password = keyring.get_password(self.keyring_service, self.user)
        except keyring.errors.KeyringError as e:
            logger.debug(f"Keyring unavailable: {e}")
            password = None

        if password:
            return password
        return os.environ.get(PASSWORD_ENV, "")


@dataclass
class SyncConfig:
    """
    Configuration for downloading mail.

    Attributes:
        threads: Number of folders downloaded in parallel, each over its
                 own connection.
        maildir: Base directory for the local Maildir folders. Empty means
                 the "maildir" directory inside the XDG data directory.
    """
    threads: int = 1
    maildir: str = ""

    @property
    def maildir_path(self) -> Path:
        if self.maildir:
            return Path(self.maildir).expanduser()
        return get_xdg_data_home() / "maildir"


@dataclass
class Config:
    """
    Main configuration container for Hawk-Grab.

    Attributes:
        default_account: Name of the account used when none is given.
        accounts: Configured accounts, keyed by name.
        sync: Download settings.

    Usage:
        >>> config = Config.load()
        >>> print(config.accounts['personal'].server)
        'imap.example.com'
    """
    default_account: str = ""
    accounts: dict[str, AccountConfig] = field(default_factory=dict)
    sync: SyncConfig = field(default_factory=SyncConfig)

    @staticmethod
    def config_file_path() -> Path:
        """Returns the path to the main config file."""
        return get_xdg_config_home() / "config.toml"

    def get_account(self, name: str | None = None) -> AccountConfig:
        """
        Return the named account, or the default one.

        Raises:
            ConfigError: If no such account is configured.
        """
        name = name or self.default_account
        if not name and len(self.accounts) == 1:
            return next(iter(self.accounts.values()))
        if name not in self.accounts:
            raise ConfigError(f"Unknown account: {name or '(none given)'}")
        return self.accounts[name]

    # -------------------------------------------------------------------------
    # Loading and Saving
    # -------------------------------------------------------------------------

    @classmethod
    def load(cls, path: Path | None = None) -> "Config":
        """
        Load configuration from a config file.

        If the file doesn't exist, returns default configuration.

        Args:
            path: Config file to read. Defaults to the XDG location.

        Raises:
            ConfigError: If the config file exists but is invalid.
        """
        if path is None:
            ensure_directories()
            path = cls.config_file_path()

        if not path.exists():
            return cls()

        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Invalid config file: {e}") from e

        return cls._from_dict(data)

    def save(self, path: Path | None = None) -> None:
        """Save configuration, by default to the XDG location."""
        if path is None:
            ensure_directories()
            path = self.config_file_path()

        with open(path, "wb") as f:
            tomli_w.dump(self._to_dict(), f)

    @classmethod
    def _from_dict(cls, data: dict[str, Any]) -> "Config":
        """
        Create a Config object from a dictionary (parsed TOML).

        Raises:
            ConfigError: If a value has the wrong type.
        """
        config = cls()

        general = data.get("general", {})
        config.default_account = general.get("default_account", "")

        sync = data.get("sync", {})
        config.sync = SyncConfig(
            threads=sync.get("threads", 1),
            maildir=sync.get("maildir", ""),
        )
        if not isinstance(config.sync.threads, int) or config.sync.threads < 1:
            raise ConfigError(f"sync.threads must be a positive integer, got {config.sync.threads!r}")

        # Each key under [accounts] is an account name
        for name, acct in data.get("accounts", {}).items():
            account = AccountConfig(
                name=name,
                server=acct.get("server", ""),
                user=acct.get("user", ""),
                port=acct.get("port", 993),
                insecure=acct.get("insecure", False),
                folders=list(acct.get("folders", [])),
            )
            if not isinstance(account.port, int):
                raise ConfigError(f"accounts.{name}.port must be an integer")
            config.accounts[name] = account

        return config

    def _to_dict(self) -> dict[str, Any]:
        """Convert Config to a dictionary for TOML serialization."""
        data: dict[str, Any] = {}

        data["general"] = {
            "default_account": self.default_account,
        }

        data["sync"] = {
            "threads": self.sync.threads,
            "maildir": self.sync.maildir,
        }

        data["accounts"] = {}
        for name, account in self.accounts.items():
            data["accounts"][name] = {
                "server": account.server,
                "user": account.user,
                "port": account.port,
                "insecure": account.insecure,
                "folders": list(account.folders),
            }

        return data


# =============================================================================
# Exceptions
# =============================================================================

class ConfigError(Exception):
    """Raised when there's an error loading or parsing configuration."""
    pass


# =============================================================================
# Utility Functions
# =============================================================================

def print_paths() -> None:
    """
    Print all XDG paths for debugging.
    Useful for users wondering where their config/data is stored.
    """
    print(f"Config:  {get_xdg_config_home()}")
    print(f"Data:    {get_xdg_data_home()}")
    print()
    print(f"Config file:  {Config.config_file_path()}")
    print(f"Maildir:      {SyncConfig().maildir_path}")
