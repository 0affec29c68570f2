"""
Configuration for SecureSSH.

Defaults can be overridden with environment variables:
    SECURESSH_VAULT          vault file path
    SECURESSH_PROBE_TIMEOUT  connectivity probe timeout (seconds)
    SECURESSH_LOG_LEVEL      logging level name for the CLI
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .errors import ConfigError
from .models import KdfParams

VAULT_DIR_NAME = ".securessh"
VAULT_FILE_NAME = "vault.json"


def default_vault_path() -> Path:
    """
    ~/.securessh/vault.json

    Raises:
        ConfigError: the home directory cannot be determined
    """
    try:
        home = Path.home()
    except (RuntimeError, KeyError) as e:
        raise ConfigError(f"cannot determine home directory: {e}")
    return home / VAULT_DIR_NAME / VAULT_FILE_NAME


@dataclass
class Settings:
    """Runtime settings for one Session."""

    vault_path: Optional[Path] = None
    probe_timeout: float = 5.0
    kdf: KdfParams = field(default_factory=KdfParams)
    min_password_length: int = 8
    sshpass_path: str = "sshpass"
    ssh_path: str = "ssh"
    log_level: str = "WARNING"

    def __post_init__(self):
        if self.vault_path is None:
            self.vault_path = default_vault_path()
        self.vault_path = Path(self.vault_path).expanduser()

    @classmethod
    def from_env(cls, vault_path: Optional[str] = None) -> "Settings":
        """Build settings from the environment; explicit args win."""
        path = vault_path or os.getenv("SECURESSH_VAULT")
        raw_timeout = os.getenv("SECURESSH_PROBE_TIMEOUT", "5.0")
        try:
            probe_timeout = float(raw_timeout)
        except ValueError:
            raise ConfigError(f"SECURESSH_PROBE_TIMEOUT must be a number, got {raw_timeout!r}")
        if probe_timeout <= 0:
            raise ConfigError("SECURESSH_PROBE_TIMEOUT must be positive")
        return cls(
            vault_path=Path(path) if path else None,
            probe_timeout=probe_timeout,
            log_level=os.getenv("SECURESSH_LOG_LEVEL", "WARNING").upper(),
        )
