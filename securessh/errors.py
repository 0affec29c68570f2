"""
SecureSSH - Error Kinds

Every failure the vault can report is one of these exceptions. They all
derive from VaultError so the command layer can catch the whole family in
one place and decide how to present it.
"""

from typing import Optional


class VaultError(Exception):
    """Base class for every recoverable vault failure."""


# =============================================================================
# Master password lifecycle
# =============================================================================

class NotInitialized(VaultError):
    def __init__(self, message: str = "Vault not initialized. Run 'securessh init' first."):
        super().__init__(message)


class AlreadyInitialized(VaultError):
    def __init__(self, message: str = "Vault already initialized."):
        super().__init__(message)


class InvalidPassword(VaultError):
    def __init__(self, message: str = "Invalid master password."):
        super().__init__(message)


class PasswordTooShort(VaultError):
    def __init__(self, minimum: int):
        super().__init__(f"Password must be at least {minimum} characters.")
        self.minimum = minimum


class PasswordMismatch(VaultError):
    def __init__(self, message: str = "Passwords do not match."):
        super().__init__(message)


# =============================================================================
# Host records
# =============================================================================

class HostNotFound(VaultError):
    """No record matches the requested id, alias or query."""

    def __init__(self, key: Optional[str] = None):
        message = "host not found" if key is None else f"host not found: {key}"
        super().__init__(message)
        self.key = key


class AliasExists(VaultError):
    """Another record already owns this alias."""

    def __init__(self, alias: str):
        super().__init__(f"alias already exists: {alias}")
        self.alias = alias


# =============================================================================
# Crypto, storage and remote I/O
# =============================================================================

class DecryptionFailure(VaultError):
    """Wrong key, or the blob is corrupt or tampered."""


class IOFailure(VaultError):
    """The vault file could not be read, written or removed."""


class ConnectivityTimeout(VaultError):
    def __init__(self, timeout: float):
        super().__init__(f"connection timeout after {timeout:g}s")
        self.timeout = timeout


class ConnectionFailure(VaultError):
    """The external login client exited with a non-zero status."""

    def __init__(self, returncode: int):
        super().__init__(f"SSH connection failed (exit status {returncode})")
        self.returncode = returncode


class MissingDependency(VaultError):
    def __init__(self, binary: str):
        super().__init__(f"{binary} not found on PATH")
        self.binary = binary


class ConfigError(Exception):
    """Unrecoverable startup condition (e.g. no home directory)."""
