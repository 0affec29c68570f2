"""
SecureSSH - SSH Connection Manager with an Encrypted Password Vault

Stores host/user/port profiles with passwords encrypted at rest, unlocks
them with a single master password, and resolves short (even misspelled)
aliases to a host.

Key Features:
- Strong crypto: AES-256-GCM + scrypt
- Master password checked by decrypting a stored verifier
- Atomic, owner-only vault file
- Exact-then-fuzzy alias resolution

Components:
- crypto.py: Key derivation and encryption (one file!)
- vault.py: Vault file and host CRUD
- auth.py: Master password gate
- resolver.py: Alias resolution and suggestions
- remote.py: sshpass/ssh launcher and connectivity probe
- session.py: Ties the above together for one run
- cli.py: Command-line interface (uses built-in argparse)

Usage:
    securessh init                    # Set master password
    securessh add                     # Add a host
    securessh list                    # List hosts
    securessh web1                    # Connect by alias
"""

from .errors import (
    AliasExists,
    AlreadyInitialized,
    ConnectionFailure,
    ConnectivityTimeout,
    DecryptionFailure,
    HostNotFound,
    InvalidPassword,
    IOFailure,
    NotInitialized,
    PasswordMismatch,
    PasswordTooShort,
    VaultError,
)
from .models import HostRecord, KdfParams, Registry
from .session import Session

__version__ = "0.1.0"

__all__ = [
    "Session",
    "HostRecord",
    "KdfParams",
    "Registry",
    "VaultError",
    "NotInitialized",
    "AlreadyInitialized",
    "InvalidPassword",
    "PasswordTooShort",
    "PasswordMismatch",
    "HostNotFound",
    "AliasExists",
    "DecryptionFailure",
    "IOFailure",
    "ConnectivityTimeout",
    "ConnectionFailure",
]
