"""
SecureSSH - Authentication Gate

Owns the master password for one process run.

States:
    UNAUTHENTICATED -> (good password) -> AUTHENTICATED(key)
    UNAUTHENTICATED -> (bad password)  -> LOCKED
    LOCKED          -> next attempt starts again from UNAUTHENTICATED

There is no lockout or backoff. Key material is cached once accepted and
wiped on lock(), so nothing is re-prompted for the rest of the run.
"""

import enum
import logging
from typing import Callable, Optional

from . import crypto
from .crypto import KeyMaterial
from .errors import (
    AlreadyInitialized,
    InvalidPassword,
    NotInitialized,
    PasswordMismatch,
    PasswordTooShort,
)
from .models import KdfParams
from .vault import CredentialStore

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8

PasswordProvider = Callable[[], str]


class AuthState(enum.Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    LOCKED = "locked"


class AuthGate:
    """
    Verifies the master password against the vault and caches the key.

    Args:
        store: Loaded CredentialStore holding the verifier
        kdf_defaults: scrypt parameters used when initializing a new vault
        min_length: Minimum master password length
    """

    def __init__(
        self,
        store: CredentialStore,
        kdf_defaults: Optional[KdfParams] = None,
        min_length: int = MIN_PASSWORD_LENGTH,
    ):
        self.store = store
        self.kdf_defaults = kdf_defaults or KdfParams()
        self.min_length = min_length
        self.state = AuthState.UNAUTHENTICATED
        self._key: Optional[KeyMaterial] = None

    @property
    def is_initialized(self) -> bool:
        return self.store.exists() and self.store.snapshot().is_initialized

    @property
    def is_authenticated(self) -> bool:
        return self.state is AuthState.AUTHENTICATED

    def initialize(self, password: str, confirm: str) -> KeyMaterial:
        """
        Set up the master password of a new vault.

        Length is checked before the confirmation, so a short password is
        reported as too short even if the two entries differ.

        Raises:
            AlreadyInitialized: a vault already exists
            PasswordTooShort: fewer than min_length characters
            PasswordMismatch: confirm != password
        """
        if self.is_initialized:
            raise AlreadyInitialized()
        if len(password) < self.min_length:
            raise PasswordTooShort(self.min_length)
        if password != confirm:
            raise PasswordMismatch()

        params = self.kdf_defaults.with_salt(crypto.new_salt())
        key = crypto.derive(password, params)
        self.store.set_security(params, crypto.make_verifier(key))

        self._set_key(key)
        logger.info("Initialized vault %s", self.store.path)
        return key

    def ensure_authenticated(self, password_provider: PasswordProvider) -> KeyMaterial:
        """
        Return cached key material, prompting once if needed.

        Args:
            password_provider: Called only when a password is actually
                needed (not initialized-check failures, not cached runs)

        Raises:
            NotInitialized: no vault yet
            InvalidPassword: candidate cannot open the verifier
        """
        registry = self.store.snapshot()
        if not self.store.exists() or not registry.is_initialized:
            raise NotInitialized()

        if self.state is AuthState.AUTHENTICATED and self._key is not None:
            return self._key

        self.state = AuthState.UNAUTHENTICATED
        candidate = password_provider()
        key = crypto.derive(candidate, registry.kdf)

        if not crypto.check_verifier(key, registry.verifier):
            key.wipe()
            self.state = AuthState.LOCKED
            logger.warning("Master password rejected for %s", self.store.path)
            raise InvalidPassword()

        self._set_key(key)
        logger.info("Master password accepted for %s", self.store.path)
        return key

    def lock(self) -> None:
        """Wipe cached key material and require a password again."""
        if self._key is not None:
            self._key.wipe()
            self._key = None
        self.state = AuthState.UNAUTHENTICATED

    def _set_key(self, key: KeyMaterial) -> None:
        if self._key is not None and self._key is not key:
            self._key.wipe()
        self._key = key
        self.state = AuthState.AUTHENTICATED
