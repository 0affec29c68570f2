"""
SecureSSH - Session

One explicit context per run, owning the store, the authentication gate
and the resolver. Every operation goes through a Session instead of
module-level globals.

Usage:
    with Session(settings, password_provider=lambda: getpass("Master: ")) as s:
        s.add_host("web1", "10.0.0.5", "ubuntu", "secret")
        profile = s.connection_profile("web")
"""

import logging
from typing import List, Optional

from . import crypto
from .auth import AuthGate, PasswordProvider
from .config import Settings
from .crypto import KeyMaterial
from .errors import VaultError
from .models import DEFAULT_PORT, HostRecord
from .remote import ConnectionProfile, SSHClient
from .resolver import AliasResolver
from .vault import CredentialStore

logger = logging.getLogger(__name__)


def _no_provider() -> str:
    raise VaultError("master password required but no password provider configured")


class Session:

    def __init__(
        self,
        settings: Optional[Settings] = None,
        password_provider: Optional[PasswordProvider] = None,
        ssh_client: Optional[SSHClient] = None,
    ):
        self.settings = settings or Settings.from_env()
        self.password_provider = password_provider or _no_provider
        self.store = CredentialStore(self.settings.vault_path)
        self.gate = AuthGate(
            self.store,
            kdf_defaults=self.settings.kdf,
            min_length=self.settings.min_password_length,
        )
        self.resolver = AliasResolver()
        self.ssh = ssh_client or SSHClient(self.settings.sshpass_path, self.settings.ssh_path)
        self.store.load()

    def __enter__(self) -> "Session":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def close(self) -> None:
        """Discard key material. Safe to call more than once."""
        self.gate.lock()

    # -------------------------------------------------------------------------
    # Master password
    # -------------------------------------------------------------------------

    @property
    def is_initialized(self) -> bool:
        return self.gate.is_initialized

    def initialize(self, password: str, confirm: str) -> None:
        self.gate.initialize(password, confirm)

    def unlock(self) -> KeyMaterial:
        return self.gate.ensure_authenticated(self.password_provider)

    def lock(self) -> None:
        self.gate.lock()

    def reset(self) -> None:
        """Delete the vault file. Confirmation is the caller's job."""
        self.gate.lock()
        self.store.destroy()

    # -------------------------------------------------------------------------
    # Hosts
    # -------------------------------------------------------------------------

    def add_host(
        self,
        alias: str,
        address: str,
        username: str,
        password: str,
        port: int = DEFAULT_PORT,
    ) -> HostRecord:
        key = self.unlock()
        record = HostRecord(
            alias=alias,
            address=address,
            username=username,
            encrypted_password=crypto.encrypt_password(key, password),
            port=port or DEFAULT_PORT,
        )
        return self.store.add(record)

    def modify_host(
        self,
        alias: str,
        new_alias: Optional[str] = None,
        address: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        port: Optional[int] = None,
    ) -> HostRecord:
        """
        Change fields of the host with this exact alias.

        Fields left as None (or empty) keep their current value. The
        password is re-encrypted only when a new one is given.
        """
        key = self.unlock()
        record = self.store.get_by_alias(alias)
        if new_alias:
            record.alias = new_alias
        if address:
            record.address = address
        if username:
            record.username = username
        if port:
            record.port = port
        if password:
            record.encrypted_password = crypto.encrypt_password(key, password)
        return self.store.update(record)

    def delete_host(self, alias: str) -> HostRecord:
        self.unlock()
        record = self.store.get_by_alias(alias)
        self.store.delete(record.id)
        return record

    def get_host(self, alias: str) -> HostRecord:
        return self.store.get_by_alias(alias)

    def list_hosts(self) -> List[HostRecord]:
        return self.store.list()

    # -------------------------------------------------------------------------
    # Resolution and credentials
    # -------------------------------------------------------------------------

    def resolve(self, query: str) -> HostRecord:
        return self.resolver.resolve(query, self.store.list())

    def suggest(self, prefix: str = "") -> List[str]:
        return self.resolver.suggest(prefix, self.store.list())

    def reveal_password(self, record: HostRecord) -> str:
        """
        Raises:
            DecryptionFailure: the blob does not open under the session key
        """
        key = self.unlock()
        return crypto.decrypt_password(key, record.encrypted_password)

    def connection_profile(self, query: str) -> ConnectionProfile:
        record = self.resolve(query)
        return ConnectionProfile(
            address=record.address,
            username=record.username,
            port=record.port,
            password=self.reveal_password(record),
        )

    def probe(self, query: str, timeout: Optional[float] = None) -> None:
        """
        Raises:
            ConnectivityTimeout, ConnectionFailure
        """
        profile = self.connection_profile(query)
        self.ssh.probe(profile, timeout if timeout is not None else self.settings.probe_timeout)
