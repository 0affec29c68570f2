"""
SecureSSH - Vault Module

This file handles:
- The vault file (JSON, one per user)
- Host record CRUD with alias uniqueness
- Atomic, owner-only persistence

File structure:
- version:  format tag
- kdf:      scrypt parameters + salt
- verifier: ciphertext of a fixed token (see crypto.make_verifier)
- hosts:    ordered host records, passwords encrypted

Every mutation stages a new Registry, persists it, and only then swaps it
in. If the write fails the in-memory state is exactly what it was before.
"""

import json
import logging
import os
import stat
import tempfile
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Union

from .errors import AliasExists, HostNotFound, IOFailure
from .models import HostRecord, KdfParams, Registry
from .rwlock import ReadWriteLock

logger = logging.getLogger(__name__)


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def _check_unique(registry: Registry, path: Path) -> None:
    """
    Reject a registry with two hosts sharing an alias or an id.

    Raises:
        IOFailure: the vault content violates uniqueness
    """
    aliases = set()
    ids = set()
    for h in registry.hosts:
        if h.alias in aliases:
            raise IOFailure(f"vault {path} is corrupt: duplicate alias {h.alias!r}")
        aliases.add(h.alias)
        if h.id is not None:
            if h.id in ids:
                raise IOFailure(f"vault {path} is corrupt: duplicate host id {h.id!r}")
            ids.add(h.id)


# =============================================================================
# CREDENTIAL STORE
# =============================================================================

class CredentialStore:
    """
    Registry of host records backed by a single JSON file.

    Usage:
        store = CredentialStore(Path("~/.securessh/vault.json").expanduser())
        store.load()

        record = store.add(HostRecord("web1", "10.0.0.5", "ubuntu", blob))
        store.get_by_alias("web1")
        store.delete(record.id)

    Reads (get/list/save snapshot) share a reader lock; mutations take the
    writer lock, so concurrent add/update/delete are fully serialised.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._lock = ReadWriteLock()
        self._registry = Registry()

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> Registry:
        """
        Read the vault file into memory.

        A missing file is a first run and yields an empty Registry.

        Returns:
            A copy of the loaded Registry

        Raises:
            IOFailure: unreadable file, invalid content or duplicate aliases
        """
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.debug("No vault at %s, starting empty", self.path)
            registry = Registry()
        except OSError as e:
            raise IOFailure(f"failed to read vault {self.path}: {e}")
        else:
            try:
                registry = Registry.from_dict(json.loads(text))
            except (ValueError, KeyError, TypeError, AttributeError) as e:
                raise IOFailure(f"vault {self.path} is corrupt: {e}")
            _check_unique(registry, self.path)
            logger.info("Loaded vault %s (%d hosts)", self.path, len(registry.hosts))

        with self._lock.write():
            self._registry = registry
            return registry.copy()

    def save(self, registry: Optional[Registry] = None) -> None:
        """
        Write the Registry to disk atomically.

        With no argument the current in-memory state is written. With a
        Registry argument that state is persisted and, on success, becomes
        the in-memory state.

        Raises:
            IOFailure: directory or file could not be written, or the
                given registry repeats an alias or id
        """
        if registry is None:
            with self._lock.read():
                self._write(self._registry)
            return

        staged = registry.copy()
        _check_unique(staged, self.path)
        with self._lock.write():
            self._write(staged)
            self._registry = staged

    def snapshot(self) -> Registry:
        with self._lock.read():
            return self._registry.copy()

    def destroy(self) -> None:
        """
        Irrecoverably delete the vault file and clear memory.

        The caller is responsible for obtaining confirmation first.
        """
        with self._lock.write():
            try:
                self.path.unlink()
            except FileNotFoundError:
                pass
            except OSError as e:
                raise IOFailure(f"failed to delete vault {self.path}: {e}")
            self._registry = Registry()
        logger.warning("Vault %s deleted", self.path)

    # -------------------------------------------------------------------------
    # Master password artefacts
    # -------------------------------------------------------------------------

    def set_security(self, kdf: KdfParams, verifier: str) -> None:
        """Persist the KDF parameters and verifier of a new vault."""
        with self._lock.write():
            staged = self._registry.copy()
            staged.kdf = kdf
            staged.verifier = verifier
            self._commit(staged)

    # -------------------------------------------------------------------------
    # CRUD
    # -------------------------------------------------------------------------

    def add(self, record: HostRecord) -> HostRecord:
        """
        Insert a new host.

        id, created_at and updated_at are assigned here; whatever the
        caller put in them is ignored.

        Returns:
            Copy of the stored record

        Raises:
            AliasExists: another record already uses record.alias
            IOFailure: persisting failed (store left unchanged)
        """
        with self._lock.write():
            if any(h.alias == record.alias for h in self._registry.hosts):
                raise AliasExists(record.alias)

            now = utc_now()
            stored = record.copy()
            stored.id = str(uuid.uuid4())
            stored.created_at = now
            stored.updated_at = now

            staged = self._registry.copy()
            staged.hosts.append(stored)
            self._commit(staged)

        logger.info("Added host %s (%s)", stored.alias, stored.id)
        return stored.copy()

    def update(self, record: HostRecord) -> HostRecord:
        """
        Replace the record with the same id.

        created_at is preserved, updated_at refreshed.

        Raises:
            AliasExists: a different record already has the new alias
            HostNotFound: no record has record.id
        """
        with self._lock.write():
            for h in self._registry.hosts:
                if h.alias == record.alias and h.id != record.id:
                    raise AliasExists(record.alias)

            staged = self._registry.copy()
            for i, h in enumerate(staged.hosts):
                if h.id == record.id:
                    stored = record.copy()
                    stored.created_at = h.created_at
                    stored.updated_at = utc_now()
                    staged.hosts[i] = stored
                    break
            else:
                raise HostNotFound(record.id)

            self._commit(staged)

        logger.info("Updated host %s (%s)", stored.alias, stored.id)
        return stored.copy()

    def delete(self, host_id: str) -> None:
        """
        Remove a host by id.

        Raises:
            HostNotFound: no such id
        """
        with self._lock.write():
            remaining = [h for h in self._registry.hosts if h.id != host_id]
            if len(remaining) == len(self._registry.hosts):
                raise HostNotFound(host_id)

            staged = self._registry.copy()
            staged.hosts = [h.copy() for h in remaining]
            self._commit(staged)

        logger.info("Deleted host %s", host_id)

    def get_by_id(self, host_id: str) -> HostRecord:
        with self._lock.read():
            for h in self._registry.hosts:
                if h.id == host_id:
                    return h.copy()
        raise HostNotFound(host_id)

    def get_by_alias(self, alias: str) -> HostRecord:
        """Exact, case-sensitive alias lookup."""
        with self._lock.read():
            for h in self._registry.hosts:
                if h.alias == alias:
                    return h.copy()
        raise HostNotFound(alias)

    def list(self) -> List[HostRecord]:
        """All hosts in insertion order (copies)."""
        with self._lock.read():
            return [h.copy() for h in self._registry.hosts]

    # =========================================================================
    # INTERNAL HELPERS
    # =========================================================================

    def _commit(self, staged: Registry) -> None:
        """Persist staged state, then swap it in. Caller holds the write lock."""
        self._write(staged)
        self._registry = staged

    def _write(self, registry: Registry) -> None:
        """
        Serialise and atomically replace the vault file.

        Temp file in the same directory (mode 0600) + os.replace, so a
        reader never sees a half-written vault.
        """
        data = json.dumps(registry.to_dict(), indent=2).encode("utf-8")
        directory = self.path.parent
        tmp_path = None
        try:
            directory.mkdir(mode=0o700, parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=str(directory), prefix=".vault_", suffix=".tmp"
            )
            tmp_path = Path(tmp_name)
            with os.fdopen(fd, "wb") as f:
                os.fchmod(f.fileno(), stat.S_IRUSR | stat.S_IWUSR)
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
            tmp_path = None
        except OSError as e:
            raise IOFailure(f"failed to save vault {self.path}: {e}")
        finally:
            if tmp_path is not None:
                try:
                    tmp_path.unlink()
                except OSError:
                    pass

        logger.debug("Saved vault %s (%d hosts)", self.path, len(registry.hosts))
