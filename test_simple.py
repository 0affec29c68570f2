"""
SecureSSH - Self-Tests

Run with: python test_simple.py   (or: pytest)

Covers:
- Key derivation and AES-GCM round trips
- Wrong key / tampering / wrong purpose rejection
- Master password initialization and verification
- Host CRUD, alias uniqueness, persistence, permissions
- Concurrent writers and the reader/writer lock
- End-to-end: init -> add -> decrypt
"""

import base64
import json
import os
import stat
import tempfile
import threading
import time
from argparse import Namespace
from contextlib import redirect_stdout
from io import StringIO
from pathlib import Path

from securessh import cli, crypto
from securessh.auth import AuthGate, AuthState
from securessh.config import Settings
from securessh.errors import (
    AliasExists,
    AlreadyInitialized,
    ConfigError,
    DecryptionFailure,
    HostNotFound,
    InvalidPassword,
    IOFailure,
    NotInitialized,
    PasswordMismatch,
    PasswordTooShort,
)
from securessh.models import HostRecord, KdfParams, Registry
from securessh.rwlock import ReadWriteLock
from securessh.session import Session
from securessh.vault import CredentialStore

# Cheap scrypt cost so the suite stays fast
FAST_KDF = KdfParams(n=2**14, r=8, p=1)
MASTER = "correcthorse"


def expect(exc_type, fn, *args, **kwargs):
    """Call fn and return the exception it raises; fail if it doesn't."""
    try:
        fn(*args, **kwargs)
    except exc_type as e:
        return e
    raise AssertionError(f"{fn.__name__} did not raise {exc_type.__name__}")


def make_session(tmpdir, password=MASTER):
    settings = Settings(vault_path=Path(tmpdir) / "vault" / "vault.json", kdf=FAST_KDF)
    return Session(settings, password_provider=lambda: password)


def record(alias, address="10.0.0.1", username="root", blob="x"):
    return HostRecord(alias=alias, address=address, username=username, encrypted_password=blob)


# =============================================================================
# Cipher
# =============================================================================

def test_kdf():
    """Same password + salt -> same key; anything else -> different key."""
    print("Testing KDF (Key Derivation)...")

    params = FAST_KDF.with_salt(crypto.new_salt())
    key1 = crypto.derive("test_password", params)
    key2 = crypto.derive("test_password", params)
    assert key1 == key2, "KDF should be deterministic"

    key3 = crypto.derive("different_password", params)
    assert key1 != key3, "Different passwords should give different keys"

    key4 = crypto.derive("test_password", FAST_KDF.with_salt(crypto.new_salt()))
    assert key1 != key4, "Different salts should give different keys"
    assert "redacted" in repr(key1)

    print("  [OK] KDF works correctly")


def test_encryption():
    print("Testing Encryption...")

    key = crypto.derive(MASTER, FAST_KDF.with_salt(crypto.new_salt()))
    for secret in ["secret", "", "pässwörd with spaces", "x" * 500]:
        blob = crypto.encrypt_password(key, secret)
        assert isinstance(blob, str)
        assert secret == "" or secret not in blob
        assert crypto.decrypt_password(key, blob) == secret
    print("  [OK] Encryption/decryption works")

    # Fresh nonce every time
    assert crypto.encrypt_password(key, "same") != crypto.encrypt_password(key, "same")

    # Flip a bit in the ciphertext part
    raw = bytearray(base64.b64decode(crypto.encrypt_password(key, "secret")))
    raw[-1] ^= 1
    tampered = base64.b64encode(bytes(raw)).decode("ascii")
    expect(DecryptionFailure, crypto.decrypt_password, key, tampered)
    print("  [OK] Tampering detection works")

    for junk in ["not base64!!", "", base64.b64encode(b"\x01short").decode()]:
        expect(DecryptionFailure, crypto.decrypt_password, key, junk)
    print("  [OK] Malformed blobs rejected")


def test_wrong_key_rejected():
    print("Testing Wrong-Key Rejection...")

    salt = crypto.new_salt()
    right = crypto.derive(MASTER, FAST_KDF.with_salt(salt))
    wrong = crypto.derive("wrongpass", FAST_KDF.with_salt(salt))

    blob = crypto.encrypt_password(right, "secret")
    expect(DecryptionFailure, crypto.decrypt_password, wrong, blob)
    print("  [OK] Wrong key fails with DecryptionFailure")


def test_verifier():
    print("Testing Verifier...")

    salt = crypto.new_salt()
    key = crypto.derive(MASTER, FAST_KDF.with_salt(salt))
    verifier = crypto.make_verifier(key)

    assert crypto.check_verifier(key, verifier)
    assert not crypto.check_verifier(crypto.derive("wrongpass", FAST_KDF.with_salt(salt)), verifier)

    # A verifier blob is not a password blob and vice versa
    expect(DecryptionFailure, crypto.decrypt_password, key, verifier)
    assert not crypto.check_verifier(key, crypto.encrypt(key, crypto.VERIFIER_TOKEN))
    print("  [OK] Verifier bound to key and purpose")


def test_key_wipe():
    key = crypto.derive(MASTER, FAST_KDF.with_salt(crypto.new_salt()))
    blob = crypto.encrypt_password(key, "secret")
    key.wipe()
    assert key.is_wiped
    expect(DecryptionFailure, crypto.decrypt_password, key, blob)


# =============================================================================
# Authentication Gate
# =============================================================================

def test_initialize_rules():
    print("Testing Initialization...")

    with tempfile.TemporaryDirectory() as tmp:
        s = make_session(tmp)
        assert not s.is_initialized
        expect(NotInitialized, s.unlock)

        expect(PasswordTooShort, s.initialize, "short", "short")
        # Length is checked before confirmation
        expect(PasswordTooShort, s.initialize, "short", "other")
        expect(PasswordMismatch, s.initialize, MASTER, "correcthorsf")
        assert not s.store.exists(), "failed init must not create the vault"

        s.initialize(MASTER, MASTER)
        assert s.is_initialized
        assert s.gate.state is AuthState.AUTHENTICATED
        expect(AlreadyInitialized, s.initialize, MASTER, MASTER)

        data = json.loads(s.settings.vault_path.read_text())
        assert data["verifier"] and data["kdf"]["salt"]
        assert "master_hash" not in data
        assert MASTER not in s.settings.vault_path.read_text()
    print("  [OK] Initialization rules enforced")


def test_authentication():
    print("Testing Authentication...")

    with tempfile.TemporaryDirectory() as tmp:
        make_session(tmp).initialize(MASTER, MASTER)

        calls = []

        def provider():
            calls.append(1)
            return MASTER

        s = Session(make_session(tmp).settings, password_provider=provider)
        key = s.unlock()
        assert s.unlock() is key, "Key should be cached for the run"
        assert len(calls) == 1, "Should prompt only once"

        s.lock()
        assert key.is_wiped
        assert s.gate.state is AuthState.UNAUTHENTICATED
        s.unlock()
        assert len(calls) == 2

        bad = make_session(tmp, password="wrongpass")
        expect(InvalidPassword, bad.unlock)
        assert bad.gate.state is AuthState.LOCKED
        expect(InvalidPassword, bad.unlock)

        # A later good attempt recovers from LOCKED
        bad.password_provider = lambda: MASTER
        bad.unlock()
        assert bad.gate.state is AuthState.AUTHENTICATED
    print("  [OK] Authentication works")


def test_gate_requires_vault():
    with tempfile.TemporaryDirectory() as tmp:
        store = CredentialStore(Path(tmp) / "vault.json")
        gate = AuthGate(store, kdf_defaults=FAST_KDF)
        expect(NotInitialized, gate.ensure_authenticated, lambda: MASTER)


# =============================================================================
# Credential Store
# =============================================================================

def test_store_crud():
    print("Testing Store CRUD...")

    with tempfile.TemporaryDirectory() as tmp:
        store = CredentialStore(Path(tmp) / "vault.json")
        assert store.load().hosts == []

        r1 = store.add(record("web1"))
        r2 = store.add(record("db1"))
        assert r1.id and r2.id and r1.id != r2.id
        assert r1.created_at and r1.updated_at == r1.created_at

        assert store.get_by_alias("web1").id == r1.id
        assert store.get_by_id(r2.id).alias == "db1"
        expect(HostNotFound, store.get_by_alias, "WEB1")
        assert [h.alias for h in store.list()] == ["web1", "db1"]

        r1.address = "10.9.9.9"
        r1.alias = "web-one"
        updated = store.update(r1)
        assert updated.id == r1.id
        assert updated.created_at == r1.created_at
        assert store.get_by_alias("web-one").address == "10.9.9.9"
        expect(HostNotFound, store.get_by_alias, "web1")

        ghost = record("ghost")
        ghost.id = "does-not-exist"
        expect(HostNotFound, store.update, ghost)

        store.delete(r2.id)
        expect(HostNotFound, store.get_by_id, r2.id)
        expect(HostNotFound, store.delete, r2.id)
    print("  [OK] CRUD works")


def test_list_is_a_copy():
    with tempfile.TemporaryDirectory() as tmp:
        store = CredentialStore(Path(tmp) / "vault.json")
        store.add(record("web1"))

        hosts = store.list()
        hosts[0].alias = "mutated"
        hosts.append(record("extra"))
        assert [h.alias for h in store.list()] == ["web1"]

        got = store.get_by_alias("web1")
        got.address = "evil"
        assert store.get_by_alias("web1").address == "10.0.0.1"


def test_alias_uniqueness():
    print("Testing Alias Uniqueness...")

    with tempfile.TemporaryDirectory() as tmp:
        store = CredentialStore(Path(tmp) / "vault.json")
        a = store.add(record("web1"))
        b = store.add(record("web2"))

        before = store.snapshot().to_dict()
        e = expect(AliasExists, store.add, record("web1", address="other"))
        assert e.alias == "web1"

        b.alias = "web1"
        expect(AliasExists, store.update, b)
        assert store.snapshot().to_dict() == before, "Registry must be unchanged"

        # Keeping your own alias is fine
        a.port = 2222
        assert store.update(a).port == 2222

        aliases = [h.alias for h in store.list()]
        assert len(aliases) == len(set(aliases))
    print("  [OK] Duplicate aliases rejected")


def test_persistence_roundtrip():
    print("Testing Persistence...")

    with tempfile.TemporaryDirectory() as tmp:
        s = make_session(tmp)
        s.initialize(MASTER, MASTER)
        s.add_host("web1", "10.0.0.5", "ubuntu", "secret", 22)
        s.add_host("db1", "10.0.0.6", "postgres", "hunter22", 5432)

        path = s.settings.vault_path
        store = CredentialStore(path)
        first = store.load()
        store.save(first)
        second = CredentialStore(path).load()
        assert first.to_dict() == second.to_dict()
        assert [h.alias for h in second.hosts] == ["web1", "db1"]
        assert second.hosts[1].port == 5432
    print("  [OK] save(load()) is idempotent")


def test_file_permissions():
    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / "nested" / "dir" / "vault.json"
        store = CredentialStore(path)
        store.add(record("web1"))

        assert path.exists()
        assert stat.S_IMODE(os.stat(path).st_mode) == 0o600
        assert not [p for p in path.parent.iterdir() if p.name.endswith(".tmp")]


def test_failed_save_leaves_state_unchanged():
    print("Testing Failed Save...")

    with tempfile.TemporaryDirectory() as tmp:
        store = CredentialStore(Path(tmp) / "vault.json")
        store.add(record("web1"))

        blocker = Path(tmp) / "blocker"
        blocker.write_text("not a directory")
        store.path = blocker / "vault.json"

        expect(IOFailure, store.add, record("web2"))
        assert [h.alias for h in store.list()] == ["web1"]

        victim = store.get_by_alias("web1")
        expect(IOFailure, store.delete, victim.id)
        assert store.get_by_alias("web1").id == victim.id
    print("  [OK] IOFailure reported, memory unchanged")


def test_corrupt_file():
    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / "vault.json"
        path.write_text("{not json")
        expect(IOFailure, CredentialStore(path).load)

        # Valid JSON that is not a vault object
        for payload in ["[]", "null", '"x"', "3", '{"hosts": 5}', '{"hosts": ["web1"]}', '{"kdf": "x"}']:
            path.write_text(payload)
            expect(IOFailure, CredentialStore(path).load)


def test_duplicate_entries_rejected():
    print("Testing Duplicate Detection...")

    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / "vault.json"

        path.write_text(json.dumps({"hosts": [
            {"id": "1", "alias": "web1"},
            {"id": "2", "alias": "web1"},
        ]}))
        store = CredentialStore(path)
        expect(IOFailure, store.load)
        assert store.list() == [], "Rejected file must not be loaded"

        path.write_text(json.dumps({"hosts": [
            {"id": "1", "alias": "web1"},
            {"id": "1", "alias": "web2"},
        ]}))
        expect(IOFailure, store.load)

        # save() refuses to persist the same violation
        other = Path(tmp) / "other.json"
        dup = Registry(hosts=[record("a"), record("a")])
        expect(IOFailure, CredentialStore(other).save, dup)
        assert not other.exists()
    print("  [OK] Duplicate aliases and ids rejected")


def test_invalid_kdf_params():
    with tempfile.TemporaryDirectory() as tmp:
        s = make_session(tmp)
        s.initialize(MASTER, MASTER)
        path = s.settings.vault_path
        good = json.loads(path.read_text())

        for bad in [{"n": 1000}, {"n": 1}, {"r": 0}, {"name": "argon2"}]:
            data = json.loads(json.dumps(good))
            data["kdf"].update(bad)
            path.write_text(json.dumps(data))
            expect(IOFailure, CredentialStore(path).load)
            expect(IOFailure, make_session, tmp)


def test_concurrent_writers():
    print("Testing Concurrent Writers...")

    with tempfile.TemporaryDirectory() as tmp:
        store = CredentialStore(Path(tmp) / "vault.json")
        errors = []
        dup_wins = []

        def worker(n):
            for i in range(5):
                store.add(record(f"host-{n}-{i}"))
            try:
                store.add(record("shared"))
                dup_wins.append(n)
            except AliasExists as e:
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        hosts = store.list()
        assert len(hosts) == 6 * 5 + 1
        assert len(dup_wins) == 1 and len(errors) == 5
        assert len({h.alias for h in hosts}) == len(hosts)
        assert len(CredentialStore(store.path).load().hosts) == len(hosts)
    print("  [OK] No lost updates")


def run_thread(fn):
    t = threading.Thread(target=fn, daemon=True)
    t.start()
    return t


def wait_until(cond, timeout=5.0):
    deadline = time.monotonic() + timeout
    while not cond():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached in time")
        time.sleep(0.01)


def test_readers_share_lock():
    print("Testing Concurrent Readers...")

    lock = ReadWriteLock()
    second_in = threading.Event()

    def second_reader():
        with lock.read():
            second_in.set()

    with lock.read():
        t = run_thread(second_reader)
        assert second_in.wait(5), "A second reader must not wait for the first"
    t.join(5)
    print("  [OK] Readers do not block each other")


def test_writer_excludes_readers():
    print("Testing Writer Exclusion...")

    lock = ReadWriteLock()
    writer_in = threading.Event()
    writer_done = threading.Event()
    late_reader_in = threading.Event()
    order = []

    def writer():
        with lock.write():
            writer_in.set()
            order.append("writer")
            writer_done.wait(5)

    def late_reader():
        with lock.read():
            order.append("reader")
            late_reader_in.set()

    lock.acquire_read()
    w = run_thread(writer)
    wait_until(lambda: lock._writers_waiting == 1)
    assert not writer_in.wait(0.2), "Writer must wait for the active reader"

    # A new reader queues behind the waiting writer
    r = run_thread(late_reader)
    assert not late_reader_in.wait(0.2), "Reader must not overtake a waiting writer"

    lock.release_read()
    assert writer_in.wait(5), "Writer should get the lock once readers leave"
    assert not late_reader_in.wait(0.2), "Reader must wait while the writer holds the lock"

    writer_done.set()
    assert late_reader_in.wait(5)
    w.join(5)
    r.join(5)
    assert order == ["writer", "reader"]
    print("  [OK] Writer holds the lock alone")


# =============================================================================
# End-to-end scenarios
# =============================================================================

def test_end_to_end():
    print("Testing End-to-End...")

    with tempfile.TemporaryDirectory() as tmp:
        s = make_session(tmp)
        s.initialize("correcthorse", "correcthorse")
        s.add_host("web1", "10.0.0.5", "ubuntu", "secret", 22)

        rec = s.store.get_by_alias("web1")
        assert rec.encrypted_password != "secret"
        assert "secret" not in s.settings.vault_path.read_text()

        kdf = s.store.snapshot().kdf
        good = crypto.derive("correcthorse", kdf)
        bad = crypto.derive("wrongpass", kdf)
        assert crypto.decrypt_password(good, rec.encrypted_password) == "secret"
        expect(DecryptionFailure, crypto.decrypt_password, bad, rec.encrypted_password)

        # Fresh process run
        s2 = make_session(tmp)
        profile = s2.connection_profile("web1")
        assert (profile.address, profile.username, profile.port, profile.password) == \
            ("10.0.0.5", "ubuntu", 22, "secret")
        assert "secret" not in repr(profile)
    print("  [OK] init -> add -> decrypt works")


def test_modify_host():
    with tempfile.TemporaryDirectory() as tmp:
        s = make_session(tmp)
        s.initialize(MASTER, MASTER)
        s.add_host("web1", "10.0.0.5", "ubuntu", "secret")
        s.add_host("web2", "10.0.0.6", "ubuntu", "secret2")

        before = s.get_host("web1")
        after = s.modify_host("web1", new_alias="frontend", port=2222)
        assert after.alias == "frontend" and after.port == 2222
        assert after.encrypted_password == before.encrypted_password
        assert s.reveal_password(after) == "secret"

        after = s.modify_host("frontend", password="rotated")
        assert s.reveal_password(after) == "rotated"

        expect(AliasExists, s.modify_host, "frontend", new_alias="web2")
        expect(HostNotFound, s.modify_host, "nope", address="x")


def test_password_command_needs_exact_alias():
    print("Testing Password Command...")

    with tempfile.TemporaryDirectory() as tmp:
        s = make_session(tmp)
        s.initialize(MASTER, MASTER)
        s.add_host("web1", "10.0.0.5", "ubuntu", "web-secret")
        s.add_host("web2", "10.0.0.6", "ubuntu", "other-secret")

        out = StringIO()
        with redirect_stdout(out):
            # "web" would fuzzy-match web1, but secrets need the exact alias
            expect(HostNotFound, cli.cmd_password, s, Namespace(alias="web", copy=False))
            assert cli.cmd_password(s, Namespace(alias="web2", copy=False)) == 0
        assert "web-secret" not in out.getvalue()
        assert "other-secret" in out.getvalue()
    print("  [OK] Password shown only for an exact alias")


def test_deletion():
    print("Testing Deletion...")

    with tempfile.TemporaryDirectory() as tmp:
        s = make_session(tmp)
        s.initialize(MASTER, MASTER)
        rec = s.add_host("web1", "10.0.0.5", "ubuntu", "secret")
        s.add_host("web2", "10.0.0.6", "ubuntu", "secret")

        s.delete_host("web1")
        expect(HostNotFound, s.store.get_by_id, rec.id)
        assert rec.id not in [h.id for h in s.list_hosts()]
        assert [h.alias for h in make_session(tmp).list_hosts()] == ["web2"]
    print("  [OK] Deletion works")


def test_empty_store():
    with tempfile.TemporaryDirectory() as tmp:
        s = make_session(tmp)
        s.initialize(MASTER, MASTER)
        assert s.list_hosts() == []
        expect(HostNotFound, s.resolve, "anything")
        assert s.suggest("") == []


def test_reset():
    print("Testing Reset...")

    with tempfile.TemporaryDirectory() as tmp:
        s = make_session(tmp)
        s.initialize(MASTER, MASTER)
        s.add_host("web1", "10.0.0.5", "ubuntu", "secret")
        key = s.unlock()

        s.reset()
        assert not s.store.exists()
        assert key.is_wiped
        assert s.list_hosts() == []
        assert not s.is_initialized
        expect(NotInitialized, s.unlock)

        s.initialize("anotherpass", "anotherpass")
        assert s.is_initialized
    print("  [OK] Reset deletes the vault")


def test_session_context_wipes_key():
    with tempfile.TemporaryDirectory() as tmp:
        with make_session(tmp) as s:
            s.initialize(MASTER, MASTER)
            key = s.unlock()
        assert key.is_wiped


def test_registry_defaults():
    reg = Registry.from_dict({"hosts": [{"alias": "a", "password": "b"}]})
    assert reg.hosts[0].port == 22
    assert not reg.is_initialized
    assert Registry().to_dict()["hosts"] == []


def test_password_generation():
    print("Testing Password Generation...")

    pwd = crypto.generate_password(length=20, use_symbols=True)
    assert len(pwd) == 20

    pwd_no_sym = crypto.generate_password(length=16, use_symbols=False)
    assert len(pwd_no_sym) == 16
    assert all(c.isalnum() for c in pwd_no_sym), "Should be alphanumeric only"
    expect(ValueError, crypto.generate_password, 0)
    print("  [OK] Password generation works")


def test_settings_from_env():
    print("Testing Settings...")

    keys = ("SECURESSH_VAULT", "SECURESSH_PROBE_TIMEOUT", "SECURESSH_LOG_LEVEL")
    saved = {k: os.environ.pop(k, None) for k in keys}
    try:
        s = Settings.from_env()
        assert s.vault_path == Path.home() / ".securessh" / "vault.json"
        assert s.probe_timeout == 5.0
        assert s.log_level == "WARNING"

        os.environ["SECURESSH_VAULT"] = "/tmp/env-vault.json"
        os.environ["SECURESSH_PROBE_TIMEOUT"] = "2.5"
        os.environ["SECURESSH_LOG_LEVEL"] = "debug"
        s = Settings.from_env()
        assert s.vault_path == Path("/tmp/env-vault.json")
        assert s.probe_timeout == 2.5
        assert s.log_level == "DEBUG"

        # Explicit path beats the environment
        assert Settings.from_env("/tmp/cli.json").vault_path == Path("/tmp/cli.json")

        os.environ["SECURESSH_PROBE_TIMEOUT"] = "soon"
        expect(ConfigError, Settings.from_env)
        os.environ["SECURESSH_PROBE_TIMEOUT"] = "0"
        expect(ConfigError, Settings.from_env)
    finally:
        for k, v in saved.items():
            if v is None:
                os.environ.pop(k, None)
            else:
                os.environ[k] = v
    print("  [OK] Environment overrides applied")


def run_all_tests():
    print("=" * 70)
    print("SecureSSH - Test Suite")
    print("=" * 70)
    print()

    tests = [v for k, v in sorted(globals().items()) if k.startswith("test_") and callable(v)]
    failed = []

    for test in tests:
        try:
            test()
            print()
        except Exception as e:
            print(f"  [FAIL] {test.__name__}: {e!r}")
            failed.append((test.__name__, e))
            print()

    print("=" * 70)
    if not failed:
        print("[OK] ALL TESTS PASSED!")
    else:
        print(f"[FAIL] {len(failed)} TESTS FAILED:")
        for name, error in failed:
            print(f"  - {name}: {error}")
    print("=" * 70)

    return len(failed) == 0


if __name__ == "__main__":
    import sys
    success = run_all_tests()
    sys.exit(0 if success else 1)
