"""
SecureSSH - Attack Demonstration

Run: python attack_demo.py

What it shows (and why attacks fail):
1) Wrong master password is rejected before any host is touched.
2) A key derived from the wrong password cannot decrypt host passwords.
3) Ciphertext tampering in the vault file is detected by AES-GCM.
4) Copying the verifier blob into a host password field does not leak it.
5) A duplicate alias is refused, whether added through the store or
   written into the vault file by hand.
"""

import json
import tempfile
from pathlib import Path

from securessh import crypto
from securessh.config import Settings
from securessh.errors import AliasExists, DecryptionFailure, InvalidPassword, IOFailure
from securessh.models import HostRecord, KdfParams
from securessh.session import Session


LINE = "=" * 70


def section(title: str):
    print(f"\n{LINE}\n{title}\n{LINE}")


def tamper(path: Path, mutate):
    data = json.loads(path.read_text())
    mutate(data)
    path.write_text(json.dumps(data, indent=2))


def main():
    master_password = "CorrectHorseBatteryStaple!"

    with tempfile.TemporaryDirectory() as tmp:
        settings = Settings(vault_path=Path(tmp) / "vault.json", kdf=KdfParams(n=2**14))
        path = settings.vault_path

        owner = Session(settings, password_provider=lambda: master_password)
        owner.initialize(master_password, master_password)
        owner.add_host("web1", "10.0.0.5", "ubuntu", "super_secret_password")
        owner.add_host("db1", "10.0.0.6", "postgres", "another_secret")
        owner.close()

        # 1) Wrong master password
        section("Attack 1: Wrong master password")
        intruder = Session(settings, password_provider=lambda: "wrong_password")
        try:
            intruder.reveal_password(intruder.get_host("web1"))
            print("Unexpected: wrong password accepted")
        except InvalidPassword as e:
            print(f"Expected failure: verifier did not open ({e})")

        # 2) Offline: derive a key from a guess and try the blob directly
        section("Attack 2: Offline decryption with a guessed password")
        registry = intruder.store.snapshot()
        guess = crypto.derive("password123", registry.kdf)
        try:
            crypto.decrypt_password(guess, registry.hosts[0].encrypted_password)
            print("Unexpected: guessed key decrypted the host password")
        except DecryptionFailure as e:
            print(f"Expected failure: {e}")

        # 3) Ciphertext tampering
        section("Attack 3: Ciphertext tampering (AES-GCM)")

        def flip_last_char(data):
            blob = data["hosts"][0]["password"]
            data["hosts"][0]["password"] = blob[:-2] + ("A" if blob[-2] != "A" else "B") + blob[-1]

        tamper(path, flip_last_char)
        victim = Session(settings, password_provider=lambda: master_password)
        try:
            victim.reveal_password(victim.get_host("web1"))
            print("Unexpected: tampered ciphertext still decrypted")
        except DecryptionFailure as e:
            print(f"Expected failure: AES-GCM detected tampering ({e})")

        # 4) Verifier replay into a password field
        section("Attack 4: Verifier blob replayed as a host password")
        tamper(path, lambda d: d["hosts"][1].__setitem__("password", d["verifier"]))
        victim = Session(settings, password_provider=lambda: master_password)
        try:
            victim.reveal_password(victim.get_host("db1"))
            print("Unexpected: verifier decrypted as a password")
        except DecryptionFailure as e:
            print(f"Expected failure: purpose binding rejected it ({e})")

        # 5) Alias collision, through the API and by editing the file
        section("Attack 5: Alias collision")
        try:
            victim.store.add(HostRecord("web1", "6.6.6.6", "evil", "x"))
            print("Unexpected: duplicate alias stored")
        except AliasExists as e:
            print(f"Expected failure: {e}")
        victim.close()

        def shadow_web1(data):
            evil = dict(data["hosts"][1], id="evil", address="6.6.6.6", alias="web1")
            data["hosts"].insert(0, evil)

        tamper(path, shadow_web1)
        try:
            Session(settings, password_provider=lambda: master_password)
            print("Unexpected: vault with a shadowed alias loaded")
        except IOFailure as e:
            print(f"Expected failure: {e}")

    print("\nDemo complete. All showcased attacks failed as expected.")


if __name__ == "__main__":
    main()
