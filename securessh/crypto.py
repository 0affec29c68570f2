"""
SecureSSH - Cryptography Module

All cryptographic operations for the host vault live in this one file.

Security Architecture:
    1. Master Password + salt -> scrypt -> Key Material (32 bytes)
    2. Each host password -> AES-256-GCM (random nonce) -> text-safe blob
    3. A fixed token encrypted the same way is the vault's verifier

Verifier:
    - A candidate master password is accepted only if the key it derives
      can actually open the verifier blob
    - A password that "looks right" but cannot decrypt stored hosts is
      therefore impossible
"""

import base64
import binascii
import hmac
import json
import logging
import os
import secrets
import string
from typing import Tuple

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from .errors import DecryptionFailure
from .models import KdfParams

logger = logging.getLogger(__name__)


# =============================================================================
# Configuration
# =============================================================================

KEY_SIZE = 32            # 256-bit key
NONCE_SIZE = 12          # 96-bit nonce for AES-GCM
TAG_SIZE = 16            # 128-bit authentication tag
SALT_SIZE = 16
BLOB_VERSION = 1

VERIFIER_TOKEN = b"securessh-verifier-v1"

# Purposes bound into the associated data of each blob
PURPOSE_PASSWORD = "host_password"
PURPOSE_VERIFIER = "verifier"


# =============================================================================
# Key Material
# =============================================================================

class KeyMaterial:
    """
    Derived master key, live only for one process run.

    Held in a bytearray so it can be zeroed in place with wipe().
    Never serialised to the vault file.
    """

    __slots__ = ("_key",)

    def __init__(self, key: bytes):
        if len(key) != KEY_SIZE:
            raise ValueError(f"key material must be {KEY_SIZE} bytes")
        self._key = bytearray(key)

    @property
    def is_wiped(self) -> bool:
        return not any(self._key)

    def wipe(self) -> None:
        """
        Overwrite this object's key buffer with zeros.

        Copies already handed to AESGCM are immutable bytes and are not
        reached by this.
        """
        for i in range(len(self._key)):
            self._key[i] = 0

    def _aead(self) -> AESGCM:
        if self.is_wiped:
            raise DecryptionFailure("key material has been wiped")
        return AESGCM(bytes(self._key))

    def __eq__(self, other):
        if not isinstance(other, KeyMaterial):
            return NotImplemented
        return hmac.compare_digest(bytes(self._key), bytes(other._key))

    __hash__ = None

    def __repr__(self):
        return "KeyMaterial(<redacted>)"


# =============================================================================
# Key Derivation
# =============================================================================

def new_salt() -> bytes:
    return os.urandom(SALT_SIZE)


def derive(master_password: str, params: KdfParams) -> KeyMaterial:
    """
    Derive key material from the master password using scrypt.

    Deterministic for a given password + params (salt included), so the
    same password always reopens blobs written in an earlier run.

    Args:
        master_password: User's master password
        params: scrypt parameters and salt stored in the vault

    Returns:
        KeyMaterial holding the 32-byte key
    """
    params.validate()
    kdf = Scrypt(
        salt=params.salt,
        length=KEY_SIZE,
        n=params.n,
        r=params.r,
        p=params.p,
    )
    return KeyMaterial(kdf.derive(master_password.encode("utf-8")))


# =============================================================================
# Canonical Associated Data
# =============================================================================

def canonical_ad(ad: dict) -> bytes:
    """
    Convert associated data to canonical JSON bytes.

    Sorted keys, compact separators, UTF-8: the same dict always produces
    the same bytes, which AES-GCM needs to authenticate it.
    """
    json_str = json.dumps(ad, separators=(",", ":"), sort_keys=True, ensure_ascii=False)
    return json_str.encode("utf-8")


def _ad_for(purpose: str) -> bytes:
    return canonical_ad({"ctx": purpose, "aead": "aes256gcm", "v": BLOB_VERSION})


# =============================================================================
# Encryption (AES-256-GCM)
# =============================================================================

def encrypt(key: KeyMaterial, plaintext: bytes, purpose: str = PURPOSE_PASSWORD) -> str:
    """
    Encrypt bytes into a self-describing, text-safe blob.

    Blob layout (before base64):
        version (1 byte) || nonce (12 bytes) || ciphertext + tag

    Args:
        key: Key material from derive()
        plaintext: Data to encrypt
        purpose: Bound into the associated data; decrypt must use the same

    Returns:
        base64 string safe to store in the vault file
    """
    nonce = os.urandom(NONCE_SIZE)
    ciphertext = key._aead().encrypt(nonce, plaintext, _ad_for(purpose))
    raw = bytes([BLOB_VERSION]) + nonce + ciphertext
    return base64.b64encode(raw).decode("ascii")


def _split_blob(blob: str) -> Tuple[bytes, bytes]:
    try:
        raw = base64.b64decode(blob.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError, AttributeError) as e:
        raise DecryptionFailure(f"malformed ciphertext blob: {e}")

    if len(raw) < 1 + NONCE_SIZE + TAG_SIZE:
        raise DecryptionFailure("ciphertext blob is truncated")
    if raw[0] != BLOB_VERSION:
        raise DecryptionFailure(f"unsupported blob version: {raw[0]}")
    return raw[1:1 + NONCE_SIZE], raw[1 + NONCE_SIZE:]


def decrypt(key: KeyMaterial, blob: str, purpose: str = PURPOSE_PASSWORD) -> bytes:
    """
    Decrypt a blob produced by encrypt().

    Raises:
        DecryptionFailure: wrong key, wrong purpose, corrupt or tampered blob
    """
    nonce, ciphertext = _split_blob(blob)
    try:
        return key._aead().decrypt(nonce, ciphertext, _ad_for(purpose))
    except InvalidTag:
        raise DecryptionFailure("decryption failed: wrong key or tampered data")


def encrypt_password(key: KeyMaterial, password: str) -> str:
    return encrypt(key, password.encode("utf-8"), PURPOSE_PASSWORD)


def decrypt_password(key: KeyMaterial, blob: str) -> str:
    return decrypt(key, blob, PURPOSE_PASSWORD).decode("utf-8")


# =============================================================================
# Master Password Verifier
# =============================================================================

def make_verifier(key: KeyMaterial) -> str:
    """Encrypt the fixed verifier token under the freshly derived key."""
    return encrypt(key, VERIFIER_TOKEN, PURPOSE_VERIFIER)


def check_verifier(key: KeyMaterial, verifier: str) -> bool:
    """
    True only if this key material opens the stored verifier.

    Uses the same derive/decrypt path as host passwords, so acceptance
    implies the key can decrypt real records.
    """
    try:
        token = decrypt(key, verifier, PURPOSE_VERIFIER)
    except DecryptionFailure:
        logger.debug("Verifier did not decrypt under candidate key")
        return False
    return hmac.compare_digest(token, VERIFIER_TOKEN)


# =============================================================================
# Password Generation
# =============================================================================

def generate_password(length: int = 20, use_symbols: bool = True) -> str:
    """
    Generate a strong random password for a new host.

    Args:
        length: Password length (default 20)
        use_symbols: Include !@#$%^&*()_+-= ?

    Returns:
        Random password string
    """
    if length < 1:
        raise ValueError("length must be positive")

    chars = string.ascii_letters + string.digits
    if use_symbols:
        chars += "!@#$%^&*()_+-="

    # secrets.choice() draws from os.urandom()
    return "".join(secrets.choice(chars) for _ in range(length))
