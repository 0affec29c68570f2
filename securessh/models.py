"""
SecureSSH - Data Model

HostRecord: one stored connection profile (password field is ciphertext).
Registry:   everything persisted in the vault file.
KdfParams:  scrypt parameters + salt, stored so later runs derive the same key.
"""

import base64
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional

REGISTRY_VERSION = "1.0"
DEFAULT_PORT = 22


@dataclass(frozen=True)
class KdfParams:
    """scrypt cost parameters and salt for master-key derivation."""
    salt: bytes = b""
    n: int = 2**17
    r: int = 8
    p: int = 1
    name: str = "scrypt"

    def with_salt(self, salt: bytes) -> "KdfParams":
        return replace(self, salt=salt)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "salt": base64.b64encode(self.salt).decode("ascii"),
            "n": self.n,
            "r": self.r,
            "p": self.p,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "KdfParams":
        """
        Raises:
            TypeError: data is not a mapping
            ValueError: unknown KDF or parameters scrypt would reject
        """
        if not isinstance(data, dict):
            raise TypeError("kdf must be an object")
        params = cls(
            salt=base64.b64decode(data.get("salt", "")),
            n=int(data.get("n", 2**17)),
            r=int(data.get("r", 8)),
            p=int(data.get("p", 1)),
            name=data.get("name", "scrypt"),
        )
        params.validate()
        return params

    def validate(self) -> None:
        if self.name != "scrypt":
            raise ValueError(f"unsupported KDF: {self.name}")
        # scrypt needs n to be a power of two greater than 1
        if self.n < 2 or self.n & (self.n - 1):
            raise ValueError(f"scrypt n must be a power of two > 1, got {self.n}")
        if self.r < 1 or self.p < 1:
            raise ValueError("scrypt r and p must be positive")


@dataclass
class HostRecord:
    """
    One remote host profile.

    encrypted_password is the text-safe ciphertext blob produced by
    crypto.encrypt_password(); the store never decrypts it. id, created_at
    and updated_at are assigned by the store.
    """
    alias: str
    address: str
    username: str
    encrypted_password: str
    port: int = DEFAULT_PORT
    id: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def copy(self) -> "HostRecord":
        return replace(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "alias": self.alias,
            "address": self.address,
            "username": self.username,
            "password": self.encrypted_password,
            "port": self.port,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HostRecord":
        if not isinstance(data, dict):
            raise TypeError("host entry must be an object")
        return cls(
            id=data.get("id"),
            alias=data["alias"],
            address=data.get("address", ""),
            username=data.get("username", ""),
            encrypted_password=data.get("password", ""),
            port=int(data.get("port") or DEFAULT_PORT),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )


@dataclass
class Registry:
    """Full persisted vault state. Host order is insertion order."""
    version: str = REGISTRY_VERSION
    kdf: Optional[KdfParams] = None
    verifier: Optional[str] = None
    hosts: List[HostRecord] = field(default_factory=list)

    @property
    def is_initialized(self) -> bool:
        return bool(self.verifier) and self.kdf is not None

    def copy(self) -> "Registry":
        """Deep-enough copy: new host list holding copied records."""
        return replace(self, hosts=[h.copy() for h in self.hosts])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "kdf": self.kdf.to_dict() if self.kdf else None,
            "verifier": self.verifier,
            "hosts": [h.to_dict() for h in self.hosts],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Registry":
        if not isinstance(data, dict):
            raise TypeError(f"vault must be a JSON object, not {type(data).__name__}")
        kdf = data.get("kdf")
        return cls(
            version=data.get("version", REGISTRY_VERSION),
            kdf=KdfParams.from_dict(kdf) if kdf else None,
            verifier=data.get("verifier") or None,
            hosts=[HostRecord.from_dict(h) for h in data.get("hosts") or []],
        )
