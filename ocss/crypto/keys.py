"""
OCSS Key Management
===================

secp256k1 account keys for users and engines:
  - Generation, or derivation from a known secret scalar
  - Account addresses: type byte 0x00 + last 20 bytes of
    SHA-256(uncompressed public key), hex encoded
  - Raw 64-byte (r || s) ECDSA signatures over SHA-256
  - Password-protected PEM storage with a JSON record index

Copyright (c) 2026 CruxLabx
"""

from __future__ import annotations

import hashlib
import json
import os
import re
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import (
    decode_dss_signature,
    encode_dss_signature,
)

CURVE = ec.SECP256K1()
SIGNATURE_BYTES = 64
ADDRESS_BYTES = 21
ACCOUNT_ADDRESS_TYPE = 0x00

_SCALAR_BYTES = 32
_KEY_NAME = re.compile(r"^[A-Za-z0-9_.-]{1,64}$")


def public_key_to_bytes(public_key: ec.EllipticCurvePublicKey) -> bytes:
    """65-byte uncompressed SEC1 encoding."""
    return public_key.public_bytes(
        serialization.Encoding.X962,
        serialization.PublicFormat.UncompressedPoint,
    )


def public_key_from_bytes(data: bytes) -> ec.EllipticCurvePublicKey:
    return ec.EllipticCurvePublicKey.from_encoded_point(CURVE, data)


def address_from_public_key(public_key: ec.EllipticCurvePublicKey) -> str:
    digest = hashlib.sha256(public_key_to_bytes(public_key)).digest()
    return bytes([ACCOUNT_ADDRESS_TYPE]).hex() + digest[12:].hex()


def address_to_bytes(address: str) -> bytes:
    """Decode a hex address, checking its length."""
    try:
        raw = bytes.fromhex(address)
    except ValueError as e:
        raise ValueError(f"Address is not hex: {address!r}") from e
    if len(raw) != ADDRESS_BYTES:
        raise ValueError(f"Address must be {ADDRESS_BYTES} bytes, got {len(raw)}")
    return raw


def verify_signature(
    public_key: ec.EllipticCurvePublicKey,
    message: bytes,
    signature: bytes,
) -> bool:
    """Check a raw r || s signature over SHA-256(message)."""
    if len(signature) != SIGNATURE_BYTES:
        return False
    r = int.from_bytes(signature[:_SCALAR_BYTES], "big")
    s = int.from_bytes(signature[_SCALAR_BYTES:], "big")
    try:
        public_key.verify(
            encode_dss_signature(r, s), message, ec.ECDSA(hashes.SHA256())
        )
    except InvalidSignature:
        return False
    return True


class KeyPair:
    """
    A secp256k1 private key and the account it controls.

    Usage:
        key = KeyPair.generate()
        sig = key.sign(b"message")
        assert verify_signature(key.public_key, b"message", sig)
    """

    def __init__(self, private_key: ec.EllipticCurvePrivateKey):
        if not isinstance(private_key.curve, ec.SECP256K1):
            raise ValueError(f"Expected a secp256k1 key, got {private_key.curve.name}")
        self._private_key = private_key
        self._public_key = private_key.public_key()
        self._address = address_from_public_key(self._public_key)

    @classmethod
    def generate(cls) -> "KeyPair":
        return cls(ec.generate_private_key(CURVE))

    @classmethod
    def from_secret(cls, secret: int) -> "KeyPair":
        """Deterministic key from a secret scalar (test fixtures, known keys)."""
        return cls(ec.derive_private_key(secret, CURVE))

    @classmethod
    def from_pem(cls, pem: bytes, password: Optional[str] = None) -> "KeyPair":
        private_key = serialization.load_pem_private_key(
            pem, password=password.encode("utf-8") if password else None
        )
        if not isinstance(private_key, ec.EllipticCurvePrivateKey):
            raise ValueError("PEM does not hold an elliptic curve key")
        return cls(private_key)

    def to_pem(self, password: Optional[str] = None) -> bytes:
        encryption: serialization.KeySerializationEncryption
        if password:
            encryption = serialization.BestAvailableEncryption(password.encode("utf-8"))
        else:
            encryption = serialization.NoEncryption()
        return self._private_key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            encryption,
        )

    @property
    def public_key(self) -> ec.EllipticCurvePublicKey:
        return self._public_key

    @property
    def public_key_bytes(self) -> bytes:
        return public_key_to_bytes(self._public_key)

    @property
    def address(self) -> str:
        return self._address

    def sign(self, message: bytes) -> bytes:
        """ECDSA over SHA-256(message), returned as 64 bytes r || s."""
        der = self._private_key.sign(message, ec.ECDSA(hashes.SHA256()))
        r, s = decode_dss_signature(der)
        return r.to_bytes(_SCALAR_BYTES, "big") + s.to_bytes(_SCALAR_BYTES, "big")

    def __repr__(self) -> str:
        return f"KeyPair(address={self._address})"


@dataclass
class KeyRecord:
    """Metadata about a stored key. Never holds key material."""
    name: str
    address: str
    algorithm: str = "secp256k1"
    created_at: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict) -> "KeyRecord":
        return cls(**d)


class KeyStore:
    """
    Password-protected account keys on disk.

    Usage:
        ks = KeyStore(Path("~/.ocss/keys"))
        key = ks.create("alice", password="hunter22")
        same = ks.load("alice", password="hunter22")
    """

    RECORDS_FILE = "key_records.json"

    def __init__(self, keys_dir: Path):
        self._dir = Path(keys_dir).expanduser()
        self._dir.mkdir(parents=True, exist_ok=True)
        os.chmod(self._dir, 0o700)
        self._records: dict[str, KeyRecord] = {}
        self._load_records()

    def _key_path(self, name: str) -> Path:
        if not _KEY_NAME.match(name):
            raise ValueError(f"Invalid key name: {name!r}")
        return self._dir / f"{name}.pem"

    def create(self, name: str, password: Optional[str] = None) -> KeyPair:
        path = self._key_path(name)
        if path.exists():
            raise FileExistsError(f"Key {name!r} already exists")
        key = KeyPair.generate()
        self._write(name, key, password)
        return key

    def import_key(
        self, name: str, key: KeyPair, password: Optional[str] = None
    ) -> None:
        if self._key_path(name).exists():
            raise FileExistsError(f"Key {name!r} already exists")
        self._write(name, key, password)

    def load(self, name: str, password: Optional[str] = None) -> KeyPair:
        path = self._key_path(name)
        if not path.exists():
            raise KeyError(f"No key named {name!r}")
        return KeyPair.from_pem(path.read_bytes(), password)

    def get_record(self, name: str) -> Optional[KeyRecord]:
        return self._records.get(name)

    def list_records(self) -> list[KeyRecord]:
        return sorted(self._records.values(), key=lambda r: r.created_at)

    def _write(self, name: str, key: KeyPair, password: Optional[str]) -> None:
        path = self._key_path(name)
        path.write_bytes(key.to_pem(password))
        os.chmod(path, 0o600)
        self._records[name] = KeyRecord(
            name=name, address=key.address, created_at=time.time()
        )
        self._save_records()

    def _load_records(self) -> None:
        path = self._dir / self.RECORDS_FILE
        if path.exists():
            data = json.loads(path.read_text())
            self._records = {d["name"]: KeyRecord.from_dict(d) for d in data}

    def _save_records(self) -> None:
        path = self._dir / self.RECORDS_FILE
        path.write_text(json.dumps(
            [r.to_dict() for r in self._records.values()], indent=2
        ))
