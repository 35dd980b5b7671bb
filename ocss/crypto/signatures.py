"""
Signed off-chain requests
=========================

Every request to an engine carries

    Authorization: secp256k1 <hex r||s signature> <unix-millis timestamp>

The signature covers a canonical message:

    engine address (21 bytes)
    contract address (21 bytes)
    method          (u32 length + UTF-8)
    URI             (u32 length + UTF-8)
    timestamp       (i64)
    body            (i32 length + bytes)

all big-endian. There is no replay protection beyond the on-chain
download deadline: a captured GET stays valid until the deadline passes.

Copyright (c) 2026 CruxLabx
"""

from __future__ import annotations

import struct
import time
from dataclasses import dataclass
from typing import Optional

from cryptography.hazmat.primitives.asymmetric import ec

from ocss.crypto.keys import (
    SIGNATURE_BYTES,
    KeyPair,
    address_to_bytes,
    verify_signature,
)

AUTH_SCHEME = "secp256k1"

# Timestamps travel as a signed 64-bit integer
MIN_TIMESTAMP = -(2 ** 63)
MAX_TIMESTAMP = 2 ** 63 - 1


def _write_string(value: str) -> bytes:
    raw = value.encode("utf-8")
    return struct.pack("!I", len(raw)) + raw


def create_signature_message(
    engine_address: str,
    contract_address: str,
    method: str,
    uri: str,
    timestamp: int,
    body: bytes,
) -> bytes:
    """Canonical bytes signed by the client and checked by the engine."""
    return b"".join([
        address_to_bytes(engine_address),
        address_to_bytes(contract_address),
        _write_string(method.upper()),
        _write_string(uri),
        struct.pack("!q", timestamp),
        struct.pack("!i", len(body)),
        body,
    ])


def share_uri(sharing_id: int) -> str:
    """Contract-relative URI of a sharing, as it appears in the signature."""
    return f"/shares/{sharing_id}"


@dataclass(frozen=True)
class Authorization:
    signature: bytes
    timestamp: int

    def to_header(self) -> str:
        return f"{AUTH_SCHEME} {self.signature.hex()} {self.timestamp}"


def now_millis() -> int:
    return int(time.time() * 1000)


def sign_request(
    key: KeyPair,
    engine_address: str,
    contract_address: str,
    method: str,
    uri: str,
    body: bytes = b"",
    timestamp: Optional[int] = None,
) -> Authorization:
    ts = now_millis() if timestamp is None else timestamp
    message = create_signature_message(
        engine_address, contract_address, method, uri, ts, body
    )
    return Authorization(signature=key.sign(message), timestamp=ts)


def parse_authorization_header(header: Optional[str]) -> Optional[Authorization]:
    """Parse the header value; None when it is absent or malformed."""
    if not header:
        return None
    parts = header.split(" ")
    if len(parts) != 3 or parts[0] != AUTH_SCHEME:
        return None
    try:
        signature = bytes.fromhex(parts[1])
        timestamp = int(parts[2])
    except ValueError:
        return None
    if len(signature) != SIGNATURE_BYTES:
        return None
    if not MIN_TIMESTAMP <= timestamp <= MAX_TIMESTAMP:
        return None
    return Authorization(signature=signature, timestamp=timestamp)


def verify_request(
    public_key: ec.EllipticCurvePublicKey,
    header: Optional[str],
    engine_address: str,
    contract_address: str,
    method: str,
    uri: str,
    body: bytes,
) -> bool:
    auth = parse_authorization_header(header)
    if auth is None:
        return False
    message = create_signature_message(
        engine_address, contract_address, method, uri, auth.timestamp, body
    )
    return verify_signature(public_key, message, auth.signature)
