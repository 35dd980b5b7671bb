"""Account keys and signed off-chain requests."""

from ocss.crypto.keys import KeyPair, KeyStore, address_from_public_key
from ocss.crypto.signatures import (
    create_signature_message,
    sign_request,
    verify_request,
)

__all__ = [
    "KeyPair",
    "KeyStore",
    "address_from_public_key",
    "create_signature_message",
    "sign_request",
    "verify_request",
]
