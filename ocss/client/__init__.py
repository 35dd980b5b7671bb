"""Owner-side client for off-chain secret sharing."""

from ocss.client.client import (
    NONCE_BYTES,
    SecretSharingClient,
    build_share_url,
    prefix_with_random_nonce,
    remove_nonce_prefix,
)

__all__ = [
    "NONCE_BYTES",
    "SecretSharingClient",
    "build_share_url",
    "prefix_with_random_nonce",
    "remove_nonce_prefix",
]
