"""
XOR secret sharing
==================

N-1 shares are uniformly random; the last one is the plaintext XORed
with all of them. Any N-1 shares reveal nothing, and every one of the N
shares is needed to reconstruct.

Copyright (c) 2026 CruxLabx
"""

from __future__ import annotations

import secrets
from typing import Optional, Sequence

from ocss.config import SchemeKind
from ocss.errors import ConfigurationError, InsufficientSharesError
from ocss.sharing.base import SecretShares, SecretSharesFactory


def xor_bytes(a: bytes, b: bytes) -> bytes:
    if len(a) != len(b):
        raise ValueError(f"Length mismatch: {len(a)} != {len(b)}")
    return bytes(x ^ y for x, y in zip(a, b))


class XorSecretShares(SecretShares):
    """All-or-nothing sharing: tolerates no missing or malicious node."""

    MIN_SHARES = 2

    def __init__(self, shares: Sequence[bytes]):
        if len(shares) < self.MIN_SHARES:
            raise ConfigurationError(
                f"XOR sharing needs at least {self.MIN_SHARES} shares, "
                f"got {len(shares)}"
            )
        lengths = {len(s) for s in shares}
        if len(lengths) != 1:
            raise ConfigurationError(f"Shares differ in length: {sorted(lengths)}")
        self._shares = [bytes(s) for s in shares]

    @classmethod
    def from_plain_text(cls, num_nodes: int, plaintext: bytes) -> "XorSecretShares":
        if num_nodes < cls.MIN_SHARES:
            raise ConfigurationError(
                f"XOR sharing needs at least {cls.MIN_SHARES} nodes, got {num_nodes}"
            )
        random_shares = [
            secrets.token_bytes(len(plaintext)) for _ in range(num_nodes - 1)
        ]
        last = bytes(plaintext)
        for share in random_shares:
            last = xor_bytes(last, share)
        return cls(random_shares + [last])

    @classmethod
    def from_shares_bytes(
        cls, shares: Sequence[Optional[bytes]]
    ) -> "XorSecretShares":
        present = [s for s in shares if s is not None]
        if len(present) != len(shares):
            raise InsufficientSharesError(len(present), len(shares))
        return cls(present)

    def num_shares(self) -> int:
        return len(self._shares)

    def get_share_bytes(self, index: int) -> bytes:
        return self._shares[index]

    def reconstruct_plain_text(self) -> bytes:
        result = bytes(len(self._shares[0]))
        for share in self._shares:
            result = xor_bytes(result, share)
        return result


class XorSecretSharesFactory(SecretSharesFactory):
    kind = SchemeKind.XOR

    def from_plain_text(self, num_nodes: int, plaintext: bytes) -> XorSecretShares:
        return XorSecretShares.from_plain_text(num_nodes, plaintext)

    def from_shares_bytes(
        self, shares: Sequence[Optional[bytes]]
    ) -> XorSecretShares:
        return XorSecretShares.from_shares_bytes(shares)
