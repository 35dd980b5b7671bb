"""
Shamir threshold secret sharing over GF(2^8)
=============================================

Each byte of the secret is split independently: a random polynomial of
degree num_malicious carries the byte as its constant term and is
evaluated at node i's alpha (the field element i + 1).

Reconstruction interpolates through the defined shares. When they
disagree each byte is Berlekamp-Welch decoded and accepted only if at
least num_to_reconstruct shares agree with the result. With
num_to_reconstruct >= 2 * num_malicious + 1 this corrects up to
num_malicious wrong shares. Below that bound correctness relies on the
commitment filter having dropped bad shares first.

References:
  - Shamir, "How to Share a Secret" (1979)
  - Welch, Berlekamp, US patent 4,633,470 (1986)

Copyright (c) 2026 CruxLabx
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Optional, Sequence

from ocss.config import SchemeKind, ShamirConfig
from ocss.errors import (
    ConfigurationError,
    InsufficientSharesError,
    ReconstructionError,
)
from ocss.sharing.base import SecretShares, SecretSharesFactory
from ocss.sharing.field import FieldElement
from ocss.sharing.polynomial import Polynomial

logger = logging.getLogger("ocss.sharing")


def node_alphas(num_nodes: int) -> list[FieldElement]:
    """Evaluation points of nodes 0..num_nodes-1: the elements 1..num_nodes."""
    if not 1 <= num_nodes <= 255:
        raise ConfigurationError(f"GF(2^8) supports 1..255 nodes, got {num_nodes}")
    return [FieldElement(i + 1) for i in range(num_nodes)]


def _decode_byte(
    points: Sequence[tuple[FieldElement, FieldElement]],
    degree: int,
    required: int,
) -> Optional[Polynomial]:
    """
    The polynomial of degree <= ``degree`` through at least ``required``
    of the points, or None.
    """
    poly = Polynomial.interpolate(points[: degree + 1])
    if all(poly.evaluate(x) == y for x, y in points[degree + 1:]):
        return poly

    poly = Polynomial.decode(points, degree)
    if poly is None:
        return None
    agreeing = sum(1 for x, y in points if poly.evaluate(x) == y)
    return poly if agreeing >= required else None


def _drop_odd_lengths(shares: Sequence[Optional[bytes]]) -> list[Optional[bytes]]:
    """Shares must all have the plaintext's length; outliers count as missing."""
    lengths = Counter(len(s) for s in shares if s is not None)
    if len(lengths) <= 1:
        return list(shares)
    expected, _ = lengths.most_common(1)[0]
    result: list[Optional[bytes]] = []
    for index, share in enumerate(shares):
        if share is not None and len(share) != expected:
            logger.warning(
                "Share from node %d has length %d, expected %d; discarding",
                index, len(share), expected,
            )
            share = None
        result.append(share)
    return result


class ShamirSecretShares(SecretShares):
    """Threshold sharing with numbers of nodes and tolerated faults from config."""

    def __init__(self, config: ShamirConfig, shares: Sequence[Optional[bytes]]):
        if len(shares) != config.num_nodes:
            raise ConfigurationError(
                f"Expected {config.num_nodes} share slots, got {len(shares)}"
            )
        self._config = config
        self._alphas = node_alphas(config.num_nodes)
        self._shares: list[Optional[bytes]] = [
            bytes(s) if s is not None else None for s in shares
        ]

    @classmethod
    def from_plain_text(
        cls, config: ShamirConfig, plaintext: bytes
    ) -> "ShamirSecretShares":
        alphas = node_alphas(config.num_nodes)
        columns = [bytearray() for _ in alphas]
        for byte_val in plaintext:
            poly = Polynomial.random(FieldElement(byte_val), config.num_malicious)
            for column, alpha in zip(columns, alphas):
                column.append(poly.evaluate(alpha).value)
        return cls(config, [bytes(c) for c in columns])

    @classmethod
    def from_shares_bytes(
        cls, config: ShamirConfig, shares: Sequence[Optional[bytes]]
    ) -> "ShamirSecretShares":
        if len(shares) != config.num_nodes:
            raise ConfigurationError(
                f"Expected {config.num_nodes} share slots, got {len(shares)}"
            )
        shares = _drop_odd_lengths(shares)
        available = sum(1 for s in shares if s is not None)
        if available < config.num_to_reconstruct:
            raise InsufficientSharesError(available, config.num_to_reconstruct)
        return cls(config, shares)

    @property
    def config(self) -> ShamirConfig:
        return self._config

    def num_shares(self) -> int:
        return len(self._shares)

    def get_share_bytes(self, index: int) -> Optional[bytes]:
        return self._shares[index]

    def reconstruct_plain_text(self) -> bytes:
        """
        Recover the secret from the defined shares.

        Raises ReconstructionError when no num_to_reconstruct defined
        shares agree on a polynomial of degree num_malicious.
        """
        defined = [
            (alpha, share)
            for alpha, share in zip(self._alphas, self._shares)
            if share is not None
        ]
        required = self._config.num_to_reconstruct
        if len(defined) < required:
            raise InsufficientSharesError(len(defined), required)

        degree = self._config.num_malicious
        result = bytearray()
        for pos in range(len(defined[0][1])):
            points = [(alpha, FieldElement(share[pos])) for alpha, share in defined]
            poly = _decode_byte(points, degree, required)
            if poly is None:
                raise ReconstructionError()
            result.append(poly.constant_term().value)
        return bytes(result)


class ShamirSecretSharesFactory(SecretSharesFactory):
    kind = SchemeKind.SHAMIR

    def __init__(self, config: Optional[ShamirConfig] = None):
        self.config = config or ShamirConfig()

    def from_plain_text(self, num_nodes: int, plaintext: bytes) -> ShamirSecretShares:
        if num_nodes != self.config.num_nodes:
            raise ConfigurationError(
                f"Shamir config is for {self.config.num_nodes} nodes, "
                f"contract has {num_nodes}"
            )
        return ShamirSecretShares.from_plain_text(self.config, plaintext)

    def from_shares_bytes(
        self, shares: Sequence[Optional[bytes]]
    ) -> ShamirSecretShares:
        return ShamirSecretShares.from_shares_bytes(self.config, shares)
