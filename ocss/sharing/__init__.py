"""Secret-sharing schemes: GF(2^8) arithmetic, XOR and Shamir sharing, commitments."""

from __future__ import annotations

from ocss.config import SchemeKind, SharingConfig
from ocss.sharing.base import SecretShares, SecretSharesFactory
from ocss.sharing.commitments import (
    create_share_commitment,
    filter_shares_from_commitments,
)
from ocss.sharing.field import FieldElement
from ocss.sharing.polynomial import Polynomial
from ocss.sharing.shamir import ShamirSecretShares, ShamirSecretSharesFactory
from ocss.sharing.xor import XorSecretShares, XorSecretSharesFactory


def create_factory(config: SharingConfig) -> SecretSharesFactory:
    """Pick the scheme named by the configuration."""
    if config.scheme is SchemeKind.XOR:
        return XorSecretSharesFactory()
    if config.scheme is SchemeKind.SHAMIR:
        return ShamirSecretSharesFactory(config.shamir)
    raise ValueError(f"Unknown sharing scheme: {config.scheme}")


__all__ = [
    "FieldElement",
    "Polynomial",
    "SecretShares",
    "SecretSharesFactory",
    "ShamirSecretShares",
    "ShamirSecretSharesFactory",
    "XorSecretShares",
    "XorSecretSharesFactory",
    "create_factory",
    "create_share_commitment",
    "filter_shares_from_commitments",
]
