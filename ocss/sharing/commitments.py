"""
Share commitments
=================

A commitment is the BLAKE3 hex digest of one share. Commitments are
positional: commitment i binds the share held by node i. They are posted
on-chain before any share leaves the client, so shares coming back from
untrusted engines can be checked without trusting the transport.

Copyright (c) 2026 CruxLabx
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

import blake3

logger = logging.getLogger("ocss.sharing")


def create_share_commitment(share: bytes) -> str:
    """Deterministic commitment to a single share."""
    return blake3.blake3(share).hexdigest()


def verify_share_commitment(share: bytes, commitment: str) -> bool:
    return create_share_commitment(share) == commitment


def filter_shares_from_commitments(
    expected: Sequence[str],
    received: Sequence[Optional[bytes]],
) -> list[Optional[bytes]]:
    """
    Keep only the shares that match their on-chain commitment.

    A missing share stays missing. A share whose digest differs from the
    commitment at the same position is replaced with None and logged.
    """
    if len(expected) != len(received):
        raise ValueError(
            f"Got {len(received)} shares for {len(expected)} commitments"
        )

    filtered: list[Optional[bytes]] = []
    for index, (commitment, share) in enumerate(zip(expected, received)):
        if share is None:
            filtered.append(None)
        elif verify_share_commitment(share, commitment):
            filtered.append(share)
        else:
            logger.warning(
                "Share from node %d does not match its commitment; discarding",
                index,
            )
            filtered.append(None)
    return filtered
