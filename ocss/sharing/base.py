"""
Secret shares — the capability shared by every splitting scheme.

Copyright (c) 2026 CruxLabx
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional, Sequence

from ocss.config import SchemeKind
from ocss.sharing.commitments import create_share_commitment


class SecretShares(ABC):
    """
    A secret split into one share per node.

    Built either from plaintext (splitting) or from the share bytes
    collected from nodes, where a missing share is None. Immutable.
    """

    @abstractmethod
    def num_shares(self) -> int:
        ...

    @abstractmethod
    def get_share_bytes(self, index: int) -> Optional[bytes]:
        ...

    @abstractmethod
    def reconstruct_plain_text(self) -> bytes:
        ...

    def shares(self) -> list[Optional[bytes]]:
        return [self.get_share_bytes(i) for i in range(self.num_shares())]

    def commitments(self) -> list[str]:
        """One commitment per share, in node order. Requires every share."""
        commitments = []
        for index, share in enumerate(self.shares()):
            if share is None:
                raise ValueError(f"Share {index} is missing, cannot commit to it")
            commitments.append(create_share_commitment(share))
        return commitments


class SecretSharesFactory(ABC):
    """Creates SecretShares of one scheme."""

    kind: SchemeKind

    @abstractmethod
    def from_plain_text(self, num_nodes: int, plaintext: bytes) -> SecretShares:
        ...

    @abstractmethod
    def from_shares_bytes(
        self, shares: Sequence[Optional[bytes]]
    ) -> SecretShares:
        ...
