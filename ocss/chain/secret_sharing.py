"""
Off-chain secret-sharing contract
=================================

On-chain bookkeeping for secrets whose shares live on off-chain engines:

  register_sharing(sharing_id, share_commitments)   by the owner
  register_shared(sharing_id)                       by each engine, after storing
  request_download(sharing_id)                      opens the download window

Lifecycle of one sharing:
    registered → partially uploaded → fully uploaded → download requested

Copyright (c) 2026 CruxLabx
"""

from __future__ import annotations

import re
from typing import Optional

from pydantic import BaseModel, Field

from ocss.chain.contract import Contract, ContractContext, action, require

MAX_SHARING_ID = 2 ** 128 - 1
DEFAULT_DOWNLOAD_WINDOW_MS = 300_000

_COMMITMENT = re.compile(r"^[0-9a-f]{64}$")


class NodeConfig(BaseModel):
    """An engine holding one share of every sharing."""
    address: str
    endpoint: str


class Sharing(BaseModel):
    """On-chain record of one secret sharing."""
    sharing_id: int
    owner: str
    share_commitments: list[str]
    nodes_with_completed_upload: list[bool]
    download_deadline: Optional[int] = None

    def is_fully_uploaded(self) -> bool:
        return all(self.nodes_with_completed_upload)

    def is_download_open(self, now_ms: int) -> bool:
        return self.download_deadline is not None and now_ms <= self.download_deadline


class SecretSharingState(BaseModel):
    nodes: list[NodeConfig]
    download_window_ms: int = DEFAULT_DOWNLOAD_WINDOW_MS
    secret_sharings: dict[int, Sharing] = Field(default_factory=dict)

    def node_index(self, address: str) -> Optional[int]:
        for index, node in enumerate(self.nodes):
            if node.address == address:
                return index
        return None

    def get_sharing(self, sharing_id: int) -> Optional[Sharing]:
        return self.secret_sharings.get(sharing_id)


def _require_sharing(state: SecretSharingState, sharing_id: int) -> Sharing:
    sharing = state.get_sharing(sharing_id)
    require(sharing is not None, "Unknown sharing")
    return sharing


class SecretSharingContract(Contract):
    KIND = "off-chain-secret-sharing"
    State = SecretSharingState

    def initialize(
        self,
        ctx: ContractContext,
        nodes: list,
        download_window_ms: int = DEFAULT_DOWNLOAD_WINDOW_MS,
    ) -> SecretSharingState:
        configs = [NodeConfig.model_validate(n) for n in nodes]
        require(len(configs) > 0, "At least one engine is required")
        require(
            len({n.address for n in configs}) == len(configs),
            "Engine addresses must be unique",
        )
        require(download_window_ms > 0, "Download window must be positive")
        return SecretSharingState(nodes=configs, download_window_ms=download_window_ms)

    @action
    def register_sharing(
        self,
        ctx: ContractContext,
        state: SecretSharingState,
        sharing_id: int,
        share_commitments: list[str],
    ) -> None:
        require(0 <= sharing_id <= MAX_SHARING_ID, "Invalid sharing identifier")
        require(
            sharing_id not in state.secret_sharings,
            "Cannot register sharing with the same identifier",
        )
        require(
            len(share_commitments) == len(state.nodes),
            "Invalid number of share commitments",
        )
        require(
            all(_COMMITMENT.match(c) for c in share_commitments),
            "Invalid share commitment",
        )
        state.secret_sharings[sharing_id] = Sharing(
            sharing_id=sharing_id,
            owner=ctx.sender,
            share_commitments=list(share_commitments),
            nodes_with_completed_upload=[False] * len(state.nodes),
        )

    @action
    def register_shared(
        self,
        ctx: ContractContext,
        state: SecretSharingState,
        sharing_id: int,
    ) -> None:
        node_index = state.node_index(ctx.sender)
        require(node_index is not None, "Caller is not one of the engines")
        sharing = _require_sharing(state, sharing_id)
        sharing.nodes_with_completed_upload[node_index] = True

    @action
    def request_download(
        self,
        ctx: ContractContext,
        state: SecretSharingState,
        sharing_id: int,
    ) -> int:
        sharing = _require_sharing(state, sharing_id)
        require(
            sharing.is_fully_uploaded(),
            "Shares haven't been uploaded to all nodes yet",
        )
        sharing.download_deadline = ctx.block_time + state.download_window_ms
        return sharing.download_deadline
