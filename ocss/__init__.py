"""
OCSS — Off-Chain Secret Sharing
===============================

Secrets split into shares held by independent off-chain engines, with
share commitments and access control recorded on-chain.

Architecture:
    ┌──────────────────────────────────────────┐
    │                 Owner                    │
    │  SecretSharingClient ── XOR / Shamir     │
    └──────┬──────────────────────────┬────────┘
           │ commitments,             │ signed PUT / GET
           │ download window          │ /shares/{id}
    ┌──────▼─────────┐        ┌───────▼────────┐
    │  Ledger        │◀───────│  Engines       │
    │  contracts     │ shared │  ShareStore    │
    └────────────────┘        └────────────────┘

Copyright (c) 2026 CruxLabx
License: AGPL-3.0
"""

__version__ = "0.1.0"
__org__ = "CruxLabx"

from ocss.config import OCSSConfig, SchemeKind, ShamirConfig, SharingConfig
from ocss.errors import (
    ConfigurationError,
    ContractError,
    EngineRequestError,
    InsufficientSharesError,
    OCSSError,
    ReconstructionError,
)

__all__ = [
    "ConfigurationError",
    "ContractError",
    "EngineRequestError",
    "InsufficientSharesError",
    "OCSSConfig",
    "OCSSError",
    "ReconstructionError",
    "SchemeKind",
    "ShamirConfig",
    "SharingConfig",
    "__version__",
]
