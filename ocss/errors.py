"""
OCSS — Exception taxonomy
=========================

  ConfigurationError      bad share counts, thresholds, scheme parameters
  ReconstructionError     too few valid shares to recover a secret
  ContractError           an on-chain action refused the call
  EngineRequestError      an engine rejected a request or stayed unreachable

Integrity failures (a share that does not match its commitment) are not
exceptions: they degrade the share to "missing" and are logged.

Copyright (c) 2026 CruxLabx — AGPL-3.0
"""

from __future__ import annotations

from typing import Optional


class OCSSError(Exception):
    """Base class for every error raised by ocss."""


class ConfigurationError(OCSSError, ValueError):
    """Invalid scheme or node configuration. Fatal at construction."""


class ReconstructionError(OCSSError):
    """The secret cannot be recovered from the shares at hand."""

    def __init__(self, message: str = "Unable to reconstruct secret"):
        super().__init__(message)


class InsufficientSharesError(ReconstructionError):
    """Fewer defined shares than the scheme's reconstruction threshold."""

    def __init__(self, available: int, required: int):
        super().__init__(
            f"Unable to reconstruct secret: {available} shares available, "
            f"{required} required"
        )
        self.available = available
        self.required = required


class ContractError(OCSSError):
    """An on-chain action failed; the message is the contract's reason."""


class EngineRequestError(OCSSError):
    """An engine rejected a request, or did not answer within the retry budget."""

    def __init__(
        self,
        engine: str,
        message: str,
        status_code: Optional[int] = None,
    ):
        super().__init__(f"Engine {engine}: {message}")
        self.engine = engine
        self.status_code = status_code
