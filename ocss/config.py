"""
OCSS Configuration — Pydantic-validated settings for every subsystem.
"""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings


class SchemeKind(str, Enum):
    XOR = "xor"                 # All-or-nothing, every share required
    SHAMIR = "shamir"           # Threshold, tolerates missing/malicious nodes


class ShamirConfig(BaseModel):
    """
    Parameters of a Shamir sharing.

    Every party must use the same values: node i is evaluated at the
    field element i + 1.
    """
    model_config = {"frozen": True}

    num_malicious: int = Field(default=1, ge=0, le=254)
    num_nodes: int = Field(default=4, ge=1, le=255)
    num_to_reconstruct: int = Field(default=2, ge=1, le=255)

    @model_validator(mode="after")
    def check_threshold(self) -> "ShamirConfig":
        if self.num_to_reconstruct < self.num_malicious + 1:
            raise ValueError(
                f"num_to_reconstruct ({self.num_to_reconstruct}) must be >= "
                f"num_malicious + 1 ({self.num_malicious + 1})"
            )
        if self.num_to_reconstruct > self.num_nodes:
            raise ValueError(
                f"num_to_reconstruct ({self.num_to_reconstruct}) must be <= "
                f"num_nodes ({self.num_nodes})"
            )
        return self

    @property
    def is_error_correcting(self) -> bool:
        """True when interpolation alone can detect bad shares."""
        return self.num_to_reconstruct >= 2 * self.num_malicious + 1


class SharingConfig(BaseModel):
    """Which scheme splits secrets, and its parameters."""
    scheme: SchemeKind = SchemeKind.XOR
    shamir: ShamirConfig = Field(default_factory=ShamirConfig)


class ClientConfig(BaseModel):
    """Off-chain client behaviour towards engines."""
    max_attempts: int = Field(default=10, ge=1, le=100)
    retry_delay_sec: float = Field(default=0.2, ge=0.0, le=60.0)
    timeout_sec: float = Field(default=10.0, gt=0.0, le=300.0)


class EngineServerConfig(BaseModel):
    """Engine HTTP server configuration."""
    host: str = "127.0.0.1"
    port: int = Field(default=8420, ge=1, le=65535)
    max_share_bytes: int = Field(default=1024 * 1024, ge=32)


class ContractConfig(BaseModel):
    """On-chain contract parameters."""
    download_window_ms: int = Field(default=300_000, ge=1)


class OCSSConfig(BaseSettings):
    """
    Root configuration.

    Loads from environment variables prefixed with OCSS_,
    e.g. OCSS_DATA_DIR=/srv/ocss, OCSS_SHARING__SCHEME=shamir
    """
    model_config = {"env_prefix": "OCSS_", "env_nested_delimiter": "__"}

    data_dir: Path = Path("~/.ocss").expanduser()
    log_level: str = "INFO"

    sharing: SharingConfig = Field(default_factory=SharingConfig)
    client: ClientConfig = Field(default_factory=ClientConfig)
    engine: EngineServerConfig = Field(default_factory=EngineServerConfig)
    contract: ContractConfig = Field(default_factory=ContractConfig)

    @property
    def ledger_path(self) -> Path:
        return self.data_dir / "ledger.db"

    @property
    def keys_dir(self) -> Path:
        return self.data_dir / "keys"

    def engine_store_path(self, engine_address: str) -> Path:
        return self.data_dir / "engines" / f"{engine_address}.db"

    def ensure_dirs(self) -> None:
        """Create all required directories."""
        for d in (self.data_dir, self.keys_dir, self.data_dir / "engines"):
            d.mkdir(parents=True, exist_ok=True)
        # Key directory is private
        os.chmod(self.keys_dir, 0o700)
