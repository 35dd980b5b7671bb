"""
OCSS Secret Sharing Client
==========================

Drives a sharing through its lifecycle from the owner's side:

    register_and_upload_sharing(id, secret)
        nonce-prefix → split → register commitments on-chain → PUT shares
    download_and_reconstruct(id)
        request download on-chain → GET shares → check commitments
        → reconstruct → strip nonce

Requests to all engines run concurrently. Each request is signed with
the owner's key and retried a bounded number of times with a fixed
delay while the engine is unreachable or not yet aware of the sharing.

Copyright (c) 2026 CruxLabx
"""

from __future__ import annotations

import asyncio
import logging
import secrets
from typing import Optional

import httpx

from ocss.chain.ledger import Ledger
from ocss.chain.secret_sharing import NodeConfig, SecretSharingState, Sharing
from ocss.config import ClientConfig
from ocss.crypto.keys import KeyPair
from ocss.crypto.signatures import share_uri, sign_request
from ocss.errors import ContractError, EngineRequestError
from ocss.sharing.base import SecretShares, SecretSharesFactory
from ocss.sharing.commitments import filter_shares_from_commitments

logger = logging.getLogger("ocss.client")

NONCE_BYTES = 32

# Statuses that retrying with the same request cannot fix
_TERMINAL_STATUSES = {400, 401, 405, 413}


def prefix_with_random_nonce(data: bytes) -> bytes:
    """Prepend 32 random bytes so equal secrets never share commitments."""
    return secrets.token_bytes(NONCE_BYTES) + data


def remove_nonce_prefix(data: bytes) -> bytes:
    if len(data) < NONCE_BYTES:
        raise ValueError(f"Reconstructed data shorter than the {NONCE_BYTES}-byte nonce")
    return data[NONCE_BYTES:]


def build_share_url(endpoint: str, contract_address: str, sharing_id: int) -> str:
    return f"{endpoint.rstrip('/')}/offchain/{contract_address}{share_uri(sharing_id)}"


def _error_message(response: httpx.Response) -> str:
    try:
        return response.json().get("error") or response.text
    except ValueError:
        return response.text or f"HTTP {response.status_code}"


class SecretSharingClient:
    """
    Owner-side client of one secret-sharing contract.

    Usage:
        async with SecretSharingClient(ledger, contract, key, factory) as client:
            await client.register_and_upload_sharing(7, b"my secret")
            secret = await client.download_and_reconstruct(7)
    """

    def __init__(
        self,
        ledger: Ledger,
        contract_address: str,
        key: KeyPair,
        factory: SecretSharesFactory,
        config: Optional[ClientConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.ledger = ledger
        self.contract_address = contract_address
        self.key = key
        self.factory = factory
        self.config = config or ClientConfig()
        self._http = http_client
        self._owns_http = http_client is None

    async def __aenter__(self) -> "SecretSharingClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http and self._http is not None:
            await self._http.aclose()
            self._http = None

    @property
    def http(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self.config.timeout_sec)
        return self._http

    # ─── On-chain view ───────────────────────────────────────────

    def get_state(self) -> SecretSharingState:
        return self.ledger.get_state(self.contract_address)

    def get_engines(self) -> list[NodeConfig]:
        return self.get_state().nodes

    def get_sharing(self, sharing_id: int) -> Sharing:
        sharing = self.get_state().get_sharing(sharing_id)
        if sharing is None:
            raise ContractError("Unknown sharing")
        return sharing

    # ─── Upload ──────────────────────────────────────────────────

    async def register_and_upload_sharing(self, sharing_id: int, plaintext: bytes) -> None:
        shares = self.split(plaintext)
        self.register_sharing(sharing_id, shares)
        await self.upload_shares(sharing_id, shares)
        logger.info("Sharing %d uploaded to %d engines", sharing_id, shares.num_shares())

    def split(self, plaintext: bytes) -> SecretShares:
        num_engines = len(self.get_engines())
        return self.factory.from_plain_text(num_engines, prefix_with_random_nonce(plaintext))

    def register_sharing(self, sharing_id: int, shares: SecretShares) -> None:
        self.ledger.invoke(
            self.key,
            self.contract_address,
            "register_sharing",
            sharing_id=sharing_id,
            share_commitments=shares.commitments(),
        )

    async def upload_shares(self, sharing_id: int, shares: SecretShares) -> None:
        """PUT every share to its engine; raises the first failure after all finish."""
        engines = self.get_engines()
        results = await asyncio.gather(
            *(
                self._upload_share(engine, sharing_id, shares.get_share_bytes(i))
                for i, engine in enumerate(engines)
            ),
            return_exceptions=True,
        )
        errors = [r for r in results if isinstance(r, BaseException)]
        for error in errors[1:]:
            logger.error("Additional upload failure: %s", error)
        if errors:
            raise errors[0]

    async def _upload_share(self, engine: NodeConfig, sharing_id: int, share: bytes) -> None:
        url = build_share_url(engine.endpoint, self.contract_address, sharing_id)
        uri = share_uri(sharing_id)
        last_error = "no attempt made"

        for attempt in range(1, self.config.max_attempts + 1):
            auth = sign_request(
                self.key, engine.address, self.contract_address, "PUT", uri, share
            )
            try:
                response = await self.http.put(
                    url, content=share, headers={"Authorization": auth.to_header()}
                )
            except httpx.TransportError as e:
                last_error = f"{type(e).__name__}: {e}"
            else:
                if response.status_code == 201:
                    return
                if response.status_code == 409:
                    logger.info("Engine %s already holds sharing %d",
                                engine.address, sharing_id)
                    return
                if response.status_code in _TERMINAL_STATUSES:
                    raise EngineRequestError(
                        f"{engine.address} ({engine.endpoint})",
                        f"upload rejected: {_error_message(response)}",
                        response.status_code,
                    )
                last_error = f"HTTP {response.status_code}: {_error_message(response)}"

            logger.debug("Upload to %s failed (attempt %d/%d): %s",
                         engine.endpoint, attempt, self.config.max_attempts, last_error)
            if attempt < self.config.max_attempts:
                await asyncio.sleep(self.config.retry_delay_sec)

        raise EngineRequestError(
            f"{engine.address} ({engine.endpoint})",
            f"upload failed after {self.config.max_attempts} attempts: {last_error}",
        )

    # ─── Download ────────────────────────────────────────────────

    def request_download(self, sharing_id: int) -> int:
        """Open the download window on-chain; returns the deadline."""
        return self.ledger.invoke(
            self.key, self.contract_address, "request_download", sharing_id=sharing_id
        )

    async def download_shares(self, sharing_id: int) -> list[Optional[bytes]]:
        """GET every engine's share; an engine that fails yields None."""
        engines = self.get_engines()
        return list(await asyncio.gather(
            *(self._download_share(engine, sharing_id) for engine in engines)
        ))

    async def _download_share(self, engine: NodeConfig, sharing_id: int) -> Optional[bytes]:
        url = build_share_url(engine.endpoint, self.contract_address, sharing_id)
        uri = share_uri(sharing_id)
        last_error = "no attempt made"

        for attempt in range(1, self.config.max_attempts + 1):
            auth = sign_request(
                self.key, engine.address, self.contract_address, "GET", uri
            )
            try:
                response = await self.http.get(
                    url, headers={"Authorization": auth.to_header()}
                )
            except httpx.TransportError as e:
                last_error = f"{type(e).__name__}: {e}"
            else:
                if response.status_code == 200:
                    return response.content
                last_error = f"HTTP {response.status_code}: {_error_message(response)}"
                if response.status_code in _TERMINAL_STATUSES:
                    break

            if attempt < self.config.max_attempts:
                await asyncio.sleep(self.config.retry_delay_sec)

        logger.warning("No share from engine %s for sharing %d: %s",
                       engine.address, sharing_id, last_error)
        return None

    async def download_and_reconstruct(self, sharing_id: int) -> bytes:
        self.request_download(sharing_id)
        received = await self.download_shares(sharing_id)
        sharing = self.get_sharing(sharing_id)
        filtered = filter_shares_from_commitments(sharing.share_commitments, received)
        shares = self.factory.from_shares_bytes(filtered)
        return remove_nonce_prefix(shares.reconstruct_plain_text())
