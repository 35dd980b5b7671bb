"""
OCSS Engine HTTP Server
=======================

FastAPI app run by every off-chain engine. Each deployed secret-sharing
contract is served under its own prefix:

Endpoints:
    /health                                     GET  — Health check
    /status                                     GET  — Engine status
    /offchain/{contract}/shares/{sharing_id}    PUT  — Store this engine's share
    /offchain/{contract}/shares/{sharing_id}    GET  — Return this engine's share

Share requests are authenticated with the sharing owner's secp256k1
signature (see ocss.crypto.signatures). The signed URI is the
contract-relative ``/shares/{sharing_id}``. Every error body is
``{"error": "..."}``.

Copyright (c) 2026 CruxLabx — AGPL-3.0
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ocss import __version__
from ocss.chain.ledger import Ledger
from ocss.chain.secret_sharing import (
    SecretSharingContract,
    SecretSharingState,
    Sharing,
)
from ocss.crypto.keys import KeyPair
from ocss.crypto.signatures import share_uri, verify_request
from ocss.engine.middleware import BodySizeLimitMiddleware, RequestLoggingMiddleware
from ocss.engine.models import ErrorResponse, HealthResponse, StatusResponse
from ocss.engine.store import ShareStore
from ocss.errors import ContractError
from ocss.sharing.commitments import verify_share_commitment

logger = logging.getLogger("ocss.engine")

MIN_SHARE_BYTES = 32
DEFAULT_MAX_SHARE_BYTES = 1024 * 1024

_SHARING_ID = re.compile(r"^[0-9]{1,39}$")

_ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
}


@dataclass
class _ShareRequest:
    contract_address: str
    sharing_id: int
    sharing: Sharing
    node_index: int


class EngineAPI:
    """
    Stateful wrapper around the FastAPI app of one engine.

    Usage:
        api = EngineAPI(ledger, engine_key, store=ShareStore(path))
        app = api.app
    """

    def __init__(
        self,
        ledger: Ledger,
        engine_key: KeyPair,
        store: Optional[ShareStore] = None,
        max_share_bytes: int = DEFAULT_MAX_SHARE_BYTES,
    ):
        self.ledger = ledger
        self.engine_key = engine_key
        self.store = store or ShareStore()
        self.max_share_bytes = max_share_bytes
        self._start_time = time.time()

        self.app = self._build_app()

    @property
    def address(self) -> str:
        return self.engine_key.address

    def _build_app(self) -> FastAPI:
        app = FastAPI(
            title="OCSS Engine",
            description="Off-chain share storage for on-chain secret sharings.",
            version=__version__,
            docs_url="/docs",
            redoc_url=None,
        )

        # ── Middleware (order matters: last added = first executed) ──
        app.add_middleware(BodySizeLimitMiddleware, max_bytes=self.max_share_bytes)
        app.add_middleware(RequestLoggingMiddleware, engine_address=self.address)

        self._register_errors(app)
        self._register_lifecycle(app)
        self._register_shares(app)
        return app

    # ── Helpers ────────────────────────────────────────────────

    def _resolve(self, contract_address: str, sharing_id: str) -> _ShareRequest:
        """Look up the sharing a request is about, or raise the matching HTTP error."""
        if not _SHARING_ID.match(sharing_id):
            raise HTTPException(400, "Malformed request")
        sid = int(sharing_id)

        if self.ledger.contract_kind(contract_address) != SecretSharingContract.KIND:
            raise HTTPException(404, "Unknown contract")
        state: SecretSharingState = self.ledger.get_state(contract_address)

        sharing = state.get_sharing(sid)
        if sharing is None:
            raise HTTPException(404, "Unknown sharing")

        node_index = state.node_index(self.address)
        if node_index is None:
            raise HTTPException(404, "Engine is not assigned to this contract")

        return _ShareRequest(contract_address, sid, sharing, node_index)

    def _authenticate(self, req: _ShareRequest, request: Request, body: bytes) -> None:
        """Only the sharing's owner may read or write its shares."""
        owner_key = self.ledger.public_key_of(req.sharing.owner)
        authorized = owner_key is not None and verify_request(
            owner_key,
            request.headers.get("Authorization"),
            engine_address=self.address,
            contract_address=req.contract_address,
            method=request.method,
            uri=share_uri(req.sharing_id),
            body=body,
        )
        if not authorized:
            raise HTTPException(401, "Unauthorized")

    # ─────────────────────────────────────────────────────────
    # ERRORS
    # ─────────────────────────────────────────────────────────

    def _register_errors(self, app: FastAPI):

        @app.exception_handler(StarletteHTTPException)
        async def http_error(request: Request, exc: StarletteHTTPException):
            message = exc.detail
            if exc.status_code == 404 and message == "Not Found":
                message = "Invalid URL"
            elif exc.status_code == 405:
                message = "Invalid method"
            return JSONResponse(
                {"error": message},
                status_code=exc.status_code,
                headers=getattr(exc, "headers", None),
            )

    # ─────────────────────────────────────────────────────────
    # LIFECYCLE
    # ─────────────────────────────────────────────────────────

    def _register_lifecycle(self, app: FastAPI):

        @app.get("/health", response_model=HealthResponse, tags=["Lifecycle"])
        async def health():
            """Health check — always returns 200."""
            return HealthResponse(
                status="ok",
                version=__version__,
                timestamp=time.time(),
            )

        @app.get("/status", response_model=StatusResponse, tags=["Lifecycle"])
        async def status():
            """Engine identity and storage statistics."""
            stats = self.store.get_stats()
            return StatusResponse(
                engine_address=self.address,
                version=__version__,
                uptime_seconds=time.time() - self._start_time,
                shares=stats["shares"],
                storage_bytes=stats["storage_bytes"],
            )

    # ─────────────────────────────────────────────────────────
    # SHARES
    # ─────────────────────────────────────────────────────────

    def _register_shares(self, app: FastAPI):

        @app.put(
            "/offchain/{contract_address}/shares/{sharing_id}",
            status_code=201,
            tags=["Shares"],
            responses={
                **_ERROR_RESPONSES,
                409: {"model": ErrorResponse},
                413: {"model": ErrorResponse},
            },
        )
        async def store_share(contract_address: str, sharing_id: str, request: Request):
            """Store this engine's share of a registered sharing."""
            req = self._resolve(contract_address, sharing_id)
            body = await request.body()
            self._authenticate(req, request, body)

            if len(body) > self.max_share_bytes:
                raise HTTPException(413, "Request body too large")
            if len(body) < MIN_SHARE_BYTES:
                raise HTTPException(400, "Malformed request")
            if self.store.contains(req.contract_address, req.sharing_id):
                raise HTTPException(409, "Already stored")

            expected = req.sharing.share_commitments[req.node_index]
            if not verify_share_commitment(body, expected):
                raise HTTPException(401, "User uploaded data doesn't match commitment")

            if not self.store.put(req.contract_address, req.sharing_id, body):
                raise HTTPException(409, "Already stored")

            try:
                self.ledger.invoke(
                    self.engine_key,
                    req.contract_address,
                    "register_shared",
                    sharing_id=req.sharing_id,
                )
            except ContractError as e:
                self.store.delete(req.contract_address, req.sharing_id)
                logger.error(
                    "Could not confirm sharing %d on %s: %s",
                    req.sharing_id, req.contract_address, e,
                )
                raise HTTPException(500, f"Unable to confirm upload on-chain: {e}") from e

            logger.info("Stored share of sharing %d for %s",
                        req.sharing_id, req.contract_address)
            return Response(status_code=201)

        @app.get(
            "/offchain/{contract_address}/shares/{sharing_id}",
            response_class=Response,
            tags=["Shares"],
            responses=_ERROR_RESPONSES,
        )
        async def load_share(contract_address: str, sharing_id: str, request: Request):
            """Return this engine's share while the download window is open."""
            req = self._resolve(contract_address, sharing_id)
            body = await request.body()
            self._authenticate(req, request, body)

            if not req.sharing.is_download_open(self.ledger.now_ms()):
                raise HTTPException(
                    400, "Download not requested, or download deadline has been passed"
                )

            data = self.store.get(req.contract_address, req.sharing_id)
            if data is None:
                raise HTTPException(404, "Sharing haven't been stored yet")
            return Response(content=data, media_type="application/octet-stream")


# ─── Factory ──────────────────────────────────────────────────

def create_app(
    ledger: Ledger,
    engine_key: KeyPair,
    store_path: Union[str, Path] = ":memory:",
    max_share_bytes: int = DEFAULT_MAX_SHARE_BYTES,
) -> FastAPI:
    """Create a configured FastAPI app for one engine."""
    api = EngineAPI(
        ledger=ledger,
        engine_key=engine_key,
        store=ShareStore(store_path),
        max_share_bytes=max_share_bytes,
    )
    return api.app
