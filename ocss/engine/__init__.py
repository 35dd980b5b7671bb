"""Off-chain engine: share storage behind a signed HTTP API."""

from ocss.engine.server import EngineAPI, create_app
from ocss.engine.store import ShareStore

__all__ = ["EngineAPI", "ShareStore", "create_app"]
