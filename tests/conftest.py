"""conftest.py — shared fixtures for OCSS tests."""

import pytest

from ocss.chain.ledger import Ledger
from ocss.chain.secret_sharing import SecretSharingContract
from ocss.crypto.keys import KeyPair
from ocss.crypto.signatures import share_uri, sign_request

ENGINE_SECRETS = (20, 21, 22, 23)
BLOCK_TIME_START = 14


class FakeClock:
    """Block time in milliseconds, advanced by hand."""

    def __init__(self, start: int = BLOCK_TIME_START):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


def engine_endpoint(index: int) -> str:
    return f"http://engine{index}.test"


def auth_header(key, engine_address, contract_address, method, sharing_id, body=b""):
    """Authorization header value for a share request."""
    return sign_request(
        key, engine_address, contract_address, method, share_uri(sharing_id), body
    ).to_header()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def ledger(clock):
    ledger = Ledger(":memory:", clock=clock)
    yield ledger
    ledger.close()


@pytest.fixture(scope="session")
def owner_key():
    return KeyPair.from_secret(1)


@pytest.fixture(scope="session")
def other_key():
    return KeyPair.from_secret(2)


@pytest.fixture(scope="session")
def engine_keys():
    return [KeyPair.from_secret(s) for s in ENGINE_SECRETS]


@pytest.fixture
def contract_address(ledger, owner_key, engine_keys):
    """A secret-sharing contract served by the four engines."""
    return ledger.deploy(
        owner_key,
        SecretSharingContract,
        nodes=[
            {"address": k.address, "endpoint": engine_endpoint(i)}
            for i, k in enumerate(engine_keys)
        ],
    )


@pytest.fixture
def secret_text():
    return b"hello world"
