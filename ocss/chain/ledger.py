"""
OCSS Ledger
===========

SQLite-backed stand-in for the blockchain the contracts run on.

Stores:
  - Accounts (address → public key), registered by every sender
  - Contracts (kind, owner, serialized state)
  - Transactions (every invocation, successful or not)

Each invocation is applied atomically and in isolation: one process-wide
lock plus ``BEGIN IMMEDIATE`` serialize writers, also across processes
sharing the same database file. A failing action rolls back completely.

Off-chain listeners subscribe to a contract and are called after every
committed state change. Notifications are queued and drained in a loop,
so a listener that invokes the ledger never recurses into itself.

Copyright (c) 2026 CruxLabx
"""

from __future__ import annotations

import logging
import sqlite3
import threading
import uuid
from collections import defaultdict, deque
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Generator, Optional, Union

import blake3
from cryptography.hazmat.primitives.asymmetric import ec
from pydantic import BaseModel

from ocss.chain.contract import (
    Contract,
    ContractContext,
    contract_for_kind,
)
from ocss.crypto.keys import KeyPair, public_key_from_bytes
from ocss.crypto.signatures import now_millis
from ocss.errors import ContractError

logger = logging.getLogger("ocss.chain")

CONTRACT_ADDRESS_TYPE = 0x02

Listener = Callable[[str, BaseModel], None]


@dataclass
class TransactionRecord:
    """One entry of the ledger's transaction log."""
    tx_id: int
    contract: str
    sender: str
    action: str
    succeeded: bool
    error: Optional[str]
    block_time: int


class Ledger:
    """
    Usage:
        ledger = Ledger("~/.ocss/ledger.db")
        address = ledger.deploy(owner_key, SecretSharingContract, nodes=[...])
        ledger.invoke(owner_key, address, "register_sharing", sharing_id=1, ...)
        state = ledger.get_state(address)
    """

    def __init__(
        self,
        db_path: Union[str, Path] = ":memory:",
        clock: Optional[Callable[[], int]] = None,
    ):
        self._db_path = str(db_path)
        if self._db_path != ":memory:":
            path = Path(self._db_path).expanduser()
            path.parent.mkdir(parents=True, exist_ok=True)
            self._db_path = str(path)
        self._clock = clock or now_millis

        self._conn = sqlite3.connect(
            self._db_path,
            check_same_thread=False,
            isolation_level=None,
            timeout=30.0,
        )
        self._conn.row_factory = sqlite3.Row
        if self._db_path != ":memory:":
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._lock = threading.RLock()
        self._init_schema()

        self._listeners: dict[str, list[Listener]] = defaultdict(list)
        self._pending: deque[str] = deque()
        self._notify_lock = threading.Lock()
        self._draining = False

    def _init_schema(self) -> None:
        """Create tables if they don't exist."""
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS accounts (
                address TEXT PRIMARY KEY,
                public_key BLOB NOT NULL
            );

            CREATE TABLE IF NOT EXISTS contracts (
                address TEXT PRIMARY KEY,
                kind TEXT NOT NULL,
                owner TEXT NOT NULL,
                state TEXT NOT NULL,
                deployed_at INTEGER NOT NULL,
                updated_at INTEGER NOT NULL
            );

            CREATE TABLE IF NOT EXISTS transactions (
                tx_id INTEGER PRIMARY KEY AUTOINCREMENT,
                contract TEXT NOT NULL,
                sender TEXT NOT NULL,
                action TEXT NOT NULL,
                succeeded INTEGER NOT NULL,
                error TEXT,
                block_time INTEGER NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_tx_contract ON transactions(contract);
        """)

    @contextmanager
    def _transaction(self) -> Generator[sqlite3.Connection, None, None]:
        with self._lock:
            self._conn.execute("BEGIN IMMEDIATE")
            try:
                yield self._conn
            except BaseException:
                self._conn.execute("ROLLBACK")
                raise
            else:
                self._conn.execute("COMMIT")

    def now_ms(self) -> int:
        """Current block time in milliseconds."""
        return self._clock()

    # ─── Accounts ────────────────────────────────────────────────

    def register_account(self, key: KeyPair) -> str:
        with self._lock:
            self._conn.execute(
                "INSERT OR IGNORE INTO accounts (address, public_key) VALUES (?, ?)",
                (key.address, key.public_key_bytes),
            )
        return key.address

    def public_key_of(self, address: str) -> Optional[ec.EllipticCurvePublicKey]:
        with self._lock:
            row = self._conn.execute(
                "SELECT public_key FROM accounts WHERE address = ?", (address,)
            ).fetchone()
        if row is None:
            return None
        return public_key_from_bytes(bytes(row["public_key"]))

    # ─── Contracts ───────────────────────────────────────────────

    def deploy(
        self,
        sender: KeyPair,
        contract_cls: type[Contract],
        **init_args: Any,
    ) -> str:
        """Deploy a contract and return its address."""
        self.register_account(sender)
        block_time = self.now_ms()
        seed = f"{sender.address}:{block_time}:{uuid.uuid4().hex}".encode()
        address = (
            bytes([CONTRACT_ADDRESS_TYPE]).hex()
            + blake3.blake3(seed).digest(length=20).hex()
        )
        contract = contract_cls()
        ctx = ContractContext(sender.address, address, block_time)
        state = contract.initialize(ctx, **init_args)

        with self._transaction() as conn:
            conn.execute(
                """INSERT INTO contracts
                   (address, kind, owner, state, deployed_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (address, contract.KIND, sender.address,
                 state.model_dump_json(), block_time, block_time),
            )
        logger.info("Deployed %s at %s", contract.KIND, address)
        self._notify(address)
        return address

    def contract_kind(self, address: str) -> Optional[str]:
        with self._lock:
            row = self._conn.execute(
                "SELECT kind FROM contracts WHERE address = ?", (address,)
            ).fetchone()
        return row["kind"] if row else None

    def list_contracts(self) -> list[tuple[str, str]]:
        """(address, kind) of every deployed contract."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT address, kind FROM contracts ORDER BY deployed_at"
            ).fetchall()
        return [(r["address"], r["kind"]) for r in rows]

    def get_state(self, address: str) -> BaseModel:
        with self._lock:
            row = self._conn.execute(
                "SELECT kind, state FROM contracts WHERE address = ?", (address,)
            ).fetchone()
        if row is None:
            raise ContractError(f"Unknown contract: {address}")
        return contract_for_kind(row["kind"]).load_state(row["state"])

    def invoke(
        self,
        sender: KeyPair,
        address: str,
        action_name: str,
        **args: Any,
    ) -> Any:
        """
        Run one action atomically. Returns the action's return value;
        raises ContractError (after rolling back) when the action fails.
        """
        self.register_account(sender)
        block_time = self.now_ms()
        try:
            with self._transaction() as conn:
                row = conn.execute(
                    "SELECT kind, state FROM contracts WHERE address = ?",
                    (address,),
                ).fetchone()
                if row is None:
                    raise ContractError(f"Unknown contract: {address}")
                contract = contract_for_kind(row["kind"])
                if action_name not in contract.action_names():
                    raise ContractError(f"Unknown action: {action_name}")

                state = contract.load_state(row["state"])
                ctx = ContractContext(sender.address, address, block_time)
                result = getattr(contract, action_name)(ctx, state, **args)

                conn.execute(
                    "UPDATE contracts SET state = ?, updated_at = ? WHERE address = ?",
                    (state.model_dump_json(), block_time, address),
                )
                self._log_transaction(
                    conn, address, sender.address, action_name, None, block_time
                )
        except ContractError as e:
            logger.info("%s on %s by %s failed: %s",
                        action_name, address, sender.address, e)
            with self._transaction() as conn:
                self._log_transaction(
                    conn, address, sender.address, action_name, str(e), block_time
                )
            raise

        logger.debug("%s on %s by %s", action_name, address, sender.address)
        self._notify(address)
        return result

    def transactions(
        self, address: Optional[str] = None, limit: int = 100
    ) -> list[TransactionRecord]:
        sql = "SELECT * FROM transactions"
        params: tuple = ()
        if address is not None:
            sql += " WHERE contract = ?"
            params = (address,)
        sql += " ORDER BY tx_id DESC LIMIT ?"
        with self._lock:
            rows = self._conn.execute(sql, params + (limit,)).fetchall()
        return [
            TransactionRecord(
                tx_id=r["tx_id"],
                contract=r["contract"],
                sender=r["sender"],
                action=r["action"],
                succeeded=bool(r["succeeded"]),
                error=r["error"],
                block_time=r["block_time"],
            )
            for r in rows
        ]

    @staticmethod
    def _log_transaction(
        conn: sqlite3.Connection,
        address: str,
        sender: str,
        action_name: str,
        error: Optional[str],
        block_time: int,
    ) -> None:
        conn.execute(
            """INSERT INTO transactions
               (contract, sender, action, succeeded, error, block_time)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (address, sender, action_name, int(error is None), error, block_time),
        )

    # ─── Off-chain listeners ─────────────────────────────────────

    def subscribe(self, address: str, listener: Listener) -> None:
        self._listeners[address].append(listener)

    def unsubscribe(self, address: str, listener: Listener) -> None:
        if listener in self._listeners.get(address, []):
            self._listeners[address].remove(listener)

    def _notify(self, address: str) -> None:
        with self._notify_lock:
            self._pending.append(address)
            if self._draining:
                return
            self._draining = True

        try:
            while True:
                with self._notify_lock:
                    if not self._pending:
                        self._draining = False
                        return
                    current = self._pending.popleft()

                listeners = list(self._listeners.get(current, []))
                if not listeners:
                    continue
                state = self.get_state(current)
                for listener in listeners:
                    try:
                        listener(current, state)
                    except Exception:
                        logger.exception("Off-chain listener failed for %s", current)
        except BaseException:
            with self._notify_lock:
                self._draining = False
            raise

    def close(self) -> None:
        with self._lock:
            self._conn.close()
