"""
Publish-randomness contract
===========================

N engines jointly publish 32 random bytes that none of them controls:

  1. commit   every engine posts blake3(r_i) for a fresh random r_i
  2. upload   every engine reveals r_i, checked against its commitment
  3. publish  the contract XORs all r_i into the public value

Each phase is a task on its own queue. Only one task is live at a time:
the commit task is created at deployment and again after every
``consume_randomness``; the last commitment turns it into an upload
task; the last reveal publishes the value and empties both queues.

RandomnessEngine is the off-chain half: it watches the contract through
the ledger and reports its commitment and reveal for the current tasks.

Copyright (c) 2026 CruxLabx
"""

from __future__ import annotations

import logging
import secrets
from typing import TYPE_CHECKING, Optional, Union

from pydantic import BaseModel

from ocss.chain.contract import Contract, ContractContext, action, require
from ocss.chain.task_queue import Task, TaskQueue
from ocss.crypto.keys import KeyPair
from ocss.errors import ContractError
from ocss.sharing.commitments import create_share_commitment
from ocss.sharing.xor import xor_bytes

if TYPE_CHECKING:
    from ocss.chain.ledger import Ledger

logger = logging.getLogger("ocss.randomness")

LENGTH_OF_RANDOMNESS = 32
BUCKET_COMMIT = "commit"
BUCKET_UPLOAD = "upload"


class EngineConfig(BaseModel):
    address: str
    endpoint: str = ""


class PublishRandomnessState(BaseModel):
    engines: list[EngineConfig]
    commit_queue: TaskQueue
    upload_queue: TaskQueue
    randomness: Optional[str] = None
    rounds_published: int = 0

    def engine_index(self, address: str) -> Optional[int]:
        for index, engine in enumerate(self.engines):
            if engine.address == address:
                return index
        return None


def _new_queue(bucket: str, num_engines: int) -> TaskQueue:
    return TaskQueue(bucket=bucket, num_engines=num_engines, max_live_tasks=1)


def _start_generating_more_randomness(state: PublishRandomnessState) -> None:
    require(
        state.upload_queue.is_idle() and state.randomness is None,
        "Randomness generation is already in progress",
    )
    state.commit_queue.push_task({})


def _require_engine(state: PublishRandomnessState, ctx: ContractContext) -> int:
    engine_index = state.engine_index(ctx.sender)
    require(engine_index is not None, "Caller is not one of the engines")
    return engine_index


class PublishRandomnessContract(Contract):
    KIND = "off-chain-publish-randomness"
    State = PublishRandomnessState

    def initialize(self, ctx: ContractContext, engines: list) -> PublishRandomnessState:
        configs = [EngineConfig.model_validate(e) for e in engines]
        require(len(configs) > 0, "At least one engine is required")
        require(
            len({e.address for e in configs}) == len(configs),
            "Engine addresses must be unique",
        )
        state = PublishRandomnessState(
            engines=configs,
            commit_queue=_new_queue(BUCKET_COMMIT, len(configs)),
            upload_queue=_new_queue(BUCKET_UPLOAD, len(configs)),
        )
        _start_generating_more_randomness(state)
        return state

    @action
    def consume_randomness(
        self, ctx: ContractContext, state: PublishRandomnessState
    ) -> bytes:
        require(state.randomness is not None, "No randomness available!")
        value = bytes.fromhex(state.randomness)
        state.randomness = None
        _start_generating_more_randomness(state)
        return value

    @action
    def commit_to_randomness(
        self,
        ctx: ContractContext,
        state: PublishRandomnessState,
        task_id: int,
        commitment: str,
    ) -> bool:
        engine_index = _require_engine(state, ctx)
        require(state.commit_queue.get_task(task_id) is not None, "No such commit task")

        written = state.commit_queue.mark_completion(engine_index, task_id, commitment)
        commitments = state.commit_queue.pop_if_complete(task_id)
        if commitments is not None:
            state.upload_queue.push_task({"commitments": commitments})
        return written

    @action
    def upload_randomness(
        self,
        ctx: ContractContext,
        state: PublishRandomnessState,
        task_id: int,
        randomness: Union[bytes, str],
    ) -> bool:
        engine_index = _require_engine(state, ctx)
        task = state.upload_queue.get_task(task_id)
        require(task is not None, "No such upload task")

        raw = bytes.fromhex(randomness) if isinstance(randomness, str) else bytes(randomness)
        require(
            len(raw) == LENGTH_OF_RANDOMNESS,
            f"Randomness must be {LENGTH_OF_RANDOMNESS} bytes",
        )
        require(
            create_share_commitment(raw) == task.definition["commitments"][engine_index],
            "Uploaded randomness doesn't match commitment",
        )

        written = state.upload_queue.mark_completion(engine_index, task_id, raw.hex())
        shares = state.upload_queue.pop_if_complete(task_id)
        if shares is not None:
            result = bytes(LENGTH_OF_RANDOMNESS)
            for share in shares:
                result = xor_bytes(result, bytes.fromhex(share))
            state.randomness = result.hex()
            state.rounds_published += 1
        return written


class RandomnessEngine:
    """
    Off-chain worker of one engine.

    Usage:
        engine = RandomnessEngine(ledger, engine_key, contract_address)
        engine.attach()       # reacts to every state change from now on
    """

    def __init__(self, ledger: "Ledger", key: KeyPair, contract_address: str):
        self._ledger = ledger
        self._key = key
        self._contract_address = contract_address
        # Task ids this engine already reported, per queue
        self._reported: dict[str, set[int]] = {BUCKET_COMMIT: set(), BUCKET_UPLOAD: set()}
        # Commitment → the random bytes behind it, until revealed
        self._pending_reveals: dict[str, bytes] = {}
        self._attached = False

    @property
    def address(self) -> str:
        return self._key.address

    def attach(self) -> None:
        if self._attached:
            return
        self._ledger.subscribe(self._contract_address, self.on_state_change)
        self._attached = True
        self.on_state_change(
            self._contract_address, self._ledger.get_state(self._contract_address)
        )

    def detach(self) -> None:
        self._ledger.unsubscribe(self._contract_address, self.on_state_change)
        self._attached = False

    def on_state_change(self, address: str, state: PublishRandomnessState) -> None:
        engine_index = state.engine_index(self.address)
        if engine_index is None:
            return
        self._prune(state.commit_queue)
        self._prune(state.upload_queue)
        self._update_commitment(state)
        self._update_upload(state, engine_index)

    def _prune(self, queue: TaskQueue) -> None:
        """Forget tasks the queue has moved past."""
        reported = self._reported[queue.bucket]
        reported.difference_update(
            [task_id for task_id in reported if task_id < queue.task_id_of_current]
        )

    def _current_if_uncompleted(self, queue: TaskQueue) -> Optional[Task]:
        task = queue.current_task()
        if task is None or task.id in self._reported[queue.bucket]:
            return None
        return task

    def _update_commitment(self, state: PublishRandomnessState) -> None:
        task = self._current_if_uncompleted(state.commit_queue)
        if task is None:
            return
        randomness = secrets.token_bytes(LENGTH_OF_RANDOMNESS)
        commitment = create_share_commitment(randomness)
        self._pending_reveals[commitment] = randomness
        self._reported[BUCKET_COMMIT].add(task.id)
        logger.debug("Engine %s commits to task %d", self.address, task.id)
        if not self._report("commit_to_randomness", task_id=task.id, commitment=commitment):
            self._pending_reveals.pop(commitment, None)

    def _update_upload(self, state: PublishRandomnessState, engine_index: int) -> None:
        task = self._current_if_uncompleted(state.upload_queue)
        if task is None:
            return
        commitment = task.definition["commitments"][engine_index]
        randomness = self._pending_reveals.get(commitment)
        if randomness is None:
            return
        self._reported[BUCKET_UPLOAD].add(task.id)
        logger.debug("Engine %s reveals for task %d", self.address, task.id)
        self._report("upload_randomness", task_id=task.id, randomness=randomness)
        self._pending_reveals.pop(commitment, None)

    def _report(self, action_name: str, **args) -> bool:
        try:
            self._ledger.invoke(self._key, self._contract_address, action_name, **args)
        except ContractError as e:
            logger.warning("Engine %s: %s rejected: %s", self.address, action_name, e)
            return False
        return True
