"""
OCSS Test Suite — Ledger & Contracts
====================================

Tests for:
  - Ledger accounts, deployment, atomic invocation, listeners
  - Secret-sharing contract actions and errors
  - Task queue barrier
  - Publish-randomness contract and engines

Run: pytest tests/ -v
"""

import logging

import pytest

from ocss.chain.contract import Contract
from ocss.chain.ledger import Ledger
from ocss.chain.randomness import (
    LENGTH_OF_RANDOMNESS,
    PublishRandomnessContract,
    RandomnessEngine,
)
from ocss.chain.secret_sharing import SecretSharingContract
from ocss.chain.task_queue import TaskQueue
from ocss.errors import ContractError
from ocss.sharing.commitments import create_share_commitment

from conftest import BLOCK_TIME_START

COMMITMENTS = [create_share_commitment(bytes([i]) * 8) for i in range(4)]


def _register(ledger, key, address, sharing_id=1, commitments=COMMITMENTS):
    ledger.invoke(
        key, address, "register_sharing",
        sharing_id=sharing_id, share_commitments=list(commitments),
    )


def _upload_all(ledger, address, engine_keys, sharing_id=1):
    for key in engine_keys:
        ledger.invoke(key, address, "register_shared", sharing_id=sharing_id)


# ─── Ledger ───────────────────────────────────────────────────

class TestLedger:
    """Accounts, deployment and atomic invocation."""

    def test_deploy_assigns_contract_address(self, ledger, contract_address):
        assert contract_address.startswith("02")
        assert len(contract_address) == 42
        assert ledger.contract_kind(contract_address) == SecretSharingContract.KIND
        assert ledger.list_contracts() == [(contract_address, SecretSharingContract.KIND)]

    def test_sender_public_key_registered(self, ledger, owner_key, contract_address):
        public_key = ledger.public_key_of(owner_key.address)
        assert public_key is not None
        assert public_key.public_numbers() == owner_key.public_key.public_numbers()

    def test_unknown_account(self, ledger):
        assert ledger.public_key_of("00" + "ab" * 20) is None

    def test_unknown_contract(self, ledger, owner_key):
        with pytest.raises(ContractError, match="Unknown contract"):
            ledger.get_state("02" + "00" * 20)
        with pytest.raises(ContractError, match="Unknown contract"):
            ledger.invoke(owner_key, "02" + "00" * 20, "register_sharing")

    def test_unknown_action(self, ledger, owner_key, contract_address):
        with pytest.raises(ContractError, match="Unknown action"):
            ledger.invoke(owner_key, contract_address, "initialize")

    def test_contract_base_is_abstract(self):
        with pytest.raises(TypeError):
            Contract()

    def test_contract_without_initialize_is_abstract(self):
        class Incomplete(Contract):
            State = SecretSharingContract.State

        with pytest.raises(TypeError):
            Incomplete()

    def test_failed_action_rolls_back(self, ledger, owner_key, contract_address):
        _register(ledger, owner_key, contract_address)
        with pytest.raises(ContractError):
            _register(ledger, owner_key, contract_address, commitments=COMMITMENTS[:2])
        state = ledger.get_state(contract_address)
        assert list(state.secret_sharings) == [1]

    def test_transactions_logged(self, ledger, owner_key, contract_address):
        _register(ledger, owner_key, contract_address)
        with pytest.raises(ContractError):
            _register(ledger, owner_key, contract_address)

        latest, first = ledger.transactions(contract_address)
        assert first.succeeded and first.error is None
        assert not latest.succeeded
        assert latest.error == "Cannot register sharing with the same identifier"
        assert latest.block_time == BLOCK_TIME_START

    def test_listeners_see_committed_state(self, ledger, owner_key, contract_address):
        seen = []
        ledger.subscribe(contract_address, lambda addr, state: seen.append(
            sorted(state.secret_sharings)))
        _register(ledger, owner_key, contract_address, sharing_id=5)
        assert seen == [[5]]

    def test_failing_listener_is_logged(self, ledger, owner_key, contract_address, caplog):
        calls = []

        def broken(address, state):
            raise RuntimeError("listener bug")

        ledger.subscribe(contract_address, broken)
        ledger.subscribe(contract_address, lambda a, s: calls.append(a))
        with caplog.at_level(logging.ERROR, logger="ocss.randomness"):
            _register(ledger, owner_key, contract_address)
        assert calls == [contract_address]
        assert "listener failed" in caplog.text

    def test_unsubscribe(self, ledger, owner_key, contract_address):
        calls = []
        listener = lambda a, s: calls.append(a)  # noqa: E731
        ledger.subscribe(contract_address, listener)
        ledger.unsubscribe(contract_address, listener)
        _register(ledger, owner_key, contract_address)
        assert calls == []

    def test_state_persists_on_disk(self, tmp_path, owner_key, engine_keys):
        path = tmp_path / "ledger.db"
        ledger = Ledger(path)
        address = ledger.deploy(
            owner_key, SecretSharingContract,
            nodes=[{"address": k.address, "endpoint": ""} for k in engine_keys],
        )
        _register(ledger, owner_key, address)
        ledger.close()

        reopened = Ledger(path)
        try:
            sharing = reopened.get_state(address).get_sharing(1)
            assert sharing.owner == owner_key.address
            assert sharing.share_commitments == COMMITMENTS
        finally:
            reopened.close()


# ─── Secret-sharing contract ──────────────────────────────────

class TestSecretSharingContract:
    """register_sharing, register_shared and request_download."""

    def test_register_sharing(self, ledger, owner_key, contract_address):
        _register(ledger, owner_key, contract_address)
        sharing = ledger.get_state(contract_address).get_sharing(1)
        assert sharing.owner == owner_key.address
        assert sharing.nodes_with_completed_upload == [False] * 4
        assert sharing.download_deadline is None

    def test_large_sharing_identifier(self, ledger, owner_key, contract_address):
        big = 2 ** 128 - 1
        _register(ledger, owner_key, contract_address, sharing_id=big)
        assert ledger.get_state(contract_address).get_sharing(big) is not None

    @pytest.mark.parametrize("sharing_id", [-1, 2 ** 128])
    def test_invalid_sharing_identifier(self, ledger, owner_key, contract_address, sharing_id):
        with pytest.raises(ContractError, match="Invalid sharing identifier"):
            _register(ledger, owner_key, contract_address, sharing_id=sharing_id)

    def test_duplicate_identifier(self, ledger, owner_key, other_key, contract_address):
        _register(ledger, owner_key, contract_address)
        with pytest.raises(ContractError, match="same identifier"):
            _register(ledger, other_key, contract_address)

    def test_wrong_number_of_commitments(self, ledger, owner_key, contract_address):
        with pytest.raises(ContractError, match="Invalid number of share commitments"):
            _register(ledger, owner_key, contract_address, commitments=COMMITMENTS[:3])

    def test_malformed_commitment(self, ledger, owner_key, contract_address):
        bad = COMMITMENTS[:3] + ["not-a-digest"]
        with pytest.raises(ContractError, match="Invalid share commitment"):
            _register(ledger, owner_key, contract_address, commitments=bad)

    def test_register_shared_marks_node(self, ledger, owner_key, engine_keys, contract_address):
        _register(ledger, owner_key, contract_address)
        ledger.invoke(engine_keys[2], contract_address, "register_shared", sharing_id=1)
        sharing = ledger.get_state(contract_address).get_sharing(1)
        assert sharing.nodes_with_completed_upload == [False, False, True, False]
        assert not sharing.is_fully_uploaded()

    def test_register_shared_by_non_engine(self, ledger, owner_key, contract_address):
        _register(ledger, owner_key, contract_address)
        with pytest.raises(ContractError, match="Caller is not one of the engines"):
            ledger.invoke(owner_key, contract_address, "register_shared", sharing_id=1)

    def test_register_shared_unknown_sharing(self, ledger, engine_keys, contract_address):
        with pytest.raises(ContractError, match="Unknown sharing"):
            ledger.invoke(engine_keys[0], contract_address, "register_shared", sharing_id=9)

    def test_download_requires_full_upload(self, ledger, owner_key, engine_keys, contract_address):
        _register(ledger, owner_key, contract_address)
        _upload_all(ledger, contract_address, engine_keys[:3])
        with pytest.raises(ContractError, match="haven't been uploaded to all nodes"):
            ledger.invoke(owner_key, contract_address, "request_download", sharing_id=1)

    def test_download_opens_window(self, ledger, clock, owner_key, engine_keys, contract_address):
        _register(ledger, owner_key, contract_address)
        _upload_all(ledger, contract_address, engine_keys)
        clock.advance(1000)

        deadline = ledger.invoke(owner_key, contract_address, "request_download", sharing_id=1)

        assert deadline == BLOCK_TIME_START + 1000 + 300_000
        sharing = ledger.get_state(contract_address).get_sharing(1)
        assert sharing.download_deadline == deadline
        assert sharing.is_download_open(deadline)
        assert not sharing.is_download_open(deadline + 1)

    def test_download_request_refreshes_deadline(
        self, ledger, clock, owner_key, engine_keys, contract_address
    ):
        _register(ledger, owner_key, contract_address)
        _upload_all(ledger, contract_address, engine_keys)
        first = ledger.invoke(owner_key, contract_address, "request_download", sharing_id=1)
        clock.advance(400_000)
        second = ledger.invoke(owner_key, contract_address, "request_download", sharing_id=1)
        assert second == first + 400_000

    def test_download_unknown_sharing(self, ledger, owner_key, contract_address):
        with pytest.raises(ContractError, match="Unknown sharing"):
            ledger.invoke(owner_key, contract_address, "request_download", sharing_id=3)

    def test_custom_download_window(self, ledger, owner_key, engine_keys):
        address = ledger.deploy(
            owner_key, SecretSharingContract,
            nodes=[{"address": k.address, "endpoint": ""} for k in engine_keys],
            download_window_ms=50,
        )
        _register(ledger, owner_key, address)
        _upload_all(ledger, address, engine_keys)
        assert ledger.invoke(
            owner_key, address, "request_download", sharing_id=1
        ) == BLOCK_TIME_START + 50

    def test_duplicate_engines_rejected(self, ledger, owner_key, engine_keys):
        node = {"address": engine_keys[0].address, "endpoint": ""}
        with pytest.raises(ContractError, match="unique"):
            ledger.deploy(owner_key, SecretSharingContract, nodes=[node, node])


# ─── Task queue ───────────────────────────────────────────────

class TestTaskQueue:
    """Barrier progress of task_id_of_current."""

    def _queue(self, **kwargs):
        return TaskQueue(bucket="test", num_engines=2, **kwargs)

    def test_push_then_complete(self):
        queue = self._queue()
        assert queue.task_id_of_current == 0

        for task_id in (1, 2, 3):
            assert queue.push_task() == task_id
            assert queue.task_id_of_current == task_id
            queue.mark_completion(0, task_id, "aa")
            queue.mark_completion(1, task_id, "bb")

        assert queue.task_id_of_current == 3

    def test_push_many_then_complete_many(self):
        queue = self._queue()
        for _ in range(3):
            queue.push_task()
        assert queue.task_id_of_current == 1

        queue.mark_completion(0, 1, "aa")
        queue.mark_completion(1, 1, "bb")
        assert queue.task_id_of_current == 2
        queue.mark_completion(0, 2, "aa")
        queue.mark_completion(1, 2, "bb")
        assert queue.task_id_of_current == 3
        queue.mark_completion(0, 3, "aa")
        queue.mark_completion(1, 3, "bb")
        assert queue.task_id_of_current == 3

    def test_completion_data(self):
        queue = self._queue()
        assert queue.get_task(1) is None

        queue.push_task()
        assert queue.get_task(1).all_completion_data() is None
        queue.mark_completion(0, 1, "aa")
        assert queue.get_task(1).all_completion_data() is None
        queue.mark_completion(1, 1, "bb")
        assert queue.get_task(1).all_completion_data() == ["aa", "bb"]

    def test_remove_current_task(self):
        queue = self._queue()
        for task_id in (1, 2, 3):
            queue.push_task()
            queue.remove_task(task_id)
            assert queue.task_id_of_current == task_id

        queue.push_task()
        assert queue.get_task(4) is not None
        assert queue.task_id_of_current == 4

    def test_second_completion_is_ignored(self):
        queue = self._queue()
        queue.push_task()
        assert queue.mark_completion(0, 1, "aa") is True
        assert queue.mark_completion(0, 1, "cc") is False
        assert queue.get_task(1).completion_data == ["aa", None]

    def test_pop_if_complete(self):
        queue = self._queue()
        queue.push_task()
        queue.mark_completion(0, 1, "aa")
        assert queue.pop_if_complete(1) is None
        queue.mark_completion(1, 1, "bb")
        assert queue.pop_if_complete(1) == ["aa", "bb"]
        assert queue.is_idle()

    def test_unknown_task_and_engine(self):
        queue = self._queue()
        with pytest.raises(ContractError, match="No task with given id"):
            queue.mark_completion(0, 1, "aa")
        queue.push_task()
        with pytest.raises(ContractError, match="Invalid engine index"):
            queue.mark_completion(2, 1, "aa")

    def test_max_live_tasks(self):
        queue = self._queue(max_live_tasks=1)
        queue.push_task()
        with pytest.raises(ContractError, match="already in progress"):
            queue.push_task()

    def test_survives_serialization(self):
        queue = self._queue()
        queue.push_task({"round": 1})
        queue.mark_completion(1, 1, "bb")
        restored = TaskQueue.model_validate_json(queue.model_dump_json())
        assert restored == queue
        assert restored.get_task(1).definition == {"round": 1}


# ─── Publish randomness ───────────────────────────────────────

def _reveal(index: int) -> bytes:
    return bytes([index + 1]) * LENGTH_OF_RANDOMNESS


class TestPublishRandomnessContract:
    """Commit, reveal and publish driven by hand."""

    @pytest.fixture
    def randomness_address(self, ledger, owner_key, engine_keys):
        return ledger.deploy(
            owner_key, PublishRandomnessContract,
            engines=[{"address": k.address} for k in engine_keys],
        )

    def _commit_all(self, ledger, address, engine_keys, task_id=1):
        for i, key in enumerate(engine_keys):
            ledger.invoke(
                key, address, "commit_to_randomness",
                task_id=task_id, commitment=create_share_commitment(_reveal(i)),
            )

    def test_deploy_starts_commit_phase(self, ledger, randomness_address):
        state = ledger.get_state(randomness_address)
        assert state.commit_queue.task_id_of_current == 1
        assert state.upload_queue.is_idle()
        assert state.randomness is None

    def test_full_round(self, ledger, owner_key, engine_keys, randomness_address):
        self._commit_all(ledger, randomness_address, engine_keys)
        state = ledger.get_state(randomness_address)
        assert state.commit_queue.is_idle()
        assert state.upload_queue.get_task(1) is not None

        for i, key in enumerate(engine_keys):
            ledger.invoke(
                key, randomness_address, "upload_randomness",
                task_id=1, randomness=_reveal(i),
            )

        state = ledger.get_state(randomness_address)
        assert state.upload_queue.is_idle()
        assert state.rounds_published == 1
        # 1 ^ 2 ^ 3 ^ 4
        expected = bytes([4]) * LENGTH_OF_RANDOMNESS
        assert ledger.invoke(owner_key, randomness_address, "consume_randomness") == expected

        state = ledger.get_state(randomness_address)
        assert state.randomness is None
        assert state.commit_queue.task_id_of_current == 2

    def test_consume_without_randomness(self, ledger, owner_key, randomness_address):
        with pytest.raises(ContractError, match="No randomness available!"):
            ledger.invoke(owner_key, randomness_address, "consume_randomness")

    def test_commit_by_non_engine(self, ledger, owner_key, randomness_address):
        with pytest.raises(ContractError, match="Caller is not one of the engines"):
            ledger.invoke(
                owner_key, randomness_address, "commit_to_randomness",
                task_id=1, commitment=create_share_commitment(b"x"),
            )

    def test_commit_to_unknown_task(self, ledger, engine_keys, randomness_address):
        with pytest.raises(ContractError, match="No such commit task"):
            ledger.invoke(
                engine_keys[0], randomness_address, "commit_to_randomness",
                task_id=7, commitment=create_share_commitment(b"x"),
            )

    def test_second_commit_keeps_first(self, ledger, engine_keys, randomness_address):
        first = create_share_commitment(_reveal(0))
        assert ledger.invoke(
            engine_keys[0], randomness_address, "commit_to_randomness",
            task_id=1, commitment=first,
        ) is True
        assert ledger.invoke(
            engine_keys[0], randomness_address, "commit_to_randomness",
            task_id=1, commitment=create_share_commitment(b"other"),
        ) is False
        state = ledger.get_state(randomness_address)
        assert state.commit_queue.get_task(1).completion_data[0] == first

    def test_upload_before_commit_phase_ends(self, ledger, engine_keys, randomness_address):
        self._commit_all(ledger, randomness_address, engine_keys[:3])
        with pytest.raises(ContractError, match="No such upload task"):
            ledger.invoke(
                engine_keys[0], randomness_address, "upload_randomness",
                task_id=1, randomness=_reveal(0),
            )

    def test_upload_must_match_commitment(self, ledger, engine_keys, randomness_address):
        self._commit_all(ledger, randomness_address, engine_keys)
        with pytest.raises(ContractError, match="doesn't match commitment"):
            ledger.invoke(
                engine_keys[0], randomness_address, "upload_randomness",
                task_id=1, randomness=_reveal(1),
            )

    def test_upload_wrong_length(self, ledger, engine_keys, randomness_address):
        self._commit_all(ledger, randomness_address, engine_keys)
        with pytest.raises(ContractError, match="must be 32 bytes"):
            ledger.invoke(
                engine_keys[0], randomness_address, "upload_randomness",
                task_id=1, randomness=b"short",
            )

    def test_upload_accepts_hex(self, ledger, engine_keys, randomness_address):
        self._commit_all(ledger, randomness_address, engine_keys)
        assert ledger.invoke(
            engine_keys[0], randomness_address, "upload_randomness",
            task_id=1, randomness=_reveal(0).hex(),
        ) is True


class TestRandomnessEngines:
    """Off-chain engines reacting to contract state."""

    @pytest.fixture
    def randomness_address(self, ledger, owner_key, engine_keys):
        return ledger.deploy(
            owner_key, PublishRandomnessContract,
            engines=[{"address": k.address} for k in engine_keys],
        )

    def _attach(self, ledger, keys, address):
        engines = [RandomnessEngine(ledger, key, address) for key in keys]
        for engine in engines:
            engine.attach()
        return engines

    def test_all_engines_publish(self, ledger, owner_key, engine_keys, randomness_address):
        self._attach(ledger, engine_keys, randomness_address)
        state = ledger.get_state(randomness_address)
        assert state.randomness is not None
        assert state.commit_queue.is_idle() and state.upload_queue.is_idle()

        value = ledger.invoke(owner_key, randomness_address, "consume_randomness")
        assert len(value) == LENGTH_OF_RANDOMNESS

    def test_next_round_after_consume(self, ledger, owner_key, engine_keys, randomness_address):
        self._attach(ledger, engine_keys, randomness_address)
        first = ledger.invoke(owner_key, randomness_address, "consume_randomness")
        second = ledger.invoke(owner_key, randomness_address, "consume_randomness")
        assert first != second
        assert ledger.get_state(randomness_address).rounds_published == 3

    def test_missing_engine_blocks_randomness(
        self, ledger, owner_key, engine_keys, randomness_address
    ):
        self._attach(ledger, engine_keys[:3], randomness_address)
        state = ledger.get_state(randomness_address)
        assert state.randomness is None
        assert state.commit_queue.get_task(1).completion_data[3] is None
        with pytest.raises(ContractError, match="No randomness available!"):
            ledger.invoke(owner_key, randomness_address, "consume_randomness")

    def test_late_engine_completes_round(
        self, ledger, owner_key, engine_keys, randomness_address
    ):
        self._attach(ledger, engine_keys[:3], randomness_address)
        self._attach(ledger, engine_keys[3:], randomness_address)
        assert ledger.get_state(randomness_address).randomness is not None

    def test_outsider_engine_does_nothing(self, ledger, owner_key, other_key, randomness_address):
        self._attach(ledger, [other_key], randomness_address)
        state = ledger.get_state(randomness_address)
        assert state.commit_queue.get_task(1).completion_data == [None] * 4

    def test_engine_bookkeeping_stays_bounded(
        self, ledger, owner_key, engine_keys, randomness_address
    ):
        engines = self._attach(ledger, engine_keys, randomness_address)
        for _ in range(5):
            ledger.invoke(owner_key, randomness_address, "consume_randomness")

        state = ledger.get_state(randomness_address)
        for engine in engines:
            assert engine._pending_reveals == {}
            for queue in (state.commit_queue, state.upload_queue):
                reported = engine._reported[queue.bucket]
                assert len(reported) <= 1
                assert all(task_id >= queue.task_id_of_current for task_id in reported)

    def test_rejected_commit_drops_pending_reveal(
        self, ledger, monkeypatch, engine_keys, randomness_address, caplog
    ):
        def rejecting(key, address, action_name, **args):
            raise ContractError("Engine already committed")

        monkeypatch.setattr(ledger, "invoke", rejecting)
        with caplog.at_level(logging.WARNING, logger="ocss.randomness"):
            [engine] = self._attach(ledger, engine_keys[:1], randomness_address)

        assert engine._pending_reveals == {}
        assert "commit_to_randomness rejected" in caplog.text
