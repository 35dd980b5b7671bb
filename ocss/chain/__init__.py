"""On-chain side: ledger, contracts and the task-queue barrier."""

from ocss.chain.contract import Contract, ContractContext, action, require
from ocss.chain.ledger import Ledger
from ocss.chain.randomness import PublishRandomnessContract, RandomnessEngine
from ocss.chain.secret_sharing import NodeConfig, SecretSharingContract, Sharing
from ocss.chain.task_queue import Task, TaskQueue

__all__ = [
    "Contract",
    "ContractContext",
    "Ledger",
    "NodeConfig",
    "PublishRandomnessContract",
    "RandomnessEngine",
    "SecretSharingContract",
    "Sharing",
    "Task",
    "TaskQueue",
    "action",
    "require",
]
