"""
Contract plumbing
=================

A contract is a class with a pydantic ``State`` model, an ``initialize``
method and a set of ``@action`` methods. Actions receive the invocation
context and a fresh copy of the state, mutate it in place and may return
a value. Raising ContractError aborts the invocation; the ledger then
discards every change.

Copyright (c) 2026 CruxLabx
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, ClassVar

from pydantic import BaseModel

from ocss.errors import ContractError

CONTRACT_KINDS: dict[str, type["Contract"]] = {}


@dataclass(frozen=True)
class ContractContext:
    """Who is calling, which contract, and the block time in milliseconds."""
    sender: str
    contract_address: str
    block_time: int


def action(fn: Callable) -> Callable:
    """Mark a contract method as invocable through the ledger."""
    fn.__contract_action__ = True
    return fn


def require(condition: bool, message: str) -> None:
    """Abort the current action with ``message`` unless ``condition`` holds."""
    if not condition:
        raise ContractError(message)


class Contract(ABC):
    KIND: ClassVar[str]
    State: ClassVar[type[BaseModel]]

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        kind = cls.__dict__.get("KIND")
        if kind is not None:
            CONTRACT_KINDS[kind] = cls

    @abstractmethod
    def initialize(self, ctx: ContractContext, **kwargs: Any) -> BaseModel:
        """Build the initial state from the deploy arguments."""
        ...

    @classmethod
    def action_names(cls) -> set[str]:
        return {
            name
            for name in dir(cls)
            if getattr(getattr(cls, name), "__contract_action__", False)
        }

    @classmethod
    def load_state(cls, raw: str) -> BaseModel:
        return cls.State.model_validate_json(raw)


def contract_for_kind(kind: str) -> Contract:
    try:
        return CONTRACT_KINDS[kind]()
    except KeyError:
        raise ContractError(f"Unknown contract kind: {kind}") from None
