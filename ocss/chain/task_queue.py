"""
Task queue barrier
==================

Orchestrates work that every off-chain engine must complete. A task has
one completion slot per engine; it is done when every slot is filled.

  task_id_of_current       the task engines should work on now
  task_id_of_last_created  id of the newest task

The current id moves to min(last_created, current + 1) whenever the
current task is complete or gone. Progress is level-triggered: it is
re-checked on every write, so a late engine can still finish a task.

Copyright (c) 2026 CruxLabx
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field

from ocss.chain.contract import require


class Task(BaseModel):
    id: int
    definition: dict[str, Any] = Field(default_factory=dict)
    # Hex encoded, one slot per engine
    completion_data: list[Optional[str]]

    def is_complete(self) -> bool:
        return all(c is not None for c in self.completion_data)

    def all_completion_data(self) -> Optional[list[str]]:
        """Every engine's completion, or None while any slot is empty."""
        if not self.is_complete():
            return None
        return list(self.completion_data)


class TaskQueue(BaseModel):
    """
    Usage:
        queue = TaskQueue(bucket="commit", num_engines=2)
        task_id = queue.push_task({})
        queue.mark_completion(0, task_id, "aa")
        queue.mark_completion(1, task_id, "bb")
        assert queue.pop_if_complete(task_id) == ["aa", "bb"]
    """

    bucket: str
    num_engines: int = Field(ge=1)
    max_live_tasks: Optional[int] = Field(default=None, ge=1)
    task_id_of_current: int = 0
    task_id_of_last_created: int = 0
    tasks: dict[int, Task] = Field(default_factory=dict)

    def push_task(self, definition: Optional[dict[str, Any]] = None) -> int:
        if self.max_live_tasks is not None:
            require(
                len(self.tasks) < self.max_live_tasks,
                f"A {self.bucket} task is already in progress",
            )
        self.task_id_of_last_created += 1
        task_id = self.task_id_of_last_created
        self.tasks[task_id] = Task(
            id=task_id,
            definition=definition or {},
            completion_data=[None] * self.num_engines,
        )
        self._bump_current_if_needed()
        return task_id

    def get_task(self, task_id: int) -> Optional[Task]:
        return self.tasks.get(task_id)

    def current_task(self) -> Optional[Task]:
        return self.tasks.get(self.task_id_of_current)

    def is_idle(self) -> bool:
        return not self.tasks

    def mark_completion(
        self,
        engine_index: int,
        task_id: int,
        completion: str,
    ) -> bool:
        """
        Fill an engine's slot. Returns False, changing nothing, when the
        slot was already filled.
        """
        task = self.tasks.get(task_id)
        require(task is not None, "No task with given id!")
        require(0 <= engine_index < self.num_engines, "Invalid engine index")
        if task.completion_data[engine_index] is not None:
            return False
        task.completion_data[engine_index] = completion
        self._bump_current_if_needed()
        return True

    def pop_if_complete(self, task_id: int) -> Optional[list[str]]:
        """Remove the task and return its completion data once every slot is filled."""
        task = self.tasks.get(task_id)
        if task is None:
            return None
        data = task.all_completion_data()
        if data is not None:
            self.remove_task(task_id)
        return data

    def remove_task(self, task_id: int) -> None:
        self.tasks.pop(task_id, None)

    def _bump_current_if_needed(self) -> None:
        current = self.tasks.get(self.task_id_of_current)
        if current is None or current.is_complete():
            self.task_id_of_current = min(
                self.task_id_of_last_created, self.task_id_of_current + 1
            )
