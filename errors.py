"""Domain errors raised by the services and mapped to HTTP status codes by web_app."""
from __future__ import annotations


class TaskError(ValueError):
    """Base class for request-level task errors (client mistakes, not server faults)."""


class NotFound(TaskError):
    """Task or milestone id does not exist."""

    def __init__(self, kind: str, item_id: str) -> None:
        super().__init__(f"{kind} {item_id} not found")
        self.kind = kind
        self.item_id = item_id


class NotScheduled(TaskError):
    """A daily task was toggled for a date its recurrence rule does not produce."""

    def __init__(self, task_id: str, day: object) -> None:
        super().__init__(f"Task {task_id} is not scheduled on {day}")
        self.task_id = task_id
        self.day = day


class WrongTaskType(TaskError):
    """Operation requires a different task type (e.g. milestones on a non long-term task)."""

    def __init__(self, task_id: str, expected: str, actual: str) -> None:
        super().__init__(f"Task {task_id} is {actual}, expected {expected}")
        self.task_id = task_id
        self.expected = expected
        self.actual = actual
