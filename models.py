"""
Task records and API payloads.

A task row is one of four variants tagged by task_type. Rows from the single
polymorphic tasks table are parsed into the matching variant by task_from_row().
"""
from __future__ import annotations

import json
from datetime import date, datetime
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, field_validator, model_validator

from date_utils import to_date
from recurrence import RecurrenceConfig, RecurrenceType


class TaskType(str, Enum):
    HABIT = "HABIT"
    DAILY_TASK = "DAILY_TASK"
    TODO = "TODO"
    LONG_TERM = "LONG_TERM"


class HabitType(str, Enum):
    GOOD = "GOOD"
    BAD = "BAD"


class TimeRangeType(str, Enum):
    DAYS = "DAYS"
    WEEKS = "WEEKS"
    MONTHS = "MONTHS"


_JSON_LIST_COLUMNS = ("recurrence_days_of_week", "recurrence_days_of_month", "recurrence_weeks_of_month")
_BOOL_COLUMNS = ("is_completed", "is_recurring", "is_overdue", "show_progress")


class TaskBase(BaseModel):
    id: str
    title: str
    description: str | None = None
    importance: int = 1
    is_completed: bool = False
    order_index: int = 0
    created_at: datetime
    updated_at: datetime


class HabitTask(TaskBase):
    task_type: Literal["HABIT"] = "HABIT"
    habit_type: HabitType = HabitType.GOOD
    threshold_count: int = 1
    time_range_value: int = 1
    time_range_type: TimeRangeType = TimeRangeType.DAYS
    last_completion_at: datetime | None = None


class DailyTask(TaskBase):
    task_type: Literal["DAILY_TASK"] = "DAILY_TASK"
    started_on: date | None = None
    is_recurring: bool = True
    recurrence_type: str | None = RecurrenceType.DAILY.value
    recurrence_interval: int | None = None
    recurrence_days_of_week: list[int] = Field(default_factory=list)
    recurrence_days_of_month: list[int] = Field(default_factory=list)
    recurrence_weeks_of_month: list[int] = Field(default_factory=list)
    current_consecutive_completed: int = 0
    current_consecutive_missed: int = 0
    max_consecutive_completed: int = 0
    last_recalculated_at: datetime | None = None

    @property
    def anchor_date(self) -> date:
        """Day the pattern is anchored to: started_on, else the creation day."""
        return self.started_on or self.created_at.date()

    @property
    def effective_start(self) -> date:
        """Earliest day the task can be expected: never before it was created."""
        return max(self.anchor_date, self.created_at.date())

    @property
    def recurrence(self) -> RecurrenceConfig:
        return RecurrenceConfig(
            anchor_date=self.anchor_date,
            is_recurring=self.is_recurring,
            recurrence_type=self.recurrence_type,
            interval=self.recurrence_interval,
            days_of_week=self.recurrence_days_of_week,
            days_of_month=self.recurrence_days_of_month,
            weeks_of_month=self.recurrence_weeks_of_month,
        )


class TodoTask(TaskBase):
    task_type: Literal["TODO"] = "TODO"
    due_at: datetime | None = None
    is_overdue: bool = False


class LongTermTask(TaskBase):
    task_type: Literal["LONG_TERM"] = "LONG_TERM"
    progress: float = 0.0
    show_progress: bool = True
    target_completion_on: date | None = None


Task = Annotated[Union[HabitTask, DailyTask, TodoTask, LongTermTask], Field(discriminator="task_type")]

_task_adapter: TypeAdapter[Task] = TypeAdapter(Task)


def task_from_row(row: Any) -> Task:
    """Build the typed variant from a tasks row; columns foreign to the variant are ignored."""
    d = dict(row)
    for key in _JSON_LIST_COLUMNS:
        raw = d.get(key)
        if isinstance(raw, str):
            try:
                d[key] = json.loads(raw)
            except json.JSONDecodeError:
                d[key] = []
        elif raw is None:
            d[key] = []
    for key in _BOOL_COLUMNS:
        if key in d and d[key] is not None:
            d[key] = bool(d[key])
    # NULL recurrence_type must stay None so the rule fails closed
    d = {k: v for k, v in d.items() if v is not None or k == "recurrence_type"}
    return _task_adapter.validate_python(d)


def task_to_dict(task: TaskBase) -> dict[str, Any]:
    """JSON-ready dict of a task."""
    return task.model_dump(mode="json")


# --- Payloads ---


class TaskCreate(BaseModel):
    """Create payload; only the fields of the chosen task_type are used."""

    title: str = Field(min_length=1, max_length=255)
    description: str | None = None
    task_type: TaskType
    importance: int = Field(default=1, ge=1, le=5)

    habit_type: HabitType | None = None
    threshold_count: int | None = Field(default=None, gt=0)
    time_range_value: int | None = Field(default=None, gt=0)
    time_range_type: TimeRangeType | None = None

    started_on: date | None = None
    is_recurring: bool = True
    recurrence_type: RecurrenceType | None = None
    recurrence_interval: int | None = Field(default=None, gt=0)
    recurrence_days_of_week: list[Annotated[int, Field(ge=0, le=6)]] | None = None
    recurrence_days_of_month: list[Annotated[int, Field(ge=-1, le=31)]] | None = None
    recurrence_weeks_of_month: list[Annotated[int, Field(ge=0, le=4)]] | None = None

    due_at: datetime | None = None

    show_progress: bool = True
    target_completion_on: date | None = None

    @field_validator("started_on", "target_completion_on", mode="before")
    @classmethod
    def _date_only(cls, v: Any) -> Any:
        # Datetimes are accepted but only their calendar day is kept
        if isinstance(v, (str, datetime)):
            return to_date(v) or v
        return v

    @model_validator(mode="after")
    def _check_type_fields(self) -> "TaskCreate":
        if self.task_type == TaskType.DAILY_TASK and self.recurrence_type is None:
            raise ValueError("DAILY_TASK requires recurrence_type")
        if self.task_type == TaskType.HABIT:
            if self.threshold_count is None or self.time_range_value is None:
                raise ValueError("HABIT requires threshold_count and time_range_value")
        return self


class TaskUpdate(BaseModel):
    """Partial update; fields left unset are not touched."""

    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    importance: int | None = Field(default=None, ge=1, le=5)

    habit_type: HabitType | None = None
    threshold_count: int | None = Field(default=None, gt=0)
    time_range_value: int | None = Field(default=None, gt=0)
    time_range_type: TimeRangeType | None = None

    started_on: date | None = None
    is_recurring: bool | None = None
    recurrence_type: RecurrenceType | None = None
    recurrence_interval: int | None = Field(default=None, gt=0)
    recurrence_days_of_week: list[Annotated[int, Field(ge=0, le=6)]] | None = None
    recurrence_days_of_month: list[Annotated[int, Field(ge=-1, le=31)]] | None = None
    recurrence_weeks_of_month: list[Annotated[int, Field(ge=0, le=4)]] | None = None

    due_at: datetime | None = None
    show_progress: bool | None = None
    target_completion_on: date | None = None

    @field_validator("started_on", "target_completion_on", mode="before")
    @classmethod
    def _date_only(cls, v: Any) -> Any:
        if isinstance(v, (str, datetime)):
            return to_date(v) or v
        return v


class MilestoneCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str | None = None
    order_index: int = 0


class MilestoneUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    order_index: int | None = None


class MilestoneOrder(BaseModel):
    id: str
    order_index: int


class ToggleRequest(BaseModel):
    """Day to toggle: ISO date or today/yesterday/today-N; empty means today."""

    date: str | None = None
