"""
Ledger document schema: the single persisted root.

Wire format is camelCase JSON. Loading is tolerant field by field:
  - a list field that is not a list falls back to its default
  - a malformed element inside a list is dropped, its siblings survive
  - a number that is not finite becomes 0
  - a missing or unparseable day start becomes "now"
One corrupted field never discards the rest of the document.

Key names written by the earlier browser version of the app (`today`, `objectives`,
`doneIds`, `activities`, `activitiesToday`, `tsISO`, `dateISO`,
`dailyTotal`, `idx`) are accepted as input aliases.
"""
from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import Any, Callable

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    NonNegativeInt,
    ValidationError,
    field_serializer,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

MIN_POINTS = 1
MAX_POINTS = 5
DEFAULT_OBJECTIVE_COUNT = 30

_STARTER_ACTIVITIES = [
    ("Cold shower", 2),
    ("10-min breathwork", 1),
    ("30-min run", 3),
    ("Strength session", 4),
    ("Long walk 60+ min", 2),
    ("Deep clean kitchen", 1),
    ("Call a friend", 1),
    ("No phone 2 hrs", 2),
    ("1h focused reading", 2),
    ("Volunteer/help someone", 5),
]


def local_now() -> datetime:
    """Timezone-aware 'now' in the machine's local zone."""
    return datetime.now().astimezone()


def is_finite_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def default_objectives() -> list[str]:
    return [f"Objective {i + 1}" for i in range(DEFAULT_OBJECTIVE_COUNT)]


def default_activities() -> list[ActivityDefinition]:
    return [ActivityDefinition(label=label, points=points) for label, points in _STARTER_ACTIVITIES]


def _keep_valid(value: Any, handler: Callable, default_factory: Callable, field: str):
    """
    Validate a list field element by element.

    `handler` is pydantic's validator for the whole field; feeding it a
    one-element list reuses the field's own item schema.
    """
    if not isinstance(value, (list, tuple, set, frozenset)):
        logger.warning("Ledger field %s is not a list (%s); using default", field, type(value).__name__)
        return default_factory()
    kept: list = []
    for position, item in enumerate(value):
        try:
            kept.extend(handler([item]))
        except ValidationError:
            logger.warning("Dropping malformed %s entry at position %d", field, position)
    return kept


class _Snapshot(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


# ---------------------------------------------------------------------------
# Catalog and snapshot entries
# ---------------------------------------------------------------------------

class ActivityDefinition(_Snapshot):
    """One entry of the activity catalog."""
    label: str = Field(min_length=1)
    points: int = Field(ge=MIN_POINTS, le=MAX_POINTS)

    @field_validator("label")
    @classmethod
    def strip_label(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            raise ValueError("label must not be blank")
        return stripped


class ActivityApplication(_Snapshot):
    """
    An activity applied today. Label and points are copied from the catalog
    at application time; later catalog edits do not touch them.
    """
    catalog_index: NonNegativeInt = Field(
        validation_alias=AliasChoices("catalogIndex", "catalog_index", "idx"),
        serialization_alias="catalogIndex",
    )
    label: str
    points: int
    applied_at: datetime = Field(
        validation_alias=AliasChoices("appliedAt", "applied_at", "tsISO"),
        serialization_alias="appliedAt",
    )


class Adjustment(_Snapshot):
    """Manual signed correction; subtracted from the day's score."""
    amount: int | float
    reason: str = ""

    @field_validator("amount", mode="before")
    @classmethod
    def finite_amount(cls, v: Any) -> Any:
        if not is_finite_number(v):
            raise ValueError("amount must be a finite number")
        return v


class HistoryRecord(_Snapshot):
    """A closed day."""
    day_start: datetime = Field(
        validation_alias=AliasChoices("dayStart", "day_start", "dateISO"),
        serialization_alias="dayStart",
    )
    completed_count: NonNegativeInt = Field(
        validation_alias=AliasChoices("completedCount", "completed_count", "dailyTotal"),
        serialization_alias="completedCount",
    )
    adjustments: list[Adjustment] = Field(default_factory=list)
    activity_applications: list[ActivityApplication] = Field(
        default_factory=list,
        validation_alias=AliasChoices("activityApplications", "activity_applications", "activities"),
        serialization_alias="activityApplications",
    )
    net: int | float

    @field_validator("net", mode="before")
    @classmethod
    def finite_net(cls, v: Any) -> Any:
        if not is_finite_number(v):
            raise ValueError("net must be a finite number")
        return v


# ---------------------------------------------------------------------------
# Root document
# ---------------------------------------------------------------------------

class LedgerDocument(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    current_day_start: datetime = Field(
        default_factory=local_now,
        validation_alias=AliasChoices("currentDayStart", "current_day_start", "today"),
        serialization_alias="currentDayStart",
    )
    objective_catalog: list[str] = Field(
        default_factory=default_objectives,
        validation_alias=AliasChoices("objectiveCatalog", "objective_catalog", "objectives"),
        serialization_alias="objectiveCatalog",
    )
    completed_today: set[NonNegativeInt] = Field(
        default_factory=set,
        validation_alias=AliasChoices("completedToday", "completed_today", "doneIds"),
        serialization_alias="completedToday",
    )
    activity_catalog: list[ActivityDefinition] = Field(
        default_factory=default_activities,
        validation_alias=AliasChoices("activityCatalog", "activity_catalog", "activities"),
        serialization_alias="activityCatalog",
    )
    activity_applications_today: list[ActivityApplication] = Field(
        default_factory=list,
        validation_alias=AliasChoices(
            "activityApplicationsToday", "activity_applications_today", "activitiesToday",
        ),
        serialization_alias="activityApplicationsToday",
    )
    adjustments_today: list[Adjustment] = Field(default_factory=list)
    rolling_total: int | float = 0
    history: list[HistoryRecord] = Field(default_factory=list)

    # --- per-field tolerance ---

    @field_validator("current_day_start", mode="wrap")
    @classmethod
    def _day_start_or_now(cls, value: Any, handler: Callable) -> datetime:
        try:
            return handler(value)
        except ValidationError:
            logger.warning("Ledger field currentDayStart is invalid (%r); using now", value)
            return local_now()

    @field_validator("objective_catalog", mode="wrap")
    @classmethod
    def _objectives(cls, value: Any, handler: Callable) -> list[str]:
        labels = [label.strip() for label in _keep_valid(value, handler, default_objectives, "objectiveCatalog")]
        labels = [label for label in labels if label]
        return labels or default_objectives()

    @field_validator("completed_today", mode="wrap")
    @classmethod
    def _completed(cls, value: Any, handler: Callable) -> set[int]:
        return set(_keep_valid(value, handler, set, "completedToday"))

    @field_validator("activity_catalog", mode="wrap")
    @classmethod
    def _activities(cls, value: Any, handler: Callable) -> list[ActivityDefinition]:
        return _keep_valid(value, handler, default_activities, "activityCatalog")

    @field_validator("activity_applications_today", "adjustments_today", "history", mode="wrap")
    @classmethod
    def _today_lists(cls, value: Any, handler: Callable, info) -> list:
        return _keep_valid(value, handler, list, to_camel(info.field_name))

    @field_validator("rolling_total", mode="before")
    @classmethod
    def _finite_total(cls, value: Any) -> Any:
        if is_finite_number(value):
            return value
        logger.warning("Ledger field rollingTotal is not a finite number (%r); using 0", value)
        return 0

    @model_validator(mode="after")
    def _prune_completed(self) -> LedgerDocument:
        size = len(self.objective_catalog)
        stale = {i for i in self.completed_today if i >= size}
        if stale:
            logger.warning("Pruning completed objectives outside catalog: %s", sorted(stale))
            self.completed_today -= stale
        return self

    @field_serializer("completed_today")
    def _completed_sorted(self, value: set[int]) -> list[int]:
        return sorted(value)

    # --- (de)serialization ---

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> LedgerDocument:
        return cls.model_validate(data)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)
