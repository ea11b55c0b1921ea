"""
Ledger request / response schemas.

PUT  /ledger/objectives        → ObjectiveCatalogRequest → CatalogResponse
PUT  /ledger/activities        → ActivityCatalogRequest  → CatalogResponse
POST /ledger/adjustments       → AdjustmentRequest       → MutationResponse
POST /ledger/rollover          →                           RolloverResponse
GET  /ledger/today             →                           TodayResponse
GET  /ledger/history           →                           HistoryListResponse

Documents and snapshot items are returned in their stored camelCase form.
"""
from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field, model_validator


class _CatalogSource(BaseModel):
    """Either structured items or editor text, never both."""
    text: Optional[str] = Field(
        default=None,
        description="Editor text; see the matching GET .../editor endpoint for the format.",
    )

    def _require_one(self, structured: Any) -> None:
        if (structured is None) == (self.text is None):
            raise ValueError("provide exactly one of the structured list or `text`")


class ObjectiveCatalogRequest(_CatalogSource):
    labels: Optional[list[str]] = Field(
        default=None,
        description="Ordered objective labels. Blank labels are dropped.",
        examples=[["Drink water", "Read 20 pages", "Stretch"]],
    )

    @model_validator(mode="after")
    def check_source(self) -> ObjectiveCatalogRequest:
        self._require_one(self.labels)
        return self


class ActivityEntryIn(BaseModel):
    # Unconstrained here so the ledger reports INVALID_ACTIVITY with the bad line.
    label: str = Field(description="Activity label.", examples=["Cold shower"])
    points: int | float = Field(description="Whole number of points, 1-5.", examples=[2])


class ActivityCatalogRequest(_CatalogSource):
    entries: Optional[list[ActivityEntryIn]] = Field(
        default=None,
        description="Ordered activity definitions.",
    )

    @model_validator(mode="after")
    def check_source(self) -> ActivityCatalogRequest:
        self._require_one(self.entries)
        return self


class AdjustmentRequest(BaseModel):
    amount: int | float = Field(description="Signed amount subtracted from today's score.", examples=[1.5])
    reason: str = Field(default="", max_length=500, description="Optional free text.")


class LedgerSummaryResponse(BaseModel):
    day_start: str = Field(description="Timestamp the open day started at.")
    completed_count: int
    objective_count: int
    activity_count: int = Field(description="Activity applications today.")
    adjustment_count: int
    daily_score: int | float
    rolling_total: int | float = Field(description="Stored rolling total plus today's score.")


class TodayResponse(BaseModel):
    summary: LedgerSummaryResponse
    document: dict[str, Any] = Field(description="Full ledger document (camelCase).")


class MutationResponse(BaseModel):
    """Result of a single ledger operation."""
    changed: bool = Field(default=True, description="False when the call was a no-op.")
    item: Optional[dict[str, Any]] = Field(
        default=None,
        description="The snapshot added or removed, when there is one.",
    )
    summary: LedgerSummaryResponse


class CatalogResponse(BaseModel):
    items: list[Any]
    text: str = Field(description="Same catalog in editor-text form.")
    summary: LedgerSummaryResponse


class EditorTextResponse(BaseModel):
    text: str


class RolloverResponse(BaseModel):
    rolled_over: bool = Field(description="False when the stored day is already today.")
    record: Optional[dict[str, Any]] = Field(
        default=None,
        description="History record appended by the rollover; null for an empty day.",
    )
    summary: LedgerSummaryResponse


class HistoryListResponse(BaseModel):
    total: int
    items: list[dict[str, Any]]
