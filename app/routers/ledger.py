"""
Ledger router.

GET    /ledger/today
GET    /ledger/summary
POST   /ledger/objectives/{objective_id}/complete
PUT    /ledger/objectives
GET    /ledger/objectives/editor
POST   /ledger/activities/{catalog_index}/apply
DELETE /ledger/activities/applied/{position}
PUT    /ledger/activities
GET    /ledger/activities/editor
POST   /ledger/adjustments
DELETE /ledger/adjustments/{position}
POST   /ledger/rollover
POST   /ledger/check-rollover
GET    /ledger/history
GET    /ledger/export
"""
from __future__ import annotations

from datetime import datetime
from typing import Callable

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from app.core.config import settings
from app.db.base import get_db
from app.schemas.document import local_now
from app.schemas.ledger import (
    ActivityCatalogRequest,
    AdjustmentRequest,
    CatalogResponse,
    EditorTextResponse,
    HistoryListResponse,
    LedgerSummaryResponse,
    MutationResponse,
    ObjectiveCatalogRequest,
    RolloverResponse,
    TodayResponse,
)
from app.services.catalog_text import (
    format_activity_lines,
    format_objective_lines,
    parse_activity_lines,
    parse_objective_lines,
)
from app.services.export import export_document, export_filename
from app.services.ledger import DayLedger, open_ledger
from app.services.store import LedgerStore

router = APIRouter(prefix="/ledger", tags=["ledger"])


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

def get_clock() -> Callable[[], datetime]:
    return local_now


def get_store(db: Session = Depends(get_db)) -> LedgerStore:
    return LedgerStore(db, settings.STORAGE_KEY)


# Endpoints are sync and run in the threadpool; each one opens its ledger
# inside its own body so the lock is taken and released on one thread.


# ---------------------------------------------------------------------------
# Serialization helpers
# ---------------------------------------------------------------------------

def _summary(ledger: DayLedger) -> LedgerSummaryResponse:
    s = ledger.summary()
    return LedgerSummaryResponse(
        day_start=s.day_start.isoformat(),
        completed_count=s.completed_count,
        objective_count=s.objective_count,
        activity_count=s.activity_count,
        adjustment_count=s.adjustment_count,
        daily_score=s.daily_score,
        rolling_total=s.rolling_total,
    )


def _dump(item) -> dict:
    return item.model_dump(mode="json", by_alias=True)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

@router.get("/today", response_model=TodayResponse, summary="Full ledger with today's score")
def ledger_today(
    store: LedgerStore = Depends(get_store),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    """Return the whole document plus the derived daily score and rolling total."""
    with open_ledger(store, clock) as ledger:
        return TodayResponse(summary=_summary(ledger), document=ledger.document.to_payload())


@router.get("/summary", response_model=LedgerSummaryResponse, summary="Today's counters")
def ledger_summary(
    store: LedgerStore = Depends(get_store),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    with open_ledger(store, clock) as ledger:
        return _summary(ledger)


@router.get(
    "/history",
    response_model=HistoryListResponse,
    summary="Closed days (newest first)",
)
def ledger_history(
    limit: int = Query(default=50, ge=1, le=500, description="Page size."),
    offset: int = Query(default=0, ge=0, description="Skip N records."),
    store: LedgerStore = Depends(get_store),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    with open_ledger(store, clock) as ledger:
        total, items = ledger.history_page(limit=limit, offset=offset)
    return HistoryListResponse(total=total, items=[_dump(r) for r in items])


@router.get(
    "/export",
    summary="Download the full ledger as JSON",
    responses={200: {"content": {"application/json": {}}, "description": "Attachment."}},
)
def ledger_export(
    store: LedgerStore = Depends(get_store),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    """Read-only snapshot named `daily-objectives-export-<date>.json`."""
    with open_ledger(store, clock) as ledger:
        content = export_document(ledger.document)
    filename = export_filename(clock())
    return Response(
        content=content,
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# ---------------------------------------------------------------------------
# Objectives
# ---------------------------------------------------------------------------

@router.post(
    "/objectives/{objective_id}/complete",
    response_model=MutationResponse,
    summary="Mark an objective done for today",
    responses={404: {"description": "No objective at that position."}},
)
def complete_objective(
    objective_id: int,
    store: LedgerStore = Depends(get_store),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    """Idempotent: completing an objective twice is a no-op (`changed=false`)."""
    with open_ledger(store, clock) as ledger:
        changed = ledger.complete_objective(objective_id)
        return MutationResponse(changed=changed, summary=_summary(ledger))


@router.put(
    "/objectives",
    response_model=CatalogResponse,
    summary="Replace the objective catalog",
    responses={422: {"description": "EMPTY_CATALOG or validation error."}},
)
def replace_objectives(
    payload: ObjectiveCatalogRequest,
    store: LedgerStore = Depends(get_store),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    """
    Completion is positional: objectives past the new catalog length are
    treated as not done.
    """
    labels = payload.labels if payload.labels is not None else parse_objective_lines(payload.text)
    with open_ledger(store, clock) as ledger:
        catalog = ledger.replace_objective_catalog(labels)
        return CatalogResponse(items=catalog, text=format_objective_lines(catalog), summary=_summary(ledger))


@router.get("/objectives/editor", response_model=EditorTextResponse, summary="Objective catalog as editor text")
def objectives_editor(
    store: LedgerStore = Depends(get_store),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    with open_ledger(store, clock) as ledger:
        return EditorTextResponse(text=format_objective_lines(ledger.document.objective_catalog))


# ---------------------------------------------------------------------------
# Activities
# ---------------------------------------------------------------------------

@router.post(
    "/activities/{catalog_index}/apply",
    response_model=MutationResponse,
    summary="Apply an activity from the catalog",
    responses={404: {"description": "No activity at that catalog position."}},
)
def apply_activity(
    catalog_index: int,
    store: LedgerStore = Depends(get_store),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    with open_ledger(store, clock) as ledger:
        entry = ledger.apply_activity(catalog_index)
        return MutationResponse(item=_dump(entry), summary=_summary(ledger))


@router.delete(
    "/activities/applied/{position}",
    response_model=MutationResponse,
    summary="Undo one of today's activity applications",
    responses={404: {"description": "No application at that position."}},
)
def undo_activity(
    position: int,
    store: LedgerStore = Depends(get_store),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    with open_ledger(store, clock) as ledger:
        removed = ledger.undo_activity(position)
        return MutationResponse(item=_dump(removed), summary=_summary(ledger))


@router.put(
    "/activities",
    response_model=CatalogResponse,
    summary="Replace the activity catalog",
    responses={422: {"description": "INVALID_ACTIVITY with the offending line."}},
)
def replace_activities(
    payload: ActivityCatalogRequest,
    store: LedgerStore = Depends(get_store),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    """All-or-nothing: one bad entry leaves the catalog unchanged."""
    if payload.entries is not None:
        entries = [{"label": e.label, "points": e.points} for e in payload.entries]
    else:
        entries = parse_activity_lines(payload.text)
    with open_ledger(store, clock) as ledger:
        catalog = ledger.replace_activity_catalog(entries)
        return CatalogResponse(
            items=[_dump(a) for a in catalog],
            text=format_activity_lines(catalog),
            summary=_summary(ledger),
        )


@router.get("/activities/editor", response_model=EditorTextResponse, summary="Activity catalog as editor text")
def activities_editor(
    store: LedgerStore = Depends(get_store),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    with open_ledger(store, clock) as ledger:
        return EditorTextResponse(text=format_activity_lines(ledger.document.activity_catalog))


# ---------------------------------------------------------------------------
# Adjustments
# ---------------------------------------------------------------------------

@router.post(
    "/adjustments",
    response_model=MutationResponse,
    summary="Add a manual score adjustment",
    responses={422: {"description": "INVALID_AMOUNT for a non-finite amount."}},
)
def add_adjustment(
    payload: AdjustmentRequest,
    store: LedgerStore = Depends(get_store),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    with open_ledger(store, clock) as ledger:
        entry = ledger.add_adjustment(payload.amount, payload.reason)
        return MutationResponse(item=_dump(entry), summary=_summary(ledger))


@router.delete(
    "/adjustments/{position}",
    response_model=MutationResponse,
    summary="Remove one of today's adjustments",
    responses={404: {"description": "No adjustment at that position."}},
)
def remove_adjustment(
    position: int,
    store: LedgerStore = Depends(get_store),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    with open_ledger(store, clock) as ledger:
        removed = ledger.remove_adjustment(position)
        return MutationResponse(item=_dump(removed), summary=_summary(ledger))


# ---------------------------------------------------------------------------
# Rollover
# ---------------------------------------------------------------------------

@router.post(
    "/rollover",
    response_model=RolloverResponse,
    summary="Start a new day now",
)
def start_new_day(
    store: LedgerStore = Depends(get_store),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    """
    Close today into history and reset it, regardless of the date.
    Destructive: clients confirm with the user before calling this.

    If the stored day was stale, opening the ledger already closed it; that
    close is the one reported and the fresh day is left open.
    """
    with open_ledger(store, clock) as ledger:
        if ledger.rollover_count > 0:
            record = ledger.last_record
        else:
            record = ledger.rollover()
        return RolloverResponse(
            rolled_over=True,
            record=_dump(record) if record is not None else None,
            summary=_summary(ledger),
        )


@router.post(
    "/check-rollover",
    response_model=RolloverResponse,
    summary="Close the stored day if the date has changed",
)
def check_rollover(
    store: LedgerStore = Depends(get_store),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    """
    Opening the ledger already performs the check, so this reports whether
    the stored day had to be closed for this request.
    """
    with open_ledger(store, clock) as ledger:
        record = ledger.last_record
        return RolloverResponse(
            rolled_over=ledger.rollover_count > 0,
            record=_dump(record) if record is not None else None,
            summary=_summary(ledger),
        )
