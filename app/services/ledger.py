"""
Day Ledger: today's events, the daily score and day-boundary rollover.

Score
-----
  daily score   = completed objectives - sum(adjustment amounts) - sum(activity points)
  rolling total = stored rolling total + daily score (the still-open day included)

Rollover
--------
When the local calendar date of `now` differs from the day the document
reflects, the day is closed:
  1. net = daily score
  2. if anything happened today (a completion, adjustment or activity),
     append a HistoryRecord and add net to the rolling total
  3. reset today-scoped state and move the day start to `now`
A day with no events leaves no history record, but the day still advances.

Persistence
-----------
Every mutation is applied to a deep copy, saved once, and only then becomes
the ledger's document. A failed save leaves the ledger exactly as it was,
so no half-closed day is ever stored or observed.

Request threads and the rollover tick each load, mutate and save the whole
document. They do so only while holding LEDGER_LOCK (see `open_ledger`),
so one unit of work finishes before the next one loads.

Public API
----------
open_ledger(store, clock=None)  -> context manager yielding a DayLedger
DayLedger(store, clock=None)
  .complete_objective(id)            .apply_activity(index)
  .undo_activity(position)           .add_adjustment(amount, reason)
  .remove_adjustment(position)       .replace_objective_catalog(labels)
  .replace_activity_catalog(entries) .compute_daily_score()
  .compute_rolling_total()           .check_rollover(now=None)
  .rollover(now=None)                .summary()   .history_page()
"""
from __future__ import annotations

import logging
import threading
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Iterable, Optional, Protocol

from app.core.errors import (
    EmptyCatalogError,
    InvalidActivityError,
    InvalidAmountError,
    InvalidIndexError,
)
from app.schemas.document import (
    MAX_POINTS,
    MIN_POINTS,
    ActivityApplication,
    ActivityDefinition,
    Adjustment,
    HistoryRecord,
    LedgerDocument,
    is_finite_number,
    local_now,
)
from app.services.catalog_text import MISSING_LABEL, POINTS_OUT_OF_RANGE

logger = logging.getLogger(__name__)

# Held from load to save by every request and every scheduled tick in this process.
LEDGER_LOCK = threading.RLock()


class DocumentStore(Protocol):
    def load(self) -> LedgerDocument: ...

    def save(self, doc: LedgerDocument) -> None: ...


@dataclass
class LedgerSummary:
    """Counters a display needs; recomputed on every call."""
    day_start: datetime
    completed_count: int
    objective_count: int
    activity_count: int
    adjustment_count: int
    daily_score: int | float
    rolling_total: int | float


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

def daily_score(doc: LedgerDocument) -> int | float:
    adjustment_sum = sum(a.amount for a in doc.adjustments_today)
    activity_sum = sum(a.points for a in doc.activity_applications_today)
    return len(doc.completed_today) - adjustment_sum - activity_sum


def has_events(doc: LedgerDocument) -> bool:
    return bool(doc.completed_today or doc.adjustments_today or doc.activity_applications_today)


def same_local_day(a: datetime, b: datetime) -> bool:
    """Compare year/month/day in the local zone. Naive values are read as local."""
    return a.astimezone().date() == b.astimezone().date()


def _check_position(collection: str, position: int, size: int) -> None:
    if not 0 <= position < size:
        raise InvalidIndexError(collection=collection, index=position, size=size)


def _activity_fields(entry: Any) -> tuple[Any, Any]:
    if isinstance(entry, ActivityDefinition):
        return entry.label, entry.points
    if isinstance(entry, Mapping):
        return entry.get("label"), entry.get("points")
    try:
        label, points = entry
    except (TypeError, ValueError):
        raise InvalidActivityError(line=repr(entry), reason=MISSING_LABEL) from None
    return label, points


def _validate_activity(entry: Any) -> ActivityDefinition:
    label, points = _activity_fields(entry)
    line = f"{label} | {points}"
    if not isinstance(label, str) or not label.strip():
        raise InvalidActivityError(line=line, reason=MISSING_LABEL)
    if (
        not isinstance(points, int)
        or isinstance(points, bool)
        or not MIN_POINTS <= points <= MAX_POINTS
    ):
        raise InvalidActivityError(line=line, reason=POINTS_OUT_OF_RANGE)
    return ActivityDefinition(label=label.strip(), points=points)


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------

class DayLedger:
    def __init__(self, store: DocumentStore, clock: Optional[Callable[[], datetime]] = None):
        self.store = store
        self.clock = clock or local_now
        self._doc = store.load()
        # Rollovers performed through this instance, and the last record written.
        self.rollover_count = 0
        self.last_record: Optional[HistoryRecord] = None

    @property
    def document(self) -> LedgerDocument:
        """A copy of the current document; edits to it are not persisted."""
        return self._doc.model_copy(deep=True)

    def _working_copy(self) -> LedgerDocument:
        return self._doc.model_copy(deep=True)

    def _commit(self, doc: LedgerDocument) -> None:
        self.store.save(doc)
        self._doc = doc

    # --- objectives ---

    def complete_objective(self, objective_id: int) -> bool:
        """Mark an objective done. Returns False when it already was."""
        _check_position("objectiveCatalog", objective_id, len(self._doc.objective_catalog))
        if objective_id in self._doc.completed_today:
            return False
        doc = self._working_copy()
        doc.completed_today.add(objective_id)
        self._commit(doc)
        logger.debug("Objective %d completed", objective_id)
        return True

    def replace_objective_catalog(self, labels: Iterable[str]) -> list[str]:
        cleaned = [label.strip() for label in labels if label and label.strip()]
        if not cleaned:
            raise EmptyCatalogError()
        doc = self._working_copy()
        doc.objective_catalog = cleaned
        # Identity is positional: slots past the new end are no longer done.
        doc.completed_today = {i for i in doc.completed_today if i < len(cleaned)}
        self._commit(doc)
        logger.info("Objective catalog replaced (%d objectives)", len(cleaned))
        return list(cleaned)

    # --- activities ---

    def apply_activity(self, catalog_index: int) -> ActivityApplication:
        catalog = self._doc.activity_catalog
        _check_position("activityCatalog", catalog_index, len(catalog))
        definition = catalog[catalog_index]
        entry = ActivityApplication(
            catalog_index=catalog_index,
            label=definition.label,
            points=definition.points,
            applied_at=self.clock(),
        )
        doc = self._working_copy()
        doc.activity_applications_today.append(entry)
        self._commit(doc)
        logger.debug("Activity %r applied (-%d)", entry.label, entry.points)
        return entry

    def undo_activity(self, position: int) -> ActivityApplication:
        _check_position("activityApplicationsToday", position, len(self._doc.activity_applications_today))
        doc = self._working_copy()
        removed = doc.activity_applications_today.pop(position)
        self._commit(doc)
        logger.debug("Activity application %d undone", position)
        return removed

    def replace_activity_catalog(self, entries: Iterable[Any]) -> list[ActivityDefinition]:
        """Validate every entry first; the catalog changes only if all pass."""
        validated = [_validate_activity(entry) for entry in entries]
        doc = self._working_copy()
        doc.activity_catalog = validated
        self._commit(doc)
        logger.info("Activity catalog replaced (%d activities)", len(validated))
        return list(validated)

    # --- adjustments ---

    def add_adjustment(self, amount: int | float, reason: str = "") -> Adjustment:
        if not is_finite_number(amount):
            raise InvalidAmountError(amount)
        entry = Adjustment(amount=amount, reason=(reason or "").strip())
        doc = self._working_copy()
        doc.adjustments_today.append(entry)
        self._commit(doc)
        logger.debug("Adjustment %s added", amount)
        return entry

    def remove_adjustment(self, position: int) -> Adjustment:
        _check_position("adjustmentsToday", position, len(self._doc.adjustments_today))
        doc = self._working_copy()
        removed = doc.adjustments_today.pop(position)
        self._commit(doc)
        logger.debug("Adjustment %d removed", position)
        return removed

    # --- scores ---

    def compute_daily_score(self) -> int | float:
        return daily_score(self._doc)

    def compute_rolling_total(self) -> int | float:
        return self._doc.rolling_total + daily_score(self._doc)

    def summary(self) -> LedgerSummary:
        doc = self._doc
        return LedgerSummary(
            day_start=doc.current_day_start,
            completed_count=len(doc.completed_today),
            objective_count=len(doc.objective_catalog),
            activity_count=len(doc.activity_applications_today),
            adjustment_count=len(doc.adjustments_today),
            daily_score=self.compute_daily_score(),
            rolling_total=self.compute_rolling_total(),
        )

    def history_page(self, limit: int = 50, offset: int = 0) -> tuple[int, list[HistoryRecord]]:
        """Return (total, page) of closed days, newest first."""
        newest_first = list(reversed(self._doc.history))
        return len(newest_first), newest_first[offset:offset + limit]

    # --- rollover ---

    def check_rollover(self, now: Optional[datetime] = None) -> bool:
        """Roll over if `now` falls on a different local date. Returns True if it did."""
        now = now or self.clock()
        if same_local_day(self._doc.current_day_start, now):
            return False
        self.rollover(now)
        return True

    def rollover(self, now: Optional[datetime] = None) -> Optional[HistoryRecord]:
        """Close today into history and start a new day at `now`."""
        now = now or self.clock()
        doc = self._working_copy()
        net = daily_score(doc)
        record: Optional[HistoryRecord] = None

        if has_events(doc):
            record = HistoryRecord(
                day_start=doc.current_day_start,
                completed_count=len(doc.completed_today),
                adjustments=list(doc.adjustments_today),
                activity_applications=list(doc.activity_applications_today),
                net=net,
            )
            doc.history.append(record)
            doc.rolling_total = doc.rolling_total + net

        closed_day = doc.current_day_start
        doc.current_day_start = now
        doc.completed_today = set()
        doc.adjustments_today = []
        doc.activity_applications_today = []
        self._commit(doc)
        self.rollover_count += 1
        self.last_record = record

        if record is None:
            logger.info("Day %s closed with no events", closed_day.date())
        else:
            logger.info(
                "Day %s closed: net=%s rolling_total=%s",
                closed_day.date(), net, doc.rolling_total,
            )
        return record


@contextmanager
def open_ledger(
    store: DocumentStore,
    clock: Optional[Callable[[], datetime]] = None,
) -> Iterator[DayLedger]:
    """
    One unit of work: load, close a stale day, then hand the ledger over.

    The lock is held until the block exits, so the caller's mutation and
    save happen before any other request or tick loads the document.
    Enter and exit on the same thread.
    """
    with LEDGER_LOCK:
        ledger = DayLedger(store, clock=clock)
        ledger.check_rollover()
        yield ledger
