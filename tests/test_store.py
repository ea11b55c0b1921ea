"""
Tests for the state store and the tolerant document loader.
"""
import json
from datetime import datetime

import pytest
from sqlalchemy.exc import OperationalError

from app.core.errors import StorageUnavailableError
from app.models.ledger_document import LedgerDocumentRow
from app.schemas.document import (
    DEFAULT_OBJECTIVE_COUNT,
    LedgerDocument,
    default_activities,
    default_objectives,
)
from app.services.ledger import DayLedger
from app.services.store import LedgerStore, parse_document


def _history_entry(net=3):
    return {
        "dayStart": "2026-10-10T08:00:00+00:00",
        "completedCount": 4,
        "adjustments": [{"amount": 1, "reason": "cake"}],
        "activityApplications": [],
        "net": net,
    }


def _write_raw(db, key, payload: str):
    db.add(LedgerDocumentRow(key=key, payload=payload))
    db.commit()


class TestDefaults:
    def test_fresh_document(self):
        doc = LedgerDocument()
        assert len(doc.objective_catalog) == DEFAULT_OBJECTIVE_COUNT == 30
        assert doc.objective_catalog[0] == "Objective 1"
        assert doc.objective_catalog[-1] == "Objective 30"
        assert [a.label for a in doc.activity_catalog][:2] == ["Cold shower", "10-min breathwork"]
        assert len(doc.activity_catalog) == 10
        assert doc.completed_today == set()
        assert doc.rolling_total == 0
        assert doc.history == []
        assert doc.current_day_start.tzinfo is not None

    def test_load_without_stored_document(self, store):
        doc = store.load()
        assert doc.objective_catalog == default_objectives()
        assert doc.activity_catalog == default_activities()

    def test_load_does_not_write(self, store, db):
        store.load()
        assert db.get(LedgerDocumentRow, store.key) is None


class TestTolerantLoad:
    def test_corrupt_rolling_total_keeps_history(self):
        history = [_history_entry(3), _history_entry(-2)]
        doc = parse_document(json.dumps({"rollingTotal": "oops", "history": history}))
        assert doc.rolling_total == 0
        assert [r.net for r in doc.history] == [3, -2]
        assert doc.history[0].adjustments[0].reason == "cake"
        assert doc.history[0].completed_count == 4

    @pytest.mark.parametrize("raw", ["{not json", "", "[1, 2, 3]", '"text"', "null"])
    def test_unparseable_payload_starts_fresh(self, raw):
        doc = parse_document(raw)
        assert doc.objective_catalog == default_objectives()
        assert doc.history == []

    def test_non_list_fields_fall_back(self):
        doc = parse_document(json.dumps({
            "objectiveCatalog": "nope",
            "completedToday": 7,
            "activityCatalog": {"label": "x"},
            "activityApplicationsToday": None,
            "adjustmentsToday": "x",
            "history": 42,
        }))
        assert doc.objective_catalog == default_objectives()
        assert doc.completed_today == set()
        assert doc.activity_catalog == default_activities()
        assert doc.activity_applications_today == []
        assert doc.adjustments_today == []
        assert doc.history == []

    @pytest.mark.parametrize("total", [None, "12", [], {"a": 1}, True, "NaN"])
    def test_rolling_total_must_be_a_number(self, total):
        assert parse_document(json.dumps({"rollingTotal": total})).rolling_total == 0

    def test_infinite_rolling_total(self):
        # json.dumps writes Infinity, json.loads reads it back as float("inf")
        assert parse_document(json.dumps({"rollingTotal": float("inf")})).rolling_total == 0

    def test_valid_fields_preserved(self):
        doc = parse_document(json.dumps({
            "currentDayStart": "2026-10-17T07:30:00+02:00",
            "objectiveCatalog": ["Read", "Walk", "Write"],
            "completedToday": [2, 0],
            "activityCatalog": [{"label": "Run", "points": 3}],
            "activityApplicationsToday": [{
                "catalogIndex": 0, "label": "Run", "points": 3,
                "appliedAt": "2026-10-17T08:00:00+02:00",
            }],
            "adjustmentsToday": [{"amount": -1.5, "reason": "bonus"}],
            "rollingTotal": 17.5,
            "history": [_history_entry()],
        }))
        assert doc.current_day_start == datetime.fromisoformat("2026-10-17T07:30:00+02:00")
        assert doc.objective_catalog == ["Read", "Walk", "Write"]
        assert doc.completed_today == {0, 2}
        assert doc.activity_catalog[0].points == 3
        assert doc.activity_applications_today[0].label == "Run"
        assert doc.adjustments_today[0].amount == -1.5
        assert doc.rolling_total == 17.5
        assert len(doc.history) == 1

    def test_missing_day_start_becomes_now(self):
        before = datetime.now().astimezone()
        doc = parse_document(json.dumps({"rollingTotal": 4}))
        assert doc.current_day_start >= before
        assert doc.rolling_total == 4

    def test_invalid_day_start_becomes_now(self):
        before = datetime.now().astimezone()
        doc = parse_document(json.dumps({"currentDayStart": "yesterday-ish"}))
        assert doc.current_day_start >= before

    def test_malformed_elements_dropped_individually(self):
        doc = parse_document(json.dumps({
            "objectiveCatalog": ["Read", 5, "  ", "Walk"],
            "completedToday": [0, "x", -3, 1],
            "activityCatalog": [
                {"label": "Run", "points": 3},
                {"label": "Bad", "points": 9},
                {"points": 2},
                {"label": "Swim", "points": 1},
            ],
            "adjustmentsToday": [
                {"amount": 2},
                {"amount": "lots", "reason": "?"},
                {"reason": "no amount"},
            ],
            "history": [_history_entry(), {"net": "bad"}, _history_entry(5)],
        }))
        assert doc.objective_catalog == ["Read", "Walk"]
        assert doc.completed_today == {0, 1}
        assert [a.label for a in doc.activity_catalog] == ["Run", "Swim"]
        assert [a.amount for a in doc.adjustments_today] == [2]
        assert doc.adjustments_today[0].reason == ""
        assert [r.net for r in doc.history] == [3, 5]

    def test_completed_indices_beyond_catalog_pruned(self):
        doc = parse_document(json.dumps({
            "objectiveCatalog": ["a", "b"],
            "completedToday": [0, 1, 2, 29],
        }))
        assert doc.completed_today == {0, 1}

    def test_empty_objective_catalog_falls_back(self):
        doc = parse_document(json.dumps({"objectiveCatalog": []}))
        assert doc.objective_catalog == default_objectives()

    def test_legacy_browser_keys(self):
        doc = parse_document(json.dumps({
            "today": "2026-10-16T06:00:00.000Z",
            "objectives": ["Stretch", "Journal"],
            "doneIds": [1],
            "activities": [{"label": "Cold shower", "points": 2}],
            "activitiesToday": [{
                "idx": 0, "label": "Cold shower", "points": 2,
                "tsISO": "2026-10-16T07:00:00.000Z",
            }],
            "adjustmentsToday": [{"amount": 1, "reason": ""}],
            "rollingTotal": 9,
            "history": [{
                "dateISO": "2026-10-15T06:00:00.000Z",
                "dailyTotal": 3,
                "adjustments": [],
                "activities": [],
                "net": 3,
            }],
        }))
        assert doc.objective_catalog == ["Stretch", "Journal"]
        assert doc.completed_today == {1}
        assert doc.activity_catalog[0].label == "Cold shower"
        assert doc.activity_applications_today[0].catalog_index == 0
        assert doc.rolling_total == 9
        assert doc.history[0].completed_count == 3
        assert doc.current_day_start.year == 2026


class TestSaveAndLoad:
    def test_save_then_load_is_equivalent(self, store, db, clock):
        ledger = DayLedger(store, clock=clock)
        ledger.complete_objective(4)
        ledger.apply_activity(3)
        ledger.add_adjustment(1.5, "coffee")
        ledger.rollover(clock.advance(days=1))
        ledger.complete_objective(2)

        fresh = LedgerStore(db, store.key).load()
        assert fresh == ledger.document

    def test_save_overwrites_single_row(self, store, db):
        doc = LedgerDocument()
        store.save(doc)
        doc.rolling_total = 12
        store.save(doc)
        assert db.query(LedgerDocumentRow).count() == 1
        assert store.load().rolling_total == 12

    def test_payload_is_camel_case_json(self, store, db):
        store.save(LedgerDocument(completed_today={3, 1}))
        payload = json.loads(db.get(LedgerDocumentRow, store.key).payload)
        assert set(payload) == {
            "currentDayStart", "objectiveCatalog", "completedToday", "activityCatalog",
            "activityApplicationsToday", "adjustmentsToday", "rollingTotal", "history",
        }
        assert payload["completedToday"] == [1, 3]

    def test_keys_are_independent(self, db):
        LedgerStore(db, "a").save(LedgerDocument(rolling_total=1))
        assert LedgerStore(db, "b").load().rolling_total == 0
        assert LedgerStore(db, "a").load().rolling_total == 1

    def test_corrupt_row_loads_defaults(self, store, db):
        _write_raw(db, store.key, "{{{")
        assert store.load().objective_catalog == default_objectives()


class TestStorageUnavailable:
    def _broken(self, db, monkeypatch):
        def boom(*args, **kwargs):
            raise OperationalError("SELECT", {}, Exception("disk I/O error"))
        monkeypatch.setattr(db, "get", boom)

    def test_load_failure_raises(self, store, db, monkeypatch):
        self._broken(db, monkeypatch)
        with pytest.raises(StorageUnavailableError) as exc_info:
            store.load()
        assert exc_info.value.details == {"operation": "load", "key": store.key}

    def test_save_failure_raises(self, store, db, monkeypatch):
        self._broken(db, monkeypatch)
        with pytest.raises(StorageUnavailableError) as exc_info:
            store.save(LedgerDocument())
        assert exc_info.value.details["operation"] == "save"
