"""
Background day-boundary check.

One asyncio task on the server's event loop hands `run_rollover_tick` to a
worker thread every ROLLOVER_CHECK_SECONDS. Each tick loads the document
fresh under the ledger lock, so a boundary already closed by a request (or
an earlier tick) is a no-op.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.orm import Session

from app.services.ledger import LEDGER_LOCK, DayLedger
from app.services.store import LedgerStore

logger = logging.getLogger(__name__)


def run_rollover_tick(
    session_factory: Callable[[], Session],
    key: str,
    now: Optional[datetime] = None,
) -> bool:
    """Run one boundary check in its own session. Returns True if the day rolled over."""
    db = session_factory()
    try:
        with LEDGER_LOCK:
            ledger = DayLedger(LedgerStore(db, key))
            rolled = ledger.check_rollover(now)
    finally:
        db.close()
    if rolled:
        logger.info("Scheduled check rolled the ledger over to a new day")
    return rolled


async def rollover_loop(
    session_factory: Callable[[], Session],
    key: str,
    interval_s: float,
    stop: asyncio.Event,
) -> None:
    # Keep ticking regardless of storage errors; the next tick retries naturally.
    while not stop.is_set():
        try:
            await asyncio.to_thread(run_rollover_tick, session_factory, key)
        except Exception:
            logger.exception("Scheduled rollover check failed")
        try:
            await asyncio.wait_for(stop.wait(), timeout=interval_s)
        except asyncio.TimeoutError:
            continue
