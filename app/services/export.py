"""
Read-only JSON export of the full ledger document.
"""
from __future__ import annotations

import json
from datetime import datetime

from app.schemas.document import LedgerDocument

EXPORT_PREFIX = "daily-objectives-export"


def export_filename(now: datetime) -> str:
    return f"{EXPORT_PREFIX}-{now.date().isoformat()}.json"


def export_document(doc: LedgerDocument) -> str:
    return json.dumps(doc.to_payload(), indent=2)
