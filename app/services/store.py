"""
State store: load and save the ledger document under one storage key.

load() never fails on bad content: absent or unparseable payloads yield a
fresh default document, partially invalid ones are repaired per field.
Database errors are a different matter: they surface as
StorageUnavailableError and are not retried.
"""
from __future__ import annotations

import json
import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import StorageUnavailableError
from app.models.ledger_document import LedgerDocumentRow
from app.schemas.document import LedgerDocument

logger = logging.getLogger(__name__)


class LedgerStore:
    def __init__(self, db: Session, key: str):
        self.db = db
        self.key = key

    def read_raw(self) -> Optional[str]:
        """Return the stored payload text, or None when nothing is stored."""
        try:
            row = self.db.get(LedgerDocumentRow, self.key)
        except SQLAlchemyError as exc:
            logger.error("Reading ledger %r failed: %s", self.key, exc)
            self.db.rollback()
            raise StorageUnavailableError(operation="load", key=self.key) from exc
        return row.payload if row is not None else None

    def load(self) -> LedgerDocument:
        raw = self.read_raw()
        if raw is None:
            logger.info("No stored ledger under %r; starting fresh", self.key)
            return LedgerDocument()
        return parse_document(raw, key=self.key)

    def save(self, doc: LedgerDocument) -> None:
        payload = json.dumps(doc.to_payload())
        try:
            row = self.db.get(LedgerDocumentRow, self.key)
            if row is None:
                self.db.add(LedgerDocumentRow(key=self.key, payload=payload))
            else:
                row.payload = payload
            self.db.commit()
        except SQLAlchemyError as exc:
            logger.error("Saving ledger %r failed: %s", self.key, exc)
            self.db.rollback()
            raise StorageUnavailableError(operation="save", key=self.key) from exc


def parse_document(raw: str, key: str = "") -> LedgerDocument:
    """Turn stored text into a document, degrading to defaults instead of raising."""
    try:
        data = json.loads(raw)
    except ValueError:
        logger.warning("Stored ledger %r is not valid JSON; starting fresh", key)
        return LedgerDocument()
    if not isinstance(data, dict):
        logger.warning("Stored ledger %r is not a JSON object; starting fresh", key)
        return LedgerDocument()
    return LedgerDocument.from_payload(data)
