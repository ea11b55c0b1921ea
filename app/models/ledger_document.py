"""
LedgerDocumentRow: the client-local key/value store.

One row per storage key. The payload is the whole ledger document as
JSON text; it is overwritten in place on every save.
"""
from datetime import datetime
from sqlalchemy import String, Text, DateTime, func
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class LedgerDocumentRow(Base):
    __tablename__ = "ledger_documents"

    key: Mapped[str] = mapped_column(String(128), primary_key=True)
    payload: Mapped[str] = mapped_column(
        Text, nullable=False,
        comment="JSON-encoded ledger document (camelCase keys)",
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )
