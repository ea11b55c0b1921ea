from .ledger_document import LedgerDocumentRow

__all__ = [
    "LedgerDocumentRow",
]
