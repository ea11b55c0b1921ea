"""
Custom exception hierarchy for the daily objectives ledger.

Rule: every error has a machine-readable `code` string so clients
can branch on it without parsing English messages. Ledger operations
raise these directly; the HTTP layer only maps them to responses.
"""
from __future__ import annotations

import logging
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette import status

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exception classes
# ---------------------------------------------------------------------------

class LedgerException(Exception):
    """Base class for all application-level errors."""
    http_status: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class InvalidIndexError(LedgerException):
    http_status = status.HTTP_404_NOT_FOUND
    code = "INVALID_INDEX"

    def __init__(self, collection: str, index: int, size: int):
        super().__init__(
            message=f"Index {index} is out of range for {collection} (size {size}).",
            details={"collection": collection, "index": index, "size": size},
        )


class InvalidAmountError(LedgerException):
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "INVALID_AMOUNT"

    def __init__(self, amount: Any):
        super().__init__(
            message=f"Adjustment amount must be a finite number, got {amount!r}.",
            details={"amount": repr(amount)},
        )


class EmptyCatalogError(LedgerException):
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "EMPTY_CATALOG"

    def __init__(self):
        super().__init__(message="Provide at least one objective.")


class InvalidActivityError(LedgerException):
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "INVALID_ACTIVITY"

    def __init__(self, line: str, reason: str):
        super().__init__(
            message=f'{reason} on: "{line}"',
            details={"line": line, "reason": reason},
        )
        self.line = line
        self.reason = reason


class StorageUnavailableError(LedgerException):
    http_status = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "STORAGE_UNAVAILABLE"

    def __init__(self, operation: str, key: str):
        super().__init__(
            message=f"Ledger storage unavailable during {operation}.",
            details={"operation": operation, "key": key},
        )


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------

async def ledger_exception_handler(request: Request, exc: LedgerException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.http_status,
        content=exc.to_dict(),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Return structured 422 with machine-readable field errors."""
    field_errors = []
    for error in exc.errors():
        field_errors.append({
            "field": ".".join(str(loc) for loc in error["loc"] if loc != "body"),
            "message": error["msg"],
            "type": error["type"],
        })
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "code": "VALIDATION_ERROR",
            "message": "Request validation failed.",
            "details": {"errors": field_errors},
        },
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "code": "INTERNAL_ERROR",
            "message": "An unexpected error occurred.",
        },
    )
