from typing import Any

from fastapi import Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import ORJSONResponse


class AppError(Exception):
    """Base application error with consistent schema."""

    def __init__(
        self,
        message: str,
        code: str = "ERROR",
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class BadRequestError(AppError):
    def __init__(self, message: str = "Bad request", details: dict[str, Any] | None = None):
        super().__init__(message, code="BAD_REQUEST", status_code=status.HTTP_400_BAD_REQUEST, details=details)


class ConfigurationError(AppError):
    """Staking is not configured (no hot wallet). Fatal for the whole invocation."""

    def __init__(self, message: str = "Staking not configured"):
        super().__init__(message, code="NOT_CONFIGURED", status_code=status.HTTP_400_BAD_REQUEST)


class DepositValidationError(BadRequestError):
    """Manual deposit request rejected before any resolution or crediting."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, details=details)
        self.code = "INVALID_DEPOSIT"


# Transaction-level errors: never abort a batch, reported per transfer.


class DepositError(Exception):
    """Base for per-transfer failures in the deposit pipeline."""

    def __init__(self, message: str, tx_hash: str | None = None):
        self.message = message
        self.tx_hash = tx_hash
        super().__init__(message)


class AdapterError(DepositError):
    """Indexer API or node RPC call failed."""

    def __init__(self, message: str, adapter: str, original_error: Exception | None = None):
        super().__init__(message)
        self.adapter = adapter
        self.original_error = original_error


class UnknownSenderError(DepositError):
    def __init__(self, from_address: str, tx_hash: str | None = None):
        super().__init__(f"Unknown sender {from_address}", tx_hash=tx_hash)
        self.from_address = from_address


class AmbiguousWalletError(DepositError):
    def __init__(self, from_address: str, user_ids: list[str], tx_hash: str | None = None):
        super().__init__(
            f"Wallet {from_address} is registered to {len(user_ids)} users",
            tx_hash=tx_hash,
        )
        self.from_address = from_address
        self.user_ids = user_ids


class PersistenceError(DepositError):
    """Account or ledger write failed; the credit did not happen."""


class DuplicateTransactionError(DepositError):
    """Ledger already holds a deposit for this tx hash (unique index hit)."""

    def __init__(self, tx_hash: str):
        super().__init__(f"Deposit {tx_hash} already recorded", tx_hash=tx_hash)


def error_response(request: Request, exc: AppError) -> ORJSONResponse:
    body = {
        "error": exc.message,
        "code": exc.code,
        "details": exc.details,
    }
    if hasattr(request.state, "request_id"):
        body["request_id"] = request.state.request_id
    return ORJSONResponse(status_code=exc.status_code, content=body)


async def app_exception_handler(request: Request, exc: AppError) -> ORJSONResponse:
    return error_response(request, exc)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> ORJSONResponse:
    body = {
        "error": "Validation error",
        "code": "VALIDATION_ERROR",
        "details": {"errors": jsonable_encoder(exc.errors())},
    }
    if hasattr(request.state, "request_id"):
        body["request_id"] = request.state.request_id
    return ORJSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=body,
    )


async def generic_exception_handler(request: Request, exc: Exception) -> ORJSONResponse:
    from app.core.logging import get_logger
    get_logger(__name__).exception("unhandled_exception", exc_info=exc)
    body = {
        "error": "Internal server error",
        "code": "INTERNAL_ERROR",
        "details": {},
    }
    if hasattr(request.state, "request_id"):
        body["request_id"] = request.state.request_id
    return ORJSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=body,
    )
