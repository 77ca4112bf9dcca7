"""
Failure classification for paired order/payment creation.

Every failure leaving the coordinator is one of the kinds below. All of them except
CompensationFailureError carry the same public message; the underlying exception
stays on ``cause`` for logging only.
"""

import asyncio
from typing import Any

from fastapi import status
from pydantic import ValidationError as PydanticValidationError
from pymongo.errors import (
    ConnectionFailure,
    ExecutionTimeout,
    OperationFailure,
    PyMongoError,
    WTimeoutError,
)

from app.core.exceptions import AppError
from app.stores.base import TransactionsUnsupportedError

PUBLIC_MESSAGE = "Failed to create order and payment. Please try again."

# Server error codes that clear up on their own (contention, elections, shutdown)
TRANSIENT_ERROR_CODES = frozenset({
    6,      # HostUnreachable
    7,      # HostNotFound
    24,     # LockTimeout
    50,     # MaxTimeMSExpired
    89,     # NetworkTimeout
    91,     # ShutdownInProgress
    112,    # WriteConflict
    189,    # PrimarySteppedDown
    10107,  # NotWritablePrimary
    11600,  # InterruptedAtShutdown
    11602,  # InterruptedDueToReplStateChange
    13435,  # NotPrimaryNoSecondaryOk
    13436,  # NotPrimaryOrSecondary
})

ILLEGAL_OPERATION = 20
TRANSACTIONS_UNSUPPORTED_MESSAGE = "Transaction numbers are only allowed on a replica set member or mongos"


class OrderPaymentError(AppError):
    """Base for every failure surfaced by order/payment creation."""

    kind = "order_payment"
    default_code = "ORDER_PAYMENT_FAILED"
    default_status = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str = PUBLIC_MESSAGE,
        *,
        cause: BaseException | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, code=self.default_code, status_code=self.default_status, details=details)
        self.cause = cause


class ValidationError(OrderPaymentError):
    kind = "validation"
    default_code = "ORDER_PAYMENT_INVALID"
    default_status = status.HTTP_400_BAD_REQUEST


class TransientStorageError(OrderPaymentError):
    """Connectivity or contention; the whole call may be retried with fresh identifiers."""

    kind = "transient_storage"
    default_code = "ORDER_PAYMENT_UNAVAILABLE"
    default_status = status.HTTP_503_SERVICE_UNAVAILABLE
    retryable = True


class PermanentStorageError(OrderPaymentError):
    kind = "permanent_storage"


class PairingMismatchError(PermanentStorageError):
    """Persisted order and payment disagree on amount, currency or linkage. A programming error."""

    kind = "pairing_mismatch"
    default_code = "ORDER_PAYMENT_MISMATCH"


class CompensationFailureError(OrderPaymentError):
    """
    A write failed and the documents created for it could not be removed.
    An orphaned order (and, when payment_id is set, its payment) now exists and needs
    out-of-band remediation; never retry blindly.
    """

    kind = "compensation_failure"
    default_code = "ORDER_PAYMENT_ORPHANED"

    def __init__(
        self,
        order_id: str,
        *,
        payment_id: str | None = None,
        cause: BaseException | None = None,
        compensation_cause: BaseException | None = None,
    ):
        details = {"order_id": order_id}
        if payment_id is not None:
            details["payment_id"] = payment_id
        super().__init__(
            f"Failed to create order and payment, and order {order_id} could not be removed",
            cause=cause,
            details=details,
        )
        self.order_id = order_id
        self.payment_id = payment_id
        self.compensation_cause = compensation_cause


def is_transient(exc: BaseException) -> bool:
    if isinstance(exc, (TimeoutError, asyncio.TimeoutError)):
        return True
    if not isinstance(exc, PyMongoError):
        return False
    if exc.has_error_label("TransientTransactionError") or exc.has_error_label("RetryableWriteError"):
        return True
    if isinstance(exc, (ConnectionFailure, ExecutionTimeout, WTimeoutError)):
        return True
    if getattr(exc, "timeout", False):
        return True
    return isinstance(exc, OperationFailure) and exc.code in TRANSIENT_ERROR_CODES


def transactions_unsupported(exc: BaseException | None) -> bool:
    """True when a transactional attempt failed only because the deployment has no transactions."""
    if isinstance(exc, TransactionsUnsupportedError):
        return True
    if isinstance(exc, OperationFailure):
        return exc.code == ILLEGAL_OPERATION and TRANSACTIONS_UNSUPPORTED_MESSAGE in str(exc)
    return False


def classify_error(exc: BaseException) -> OrderPaymentError:
    """Map any exception raised while writing to its taxonomy kind."""
    if isinstance(exc, OrderPaymentError):
        return exc
    if isinstance(exc, PydanticValidationError):
        errors = exc.errors(include_url=False, include_context=False, include_input=False)
        return ValidationError(cause=exc, details={"errors": errors})
    if is_transient(exc):
        return TransientStorageError(cause=exc)
    return PermanentStorageError(cause=exc)
