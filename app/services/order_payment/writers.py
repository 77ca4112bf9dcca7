"""
The two ways of persisting an order together with its payment.

TransactionalWriter relies on the engine for atomicity. SequentialWriterWithCompensation
writes the order, then the payment, and deletes what it wrote if the payment write fails
or the stored pair disagrees, so that no order outlives a failed call.
"""

import asyncio
from typing import Any

from app.core.config import get_settings
from app.core.logging import get_logger
from app.services.order_payment.assembler import OrderPaymentResult, ResultAssembler
from app.services.order_payment.errors import (
    CompensationFailureError,
    OrderPaymentError,
    PairingMismatchError,
    classify_error,
)
from app.services.order_payment.records import OrderRecord, PaymentRecord
from app.stores.base import OrderStore, PaymentStore, TransactionManager

log = get_logger(__name__)


def alert_orphan(err: CompensationFailureError) -> None:
    """Raise the alarm for documents compensation could not remove."""
    log.critical(
        "order_compensation_failed",
        order_id=err.order_id,
        payment_id=err.payment_id,
        cause=repr(err.cause),
        compensation_cause=repr(err.compensation_cause),
    )
    if get_settings().sentry_dsn:
        import sentry_sdk
        sentry_sdk.capture_exception(err)


class TransactionalWriter:
    def __init__(
        self,
        orders: OrderStore,
        payments: PaymentStore,
        transactions: TransactionManager,
        assembler: ResultAssembler | None = None,
    ) -> None:
        self._orders = orders
        self._payments = payments
        self._transactions = transactions
        self._assembler = assembler or ResultAssembler()

    async def write(
        self,
        order: OrderRecord,
        payment: PaymentRecord,
        session: Any = None,
    ) -> OrderPaymentResult:
        """Create both documents in one transaction; on failure neither is stored."""
        try:
            async with self._transactions.transaction(session) as txn:
                saved_order = await self._orders.create(order, session=txn)
                saved_payment = await self._payments.create(payment, session=txn)
                # checked before commit so a mismatched pair is rolled back
                return self._assembler.assemble(saved_order, saved_payment)
        except Exception as exc:
            raise classify_error(exc) from exc


class SequentialWriterWithCompensation:
    def __init__(
        self,
        orders: OrderStore,
        payments: PaymentStore,
        assembler: ResultAssembler | None = None,
    ) -> None:
        self._orders = orders
        self._payments = payments
        self._assembler = assembler or ResultAssembler()

    async def write(self, order: OrderRecord, payment: PaymentRecord) -> OrderPaymentResult:
        try:
            saved_order = await self._orders.create(order)
        except Exception as exc:
            # nothing written yet, nothing to undo
            raise classify_error(exc) from exc

        try:
            saved_payment = await self._payments.create(payment)
        except asyncio.CancelledError:
            await asyncio.shield(self._undo_after_cancel(saved_order.id))
            raise
        except Exception as exc:
            error = classify_error(exc)
            await self._undo(saved_order.id, error)
            raise error from exc

        try:
            return self._assembler.assemble(saved_order, saved_payment)
        except PairingMismatchError as error:
            await self._undo_pair(saved_order.id, saved_payment.id, error)
            raise

    async def compensate(self, order_id: str) -> bool:
        """Delete an order created by this writer. Deleting an absent id is a no-op."""
        return await self._orders.delete(order_id)

    async def _undo(self, order_id: str, error: OrderPaymentError) -> None:
        try:
            removed = await self.compensate(order_id)
        except Exception as cleanup_exc:
            raise CompensationFailureError(
                order_id,
                cause=error.cause or error,
                compensation_cause=cleanup_exc,
            ) from cleanup_exc
        log.info("order_payment_compensated", order_id=order_id, removed=removed, kind=error.kind)

    async def _undo_pair(self, order_id: str, payment_id: str, error: OrderPaymentError) -> None:
        # payment first: a payment must never outlive its order
        try:
            await self._payments.delete(payment_id)
        except Exception as cleanup_exc:
            raise CompensationFailureError(
                order_id,
                payment_id=payment_id,
                cause=error,
                compensation_cause=cleanup_exc,
            ) from cleanup_exc
        await self._undo(order_id, error)

    async def _undo_after_cancel(self, order_id: str) -> None:
        try:
            await self.compensate(order_id)
        except Exception as cleanup_exc:
            alert_orphan(
                CompensationFailureError(
                    order_id,
                    cause=asyncio.CancelledError(),
                    compensation_cause=cleanup_exc,
                )
            )
            return
        log.info("order_payment_compensated", order_id=order_id, kind="cancelled")
