"""
Create a billing order and its payment as one logical unit.

Uses a MongoDB transaction when the deployment supports one; otherwise writes the two
documents in sequence and deletes the order again if the payment cannot be stored.
Either way, once a call returns there is never an order without its payment, nor a
payment without its order.
"""

import asyncio
from typing import Any, Mapping

from pydantic import ValidationError as PydanticValidationError

from app.core.config import get_settings
from app.core.logging import get_logger
from app.services.order_payment.assembler import OrderPaymentResult, ResultAssembler
from app.services.order_payment.errors import (
    CompensationFailureError,
    OrderPaymentError,
    TransientStorageError,
    ValidationError,
    classify_error,
    transactions_unsupported,
)
from app.services.order_payment.records import OrderData, PaymentData, build_linked_records, pairing_mismatches
from app.services.order_payment.strategy import Strategy, StrategySelector
from app.services.order_payment.writers import (
    SequentialWriterWithCompensation,
    TransactionalWriter,
    alert_orphan,
)
from app.stores.base import OrderStore, PaymentStore, TransactionManager

log = get_logger(__name__)


class OrderPaymentCoordinator:
    def __init__(
        self,
        order_store: OrderStore,
        payment_store: PaymentStore,
        transactions: TransactionManager,
        *,
        mode: str | None = None,
        max_attempts: int | None = None,
        retry_backoff_ms: int | None = None,
        order_number_prefix: str | None = None,
    ) -> None:
        settings = get_settings()
        self.selector = StrategySelector(transactions, mode or settings.order_transaction_mode)
        self.assembler = ResultAssembler()
        self.transactional = TransactionalWriter(order_store, payment_store, transactions, self.assembler)
        self.sequential = SequentialWriterWithCompensation(order_store, payment_store, self.assembler)
        self.max_attempts = max(1, max_attempts or settings.order_transaction_max_attempts)
        self.retry_backoff_ms = (
            settings.order_transaction_retry_backoff_ms if retry_backoff_ms is None else retry_backoff_ms
        )
        self.order_number_prefix = order_number_prefix or settings.order_number_prefix

    async def create(
        self,
        order_data: OrderData | Mapping[str, Any],
        payment_data: PaymentData | Mapping[str, Any],
        *,
        force_sequential: bool = False,
        session: Any = None,
    ) -> OrderPaymentResult:
        """
        Validate, write both documents and return them.

        Raises a subclass of OrderPaymentError. CompensationFailureError means an orphaned
        order is left in storage and must be cleaned up out of band.
        """
        order_in, payment_in = self._validate(order_data, payment_data)

        if session is not None and not force_sequential:
            # the caller's session implies a transaction-capable deployment
            strategy = Strategy.TRANSACTIONAL
        else:
            strategy = await self.selector.select(force_sequential)

        try:
            if strategy is Strategy.TRANSACTIONAL:
                result = await self._write_transactional(order_in, payment_in, session)
                if result is None:
                    strategy = Strategy.SEQUENTIAL_WITH_COMPENSATION
            if strategy is Strategy.SEQUENTIAL_WITH_COMPENSATION:
                result = await self._write_sequential(order_in, payment_in)
        except CompensationFailureError as err:
            alert_orphan(err)
            raise
        except OrderPaymentError as err:
            log.error(
                "order_payment_failed",
                kind=err.kind,
                strategy=strategy.value,
                cause=repr(err.cause) if err.cause else None,
                details=err.details,
            )
            raise

        log.info(
            "order_payment_created",
            order_id=result.order.id,
            payment_id=result.payment.id,
            order_number=result.order.order_number,
            strategy=strategy.value,
        )
        return result

    def _validate(
        self,
        order_data: OrderData | Mapping[str, Any],
        payment_data: PaymentData | Mapping[str, Any],
    ) -> tuple[OrderData, PaymentData]:
        try:
            order_in = order_data if isinstance(order_data, OrderData) else OrderData.model_validate(order_data)
            payment_in = (
                payment_data if isinstance(payment_data, PaymentData) else PaymentData.model_validate(payment_data)
            )
        except PydanticValidationError as exc:
            err = classify_error(exc)
            log.info("order_payment_rejected", errors=err.details.get("errors"))
            raise err from exc
        mismatched = pairing_mismatches(order_in, payment_in)
        if mismatched:
            log.info("order_payment_rejected", mismatched_fields=mismatched)
            raise ValidationError(details={"mismatched_fields": mismatched})
        return order_in, payment_in

    async def _write_sequential(self, order_in: OrderData, payment_in: PaymentData) -> OrderPaymentResult:
        order, payment = build_linked_records(order_in, payment_in, self.order_number_prefix)
        return await self.sequential.write(order, payment)

    async def _write_transactional(
        self,
        order_in: OrderData,
        payment_in: PaymentData,
        session: Any,
    ) -> OrderPaymentResult | None:
        """Returns None when the engine rejects transactions and the call must go sequential."""
        # Inside a caller-owned transaction the server has already aborted it on error
        joined = session is not None and getattr(session, "in_transaction", False)
        attempt = 0
        while True:
            attempt += 1
            # fresh ids and order number on every attempt
            order, payment = build_linked_records(order_in, payment_in, self.order_number_prefix)
            try:
                return await self.transactional.write(order, payment, session=session)
            except OrderPaymentError as err:
                if joined:
                    raise
                if transactions_unsupported(err.cause):
                    self.selector.mark_unsupported()
                    log.warning("order_transaction_fallback", reason=repr(err.cause))
                    return None
                if not isinstance(err, TransientStorageError) or attempt >= self.max_attempts:
                    raise
                delay_ms = self.retry_backoff_ms * 2 ** (attempt - 1)
                log.warning(
                    "order_transaction_retry",
                    attempt=attempt,
                    max_attempts=self.max_attempts,
                    delay_ms=delay_ms,
                    cause=repr(err.cause),
                )
                await asyncio.sleep(delay_ms / 1000)


_default_coordinator: OrderPaymentCoordinator | None = None


def get_coordinator() -> OrderPaymentCoordinator:
    """Process-wide coordinator over MongoDB; its transaction probe result is shared by all calls."""
    global _default_coordinator
    if _default_coordinator is None:
        from app.stores.mongo import MongoOrderStore, MongoPaymentStore, MongoTransactionManager
        _default_coordinator = OrderPaymentCoordinator(
            MongoOrderStore(),
            MongoPaymentStore(),
            MongoTransactionManager(),
        )
    return _default_coordinator


async def create_order_with_payment(
    order_data: OrderData | Mapping[str, Any],
    payment_data: PaymentData | Mapping[str, Any],
    *,
    force_sequential: bool = False,
    order_store: OrderStore | None = None,
    payment_store: PaymentStore | None = None,
    transactions: TransactionManager | None = None,
    session: Any = None,
) -> OrderPaymentResult:
    """
    Create an order and its payment together.
    Stores and the transaction manager default to MongoDB; pass them to substitute other storage.
    """
    if order_store is None and payment_store is None and transactions is None:
        coordinator = get_coordinator()
    else:
        from app.stores.mongo import MongoOrderStore, MongoPaymentStore, MongoTransactionManager
        coordinator = OrderPaymentCoordinator(
            order_store or MongoOrderStore(),
            payment_store or MongoPaymentStore(),
            transactions or MongoTransactionManager(),
        )
    return await coordinator.create(order_data, payment_data, force_sequential=force_sequential, session=session)
