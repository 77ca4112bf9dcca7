"""Transactional and sequential writers against in-memory stores."""

import asyncio

import pytest
from pymongo.errors import AutoReconnect, DuplicateKeyError

from app.services.order_payment import writers
from app.services.order_payment.errors import (
    CompensationFailureError,
    PairingMismatchError,
    PermanentStorageError,
    TransientStorageError,
)
from app.services.order_payment.records import OrderData, PaymentData, build_linked_records
from app.services.order_payment.writers import SequentialWriterWithCompensation, TransactionalWriter
from app.stores.memory import MemoryPaymentStore

pytestmark = pytest.mark.asyncio


class StalledPaymentStore(MemoryPaymentStore):
    """Payment writes that never finish, so the caller can be cancelled mid-write."""

    def __init__(self) -> None:
        super().__init__()
        self.started = asyncio.Event()

    async def create(self, payment, session=None):
        self.started.set()
        await asyncio.Event().wait()


@pytest.fixture
def records(order_data, payment_data):
    return build_linked_records(OrderData(**order_data), PaymentData(**payment_data))


async def test_sequential_writes_both(orders, payments, records):
    result = await SequentialWriterWithCompensation(orders, payments).write(*records)
    assert list(orders.orders) == [result.order.id]
    assert list(payments.payments) == [result.payment.id]
    assert result.payment.order_id == result.order.id


async def test_sequential_removes_order_when_payment_fails(orders, payments, records):
    payments.fail_next(RuntimeError("Simulated payment save failure"))
    with pytest.raises(PermanentStorageError, match="(?i)failed to create order and payment") as info:
        await SequentialWriterWithCompensation(orders, payments).write(*records)
    assert orders.orders == {}
    assert payments.payments == {}
    assert orders.delete_calls == 1
    assert isinstance(info.value.cause, RuntimeError)


async def test_sequential_keeps_transient_class_after_compensation(orders, payments, records):
    payments.fail_next(AutoReconnect("socket closed"))
    with pytest.raises(TransientStorageError):
        await SequentialWriterWithCompensation(orders, payments).write(*records)
    assert orders.orders == {}


async def test_sequential_order_failure_attempts_no_payment(orders, payments, records):
    orders.create_error = DuplicateKeyError("E11000 duplicate key", code=11000)
    with pytest.raises(PermanentStorageError):
        await SequentialWriterWithCompensation(orders, payments).write(*records)
    assert payments.create_calls == 0
    assert orders.delete_calls == 0


async def test_failed_compensation_is_surfaced_loudly(orders, payments, records):
    payments.fail_next(RuntimeError("payment rejected"))
    orders.delete_error = AutoReconnect("lost primary during cleanup")
    with pytest.raises(CompensationFailureError) as info:
        await SequentialWriterWithCompensation(orders, payments).write(*records)
    err = info.value
    assert err.order_id == records[0].id
    assert isinstance(err.cause, RuntimeError)
    assert isinstance(err.compensation_cause, AutoReconnect)
    # the orphan is known and still present
    assert list(orders.orders) == [records[0].id]
    assert payments.payments == {}


async def test_compensation_is_idempotent(orders, payments, records):
    writer = SequentialWriterWithCompensation(orders, payments)
    await orders.create(records[0])
    assert await writer.compensate(records[0].id) is True
    assert await writer.compensate(records[0].id) is False
    assert await writer.compensate(records[0].id) is False
    assert orders.orders == {}


async def test_sequential_mismatched_pair_is_removed(orders, payments, records):
    payments.amount_drift = 0.01
    with pytest.raises(PairingMismatchError) as info:
        await SequentialWriterWithCompensation(orders, payments).write(*records)
    assert info.value.details["fields"] == ["amount"]
    assert orders.orders == {}
    assert payments.payments == {}
    assert payments.delete_calls == 1
    assert orders.delete_calls == 1


async def test_mismatched_payment_that_cannot_be_removed_keeps_its_order(orders, payments, records):
    payments.amount_drift = 0.01
    payments.delete_error = AutoReconnect("lost primary during cleanup")
    with pytest.raises(CompensationFailureError) as info:
        await SequentialWriterWithCompensation(orders, payments).write(*records)
    order, payment = records
    assert info.value.details == {"order_id": order.id, "payment_id": payment.id}
    assert isinstance(info.value.cause, PairingMismatchError)
    # the payment is never left without its order
    assert orders.delete_calls == 0
    assert list(orders.orders) == [order.id]
    assert list(payments.payments) == [payment.id]


async def test_cancelled_payment_write_removes_order(orders, records):
    payments = StalledPaymentStore()
    task = asyncio.create_task(SequentialWriterWithCompensation(orders, payments).write(*records))
    await payments.started.wait()
    assert list(orders.orders) == [records[0].id]

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert orders.orders == {}
    assert orders.delete_calls == 1


async def test_cancelled_write_with_failed_cleanup_raises_alert(orders, records, capture_log):
    log = capture_log(writers)
    orders.delete_error = AutoReconnect("lost primary during cleanup")
    payments = StalledPaymentStore()
    task = asyncio.create_task(SequentialWriterWithCompensation(orders, payments).write(*records))
    await payments.started.wait()

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    alerts = log.find("order_compensation_failed")
    assert len(alerts) == 1
    level, fields = alerts[0]
    assert level == "critical"
    assert fields["order_id"] == records[0].id
    assert "AutoReconnect" in fields["compensation_cause"]
    assert list(orders.orders) == [records[0].id]


async def test_orphan_alert_reaches_sentry_when_configured(monkeypatch, records):
    import sentry_sdk

    captured = []
    monkeypatch.setenv("SENTRY_DSN", "https://key@sentry.example/1")
    writers.get_settings.cache_clear()
    monkeypatch.setattr(sentry_sdk, "capture_exception", captured.append)
    try:
        err = CompensationFailureError(records[0].id, compensation_cause=AutoReconnect("gone"))
        writers.alert_orphan(err)
    finally:
        writers.get_settings.cache_clear()
    assert captured == [err]


async def test_transactional_writes_both(orders, payments, transactions, records):
    result = await TransactionalWriter(orders, payments, transactions).write(*records)
    assert transactions.commits == 1
    assert orders.orders[result.order.id].payment_id == result.payment.id
    assert payments.payments[result.payment.id].order_id == result.order.id


async def test_transactional_failure_leaves_nothing(orders, payments, transactions, records):
    payments.fail_next(AutoReconnect("connection reset"))
    with pytest.raises(TransientStorageError):
        await TransactionalWriter(orders, payments, transactions).write(*records)
    assert transactions.aborts == 1
    assert orders.orders == {}
    assert payments.payments == {}
    # rollback is the engine's job, not a compensating delete
    assert orders.delete_calls == 0


async def test_transactional_mismatched_pair_is_rolled_back(orders, payments, transactions, records):
    payments.amount_drift = 0.01
    with pytest.raises(PairingMismatchError):
        await TransactionalWriter(orders, payments, transactions).write(*records)
    assert transactions.aborts == 1
    assert transactions.commits == 0
    assert orders.orders == {}
    assert payments.payments == {}
    assert payments.delete_calls == 0
