"""Unique constraints of the in-memory stores inside and outside a transaction."""

import pytest
from pymongo.errors import DuplicateKeyError

from app.services.order_payment.records import OrderData, PaymentData, build_linked_records, new_object_id
from app.stores.memory import MemoryOrderStore, MemoryPaymentStore, MemorySession

pytestmark = pytest.mark.asyncio


@pytest.fixture
def records(order_data, payment_data):
    return build_linked_records(OrderData(**order_data), PaymentData(**payment_data))


@pytest.fixture
def session():
    s = MemorySession()
    s.in_transaction = True
    return s


async def test_second_payment_for_order_in_same_transaction_is_rejected(records, session):
    store = MemoryPaymentStore()
    _, payment = records
    await store.create(payment, session=session)
    with pytest.raises(DuplicateKeyError):
        await store.create(payment.model_copy(update={"id": new_object_id()}), session=session)
    session.commit()
    assert list(store.payments) == [payment.id]


async def test_duplicate_order_number_in_same_transaction_is_rejected(records, session):
    store = MemoryOrderStore()
    order, _ = records
    await store.create(order, session=session)
    with pytest.raises(DuplicateKeyError):
        await store.create(order.model_copy(update={"id": new_object_id()}), session=session)


async def test_aborted_writes_do_not_block_later_ones(records, session):
    store = MemoryPaymentStore()
    _, payment = records
    await store.create(payment, session=session)
    session.abort()
    await store.create(payment)
    assert list(store.payments) == [payment.id]


async def test_committed_payment_blocks_another_for_same_order(records):
    store = MemoryPaymentStore()
    _, payment = records
    await store.create(payment)
    with pytest.raises(DuplicateKeyError):
        await store.create(payment.model_copy(update={"id": new_object_id()}))
    assert await store.delete(payment.id) is True
    assert await store.delete(payment.id) is False
