"""
In-process stores for tests and local development.

Writes made inside a memory transaction are staged on the session and only become
visible on commit, so readers never observe a half-written pair. Unique checks see
both committed records and those staged on the writing session.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable

from pymongo.errors import DuplicateKeyError

from app.services.order_payment.records import OrderRecord, PaymentRecord
from app.stores.base import OrderStore, PaymentStore, TransactionManager, TransactionsUnsupportedError


class MemorySession:
    def __init__(self) -> None:
        self.in_transaction = False
        self._pending: list[tuple[Callable[[], None], Any]] = []

    def stage(self, apply: Callable[[], None], record: Any = None) -> None:
        self._pending.append((apply, record))

    def staged(self, record_type: type) -> list[Any]:
        return [record for _, record in self._pending if isinstance(record, record_type)]

    def commit(self) -> None:
        pending, self._pending = self._pending, []
        for apply, _ in pending:
            apply()

    def abort(self) -> None:
        self._pending = []


def _write(session: MemorySession | None, apply: Callable[[], None], record: Any) -> None:
    if session is not None and session.in_transaction:
        session.stage(apply, record)
    else:
        apply()


def _visible(committed: dict[str, Any], session: MemorySession | None, record_type: type) -> list[Any]:
    records = list(committed.values())
    if session is not None and session.in_transaction:
        records += session.staged(record_type)
    return records


class MemoryOrderStore(OrderStore):
    def __init__(self) -> None:
        self.orders: dict[str, OrderRecord] = {}

    async def create(self, order: OrderRecord, session: MemorySession | None = None) -> OrderRecord:
        visible = _visible(self.orders, session, OrderRecord)
        if any(o.id == order.id for o in visible):
            raise DuplicateKeyError(f"duplicate order id {order.id}", code=11000)
        if any(o.order_number == order.order_number for o in visible):
            raise DuplicateKeyError(f"duplicate order number {order.order_number}", code=11000)
        stored = order.model_copy(deep=True)
        _write(session, lambda: self.orders.__setitem__(stored.id, stored), stored)
        return stored

    async def get(self, order_id: str) -> OrderRecord | None:
        return self.orders.get(order_id)

    async def delete(self, order_id: str) -> bool:
        return self.orders.pop(order_id, None) is not None


class MemoryPaymentStore(PaymentStore):
    def __init__(self) -> None:
        self.payments: dict[str, PaymentRecord] = {}

    async def create(self, payment: PaymentRecord, session: MemorySession | None = None) -> PaymentRecord:
        visible = _visible(self.payments, session, PaymentRecord)
        if any(p.id == payment.id for p in visible):
            raise DuplicateKeyError(f"duplicate payment id {payment.id}", code=11000)
        # unique index on order_id
        if any(p.order_id == payment.order_id for p in visible):
            raise DuplicateKeyError(f"order {payment.order_id} already has a payment", code=11000)
        stored = payment.model_copy(deep=True)
        _write(session, lambda: self.payments.__setitem__(stored.id, stored), stored)
        return stored

    async def get(self, payment_id: str) -> PaymentRecord | None:
        return self.payments.get(payment_id)

    async def find_by_order(self, order_id: str) -> list[PaymentRecord]:
        return [p for p in self.payments.values() if p.order_id == order_id]

    async def delete(self, payment_id: str) -> bool:
        return self.payments.pop(payment_id, None) is not None


class MemoryTransactionManager(TransactionManager):
    def __init__(self, supported: bool = True) -> None:
        self.supported = supported
        self.commits = 0
        self.aborts = 0

    async def supports_transactions(self) -> bool:
        return self.supported

    @asynccontextmanager
    async def transaction(self, session: MemorySession | None = None) -> AsyncIterator[Any]:
        if not self.supported:
            raise TransactionsUnsupportedError("memory store configured without transactions")
        if session is not None and session.in_transaction:
            yield session
            return
        txn = session or MemorySession()
        txn.in_transaction = True
        try:
            yield txn
        except BaseException:
            txn.abort()
            self.aborts += 1
            raise
        else:
            txn.commit()
            self.commits += 1
        finally:
            txn.in_transaction = False
