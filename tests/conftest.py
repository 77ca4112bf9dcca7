import os
from typing import Any

import pytest

os.environ.setdefault("MONGODB_URI", "mongodb://localhost:27017")
os.environ.setdefault("MONGODB_DB_NAME", "fintrack_test")
os.environ.setdefault("ORDER_TRANSACTION_MODE", "auto")

from app.services.order_payment import OrderPaymentCoordinator  # noqa: E402
from app.stores.memory import (  # noqa: E402
    MemoryOrderStore,
    MemoryPaymentStore,
    MemoryTransactionManager,
)


class FlakyOrderStore(MemoryOrderStore):
    """Memory order store whose writes and deletes can be made to fail."""

    def __init__(self) -> None:
        super().__init__()
        self.create_calls = 0
        self.delete_calls = 0
        self.create_error: Exception | None = None
        self.delete_error: Exception | None = None

    async def create(self, order, session=None):
        self.create_calls += 1
        if self.create_error is not None:
            raise self.create_error
        return await super().create(order, session=session)

    async def delete(self, order_id: str) -> bool:
        self.delete_calls += 1
        if self.delete_error is not None:
            raise self.delete_error
        return await super().delete(order_id)


class FlakyPaymentStore(MemoryPaymentStore):
    """Memory payment store that raises queued errors, one per create call."""

    def __init__(self) -> None:
        super().__init__()
        self.create_calls = 0
        self.delete_calls = 0
        self.errors: list[Exception] = []
        self.delete_error: Exception | None = None
        self.seen_order_ids: list[str] = []
        # added to the amount of every stored payment
        self.amount_drift = 0.0

    def fail_next(self, *errors: Exception) -> None:
        self.errors.extend(errors)

    async def create(self, payment, session=None):
        self.create_calls += 1
        self.seen_order_ids.append(payment.order_id)
        if self.errors:
            raise self.errors.pop(0)
        if self.amount_drift:
            payment = payment.model_copy(update={"amount": payment.amount + self.amount_drift})
        return await super().create(payment, session=session)

    async def delete(self, payment_id: str) -> bool:
        self.delete_calls += 1
        if self.delete_error is not None:
            raise self.delete_error
        return await super().delete(payment_id)


@pytest.fixture
def order_data() -> dict[str, Any]:
    return {"user": "user-1", "plan": "plan-1", "amount": 99, "currency": "USD"}


@pytest.fixture
def payment_data() -> dict[str, Any]:
    return {
        "userId": "user-1",
        "planId": "plan-1",
        "amount": 99,
        "currency": "USD",
        "paymentGateway": "manual",
        "purpose": "subscription",
        "paymentMethodDetails": "details",
    }


@pytest.fixture
def orders() -> FlakyOrderStore:
    return FlakyOrderStore()


@pytest.fixture
def payments() -> FlakyPaymentStore:
    return FlakyPaymentStore()


@pytest.fixture
def transactions() -> MemoryTransactionManager:
    return MemoryTransactionManager()


@pytest.fixture
def make_coordinator(orders, payments, transactions):
    def _make(**kwargs: Any) -> OrderPaymentCoordinator:
        kwargs.setdefault("retry_backoff_ms", 0)
        return OrderPaymentCoordinator(orders, payments, kwargs.pop("transactions", transactions), **kwargs)

    return _make


class RecordingLog:
    """Stands in for a module's structlog logger and keeps every event."""

    def __init__(self) -> None:
        self.events: list[tuple[str, str, dict[str, Any]]] = []

    def __getattr__(self, level: str):
        def record(event: str, **kw: Any) -> None:
            self.events.append((level, event, kw))

        return record

    def find(self, event: str) -> list[tuple[str, dict[str, Any]]]:
        return [(level, kw) for level, name, kw in self.events if name == event]


@pytest.fixture
def capture_log(monkeypatch):
    def _capture(module) -> RecordingLog:
        recorder = RecordingLog()
        monkeypatch.setattr(module, "log", recorder)
        return recorder

    return _capture
