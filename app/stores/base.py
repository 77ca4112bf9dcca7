from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from app.services.order_payment.records import OrderRecord, PaymentRecord


class TransactionsUnsupportedError(Exception):
    """The storage engine cannot run multi-document transactions."""


class OrderStore(ABC):
    @abstractmethod
    async def create(self, order: "OrderRecord", session: Any = None) -> "OrderRecord":
        """Insert a new order; inside ``session``'s transaction when one is given."""
        ...

    @abstractmethod
    async def get(self, order_id: str) -> "OrderRecord | None":
        ...

    @abstractmethod
    async def delete(self, order_id: str) -> bool:
        """Delete an order. Missing ids are not an error; returns whether a document was removed."""
        ...


class PaymentStore(ABC):
    @abstractmethod
    async def create(self, payment: "PaymentRecord", session: Any = None) -> "PaymentRecord":
        """Insert a new payment; inside ``session``'s transaction when one is given."""
        ...

    @abstractmethod
    async def get(self, payment_id: str) -> "PaymentRecord | None":
        ...

    @abstractmethod
    async def find_by_order(self, order_id: str) -> list["PaymentRecord"]:
        """Payments referencing an order (zero or one when the pairing invariant holds)."""
        ...

    @abstractmethod
    async def delete(self, payment_id: str) -> bool:
        """Delete a payment. Missing ids are not an error; returns whether a document was removed."""
        ...


class TransactionManager(ABC):
    @abstractmethod
    async def supports_transactions(self) -> bool:
        """Ask the engine whether multi-document transactions are available."""
        ...

    @abstractmethod
    def transaction(self, session: Any = None) -> AbstractAsyncContextManager[Any]:
        """
        Unit of work yielding a session handle for store calls.
        Commits on clean exit and aborts on error. A ``session`` already inside a
        transaction is joined as-is and left for its owner to commit.
        """
        ...
