"""MongoDB (Beanie/Motor) implementations of the order and payment stores."""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from beanie import PydanticObjectId
from motor.motor_asyncio import AsyncIOMotorClient

from app.models.order import Order
from app.models.payment import Payment
from app.services.order_payment.records import OrderRecord, PaymentRecord
from app.stores.base import OrderStore, PaymentStore, TransactionManager


class MongoOrderStore(OrderStore):
    async def create(self, order: OrderRecord, session: Any = None) -> OrderRecord:
        doc = Order(
            **order.model_dump(exclude={"id", "payment_id"}),
            id=PydanticObjectId(order.id),
            payment_id=PydanticObjectId(order.payment_id),
        )
        await doc.insert(session=session)
        return OrderRecord.model_validate(doc)

    async def get(self, order_id: str) -> OrderRecord | None:
        doc = await Order.get(PydanticObjectId(order_id))
        return OrderRecord.model_validate(doc) if doc else None

    async def delete(self, order_id: str) -> bool:
        result = await Order.find_one(Order.id == PydanticObjectId(order_id)).delete()
        return bool(result and result.deleted_count)


class MongoPaymentStore(PaymentStore):
    async def create(self, payment: PaymentRecord, session: Any = None) -> PaymentRecord:
        doc = Payment(
            **payment.model_dump(exclude={"id", "order_id"}),
            id=PydanticObjectId(payment.id),
            order_id=PydanticObjectId(payment.order_id),
        )
        await doc.insert(session=session)
        return PaymentRecord.model_validate(doc)

    async def get(self, payment_id: str) -> PaymentRecord | None:
        doc = await Payment.get(PydanticObjectId(payment_id))
        return PaymentRecord.model_validate(doc) if doc else None

    async def find_by_order(self, order_id: str) -> list[PaymentRecord]:
        docs = await Payment.find(Payment.order_id == PydanticObjectId(order_id)).to_list()
        return [PaymentRecord.model_validate(d) for d in docs]

    async def delete(self, payment_id: str) -> bool:
        result = await Payment.find_one(Payment.id == PydanticObjectId(payment_id)).delete()
        return bool(result and result.deleted_count)


class MongoTransactionManager(TransactionManager):
    """Multi-document transactions on a replica set or sharded cluster."""

    def __init__(self, client: AsyncIOMotorClient | None = None) -> None:
        self._client = client

    @property
    def client(self) -> AsyncIOMotorClient:
        if self._client is None:
            from app.db.init import get_client
            self._client = get_client()
        return self._client

    async def supports_transactions(self) -> bool:
        # Standalone servers report neither a replica set name nor mongos
        hello = await self.client.admin.command("hello")
        return bool(hello.get("setName")) or hello.get("msg") == "isdbgrid"

    @asynccontextmanager
    async def transaction(self, session: Any = None) -> AsyncIterator[Any]:
        if session is not None and session.in_transaction:
            yield session
            return
        if session is not None:
            async with session.start_transaction():
                yield session
            return
        async with await self.client.start_session() as own_session:
            async with own_session.start_transaction():
                yield own_session
