from datetime import datetime
from typing import Any

from beanie import Document, PydanticObjectId
from pydantic import Field
from pymongo import IndexModel


class Payment(Document):
    """Monetary transaction backing exactly one Order."""
    user_id: str
    plan_id: str
    order_id: PydanticObjectId
    amount: float
    currency: str
    payment_gateway: str  # manual, stripe, paypal, sslcommerz
    purpose: str
    gateway_transaction_id: str | None = None
    payment_method_details: str | dict[str, Any] | None = None
    # pending | succeeded | failed | refunded | partially_refunded | requires_action | canceled
    status: str = "pending"
    processed_at: datetime | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "payments"
        indexes = [
            IndexModel([("order_id", 1)], unique=True),  # at most one payment per order
            [("user_id", 1), ("created_at", -1)],
            [("status", 1)],
        ]
