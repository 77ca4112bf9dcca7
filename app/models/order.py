from datetime import datetime

from beanie import Document, Indexed, PydanticObjectId
from pydantic import Field


class Order(Document):
    """Billing intent for a plan; created together with its Payment."""
    user: str
    plan: str
    amount: float
    currency: str
    status: str = "active"  # active | inactive | cancelled | expired
    order_number: Indexed(str, unique=True)
    payment_id: PydanticObjectId | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "orders"
        indexes = [
            [("user", 1), ("created_at", -1)],
            [("payment_id", 1)],
        ]
