"""Input payloads and persisted records for paired order/payment creation."""

import secrets
from datetime import datetime, timezone
from typing import Any, Literal

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field, field_validator

OrderStatus = Literal["active", "inactive", "cancelled", "expired"]
PaymentStatus = Literal[
    "pending",
    "succeeded",
    "failed",
    "refunded",
    "partially_refunded",
    "requires_action",
    "canceled",
]

PAYMENT_PURPOSES = (
    "subscription",
    "subscription_initial",
    "subscription_renewal",
    "plan_upgrade",
    "plan_downgrade",
    "one_time_purchase",
    "service_fee",
    "manual_payment",
    "refund",
    "top_up",
)

# Fields that must agree between an order and its payment
PAIRED_FIELDS = (("user", "user_id"), ("plan", "plan_id"), ("amount", "amount"), ("currency", "currency"))


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_object_id() -> str:
    return str(ObjectId())


def generate_order_number(prefix: str = "ORD") -> str:
    """Human-facing order number, e.g. ORD-20260101-9F2C41AB. Never reused across attempts."""
    return f"{prefix}-{utcnow():%Y%m%d}-{secrets.token_hex(4).upper()}"


def _as_ref(v: Any) -> Any:
    # ObjectId / PydanticObjectId references arrive from controllers and documents
    if v is None or isinstance(v, str):
        return v
    return str(v)


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True, extra="ignore")


class OrderData(_Payload):
    user: str = Field(min_length=1)
    plan: str = Field(min_length=1)
    amount: float = Field(ge=0, allow_inf_nan=False)
    currency: str = Field(pattern=r"^[A-Za-z]{3}$")

    normalize_refs = field_validator("user", "plan", mode="before")(_as_ref)

    @field_validator("currency")
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.upper()


class PaymentData(_Payload):
    user_id: str = Field(alias="userId", min_length=1)
    plan_id: str = Field(alias="planId", min_length=1)
    amount: float = Field(ge=0, allow_inf_nan=False)
    currency: str = Field(pattern=r"^[A-Za-z]{3}$")
    payment_gateway: str = Field(alias="paymentGateway", min_length=2, max_length=64)
    purpose: str
    payment_method_details: str | dict[str, Any] = Field(alias="paymentMethodDetails")
    gateway_transaction_id: str | None = Field(default=None, alias="gatewayTransactionId", max_length=128)
    processed_at: datetime | None = Field(default=None, alias="processedAt")

    normalize_refs = field_validator("user_id", "plan_id", mode="before")(_as_ref)

    @field_validator("currency")
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.upper()

    @field_validator("payment_gateway")
    @classmethod
    def lower_gateway(cls, v: str) -> str:
        return v.lower()

    @field_validator("purpose")
    @classmethod
    def known_purpose(cls, v: str) -> str:
        if v not in PAYMENT_PURPOSES:
            raise ValueError(f"purpose must be one of: {', '.join(PAYMENT_PURPOSES)}")
        return v

    @field_validator("payment_method_details")
    @classmethod
    def non_empty_details(cls, v: str | dict[str, Any]) -> str | dict[str, Any]:
        if not v:
            raise ValueError("payment method details are required")
        return v


def pairing_mismatches(order: OrderData, payment: PaymentData) -> list[str]:
    """Names of order fields whose value the payment contradicts."""
    return [o for o, p in PAIRED_FIELDS if getattr(order, o) != getattr(payment, p)]


class _Record(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class OrderRecord(_Record):
    user: str
    plan: str
    amount: float
    currency: str
    status: OrderStatus = "active"
    order_number: str
    payment_id: str

    normalize_refs = field_validator("id", "payment_id", mode="before")(_as_ref)


class PaymentRecord(_Record):
    user_id: str
    plan_id: str
    order_id: str
    amount: float
    currency: str
    payment_gateway: str
    purpose: str
    gateway_transaction_id: str | None = None
    payment_method_details: str | dict[str, Any] | None = None
    status: PaymentStatus = "pending"
    processed_at: datetime | None = None

    normalize_refs = field_validator("id", "order_id", mode="before")(_as_ref)


def build_linked_records(
    order: OrderData,
    payment: PaymentData,
    order_number_prefix: str = "ORD",
) -> tuple[OrderRecord, PaymentRecord]:
    """
    Fresh, cross-referenced records for one write attempt.
    Both ids are assigned up front so each document can carry the other's reference.
    """
    order_id = new_object_id()
    payment_id = new_object_id()
    now = utcnow()
    order_record = OrderRecord(
        id=order_id,
        user=order.user,
        plan=order.plan,
        amount=order.amount,
        currency=order.currency,
        order_number=generate_order_number(order_number_prefix),
        payment_id=payment_id,
        created_at=now,
        updated_at=now,
    )
    payment_record = PaymentRecord(
        id=payment_id,
        order_id=order_id,
        created_at=now,
        updated_at=now,
        **payment.model_dump(),
    )
    return order_record, payment_record
