from pydantic import BaseModel

from app.services.order_payment.errors import PairingMismatchError
from app.services.order_payment.records import OrderRecord, PaymentRecord


class OrderPaymentResult(BaseModel):
    order: OrderRecord
    payment: PaymentRecord


class ResultAssembler:
    """Package a persisted order and payment, refusing pairs that disagree."""

    def assemble(self, order: OrderRecord, payment: PaymentRecord) -> OrderPaymentResult:
        mismatched = [f for f in ("amount", "currency") if getattr(order, f) != getattr(payment, f)]
        if payment.order_id != order.id or order.payment_id != payment.id:
            mismatched.append("link")
        if mismatched:
            raise PairingMismatchError(
                details={"order_id": order.id, "payment_id": payment.id, "fields": mismatched},
            )
        return OrderPaymentResult(order=order, payment=payment)
