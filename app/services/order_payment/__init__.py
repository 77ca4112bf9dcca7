# Paired order + payment creation
from app.services.order_payment.assembler import OrderPaymentResult, ResultAssembler
from app.services.order_payment.coordinator import (
    OrderPaymentCoordinator,
    create_order_with_payment,
    get_coordinator,
)
from app.services.order_payment.errors import (
    PUBLIC_MESSAGE,
    CompensationFailureError,
    OrderPaymentError,
    PairingMismatchError,
    PermanentStorageError,
    TransientStorageError,
    ValidationError,
    classify_error,
)
from app.services.order_payment.records import OrderData, OrderRecord, PaymentData, PaymentRecord
from app.services.order_payment.strategy import Strategy, StrategySelector
from app.services.order_payment.writers import SequentialWriterWithCompensation, TransactionalWriter

__all__ = [
    "PUBLIC_MESSAGE",
    "CompensationFailureError",
    "OrderData",
    "OrderPaymentCoordinator",
    "OrderPaymentError",
    "OrderPaymentResult",
    "OrderRecord",
    "PairingMismatchError",
    "PaymentData",
    "PaymentRecord",
    "PermanentStorageError",
    "ResultAssembler",
    "SequentialWriterWithCompensation",
    "Strategy",
    "StrategySelector",
    "TransactionalWriter",
    "TransientStorageError",
    "ValidationError",
    "classify_error",
    "create_order_with_payment",
    "get_coordinator",
]
