import pytest

from app.services.order_payment.assembler import ResultAssembler
from app.services.order_payment.errors import PairingMismatchError, PermanentStorageError
from app.services.order_payment.records import OrderData, PaymentData, build_linked_records


@pytest.fixture
def pair(order_data, payment_data):
    return build_linked_records(OrderData(**order_data), PaymentData(**payment_data))


def test_assembles_matching_pair(pair):
    result = ResultAssembler().assemble(*pair)
    assert result.order is pair[0]
    assert result.payment is pair[1]


@pytest.mark.parametrize("update", [{"amount": 98.0}, {"currency": "EUR"}])
def test_rejects_amount_or_currency_mismatch(pair, update):
    order, payment = pair
    with pytest.raises(PermanentStorageError) as info:
        ResultAssembler().assemble(order, payment.model_copy(update=update))
    assert isinstance(info.value, PairingMismatchError)
    assert info.value.details["fields"] == list(update)


def test_rejects_unlinked_pair(order_data, payment_data, pair):
    _, other_payment = build_linked_records(OrderData(**order_data), PaymentData(**payment_data))
    with pytest.raises(PairingMismatchError) as info:
        ResultAssembler().assemble(pair[0], other_payment)
    assert info.value.details["fields"] == ["link"]
