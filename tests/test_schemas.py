import pytest

from errors import ValidationError
from schemas import PackageChangeSubmission, PaymentInput, parse_payload


def test_payment_input_strips_transaction_id():
    data = parse_payload(PaymentInput, customer_id='7', amount='250.5', method='bkash', transaction_id=' TX99 ')

    assert data.customer_id == 7
    assert data.amount == 250.5
    assert data.transaction_id == 'TX99'


def test_blank_transaction_id_is_dropped_for_cash():
    data = parse_payload(PaymentInput, customer_id=1, amount=100, method='cash', transaction_id='   ')
    assert data.transaction_id is None


@pytest.mark.parametrize('amount', [float('nan'), float('inf'), float('-inf')])
def test_non_finite_amounts_are_rejected(amount):
    with pytest.raises(ValidationError) as excinfo:
        parse_payload(PaymentInput, customer_id=1, amount=amount, method='cash')
    assert excinfo.value.message.startswith('amount: ')


def test_errors_name_every_bad_field():
    with pytest.raises(ValidationError) as excinfo:
        parse_payload(
            PackageChangeSubmission,
            customer_id=None, current_package_id=1, requested_package_id='x', user_id='', password='pw',
        )
    message = excinfo.value.message
    assert 'customer_id: ' in message
    assert 'requested_package_id: ' in message
    assert 'user_id: ' in message
    assert 'current_package_id' not in message
