import pytest

from conftest import TODAY, days
from errors import NotFoundError, ValidationError
from models import db, BillingRecord, Customer, Payment
from payment_service import record_payment, reverse_payment


def _bill(customer, billing_date, amount=600):
    record = BillingRecord(
        customer_id=customer.id, billing_date=billing_date, due_date=billing_date,
        amount=amount, status='unpaid', amount_paid=0,
    )
    db.session.add(record)
    db.session.commit()
    return record


def test_full_payment_clears_due_and_renews(make_customer):
    customer = make_customer(expiry_date=TODAY - days(5), total_due=600, status='expired')
    record = _bill(customer, TODAY - days(5))

    payment = record_payment(customer.id, 600, 'cash', today=TODAY)

    assert payment.remaining_due == 0
    customer = db.session.get(Customer, customer.id)
    assert customer.total_due == 0
    assert customer.expiry_date == TODAY + days(25)
    assert customer.status == 'active'
    record = db.session.get(BillingRecord, record.id)
    assert record.status == 'paid'
    assert record.amount_paid == 600
    assert record.paid_date == TODAY


def test_partial_payment_settles_oldest_cycle_first(make_customer):
    customer = make_customer(expiry_date=TODAY - days(2), total_due=1200, status='expired')
    older = _bill(customer, TODAY - days(32))
    newer = _bill(customer, TODAY - days(2))

    payment = record_payment(customer.id, 900, 'bkash', transaction_id='8N7A6D5C4B', today=TODAY)

    assert payment.remaining_due == 300
    assert payment.transaction_id == '8N7A6D5C4B'
    customer = db.session.get(Customer, customer.id)
    assert customer.total_due == 300
    assert customer.expiry_date == TODAY - days(2)
    assert customer.status == 'expired'
    assert db.session.get(BillingRecord, older.id).status == 'paid'
    newer = db.session.get(BillingRecord, newer.id)
    assert newer.status == 'partial'
    assert newer.amount_paid == 300


def test_overpayment_floors_due_at_zero(make_customer):
    customer = make_customer(expiry_date=TODAY + days(5), total_due=100)

    payment = record_payment(customer.id, 500, 'cash', today=TODAY)

    assert payment.remaining_due == 0
    assert db.session.get(Customer, customer.id).total_due == 0


@pytest.mark.parametrize('method', ['bkash', 'bank_transfer'])
def test_electronic_payment_requires_transaction_id(make_customer, method):
    customer = make_customer(total_due=600)
    with pytest.raises(ValidationError):
        record_payment(customer.id, 600, method, transaction_id='  ', today=TODAY)
    assert Payment.query.count() == 0


@pytest.mark.parametrize('amount', [0, -10, 1000000, 'abc', None, float('nan'), float('inf')])
def test_rejects_invalid_amount(make_customer, amount):
    customer = make_customer(total_due=600)
    with pytest.raises(ValidationError):
        record_payment(customer.id, amount, 'cash', today=TODAY)


def test_rejects_unknown_method(make_customer):
    customer = make_customer(total_due=600)
    with pytest.raises(ValidationError):
        record_payment(customer.id, 100, 'cheque', today=TODAY)


def test_unknown_customer(app):
    with pytest.raises(NotFoundError):
        record_payment(404, 100, 'cash', today=TODAY)


def test_reverse_payment_restores_due(make_customer):
    customer = make_customer(expiry_date=TODAY + days(5), total_due=1000)
    payment = record_payment(customer.id, 400, 'cash', today=TODAY)

    reverse_payment(payment.id)

    assert db.session.get(Customer, customer.id).total_due == 1000
    assert Payment.query.count() == 0


def test_reverse_unknown_payment(app):
    with pytest.raises(NotFoundError):
        reverse_payment(77)


@pytest.mark.parametrize('total_due, method', [(0, 'cash'), (600, 'due')])
def test_payment_covering_zero_or_full_balance_renews(make_customer, total_due, method):
    customer = make_customer(expiry_date=TODAY + days(2), total_due=total_due)

    payment = record_payment(customer.id, 600, method, today=TODAY)

    assert payment.remaining_due == 0
    assert payment.previous_expiry_date == TODAY + days(2)
    customer = db.session.get(Customer, customer.id)
    assert customer.total_due == 0
    assert customer.expiry_date == TODAY + days(32)
    assert customer.status == 'active'


def test_reverse_payment_undoes_renewal_and_billing_records(make_customer):
    customer = make_customer(expiry_date=TODAY + days(2), total_due=600)
    record = _bill(customer, TODAY - days(28))
    payment = record_payment(customer.id, 600, 'cash', today=TODAY)
    assert db.session.get(Customer, customer.id).expiry_date == TODAY + days(32)

    reverse_payment(payment.id, today=TODAY)

    customer = db.session.get(Customer, customer.id)
    assert customer.total_due == 600
    assert customer.expiry_date == TODAY + days(2)
    assert customer.status == 'expiring'
    record = db.session.get(BillingRecord, record.id)
    assert record.status == 'unpaid'
    assert record.amount_paid == 0
    assert record.paid_date is None


def test_reverse_overpayment_restores_only_applied_amount(make_customer):
    customer = make_customer(expiry_date=TODAY + days(5), total_due=600)
    record = _bill(customer, TODAY - days(25))
    payment = record_payment(customer.id, 1000, 'cash', today=TODAY)
    assert payment.amount_applied == 600

    reverse_payment(payment.id, today=TODAY)

    customer = db.session.get(Customer, customer.id)
    assert customer.total_due == 600
    assert customer.expiry_date == TODAY + days(5)
    assert db.session.get(BillingRecord, record.id).amount_paid == 0


def test_reverse_partial_payment_keeps_expiry(make_customer):
    customer = make_customer(expiry_date=TODAY - days(3), total_due=1200, status='expired')
    older = _bill(customer, TODAY - days(33))
    _bill(customer, TODAY - days(3))
    payment = record_payment(customer.id, 700, 'cash', today=TODAY)

    reverse_payment(payment.id, today=TODAY)

    customer = db.session.get(Customer, customer.id)
    assert customer.total_due == 1200
    assert customer.expiry_date == TODAY - days(3)
    assert customer.status == 'expired'
    older = db.session.get(BillingRecord, older.id)
    assert older.amount_paid == 0
    assert older.status == 'unpaid'
