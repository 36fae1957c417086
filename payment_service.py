# payment_service.py
import logging
from datetime import date

from billing_service import as_date, calculate_new_expiry, sync_customer_status
from errors import NotFoundError
from models import db, BillingRecord, Customer, Payment
from schemas import PaymentInput, parse_payload

logger = logging.getLogger(__name__)


def _apply_to_billing_records(customer_id, amount, today):
    # Oldest open cycle is settled first
    records = db.session.execute(
        db.select(BillingRecord)
        .where(BillingRecord.customer_id == customer_id, BillingRecord.status != 'paid')
        .order_by(BillingRecord.billing_date)
    ).scalars().all()
    remaining = amount
    for record in records:
        if remaining <= 0:
            break
        applied = min(remaining, record.amount - record.amount_paid)
        record.amount_paid += applied
        remaining -= applied
        if record.amount_paid >= record.amount:
            record.status = 'paid'
            record.paid_date = today
        else:
            record.status = 'partial'


def _unapply_from_billing_records(customer_id, amount):
    # Undo in the reverse order of _apply_to_billing_records
    records = db.session.execute(
        db.select(BillingRecord)
        .where(BillingRecord.customer_id == customer_id, BillingRecord.amount_paid > 0)
        .order_by(BillingRecord.billing_date.desc())
    ).scalars().all()
    remaining = amount
    for record in records:
        if remaining <= 0:
            break
        taken = min(remaining, record.amount_paid)
        record.amount_paid -= taken
        remaining -= taken
        record.status = 'partial' if record.amount_paid > 0 else 'unpaid'
        record.paid_date = None


def record_payment(customer_id, amount, method, transaction_id=None, notes=None, today=None):
    """Record a payment against the customer's balance.

    A payment that clears the whole balance also renews the package for one
    more cycle.
    """
    today = as_date(today or date.today())
    data = parse_payload(
        PaymentInput,
        customer_id=customer_id, amount=amount, method=method,
        transaction_id=transaction_id, notes=notes,
    )

    customer = db.session.get(Customer, data.customer_id)
    if customer is None:
        raise NotFoundError("Customer not found")

    previous_due = customer.total_due
    payment = Payment(
        customer_id=customer.id,
        amount=data.amount,
        amount_applied=min(data.amount, previous_due),
        method=data.method,
        transaction_id=data.transaction_id,
        notes=data.notes,
        remaining_due=max(0, previous_due - data.amount),
    )
    db.session.add(payment)

    new_due = Customer.total_due - data.amount
    db.session.execute(
        db.update(Customer)
        .where(Customer.id == customer.id)
        .values(total_due=db.case((new_due < 0, 0), else_=new_due)),
        execution_options={'synchronize_session': False},
    )
    _apply_to_billing_records(customer.id, payment.amount_applied, today)
    db.session.refresh(customer)

    if data.amount >= previous_due and customer.package is not None:
        payment.previous_expiry_date = customer.expiry_date
        customer.expiry_date = calculate_new_expiry(
            customer.expiry_date, customer.package.validity_days, is_advance_payment=True, today=today
        )
        sync_customer_status(customer, today=today)

    db.session.commit()
    logger.info("Recorded %s payment of %s for %s, remaining due %s",
                data.method, data.amount, customer.user_id, payment.remaining_due)
    return payment


def reverse_payment(payment_id, today=None):
    """Delete a payment and undo its effect on balance, bills and expiry."""
    today = as_date(today or date.today())
    payment = db.session.get(Payment, payment_id)
    if payment is None:
        raise NotFoundError("Payment not found")

    customer = payment.customer
    amount = payment.amount
    db.session.execute(
        db.update(Customer)
        .where(Customer.id == customer.id)
        .values(total_due=Customer.total_due + payment.amount_applied),
        execution_options={'synchronize_session': False},
    )
    _unapply_from_billing_records(customer.id, payment.amount_applied)
    db.session.refresh(customer)

    if payment.previous_expiry_date is not None:
        customer.expiry_date = payment.previous_expiry_date
        sync_customer_status(customer, today=today)

    db.session.delete(payment)
    db.session.commit()
    logger.info("Reversed payment %s of %s for %s", payment_id, amount, customer.user_id)
    return customer
