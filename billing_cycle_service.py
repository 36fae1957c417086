# billing_cycle_service.py
import logging
from dataclasses import dataclass, field
from datetime import date

from sqlalchemy.exc import IntegrityError

from billing_service import as_date
from models import db, BillingRecord, Customer

logger = logging.getLogger(__name__)


@dataclass
class BillingRunResult:
    processed: int = 0
    bills_generated: int = 0
    billing_records_created: int = 0
    errors: list = field(default_factory=list)

    @property
    def message(self):
        return (
            f"Processed {self.processed} customers, generated {self.bills_generated} bills, "
            f"created {self.billing_records_created} billing records"
        )

    def to_dict(self):
        return {
            'processed': self.processed,
            'billsGenerated': self.bills_generated,
            'billingRecordsCreated': self.billing_records_created,
            'errors': list(self.errors),
        }


def customers_due_for_billing(today):
    return db.session.execute(
        db.select(Customer)
        .where(Customer.expiry_date <= today, Customer.status != 'suspended')
        .order_by(Customer.expiry_date, Customer.id)
    ).scalars().all()


def cycle_already_billed(customer_id, billing_date):
    return db.session.execute(
        db.select(BillingRecord.id).filter_by(customer_id=customer_id, billing_date=billing_date)
    ).first() is not None


def _bill_customer(customer, today):
    """Stage the writes for one customer's cycle.

    Returns ``(record_created, bill_generated)`` or ``None`` when the
    customer cannot be billed at all.
    """
    package = customer.package
    if package is None:
        logger.info("Customer %s has no package assigned", customer.user_id)
        return None

    billing_date = customer.expiry_date
    days_overdue = (today - billing_date).days
    record_created = bill_generated = False
    if not cycle_already_billed(customer.id, billing_date) and days_overdue >= 0:
        db.session.add(BillingRecord(
            customer_id=customer.id,
            billing_date=billing_date,
            due_date=billing_date,
            amount=package.monthly_price,
            package_name=package.name,
            status='unpaid',
            amount_paid=0,
        ))
        record_created = True

        # The charge joins the balance only on the day the cycle bills
        if days_overdue == 0:
            db.session.execute(
                db.update(Customer)
                .where(Customer.id == customer.id)
                .values(total_due=Customer.total_due + package.monthly_price, status='expired')
            )
            bill_generated = True
            logger.info("Generated bill for %s: %s added to due", customer.user_id, package.monthly_price)

    if days_overdue > 0 and customer.status != 'expired':
        customer.status = 'expired'
        logger.info("Updated status to expired for %s", customer.user_id)

    return record_created, bill_generated


def generate_billing(today=None):
    """Bill every customer whose cycle has elapsed.

    Safe to re-run: a cycle is billed once per ``(customer, billing_date)``.
    Each customer is committed on its own so one failure does not abort the
    batch; failures are reported in ``errors``.
    """
    today = as_date(today or date.today())
    logger.info("Running billing generation for date: %s", today)

    customers = customers_due_for_billing(today)
    logger.info("Found %d customers with expired/expiring billing dates", len(customers))

    result = BillingRunResult()
    for customer in customers:
        user_id, customer_id, billing_date = customer.user_id, customer.id, customer.expiry_date
        try:
            outcome = _bill_customer(customer, today)
            db.session.commit()
        except IntegrityError as exc:
            db.session.rollback()
            if cycle_already_billed(customer_id, billing_date):
                # A concurrent run inserted the same cycle first
                logger.info("Billing record for %s already exists, skipping", user_id)
                result.processed += 1
            else:
                result.errors.append(f"{user_id}: {exc}")
                logger.exception("Integrity error processing customer %s", user_id)
            continue
        except Exception as exc:
            db.session.rollback()
            result.errors.append(f"{user_id}: {exc}")
            logger.exception("Error processing customer %s", user_id)
            continue

        if outcome is None:
            continue
        record_created, bill_generated = outcome
        result.billing_records_created += int(record_created)
        result.bills_generated += int(bill_generated)
        result.processed += 1

    logger.info("Billing generation completed: %s", result.to_dict())
    return result
