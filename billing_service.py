# billing_service.py
"""Billing status and expiry calculations.

Everything here is pure date arithmetic over one customer at a time. The
persisted ``Customer.status`` is only a cache of :func:`derive_status`; write
paths refresh it through :func:`sync_customer_status` so there is a single
derivation of the status rules.
"""
from dataclasses import dataclass
from datetime import date, datetime, timedelta

EXPIRING_WINDOW_DAYS = 3
LONG_OVERDUE_DAYS = 30
DEFAULT_CYCLE_DAYS = 30


@dataclass(frozen=True)
class BillingInfo:
    display_due: float
    days_until_billing: int
    status: str
    status_label: str
    is_billing_due_passed: bool

    def to_dict(self):
        return {
            'displayDue': self.display_due,
            'daysUntilBilling': self.days_until_billing,
            'status': self.status,
            'statusLabel': self.status_label,
            'isBillingDuePassed': self.is_billing_due_passed,
        }


def as_date(value):
    # Time of day never matters for billing
    if isinstance(value, datetime):
        return value.date()
    return value


def _plural(count, word):
    return f"{count} {word}" + ("s" if count > 1 else "")


def calculate_billing_info(expiry_date, total_due, current_status, monthly_price=0, today=None):
    """Derive the customer-facing status, label and payable amount.

    Before the billing date only debt from earlier cycles is shown, the
    current cycle's charge is hidden until the cycle actually bills.
    """
    today = as_date(today or date.today())
    days_until_billing = (as_date(expiry_date) - today).days

    if current_status == 'suspended':
        # Only an explicit reactivation clears a suspension
        status = 'suspended'
        status_label = 'Suspended'
        display_due = total_due
    elif days_until_billing < 0:
        overdue_days = -days_until_billing
        status = 'expired'
        if overdue_days <= LONG_OVERDUE_DAYS:
            status_label = f"Overdue {_plural(overdue_days, 'day')}"
        else:
            status_label = 'Long Overdue'
        display_due = total_due
    elif days_until_billing == 0:
        status = 'expiring'
        status_label = 'Due Today'
        display_due = total_due
    elif days_until_billing <= EXPIRING_WINDOW_DAYS:
        status = 'expiring'
        status_label = f"Due in {_plural(days_until_billing, 'day')}"
        display_due = total_due - monthly_price
    else:
        status = 'active'
        status_label = f"{days_until_billing} days left"
        display_due = total_due - monthly_price

    return BillingInfo(
        display_due=max(0, display_due),
        days_until_billing=days_until_billing,
        status=status,
        status_label=status_label,
        is_billing_due_passed=days_until_billing <= 0,
    )


def calculate_missed_cycles(expiry_date, billing_start_date=None, today=None, cycle_days=DEFAULT_CYCLE_DAYS):
    """Number of whole cycles that have elapsed unpaid since the expiry date."""
    today = as_date(today or date.today())
    expiry = as_date(expiry_date)
    if billing_start_date is not None and as_date(billing_start_date) > today:
        return 0
    if expiry >= today:
        return 0
    return (today - expiry).days // cycle_days


def calculate_new_expiry(current_expiry, validity_days, is_advance_payment=False, today=None):
    """Expiry date after paying for one more cycle.

    A lapsed customer paying normally restarts the cycle from today; an
    advance payment always extends from the current expiry.
    """
    today = as_date(today or date.today())
    expiry = as_date(current_expiry)
    base = today if expiry < today and not is_advance_payment else expiry
    return base + timedelta(days=validity_days)


def billing_info_for(customer, today=None):
    monthly_price = customer.package.monthly_price if customer.package else 0
    return calculate_billing_info(
        customer.expiry_date, customer.total_due, customer.status, monthly_price, today=today
    )


def derive_status(customer, today=None):
    return billing_info_for(customer, today=today).status


def sync_customer_status(customer, today=None):
    customer.status = derive_status(customer, today=today)
    return customer.status
