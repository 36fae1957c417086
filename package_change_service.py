# package_change_service.py
import logging
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy.exc import IntegrityError

from billing_service import as_date, sync_customer_status
from errors import AuthenticationError, NotFoundError, StateConflictError, ValidationError
from models import db, Customer, Package, PackageChangeRequest, utcnow
from schemas import PackageChangeDecision, PackageChangeSubmission, parse_payload

logger = logging.getLogger(__name__)

PENDING_REQUEST_EXISTS = "You already have a pending package change request"


@dataclass(frozen=True)
class Proration:
    days_remaining: int
    prorated_credit: int
    prorated_charge: int

    @property
    def net_charge(self):
        return self.prorated_charge - self.prorated_credit


def round_half_up(value):
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return int(value.quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def daily_rate(package):
    # Decimal keeps exact halves exact, e.g. 35 / 100 * 10 == 3.5
    return Decimal(str(package.monthly_price)) / Decimal(package.validity_days)


def calculate_proration(expiry_date, current_package, requested_package, today=None):
    """Credit for the unused days of the current package and the charge for
    the same days on the requested one."""
    today = as_date(today or date.today())
    days_remaining = max(0, (as_date(expiry_date) - today).days)
    return Proration(
        days_remaining=days_remaining,
        prorated_credit=round_half_up(days_remaining * daily_rate(current_package)),
        prorated_charge=round_half_up(days_remaining * daily_rate(requested_package)),
    )


def _has_pending_request(customer_id):
    return db.session.execute(
        db.select(PackageChangeRequest.id)
        .filter_by(customer_id=customer_id, status='pending')
        .limit(1)
    ).first() is not None


def submit_request(customer_id, current_package_id, requested_package_id, user_id, password, today=None):
    data = parse_payload(
        PackageChangeSubmission,
        customer_id=customer_id, current_package_id=current_package_id,
        requested_package_id=requested_package_id, user_id=user_id, password=password,
    )

    customer = db.session.get(Customer, data.customer_id)
    if customer is None:
        raise NotFoundError("Customer not found")
    if customer.user_id != data.user_id or not customer.check_password(data.password):
        raise AuthenticationError("Invalid user ID or password")

    # Credit is only ever given for the package the customer actually owns
    if data.current_package_id != customer.package_id:
        raise ValidationError("Current package does not match the customer's package")
    if data.requested_package_id == data.current_package_id:
        raise ValidationError("Requested package is the same as the current package")

    if _has_pending_request(customer.id):
        raise StateConflictError(PENDING_REQUEST_EXISTS)

    current_package = db.session.get(Package, data.current_package_id)
    requested_package = db.session.get(Package, data.requested_package_id)
    if current_package is None or requested_package is None:
        raise NotFoundError("Package not found")

    proration = calculate_proration(customer.expiry_date, current_package, requested_package, today=today)
    request = PackageChangeRequest(
        customer_id=customer.id,
        current_package_id=current_package.id,
        requested_package_id=requested_package.id,
        prorated_credit=proration.prorated_credit,
        prorated_charge=proration.prorated_charge,
        status='pending',
    )
    db.session.add(request)
    try:
        db.session.commit()
    except IntegrityError:
        # Lost the race against another submission for the same customer
        db.session.rollback()
        raise StateConflictError(PENDING_REQUEST_EXISTS)

    logger.info(
        "Customer %s requested package change from %s to %s (credit %s, charge %s)",
        customer.user_id, current_package.name, requested_package.name,
        proration.prorated_credit, proration.prorated_charge,
    )
    return request


def list_requests(customer_id, limit=10):
    if not customer_id:
        raise ValidationError("Missing customer_id")
    return db.session.execute(
        db.select(PackageChangeRequest)
        .filter_by(customer_id=customer_id)
        .order_by(PackageChangeRequest.created_at.desc(), PackageChangeRequest.id.desc())
        .limit(limit)
    ).scalars().all()


def _get_pending_request(request_id):
    request = db.session.get(PackageChangeRequest, request_id)
    if request is None:
        raise NotFoundError("Request not found")
    if request.status != 'pending':
        raise StateConflictError("Request already processed")
    return request


def _close_request(request_id, status, admin_notes):
    """Move a pending request to a terminal state.

    The ``status = 'pending'`` condition makes the transition single-fire even
    when two admins act on the same request at once.
    """
    claimed = db.session.execute(
        db.update(PackageChangeRequest)
        .where(PackageChangeRequest.id == request_id, PackageChangeRequest.status == 'pending')
        .values(status=status, admin_notes=admin_notes or None, processed_at=utcnow())
    ).rowcount
    if claimed != 1:
        db.session.rollback()
        raise StateConflictError("Request already processed")


def approve_request(request_id, admin_notes=None, today=None):
    today = as_date(today or date.today())
    data = parse_payload(PackageChangeDecision, request_id=request_id, admin_notes=admin_notes)
    request = _get_pending_request(data.request_id)
    customer = request.customer
    if customer is None:
        raise NotFoundError("Customer not found")
    if customer.package_id != request.current_package_id:
        raise StateConflictError("Customer's package has changed since the request was made")
    new_package = request.requested_package

    _close_request(request.id, 'approved', data.admin_notes)

    new_due = Customer.total_due + (request.prorated_charge - request.prorated_credit)
    db.session.execute(
        db.update(Customer)
        .where(Customer.id == customer.id)
        .values(
            package_id=new_package.id,
            expiry_date=today + timedelta(days=new_package.validity_days),
            total_due=db.case((new_due < 0, 0), else_=new_due),
        ),
        execution_options={'synchronize_session': False},
    )
    db.session.refresh(customer)
    sync_customer_status(customer, today=today)
    db.session.commit()

    logger.info("Approved package change %s for %s: now on %s", request.id, customer.user_id, new_package.name)
    return request


def reject_request(request_id, admin_notes=None):
    data = parse_payload(PackageChangeDecision, request_id=request_id, admin_notes=admin_notes)
    request = _get_pending_request(data.request_id)
    _close_request(request.id, 'rejected', data.admin_notes)
    db.session.commit()
    logger.info("Rejected package change %s", request.id)
    return request
