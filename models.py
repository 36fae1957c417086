# models.py
from datetime import datetime, timezone

from flask_sqlalchemy import SQLAlchemy
from werkzeug.security import check_password_hash, generate_password_hash

db = SQLAlchemy()


def utcnow():
    return datetime.now(timezone.utc)


class Package(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    monthly_price = db.Column(db.Float, nullable=False)
    validity_days = db.Column(db.Integer, nullable=False, default=30)
    speed_mbps = db.Column(db.Integer)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'monthly_price': self.monthly_price,
            'validity_days': self.validity_days,
            'speed_mbps': self.speed_mbps,
        }


class Customer(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(50), unique=True, nullable=False)  # portal login / PPPoE username
    full_name = db.Column(db.String(100), nullable=False)
    phone = db.Column(db.String(20))
    password_hash = db.Column(db.String(255))
    status = db.Column(db.String(20), nullable=False, default='active')  # advisory, see billing_service.derive_status
    expiry_date = db.Column(db.Date, nullable=False)
    total_due = db.Column(db.Float, nullable=False, default=0)
    package_id = db.Column(db.Integer, db.ForeignKey('package.id'))
    billing_start_date = db.Column(db.Date)
    package = db.relationship('Package', backref=db.backref('customers', lazy=True))

    __table_args__ = (
        db.CheckConstraint('total_due >= 0', name='ck_customer_total_due_non_negative'),
    )

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        if not self.password_hash:
            return False
        return check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'full_name': self.full_name,
            'phone': self.phone,
            'status': self.status,
            'expiry_date': self.expiry_date.isoformat(),
            'total_due': self.total_due,
            'package_id': self.package_id,
        }


class BillingRecord(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey('customer.id'), nullable=False)
    billing_date = db.Column(db.Date, nullable=False)
    due_date = db.Column(db.Date, nullable=False)
    amount = db.Column(db.Float, nullable=False)
    package_name = db.Column(db.String(100))
    status = db.Column(db.String(20), nullable=False, default='unpaid')  # 'unpaid', 'partial', 'paid'
    amount_paid = db.Column(db.Float, nullable=False, default=0)
    paid_date = db.Column(db.Date)
    customer = db.relationship('Customer', backref=db.backref('billing_records', lazy=True))

    # One record per cycle; the generator relies on this to stay idempotent
    __table_args__ = (
        db.UniqueConstraint('customer_id', 'billing_date', name='uq_billing_record_cycle'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'customer_id': self.customer_id,
            'billing_date': self.billing_date.isoformat(),
            'due_date': self.due_date.isoformat(),
            'amount': self.amount,
            'package_name': self.package_name,
            'status': self.status,
            'amount_paid': self.amount_paid,
            'paid_date': self.paid_date.isoformat() if self.paid_date else None,
        }


class Payment(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey('customer.id'), nullable=False)
    amount = db.Column(db.Float, nullable=False)
    amount_applied = db.Column(db.Float, nullable=False, default=0)  # part of amount that reduced total_due
    method = db.Column(db.String(20), nullable=False)  # 'cash', 'bkash', 'bank_transfer', 'due'
    transaction_id = db.Column(db.String(100))
    notes = db.Column(db.String(500))
    remaining_due = db.Column(db.Float, nullable=False)
    previous_expiry_date = db.Column(db.Date)  # set when the payment renewed the cycle
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    customer = db.relationship('Customer', backref=db.backref('payments', lazy=True))

    def to_dict(self):
        return {
            'id': self.id,
            'customer_id': self.customer_id,
            'amount': self.amount,
            'method': self.method,
            'transaction_id': self.transaction_id,
            'remaining_due': self.remaining_due,
        }


class PackageChangeRequest(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey('customer.id'), nullable=False)
    current_package_id = db.Column(db.Integer, db.ForeignKey('package.id'), nullable=False)
    requested_package_id = db.Column(db.Integer, db.ForeignKey('package.id'), nullable=False)
    prorated_credit = db.Column(db.Float, nullable=False, default=0)
    prorated_charge = db.Column(db.Float, nullable=False, default=0)
    status = db.Column(db.String(20), nullable=False, default='pending')  # 'pending', 'approved', 'rejected'
    admin_notes = db.Column(db.String(500))
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    processed_at = db.Column(db.DateTime(timezone=True))
    customer = db.relationship('Customer', backref=db.backref('package_change_requests', lazy=True))
    current_package = db.relationship('Package', foreign_keys=[current_package_id])
    requested_package = db.relationship('Package', foreign_keys=[requested_package_id])

    # At most one pending request per customer
    __table_args__ = (
        db.Index(
            'uq_package_change_one_pending',
            'customer_id',
            unique=True,
            sqlite_where=db.text("status = 'pending'"),
            postgresql_where=db.text("status = 'pending'"),
        ),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'customer_id': self.customer_id,
            'current_package': self.current_package.to_dict() if self.current_package else None,
            'requested_package': self.requested_package.to_dict() if self.requested_package else None,
            'prorated_credit': self.prorated_credit,
            'prorated_charge': self.prorated_charge,
            'status': self.status,
            'admin_notes': self.admin_notes,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'processed_at': self.processed_at.isoformat() if self.processed_at else None,
        }


class ReminderLog(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey('customer.id'), nullable=False)
    reminder_type = db.Column(db.String(30), nullable=False)  # 'expiry_day'
    channel = db.Column(db.String(30), nullable=False)
    message = db.Column(db.Text, nullable=False)
    sent_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    sent_on = db.Column(db.Date, nullable=False)
    customer = db.relationship('Customer', backref=db.backref('reminder_logs', lazy=True))
