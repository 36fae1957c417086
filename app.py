# app.py
import hmac
import logging

from flask import Blueprint, Flask, current_app, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from billing_cycle_service import generate_billing
from billing_service import billing_info_for, calculate_missed_cycles
from config import Config
from errors import BillingError, NotFoundError, ValidationError
from models import db, BillingRecord, Customer
from package_change_service import approve_request, list_requests, reject_request, submit_request
from payment_service import record_payment, reverse_payment
from reminder_service import get_channel, send_expiry_reminders

logger = logging.getLogger(__name__)

api = Blueprint('api', __name__, url_prefix='/api')


def _json_body():
    return request.get_json(silent=True) or {}


# Billing generation (called by cron)
@api.route('/billing/generate', methods=['POST'])
def generate_billing_route():
    secret = current_app.config['CRON_SECRET_KEY']
    supplied = request.headers.get('X-Cron-Secret', '')
    if not secret or not hmac.compare_digest(supplied.encode(), secret.encode()):
        return jsonify({'success': False, 'error': 'Invalid cron authentication'}), 403

    try:
        result = generate_billing()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.exception("Billing generation failed")
        return jsonify({'success': False, 'error': f"Failed to fetch customers: {e}"}), 500
    return jsonify({'success': True, 'message': result.message, 'details': result.to_dict()})


@api.route('/customers/<int:customer_id>/billing', methods=['GET'])
def customer_billing(customer_id):
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        raise NotFoundError("Customer not found")
    info = billing_info_for(customer)
    return jsonify({
        'customer': customer.to_dict(),
        'billing': info.to_dict(),
        'missedCycles': calculate_missed_cycles(customer.expiry_date, customer.billing_start_date),
    })


@api.route('/billing/records', methods=['GET'])
def list_billing_records():
    query = db.select(BillingRecord).order_by(BillingRecord.billing_date.desc(), BillingRecord.id.desc())
    customer_id = request.args.get('customer_id', type=int)
    status = request.args.get('status')
    if customer_id is not None:
        query = query.where(BillingRecord.customer_id == customer_id)
    if status:
        query = query.where(BillingRecord.status == status)
    records = db.session.execute(query).scalars().all()
    return jsonify({'records': [r.to_dict() for r in records]})


@api.route('/billing/summary', methods=['GET'])
def billing_summary():
    outstanding = BillingRecord.amount - BillingRecord.amount_paid
    rows = db.session.execute(
        db.select(
            BillingRecord.status,
            db.func.count(BillingRecord.id),
            db.func.coalesce(db.func.sum(BillingRecord.amount), 0),
            db.func.coalesce(db.func.sum(BillingRecord.amount_paid), 0),
            db.func.coalesce(db.func.sum(outstanding), 0),
        ).group_by(BillingRecord.status)
    ).all()
    by_status = [
        {'status': status, 'count': count, 'total_amount': billed,
         'total_paid': paid, 'total_outstanding': owed}
        for status, count, billed, paid, owed in rows
    ]
    totals = {
        'total_records': sum(r['count'] for r in by_status),
        'total_billed': sum(r['total_amount'] for r in by_status),
        'total_collected': sum(r['total_paid'] for r in by_status),
        'total_outstanding': sum(r['total_outstanding'] for r in by_status),
    }
    return jsonify({'byStatus': by_status, 'totals': totals})


# Package changes: customer submits/lists, admin approves/rejects
@api.route('/package-change', methods=['POST'])
def package_change():
    data = _json_body()
    action = data.get('action')

    if action == 'submit':
        change = submit_request(
            data.get('customer_id'),
            data.get('current_package_id'),
            data.get('requested_package_id'),
            data.get('user_id'),
            data.get('password'),
        )
        return jsonify({
            'success': True,
            'message': "Package change request submitted. You'll be notified once approved.",
            'request_id': change.id,
            'prorated_credit': change.prorated_credit,
            'prorated_charge': change.prorated_charge,
        })
    if action == 'list':
        changes = list_requests(data.get('customer_id'))
        return jsonify({'success': True, 'requests': [c.to_dict() for c in changes]})
    if action == 'approve':
        approve_request(data.get('request_id'), data.get('admin_notes'))
        return jsonify({'success': True, 'message': 'Package change approved and applied'})
    if action == 'reject':
        reject_request(data.get('request_id'), data.get('admin_notes'))
        return jsonify({'success': True, 'message': 'Package change request rejected'})
    raise ValidationError(f"Unknown action: {action}")


@api.route('/payments', methods=['POST'])
def create_payment():
    data = _json_body()
    payment = record_payment(
        data.get('customer_id'),
        data.get('amount'),
        data.get('method'),
        transaction_id=data.get('transaction_id'),
        notes=data.get('notes'),
    )
    return jsonify({
        'success': True,
        'message': 'Payment recorded successfully',
        'payment': payment.to_dict(),
    }), 201


@api.route('/payments/<int:payment_id>', methods=['DELETE'])
def delete_payment(payment_id):
    customer = reverse_payment(payment_id)
    return jsonify({'success': True, 'message': 'Payment deleted and reversed', 'total_due': customer.total_due})


@api.route('/reminders/send', methods=['POST'])
def send_reminders():
    channel = get_channel(_json_body().get('channel') or current_app.config['REMINDER_CHANNEL'])
    sent = send_expiry_reminders(
        channel,
        days_ahead=current_app.config['REMINDER_DAYS_AHEAD'],
        isp_name=current_app.config['ISP_NAME'],
    )
    return jsonify({'success': True, 'message': f"Sent reminders to {sent} customers", 'count': sent})


def handle_billing_error(error):
    if error.status_code >= 500:
        logger.error("Billing error: %s", error.message)
    return jsonify(error.to_dict()), error.status_code


def create_app(test_config=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    logging.basicConfig(
        level=app.config['LOG_LEVEL'],
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

    db.init_app(app)
    app.register_blueprint(api)
    app.register_error_handler(BillingError, handle_billing_error)

    # Initialize database
    with app.app_context():
        db.create_all()

    return app


if __name__ == '__main__':
    create_app().run(debug=True)
