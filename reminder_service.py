# reminder_service.py
import logging
import re
from datetime import date, timedelta
from urllib.parse import quote

from billing_service import as_date
from errors import ValidationError
from models import db, Customer, ReminderLog

logger = logging.getLogger(__name__)

EXPIRY_REMINDER = 'expiry_day'


def generate_whatsapp_message(customer_name, user_id, package_name, expiry_date, amount, isp_name='Smart ISP'):
    formatted_date = as_date(expiry_date).strftime('%d %b %Y')
    amount_text = f"{amount:.2f}".rstrip("0").rstrip(".")
    return (
        f"Dear {customer_name},\n"
        f"User ID: {user_id}\n\n"
        f"Your internet package {package_name}, will expire on {formatted_date}.\n\n"
        f"Please pay ৳{amount_text} to avoid disconnection.\n\n"
        f"– {isp_name}"
    )


def get_whatsapp_url(phone, message):
    clean_phone = re.sub(r'[^0-9+]', '', phone or '')
    if clean_phone.startswith('+'):
        clean_phone = clean_phone[1:]
    elif clean_phone.startswith('0'):
        # Local Bangladeshi number
        clean_phone = '88' + clean_phone
    text = quote(message, safe="-_.!~*'()")
    return f"https://wa.me/{clean_phone}?text={text}"


class ReminderChannel:
    """A delivery channel; ``send`` returns True when the reminder went out."""

    name = None

    def send(self, customer, message):
        raise NotImplementedError


class LogChannel(ReminderChannel):
    name = 'log'

    def send(self, customer, message):
        logger.info("Mock sending reminder to %s (%s): %s", customer.user_id, customer.phone, message)
        return True


class WhatsAppLinkChannel(ReminderChannel):
    name = 'whatsapp'

    def send(self, customer, message):
        if not customer.phone:
            logger.warning("No phone number for %s, WhatsApp reminder skipped", customer.user_id)
            return False
        logger.info("WhatsApp reminder for %s: %s", customer.user_id, get_whatsapp_url(customer.phone, message))
        return True


CHANNELS = {channel.name: channel for channel in (LogChannel, WhatsAppLinkChannel)}


def get_channel(name):
    try:
        return CHANNELS[name]()
    except KeyError:
        raise ValidationError(f"Unknown reminder channel: {name}")


def send_expiry_reminders(channel=None, today=None, days_ahead=3, isp_name='Smart ISP'):
    """Remind customers whose package expires within ``days_ahead`` days.

    A customer gets at most one expiry reminder per day.
    """
    today = as_date(today or date.today())
    channel = channel or LogChannel()

    already_reminded = db.select(ReminderLog.customer_id).where(
        ReminderLog.reminder_type == EXPIRY_REMINDER, ReminderLog.sent_on == today
    )
    customers = db.session.execute(
        db.select(Customer)
        .where(
            Customer.status.in_(('active', 'expiring')),
            Customer.expiry_date >= today,
            Customer.expiry_date <= today + timedelta(days=days_ahead),
            Customer.id.not_in(already_reminded),
        )
        .order_by(Customer.expiry_date, Customer.id)
    ).scalars().all()

    sent = 0
    for customer in customers:
        package_name = customer.package.name if customer.package else 'N/A'
        message = generate_whatsapp_message(
            customer.full_name, customer.user_id, package_name,
            customer.expiry_date, customer.total_due, isp_name=isp_name,
        )
        if not channel.send(customer, message):
            continue
        db.session.add(ReminderLog(
            customer_id=customer.id,
            reminder_type=EXPIRY_REMINDER,
            channel=channel.name,
            message=message,
            sent_on=today,
        ))
        sent += 1

    db.session.commit()
    logger.info("Sent %d expiry reminders via %s", sent, channel.name)
    return sent
