# config.py
import os

from dotenv import load_dotenv

load_dotenv()


class Config:
    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL', 'sqlite:///billing.db').strip()
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Shared secret the scheduler sends with the billing trigger
    CRON_SECRET_KEY = os.getenv('CRON_SECRET_KEY', '').strip()

    REMINDER_CHANNEL = os.getenv('REMINDER_CHANNEL', 'log').strip()
    REMINDER_DAYS_AHEAD = int(os.getenv('REMINDER_DAYS_AHEAD', '3'))
    ISP_NAME = os.getenv('ISP_NAME', 'Smart ISP').strip()

    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').strip().upper()
