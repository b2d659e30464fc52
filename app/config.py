import os
from dotenv import load_dotenv

load_dotenv(os.path.join(os.path.dirname(__file__), '.env'))


def _env_bool(name, default):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.lower() in ('1', 'true', 'yes', 'on')


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-secret-key-change-in-prod'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///boardroom_booking.db'
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    # Take SQLite's write lock at BEGIN so reservations stay atomic across processes
    SQLITE_BEGIN_IMMEDIATE = _env_bool('SQLITE_BEGIN_IMMEDIATE', True)
    SQLALCHEMY_ENGINE_OPTIONS = {'connect_args': {'timeout': 30}} if SQLALCHEMY_DATABASE_URI.startswith('sqlite') else {}

    # Business Rules Defaults
    # Working hours are evaluated in this zone regardless of where the request comes from.
    BUSINESS_TIMEZONE = os.environ.get('BUSINESS_TIMEZONE', 'Africa/Johannesburg')
    WORKING_HOURS_START = int(os.environ.get('WORKING_HOURS_START', 7))   # 7 AM
    WORKING_HOURS_END = int(os.environ.get('WORKING_HOURS_END', 16))      # 4 PM
    ENFORCE_WORKING_HOURS = _env_bool('ENFORCE_WORKING_HOURS', True)
    MIN_BOOKING_MINUTES = int(os.environ.get('MIN_BOOKING_MINUTES', 30))
    SLOT_MINUTES = int(os.environ.get('SLOT_MINUTES', 30))

    # Reminders
    REMINDER_LEAD_MINUTES = int(os.environ.get('REMINDER_LEAD_MINUTES', 15))
    REMINDER_INTERVAL_SECONDS = float(os.environ.get('REMINDER_INTERVAL_SECONDS', 60))

    # Mail (Flask-Mail). Without a server, e-mails are only logged.
    MAIL_SERVER = os.environ.get('MAIL_SERVER')
    MAIL_PORT = int(os.environ.get('MAIL_PORT', 25))
    MAIL_USE_TLS = _env_bool('MAIL_USE_TLS', False)
    MAIL_USERNAME = os.environ.get('MAIL_USERNAME')
    MAIL_PASSWORD = os.environ.get('MAIL_PASSWORD')
    MAIL_DEFAULT_SENDER = os.environ.get('MAIL_DEFAULT_SENDER', 'bookings@boardroom.local')

    CELERY = {
        'broker_url': os.environ.get('CELERY_BROKER_URL', 'redis://localhost:6379/0'),
        'result_backend': os.environ.get('CELERY_RESULT_BACKEND', 'redis://localhost:6379/0'),
        'task_ignore_result': True,
        'beat_schedule': {
            'send-booking-reminders': {
                'task': 'bookings.send_booking_reminders',
                'schedule': REMINDER_INTERVAL_SECONDS,
                'options': {'expires': max(REMINDER_INTERVAL_SECONDS - 10, 1)},
            },
        },
    }


class DevelopmentConfig(Config):
    DEBUG = True


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SQLALCHEMY_ENGINE_OPTIONS = {}
    # Every session shares the one in-memory connection, so there is no lock to take
    SQLITE_BEGIN_IMMEDIATE = False
    LOG_LEVEL = 'WARNING'
    ENFORCE_WORKING_HOURS = True
    MAIL_SERVER = 'localhost'
    MAIL_SUPPRESS_SEND = True
    CELERY = {
        'broker_url': 'memory://',
        'result_backend': 'cache+memory://',
        'task_always_eager': True,
        'task_ignore_result': True,
    }


class ProductionConfig(Config):
    DEBUG = False
    # In prod, rely on env vars strictly
