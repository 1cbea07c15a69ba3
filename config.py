"""Configuration module for Flask application."""
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Config:
    """Base configuration class."""

    # Flask
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    DEBUG = os.getenv('FLASK_DEBUG', '1') == '1'
    ENV = os.getenv('FLASK_ENV', 'development')
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

    # Backend API (catalog, pricing, inventory, sales)
    BACKEND_API_URL = os.getenv('BACKEND_API_URL', 'http://localhost:4000')
    BACKEND_API_TOKEN = os.getenv('BACKEND_API_TOKEN')
    BACKEND_TIMEOUT = float(os.getenv('BACKEND_TIMEOUT', '10'))

    # Pricing and tax
    PRICES_INCLUDE_TAX = os.getenv('PRICES_INCLUDE_TAX', 'true').lower() == 'true'
    DEFAULT_TAX_RATE_ID = os.getenv('DEFAULT_TAX_RATE_ID') or None
    POS_CHANNEL = os.getenv('POS_CHANNEL', 'POS')

    # Payments and documents
    CASH_METHOD_KEYWORDS = os.getenv('CASH_METHOD_KEYWORDS', 'cash,efectivo')
    DOCUMENT_TYPES_WITHOUT_TAX_ID = os.getenv('DOCUMENT_TYPES_WITHOUT_TAX_ID', 'TICKET,BOLETA,BOLETA_EXENTA')

    # Customer screen
    CUSTOMER_SCREEN_ENABLED = os.getenv('CUSTOMER_SCREEN_ENABLED', 'true').lower() == 'true'
    CUSTOMER_SCREEN_SINK = os.getenv('CUSTOMER_SCREEN_SINK', 'http')  # http | redis
    CUSTOMER_SCREEN_CHANNEL = os.getenv('CUSTOMER_SCREEN_CHANNEL', 'default')
    CUSTOMER_SCREEN_MIN_INTERVAL_MS = int(os.getenv('CUSTOMER_SCREEN_MIN_INTERVAL_MS', '200'))
    CUSTOMER_SCREEN_QUEUE_SIZE = int(os.getenv('CUSTOMER_SCREEN_QUEUE_SIZE', '32'))
    CUSTOMER_SCREEN_KEY_PREFIX = os.getenv('CUSTOMER_SCREEN_KEY_PREFIX', 'pos')
    REDIS_URL = os.getenv('REDIS_URL', 'redis://redis:6379/0')

    # Error tracking
    SENTRY_DSN = os.getenv('SENTRY_DSN')


class TestingConfig(Config):
    """Configuration for the test suite (no network, no background worker)."""

    TESTING = True
    DEBUG = False
    ENV = 'testing'
    LOG_LEVEL = 'WARNING'
    PRICES_INCLUDE_TAX = True
    DEFAULT_TAX_RATE_ID = None
    CASH_METHOD_KEYWORDS = 'cash,efectivo'
    CUSTOMER_SCREEN_ENABLED = False
    SENTRY_DSN = None
