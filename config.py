"""Configuration module for the capital ledger application."""
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Config:
    """Base configuration class."""
    
    # Flask
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    DEBUG = os.getenv('FLASK_DEBUG', '0') == '1'
    ENV = os.getenv('FLASK_ENV', 'development')
    
    # Database - Support multiple environment variable naming conventions
    # Priority: DATABASE_URL > DB_* > POSTGRES_*
    DATABASE_URL = os.getenv('DATABASE_URL')
    
    if not DATABASE_URL:
        # Try DB_* variables (Docker style)
        DB_HOST = os.getenv('DB_HOST') or os.getenv('POSTGRES_HOST', 'localhost')
        DB_PORT = os.getenv('DB_PORT') or os.getenv('POSTGRES_PORT', '5432')
        DB_NAME = os.getenv('DB_NAME') or os.getenv('POSTGRES_DB', 'ledger')
        DB_USER = os.getenv('DB_USER') or os.getenv('POSTGRES_USER', 'ledger')
        DB_PASSWORD = os.getenv('DB_PASSWORD') or os.getenv('POSTGRES_PASSWORD', 'ledger')
        
        DATABASE_URL = (
            f"postgresql://{DB_USER}:{DB_PASSWORD}"
            f"@{DB_HOST}:{DB_PORT}/{DB_NAME}"
        )
    
    # SQLAlchemy
    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    SQLALCHEMY_ECHO = os.getenv('SQLALCHEMY_ECHO', 'false').lower() == 'true'
    
    # Ledger engine
    # Upper bound for lock waits inside one payment/debt operation (seconds)
    LEDGER_TIMEOUT_SECONDS = float(os.getenv('LEDGER_TIMEOUT_SECONDS', '10'))
    PAYMENTS_LIST_LIMIT = int(os.getenv('PAYMENTS_LIST_LIMIT', '50'))
    
    # Currency display (amounts are stored in the smallest unit)
    CURRENCY_SYMBOL = os.getenv('CURRENCY_SYMBOL', 'Rp')
    CURRENCY_DECIMALS = int(os.getenv('CURRENCY_DECIMALS', '0'))
    PAYMENT_REPLY_MAX_LINES = int(os.getenv('PAYMENT_REPLY_MAX_LINES', '10'))
    
    # Error tracking
    SENTRY_DSN = os.getenv('SENTRY_DSN')
