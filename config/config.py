"""Configuration settings for QuoteLedger"""
import os
from datetime import timedelta


def get_engine_options():
    """Get database engine options for PostgreSQL connection pooling"""
    return {
        'pool_pre_ping': True,
        'pool_recycle': 300,
    }


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'your-secret-key-change-in-production'

    # Database - Handle Render's postgres:// URL format (SQLAlchemy needs postgresql://)
    _db_url = os.environ.get('DATABASE_URL') or 'sqlite:///quoteledger.db'
    if _db_url.startswith('postgres://'):
        _db_url = _db_url.replace('postgres://', 'postgresql://', 1)
    SQLALCHEMY_DATABASE_URI = _db_url
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = get_engine_options()

    # JWT
    JWT_SECRET_KEY = os.environ.get('JWT_SECRET_KEY') or 'jwt-secret-key-change-in-production'
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(hours=8)

    # CORS
    CORS_ORIGINS = os.environ.get('CORS_ORIGINS', 'http://localhost:3000').split(',')

    # Logging
    LOG_LEVEL = os.environ.get('LOG_LEVEL')
    LOG_JSON = False

    # Quotations
    QUOTATION_NUMBER_PREFIX = 'QT'
    QUOTATION_DEFAULT_VALIDITY_DAYS = 30
    # Row lock wait on the sequence counter before the request fails as retryable
    QUOTATION_LOCK_TIMEOUT_MS = int(os.environ.get('QUOTATION_LOCK_TIMEOUT_MS', 5000))


class DevelopmentConfig(Config):
    DEBUG = True


class ProductionConfig(Config):
    DEBUG = False
    LOG_JSON = True


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.environ.get('TEST_DATABASE_URL') or 'sqlite:///:memory:'
    SQLALCHEMY_ENGINE_OPTIONS = {}
    JWT_SECRET_KEY = 'test-jwt-secret-key-with-enough-length-for-hs256'
    LOG_LEVEL = 'WARNING'
