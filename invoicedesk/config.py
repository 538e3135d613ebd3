import os
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(BASE_DIR / '.env', override=False)

LOCAL_ENV = BASE_DIR / '.env.local'
if LOCAL_ENV.exists():
    load_dotenv(LOCAL_ENV, override=True)


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {'1', 'true', 'yes', 'on'}


class BaseConfig:
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key')
    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL', f"sqlite:///{BASE_DIR / 'invoicedesk.db'}")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    MAX_CONTENT_LENGTH = int(os.getenv('MAX_UPLOAD_MB', '10')) * 1024 * 1024

    SUPABASE_URL = (os.getenv('SUPABASE_URL') or '').rstrip('/')
    SUPABASE_ANON_KEY = os.getenv('SUPABASE_ANON_KEY', '')
    SUPABASE_WORKSPACE = os.getenv('SUPABASE_WORKSPACE', 'default')
    SUPABASE_TIMEOUT = float(os.getenv('SUPABASE_TIMEOUT', '15'))

    DEFAULT_TAX_PCT = float(os.getenv('DEFAULT_TAX_PCT', '18'))
    DEFAULT_PLACE_OF_SUPPLY = os.getenv('DEFAULT_PLACE_OF_SUPPLY', 'Karnataka')
    DEFAULT_BRAND = os.getenv('DEFAULT_BRAND', 'garani')
    BATCH_REUSE_SHARED_LINES = _flag('BATCH_REUSE_SHARED_LINES', 'on')
    UNICODE_FONT_DIR = os.getenv('UNICODE_FONT_DIR', str(BASE_DIR / 'fonts'))
    INVOICE_TERMS = (
        'Goods once sold will not be taken back or exchanged',
        'All disputes are subject to Bengaluru jurisdiction only',
    )


class DevConfig(BaseConfig):
    DEBUG = True


class ProdConfig(BaseConfig):
    DEBUG = False


class TestConfig(BaseConfig):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SUPABASE_URL = ''
    SUPABASE_ANON_KEY = ''
    UNICODE_FONT_DIR = ''


Config = DevConfig if os.getenv('FLASK_ENV') != 'production' else ProdConfig
