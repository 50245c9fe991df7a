import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _normalize_db_url(url):
    # SQLAlchemy dropped the bare "postgres://" scheme
    if url and url.startswith('postgres://'):
        return url.replace('postgres://', 'postgresql://', 1)
    return url


def is_configured(settings):
    """True when the database URL and the JWT secret are both set"""
    return bool(settings.get('LOCAL_DB_URL')) and bool(settings.get('JWT_SECRET'))


class Config:
    """Settings read from the environment at process start"""

    def __init__(self):
        self.LOCAL_DB_URL = _normalize_db_url((os.getenv('LOCAL_DB_URL') or '').strip())
        self.JWT_SECRET = (os.getenv('JWT_SECRET') or '').strip()
        self.ENCRYPTION_SALT = (os.getenv('ENCRYPTION_SALT') or '').strip()
        self.SECRET_KEY = os.getenv('FLASK_SECRET_KEY', 'your-secret-key-change-this-in-production')
        self.PORT = int(os.getenv('PORT', 5555))
        self.COOKIE_SECURE = os.getenv('COOKIE_SECURE', '0') == '1'
        self.LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()
        self.JWT_EXPIRES_HOURS = int(os.getenv('JWT_EXPIRES_HOURS', 12))

    def as_flask_config(self):
        return {
            'SECRET_KEY': self.SECRET_KEY,
            'LOCAL_DB_URL': self.LOCAL_DB_URL,
            'JWT_SECRET': self.JWT_SECRET,
            'ENCRYPTION_SALT': self.ENCRYPTION_SALT,
            'COOKIE_SECURE': self.COOKIE_SECURE,
            'JWT_EXPIRES_HOURS': self.JWT_EXPIRES_HOURS,
        }
