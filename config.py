import os

from dotenv import load_dotenv

load_dotenv()


def _env_list(name, default):
    value = os.environ.get(name)
    if value is None:
        return tuple(default)
    return tuple(item.strip() for item in value.split(',') if item.strip())


def _env_bool(name, default=False):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    # Security and Base App Configuration
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'cheque-review-secret-key'
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

    # File Upload Configuration
    UPLOAD_FOLDER = os.environ.get('UPLOAD_FOLDER', 'uploads')
    MAX_CONTENT_LENGTH = 10 * 1024 * 1024  # 10MB max file size
    ALLOWED_MIME_PREFIXES = ('image/',)
    ALLOWED_MIME_TYPES = {'application/pdf'}

    # Database Configuration
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///cheques.sqlite'
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Text recognition
    OCR_ENGINE = os.environ.get('OCR_ENGINE', 'tesseract')
    OCR_TIMEOUT = int(os.environ.get('OCR_TIMEOUT', 30))
    TESSERACT_CMD = os.environ.get('TESSERACT_CMD')
    TESSERACT_LANG = os.environ.get('TESSERACT_LANG', 'eng')
    GOOGLE_VISION_API_KEY = os.environ.get('GOOGLE_VISION_API_KEY')

    # Model pass (disabled without a key)
    GEMINI_API_KEY = os.environ.get('GEMINI_API_KEY')
    GEMINI_MODEL = os.environ.get('GEMINI_MODEL', 'gemini-2.5-flash')
    GEMINI_TIMEOUT = int(os.environ.get('GEMINI_TIMEOUT', 60))
    GEMINI_USE_IMAGE = _env_bool('GEMINI_USE_IMAGE')

    # Extraction and review policy
    BOILERPLATE_PHRASES = _env_list('BOILERPLATE_PHRASES', ())
    REVIEW_CONFIDENCE_THRESHOLD = float(os.environ.get('REVIEW_CONFIDENCE_THRESHOLD', 90))
    MANDATORY_FIELDS = _env_list(
        'MANDATORY_FIELDS',
        ('payee_name', 'payer_name', 'amount', 'amount_in_words', 'cheque_date', 'micr'),
    )
    PREFER_SECONDARY_FIELDS = _env_list('PREFER_SECONDARY_FIELDS', ('payer_name',))
    EXTRACTOR_WORKERS = int(os.environ.get('EXTRACTOR_WORKERS', 0))

    # Review notification
    N8N_WEBHOOK_URL = os.environ.get('N8N_WEBHOOK_URL')
    WEBHOOK_TIMEOUT = int(os.environ.get('WEBHOOK_TIMEOUT', 5))


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    GEMINI_API_KEY = None
    N8N_WEBHOOK_URL = None
