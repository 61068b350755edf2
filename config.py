import os


class Config:
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev_secret_key')
    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URI', 'sqlite:///parts.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    UPLOAD_FOLDER = os.getenv('UPLOAD_FOLDER', os.path.join('static', 'uploads'))
    MAX_CONTENT_LENGTH = int(os.getenv('MAX_CONTENT_LENGTH', 16 * 1024 * 1024))

    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
    # parts below this quantity are reported as "low stock"
    LOW_STOCK_THRESHOLD = int(os.getenv('LOW_STOCK_THRESHOLD', 5))
    # retries for serialization failures / locked database, never for business rules
    DB_RETRY_ATTEMPTS = int(os.getenv('DB_RETRY_ATTEMPTS', 3))
