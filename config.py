import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent
INSTANCE_DIR = BASE_DIR / "instance"

class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-change-me")
    # Use sqlite by default, override with DATABASE_URL if needed
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        f"sqlite:///{(INSTANCE_DIR / 'docusafe.db').as_posix()}",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # "sql" keeps the store and uploaded files in the database; "memory" keeps them in-process
    STORE_BACKEND = os.environ.get("STORE_BACKEND", "sql")

    # File uploads
    MAX_CONTENT_LENGTH = 16 * 1024 * 1024  # 16 MB
    ALLOWED_EXTENSIONS = {"pdf", "doc", "docx", "txt", "png", "jpg", "jpeg", "gif"}
    LOGO_EXTENSIONS = {"png", "jpg", "jpeg", "gif", "svg", "webp"}

    # Crypto key for Fernet encryption of stored file contents
    ENCRYPTION_KEY = os.environ.get("ENCRYPTION_KEY")  # base64 urlsafe key

    ACTIVITY_LOG_LIMIT = int(os.environ.get("ACTIVITY_LOG_LIMIT", 500))
    DEFAULT_DEPARTMENT_NAME = os.environ.get("DEPARTMENT_NAME", "DocuSafe")
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    CSRF_ENABLED = True
    # Seconds between keep-alive comments on the /events stream
    EVENTS_KEEPALIVE = 15

    # Cookies / session hardening
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    SESSION_COOKIE_SECURE = os.environ.get("FLASK_ENV") == "production"
