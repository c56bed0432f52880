# lms/config.py
from pydantic_settings import BaseSettings
from typing import List, Optional
import os

class Settings(BaseSettings):
    # Application
    APP_NAME: str = "LMS Platform"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    APP_BASE_URL: str = "http://localhost:8000"

    # Security
    SECRET_KEY: str = "your-secret-key-change-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./lms.db"

    # CORS
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:5173"
    ]

    ALLOWED_HOSTS: List[str] = ["localhost", "127.0.0.1"]

    # Email
    EMAIL_HOST: str = "smtp.gmail.com"
    EMAIL_PORT: int = 587
    EMAIL_USE_TLS: bool = True
    EMAIL_HOST_USER: Optional[str] = None
    EMAIL_HOST_PASSWORD: Optional[str] = None
    DEFAULT_FROM_EMAIL: Optional[str] = None

    # Frontend URL
    FRONTEND_URL: str = "http://localhost:3000"

    # File Upload
    MAX_UPLOAD_SIZE: int = 104857600  # 100MB
    STATIC_DIR: str = "lms/static"
    UPLOAD_DIR: str = "lms/static/uploads"

    # Video storage
    VIDEO_DIR: str = "media/videos"
    VIDEO_BASE_URL: str = "http://localhost:8000/api/media/videos"
    VIDEO_URL_TTL_SECONDS: int = 4 * 60 * 60

    # Payment gateway
    PAYMENT_MERCHANT_ID: Optional[str] = None
    PAYMENT_API_KEY: Optional[str] = None
    PAYMENT_API_SECRET: Optional[str] = None
    PAYMENT_BASE_URL: str = "https://api.kbzpay.com"
    PAYMENT_RETURN_URL: Optional[str] = None
    PAYMENT_NOTIFY_URL: Optional[str] = None
    PAYMENT_CURRENCY: str = "MMK"
    PAYMENT_TIMEOUT_SECONDS: float = 10.0

    # Certificates
    CERTIFICATE_CODE_MAX_RETRIES: int = 5
    CERTIFICATE_PROGRESS_WEIGHT: float = 0.7
    CERTIFICATE_QUIZ_WEIGHT: float = 0.3

    # Company info
    COMPANY_NAME: str = "LMS Platform"

    class Config:
        env_file = ".env"
        case_sensitive = True

settings = Settings()

# Create upload directories
os.makedirs(f"{settings.UPLOAD_DIR}/assignments", exist_ok=True)
os.makedirs(f"{settings.UPLOAD_DIR}/courses", exist_ok=True)
os.makedirs(settings.VIDEO_DIR, exist_ok=True)
