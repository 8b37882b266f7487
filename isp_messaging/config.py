from pydantic_settings import BaseSettings
from typing import Optional
import os
from dotenv import load_dotenv

load_dotenv()

class Settings(BaseSettings):
    # API Server Settings
    api_host: str = os.getenv("API_HOST", "0.0.0.0")
    api_port: int = int(os.getenv("API_PORT", "5000"))
    api_reload: bool = os.getenv("API_RELOAD", "true").lower() == "true"

    # Database Settings
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./isp_messaging.db")
    db_pool_size: int = int(os.getenv("DB_POOL_SIZE", "5"))
    db_max_overflow: int = int(os.getenv("DB_MAX_OVERFLOW", "10"))
    db_echo: bool = os.getenv("DB_ECHO", "false").lower() == "true"

    # Message Queue Settings
    drain_batch_size: int = int(os.getenv("DRAIN_BATCH_SIZE", "50"))
    retry_batch_size: int = int(os.getenv("RETRY_BATCH_SIZE", "20"))
    max_attempts: int = int(os.getenv("MAX_ATTEMPTS", "3"))
    transport_timeout: float = float(os.getenv("TRANSPORT_TIMEOUT", "30"))
    send_delay: float = float(os.getenv("SEND_DELAY", "0.1"))
    claim_timeout: int = int(os.getenv("CLAIM_TIMEOUT", "600"))

    # Scheduler Settings
    scheduler_enabled: bool = os.getenv("SCHEDULER_ENABLED", "false").lower() == "true"
    drain_interval: int = int(os.getenv("DRAIN_INTERVAL", "60"))
    retry_interval: int = int(os.getenv("RETRY_INTERVAL", "300"))

    # Celery Settings
    redis_url: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")

    # Email Gateway Settings
    resend_api_url: str = os.getenv("RESEND_API_URL", "https://api.resend.com/emails")
    resend_api_key: str = os.getenv("RESEND_API_KEY", "")
    mail_from_address: str = os.getenv("MAIL_FROM_ADDRESS", "noreply@example.com")
    mail_from_name: str = os.getenv("MAIL_FROM_NAME", "ISP Billing")

    # SMS Gateway Settings (fallback when no sms_config row exists)
    itexmo_api_url: str = os.getenv("ITEXMO_API_URL", "https://api.itexmo.com/api/broadcast")
    itexmo_email: Optional[str] = os.getenv("ITEXMO_EMAIL")
    itexmo_password: Optional[str] = os.getenv("ITEXMO_PASSWORD")
    itexmo_api_code: Optional[str] = os.getenv("ITEXMO_API_CODE")
    itexmo_sender_id: Optional[str] = os.getenv("ITEXMO_SENDER_ID")

    # Logging Settings
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    log_file: str = os.getenv("LOG_FILE", "./logs/isp_messaging.log")

settings = Settings()
