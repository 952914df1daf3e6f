from pydantic_settings import BaseSettings
from pydantic import SecretStr, field_validator
from typing import List, Optional
import os
from dotenv import load_dotenv

load_dotenv()

class Settings(BaseSettings):
    app_name: str = "Scripture Quiz API"
    debug: bool = os.getenv("DEBUG", "false").lower() == "true"
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    # Supabase Configuration
    supabase_url: Optional[str] = os.getenv("SUPABASE_URL")
    supabase_anon_key: SecretStr = os.getenv("SUPABASE_ANON_KEY", "")
    supabase_service_role_key: SecretStr = os.getenv("SUPABASE_SERVICE_ROLE_KEY", "")

    # Comma-separated list of admin e-mails
    admin_emails: str = os.getenv("ADMIN_EMAILS", "")

    # Cache Configuration
    cache_backend: str = os.getenv("CACHE_BACKEND", "memory")  # 'memory' or 'redis'
    redis_url: str = os.getenv("REDIS_URL", "redis://localhost:6379")
    quiz_cache_ttl_seconds: int = 300

    # Scheduling rules
    schedule_min_lead_minutes: int = 5
    schedule_max_days_ahead: int = 365
    default_quiz_duration: int = 30

    # Maintenance sweep
    timeout_multiplier: float = 2.0
    abandon_multiplier: float = 1.5
    answer_retention_days: int = 7
    enable_maintenance_scheduler: bool = False
    maintenance_interval_minutes: int = 15

    # Notifications
    notification_webhook_url: Optional[str] = os.getenv("NOTIFICATION_WEBHOOK_URL")
    notification_timeout_seconds: float = 10.0

    @property
    def admin_email_list(self) -> List[str]:
        return [item.strip().lower() for item in self.admin_emails.split(",") if item.strip()]

    @field_validator("cache_backend")
    @classmethod
    def validate_cache_backend(cls, value):
        value = value.lower()
        if value not in ("memory", "redis"):
            raise ValueError("cache_backend must be 'memory' or 'redis'")
        return value

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

settings = Settings()
