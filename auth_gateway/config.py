#config.py
import os
from pydantic_settings import BaseSettings
from pydantic import Field
from pydantic_settings import SettingsConfigDict
from typing import Optional, List
from functools import lru_cache

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore", populate_by_name=True)

    # Application Settings
    APP_NAME: str = "Gabay Barangay Auth Gateway"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    DOCS_ENABLED: bool = True

    # Server Settings
    HOST: str = "0.0.0.0"
    PORT: int = int(os.environ.get("PORT", 8000))

    # Database Settings
    DATABASE_URL: str = os.environ.get("DATABASE_URL", "sqlite:///./gabay_auth.db")

    # Security Settings
    SECRET_KEY: str = Field(default="change-me-in-prod-change-me-in-prod", alias="JWT_SECRET_KEY")
    ALGORITHM: str = "HS256"
    SESSION_TOKEN_EXPIRE_MINUTES: int = 7 * 24 * 60  # one week
    OTP_CHALLENGE_EXPIRE_MINUTES: int = 15

    # CORS Settings (comma-separated)
    ALLOWED_ORIGINS: str = os.environ.get("ALLOWED_ORIGINS", "*")

    # SMS verification provider: "twilio" or "console"
    OTP_PROVIDER: str = os.environ.get("OTP_PROVIDER", "twilio")
    OTP_LOCALE: str = "en"
    SMS_PROVIDER_TIMEOUT_SECONDS: int = 15

    # Twilio Settings
    TWILIO_ACCOUNT_SID: str = os.environ.get("TWILIO_ACCOUNT_SID", "")
    TWILIO_AUTH_TOKEN: str = os.environ.get("TWILIO_AUTH_TOKEN", "")
    TWILIO_VERIFY_SERVICE_SID: str = os.environ.get("TWILIO_VERIFY_SERVICE_SID", "")

    # Phone numbers (Philippine mobile by default)
    PHONE_COUNTRY_CODE: str = "63"
    PHONE_TRUNK_PREFIX: str = "0"

    # OTP attempt tracking
    OTP_MAX_ATTEMPTS: int = 3
    OTP_BLOCK_DURATION_MINUTES: int = 60
    OTP_ATTEMPT_RETENTION_HOURS: int = 24
    OTP_CLEANUP_INTERVAL_MINUTES: int = 30
    # Must exceed SMS_PROVIDER_TIMEOUT_SECONDS plus the store lock timeout
    OTP_RESERVATION_TIMEOUT_SECONDS: int = 60
    ATTEMPT_STORE: str = "memory"  # "memory" or "redis"
    ATTEMPT_STORE_SHARDS: int = 64
    REDIS_URL: Optional[str] = os.environ.get("REDIS_URL", None)

    # Roles
    DEFAULT_ROLE: str = "VISITOR"
    ROLE_PRIORITY: str = ""  # comma-separated, empty keeps assignment order

    # Logging Settings
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    def _split_csv(self, value: str) -> List[str]:
        if value is None:
            return []
        value = value.strip()
        if value == "":
            return []
        return [item.strip() for item in value.split(",") if item.strip()]

    @property
    def allowed_origins_list(self) -> List[str]:
        return self._split_csv(self.ALLOWED_ORIGINS)

    @property
    def role_priority_list(self) -> List[str]:
        return self._split_csv(self.ROLE_PRIORITY)

@lru_cache()
def get_settings() -> Settings:
    return Settings()

settings: Settings = get_settings()
