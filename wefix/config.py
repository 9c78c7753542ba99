#config.py
import os
from pydantic_settings import BaseSettings
from pydantic import Field, model_validator
from pydantic_settings import SettingsConfigDict
from typing import Optional, List
from functools import lru_cache

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore", populate_by_name=True)
    # Application Settings
    APP_NAME: str = "WeFix API"
    APP_VERSION: str = "1.0.0"
    ENV: str = "production"
    DEBUG: bool = False
    DOCS_ENABLED: bool = True

    # Database Settings
    DATABASE_URL: str = "sqlite:///./wefix.db"

    # Security Settings
    SECRET_KEY: str = Field(default="change-me-in-prod", alias="JWT_SECRET_KEY")
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7

    # CORS Settings (accept comma-separated strings to avoid JSON parsing in env)
    ALLOWED_ORIGINS: str = "*"

    # Redis backs the verification store and the send limiter when set
    REDIS_URL: Optional[str] = None

    # Twilio Settings (SMS notifier is used when all three are set)
    TWILIO_ACCOUNT_SID: str = ""
    TWILIO_AUTH_TOKEN: str = ""
    TWILIO_PHONE_NUMBER: str = ""

    # OTP Settings
    OTP_LENGTH: int = 6
    OTP_TTL_MINUTES: int = 10
    OTP_MAX_ATTEMPTS: int = 3
    OTP_RESEND_COOLDOWN_SECONDS: int = 60
    OTP_DETERMINISTIC_CODE_FOR_TESTING: bool = False
    OTP_TEST_CODE: str = "123456"
    OTP_SEND_MAX_PER_WINDOW: int = 5
    OTP_SEND_WINDOW_SECONDS: int = 3600
    DEFAULT_COUNTRY_CODE: str = "+94"

    # Logging Settings
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    @model_validator(mode="after")
    def check_otp_settings(self):
        if self.OTP_DETERMINISTIC_CODE_FOR_TESTING and self.ENV.lower() == "production":
            raise ValueError("OTP_DETERMINISTIC_CODE_FOR_TESTING cannot be enabled when ENV=production")
        if self.OTP_DETERMINISTIC_CODE_FOR_TESTING:
            if not self.OTP_TEST_CODE.isdigit() or len(self.OTP_TEST_CODE) != self.OTP_LENGTH:
                raise ValueError(f"OTP_TEST_CODE must be {self.OTP_LENGTH} digits")
        if self.OTP_MAX_ATTEMPTS < 1:
            raise ValueError("OTP_MAX_ATTEMPTS must be at least 1")
        return self

    # Accept comma-separated strings for list envs in addition to JSON arrays
    def _split_csv(self, value: str) -> List[str]:
        if value is None:
            return []
        value = value.strip()
        if value == "":
            return []
        return [item.strip() for item in value.split(",")]

    @property
    def allowed_origins_list(self) -> List[str]:
        return self._split_csv(self.ALLOWED_ORIGINS)

    @property
    def twilio_configured(self) -> bool:
        return bool(self.TWILIO_ACCOUNT_SID and self.TWILIO_AUTH_TOKEN and self.TWILIO_PHONE_NUMBER)


@lru_cache()
def get_settings() -> Settings:
    s = Settings()
    # Normalize ALLOWED_ORIGINS if provided as comma-separated string env var CORS_ORIGINS
    cors_env = os.environ.get("CORS_ORIGINS")
    if cors_env:
        s.ALLOWED_ORIGINS = cors_env
    return s

settings: Settings = get_settings()
