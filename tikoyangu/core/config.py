from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):

    ENV: str = 'dev'
    LOG_LEVEL: str = 'INFO'
    LOG_JSON: bool = False

    DATABASE_URL: str = 'sqlite:///./tikoyangu.db'

    SECRET_KEY: str
    ALGORITHM: str = 'HS256'

    EMAIL_HOST: Optional[str] = None
    EMAIL_PORT: int = 587
    EMAIL_SECURE: bool = False
    EMAIL_USER: Optional[str] = None
    EMAIL_PASSWORD: Optional[str] = None
    EMAIL_FROM: Optional[str] = None

    TWILIO_ACCOUNT_SID: Optional[str] = None
    TWILIO_AUTH_TOKEN: Optional[str] = None
    TWILIO_PHONE_NUMBER: Optional[str] = None
    TWILIO_BASE_URL: str = 'https://api.twilio.com'
    SMS_TIMEOUT_SECONDS: float = 10.0

    MPESA_BASE_URL: str = 'https://sandbox.safaricom.co.ke'
    MPESA_CONSUMER_KEY: str = ''
    MPESA_CONSUMER_SECRET: str = ''
    MPESA_SHORTCODE: str = ''
    MPESA_PASSKEY: str = ''
    MPESA_CALLBACK_URL: str = ''
    MPESA_TRANSACTION_TYPE: str = 'CustomerPayBillOnline'
    MPESA_TIMEOUT_SECONDS: float = 10.0

    # pending tickets older than this show up in the stale report
    PENDING_STALE_AFTER_MINUTES: int = 30
    PENDING_SWEEP_INTERVAL_MINUTES: int = 15

    BRAND_NAME: str = 'Tikoyangu'
    CURRENCY: str = 'KES'

    model_config = SettingsConfigDict(env_file='.env', extra='ignore')


settings = Settings()
