"""
Application settings
Read from environment variables / .env
"""
from decimal import Decimal
from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings"""

    APP_NAME: str = "Hotel Core"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "sqlite:///./hotel_core.db"

    # JWT (tokens are issued by the external auth service)
    SECRET_KEY: str = "hotel-core-secret-key-change-in-production"
    ALGORITHM: str = "HS256"

    # Fallback rates when a property has none configured
    DEFAULT_TAX_RATE: Decimal = Decimal("0")
    DEFAULT_SERVICE_CHARGE_RATE: Decimal = Decimal("0")

    # Folio reconciliation sweep, 0 disables
    RECONCILE_INTERVAL_SECONDS: int = 300

    model_config = ConfigDict(env_file=".env", case_sensitive=True)


# Global settings instance
settings = Settings()
