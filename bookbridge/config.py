import os
import logging
from dataclasses import dataclass
from typing import Optional
from dotenv import load_dotenv

load_dotenv()


@dataclass
class Settings:
    # Application
    app_name: str = os.getenv("APP_NAME", "BookBridge API")
    app_version: str = os.getenv("APP_VERSION", "1.0.0")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    # Database
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./bookbridge.db")

    # Security
    auth_key: str = os.getenv("AUTH_KEY", "dev-secret-key-12345")
    secret_key: str = os.getenv(
        "SECRET_KEY", "change-this-secret-key-before-deploying-bookbridge"
    )
    jwt_algorithm: str = os.getenv("JWT_ALGORITHM", "HS256")
    access_token_expire_minutes: int = int(
        os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(60 * 24 * 7))
    )

    # Reverse geocoding
    geocoding_timeout: float = float(os.getenv("GEOCODING_TIMEOUT", "10"))
    bigdatacloud_url: str = os.getenv(
        "BIGDATACLOUD_URL",
        "https://api.bigdatacloud.net/data/reverse-geocode-client",
    )
    nominatim_url: str = os.getenv(
        "NOMINATIM_URL", "https://nominatim.openstreetmap.org/reverse"
    )
    geocoding_user_agent: str = os.getenv(
        "GEOCODING_USER_AGENT", "bookbridge/1.0 (community book sharing)"
    )

    # Change feed
    change_feed_size: int = int(os.getenv("CHANGE_FEED_SIZE", "1000"))


settings = Settings()


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging for the service."""
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
