import logging
import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


@dataclass
class Settings:
    # API settings
    api_host: str = os.getenv("API_HOST", "127.0.0.1")
    api_port: int = int(os.getenv("API_PORT", "8080"))
    cors_origins: List[str] = field(
        default_factory=lambda: [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
    )

    # Database settings
    database_file: str = os.getenv("DATABASE_FILE", "shelfpulse.db")
    # Seconds a single unit of storage work may run before it is interrupted
    storage_timeout: float = float(os.getenv("STORAGE_TIMEOUT", "5"))
    # Seconds to wait for a competing writer to release the database lock
    sqlite_busy_timeout: float = float(os.getenv("SQLITE_BUSY_TIMEOUT", "5"))

    # Security settings
    jwt_secret_key: str = os.getenv("JWT_SECRET_KEY", "dev-secret-change-this-in-production")
    jwt_algorithm: str = os.getenv("JWT_ALGORITHM", "HS256")
    jwt_expiration_days: int = int(os.getenv("JWT_EXPIRATION_DAYS", "30"))
    min_password_length: int = int(os.getenv("MIN_PASSWORD_LENGTH", "6"))

    # Google Books API settings
    google_books_api_key: Optional[str] = os.getenv("GOOGLE_BOOKS_API_KEY")
    google_books_timeout: float = float(os.getenv("GOOGLE_BOOKS_TIMEOUT", "10"))
    google_books_max_results: int = int(os.getenv("GOOGLE_BOOKS_MAX_RESULTS", "12"))
    enable_google_books: bool = _env_flag("ENABLE_GOOGLE_BOOKS", "True")

    # Application settings
    app_name: str = os.getenv("APP_NAME", "shelfpulse")
    app_version: str = os.getenv("APP_VERSION", "1.0.0")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    debug: bool = _env_flag("DEBUG", "False")


settings = Settings()


def configure_logging(config: Optional[Settings] = None) -> None:
    """Configure root logging from settings."""
    config = config or settings
    level = getattr(logging, config.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
