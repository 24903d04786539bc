"""Runtime settings loaded from the environment."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass


@dataclass
class Settings:
    """Process settings.

    Resolution is environment-only; explicit constructor arguments on
    ApiForge take precedence over these values.
    """

    environment: str = "development"
    log_level: str = "INFO"
    database_url: str | None = None
    jwt_secret: str | None = None
    api_prefix: str = "/api"
    port: int = 8000

    @classmethod
    def from_env(cls) -> Settings:
        """Create settings from environment variables.

        Reads APIFORGE_ENV, APIFORGE_LOG_LEVEL, DATABASE_URL,
        APIFORGE_JWT_SECRET, APIFORGE_API_PREFIX and APIFORGE_PORT.
        """
        return cls(
            environment=os.environ.get("APIFORGE_ENV", "development").lower(),
            log_level=os.environ.get("APIFORGE_LOG_LEVEL", "INFO").upper(),
            database_url=os.environ.get("DATABASE_URL") or None,
            jwt_secret=os.environ.get("APIFORGE_JWT_SECRET") or None,
            api_prefix=os.environ.get("APIFORGE_API_PREFIX", "/api"),
            port=int(os.environ.get("APIFORGE_PORT", "8000")),
        )

    @property
    def production(self) -> bool:
        return self.environment == "production"

    @property
    def sqlalchemy_url(self) -> str | None:
        """URL suitable for SQLAlchemy engine creation.

        postgresql:// URLs are pointed at the psycopg (v3) driver.
        """
        if self.database_url and self.database_url.startswith("postgresql://"):
            return self.database_url.replace("postgresql://", "postgresql+psycopg://", 1)
        return self.database_url


def configure_logging(settings: Settings | None = None) -> None:
    """Configure root logging from settings (idempotent)."""
    settings = settings or Settings.from_env()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
