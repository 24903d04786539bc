"""Driver factory."""

from __future__ import annotations

from typing import TYPE_CHECKING

from apiforge.config import Settings
from apiforge.persistence.memory import MemoryDriver

if TYPE_CHECKING:
    from apiforge.persistence.driver import Driver


def create_driver(settings: Settings | None = None) -> Driver:
    """Create a driver from settings.

    Without DATABASE_URL the in-memory driver is used; otherwise a SQLDriver
    on the SQLAlchemy form of the URL.

    Raises:
        ValueError: For unsupported URL schemes.
    """
    settings = settings or Settings.from_env()
    url = settings.sqlalchemy_url
    if not url:
        return MemoryDriver()

    if url.startswith(("sqlite", "postgresql")):
        from apiforge.persistence.sql import SQLDriver

        return SQLDriver(url)

    raise ValueError(f"Unsupported database URL scheme: {url}")
