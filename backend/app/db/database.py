# backend/app/db/database.py
import logging

from databases import Database

from ..core.config import settings

logger = logging.getLogger(__name__)


def build_database(url: str) -> Database:
    """
    Ayarlara göre Database nesnesi üretir.
    Pool parametreleri sadece PostgreSQL sürücüsünde anlamlı; SQLite (lokal/test) için verilmez.
    """
    if url.startswith("sqlite"):
        return Database(url)

    # min_size max_size'tan küçük veya eşit olmalı (validasyon)
    min_size = min(settings.DB_POOL_MIN_SIZE, settings.DB_POOL_MAX_SIZE)
    max_size = max(settings.DB_POOL_MIN_SIZE, settings.DB_POOL_MAX_SIZE)
    return Database(
        url,
        min_size=min_size,
        max_size=max_size,
        command_timeout=settings.DB_COMMAND_TIMEOUT,
    )


db = build_database(settings.DATABASE_URL)


async def connect_all():
    if not db.is_connected:
        await db.connect()
        logger.info(f"Database connected ({db.url.dialect})")


async def disconnect_all():
    if db.is_connected:
        await db.disconnect()
