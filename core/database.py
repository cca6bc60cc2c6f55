"""
Warehouse engine creation with SQLAlchemy async
"""

from sqlalchemy.engine import URL
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool
from core.config import Settings
import logging

logger = logging.getLogger(__name__)


def build_warehouse_url(settings: Settings) -> URL:
    """Redshift speaks the PostgreSQL wire protocol, so asyncpg is used"""
    return URL.create(
        "postgresql+asyncpg",
        username=settings.DB_USERNAME,
        password=settings.DB_PASSWORD.get_secret_value(),
        host=settings.CLUSTER_HOST,
        port=settings.CLUSTER_PORT,
        database=settings.DB_NAME,
    )


def create_warehouse_engine(settings: Settings) -> AsyncEngine:
    """
    Create the async engine used by the query executor.

    NullPool makes every checkout a fresh connection that is closed on
    release, so each delivery attempt owns exactly one connection.
    """
    logger.info(
        f"Creating warehouse engine for {settings.CLUSTER_HOST}:{settings.CLUSTER_PORT}/{settings.DB_NAME}"
    )
    return create_async_engine(
        build_warehouse_url(settings),
        echo=False,
        poolclass=NullPool,
    )
