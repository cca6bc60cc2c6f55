import asyncio
import logging
import sys
import os

# Add current directory to path to allow imports from core, ingestion, etc.
sys.path.append(os.getcwd())

from core.config import load_settings
from core.database import create_warehouse_engine
from core.exceptions import ConfigurationError, ConnectivityError
from core.logging import setup_logging
from ingestion.bootstrap import bootstrap_table
from ingestion.loaders.redshift_loader import RedshiftExecutor

logger = logging.getLogger(__name__)


async def init_table():
    settings = load_settings()
    setup_logging(settings.LOG_LEVEL)

    executor = RedshiftExecutor(create_warehouse_engine(settings))
    try:
        table_name = await bootstrap_table(
            executor,
            settings.DB_SCHEMA,
            settings.TABLE_NAME,
            settings.PROPERTIES_DATA_TYPE
        )
        logger.info(f"Table {table_name} created (or already present).")
    finally:
        await executor.dispose()


if __name__ == "__main__":
    try:
        asyncio.run(init_table())
    except (ConfigurationError, ConnectivityError) as e:
        print(str(e), file=sys.stderr)
        sys.exit(1)
