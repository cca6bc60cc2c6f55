"""
Execute prepared statements against Redshift through SQLAlchemy async
"""

from typing import Any, Protocol, Sequence
from sqlalchemy.ext.asyncio import AsyncEngine
from core.exceptions import QueryExecutionError
import logging

logger = logging.getLogger(__name__)


class QueryExecutor(Protocol):
    """Anything that runs one statement with positional values"""

    async def execute(self, statement: str, values: Sequence[Any] = ()) -> None: ...


class RedshiftExecutor:
    """
    Opaque query executor used by bootstrap and delivery.

    Ensures:
    - One connection per statement, released on success and failure
    - Positional ($1, $2, ...) parameters passed straight to the driver
    - Every driver failure surfaces as QueryExecutionError
    """

    def __init__(self, engine: AsyncEngine):
        self.engine = engine

    async def execute(self, statement: str, values: Sequence[Any] = ()) -> None:
        """
        Run one statement in its own transaction.

        Args:
            statement: SQL text using $n placeholders
            values: Flat positional values

        Raises:
            QueryExecutionError: If connecting or executing fails
        """
        try:
            async with self.engine.connect() as conn:
                await conn.exec_driver_sql(statement, tuple(values))
                await conn.commit()
        except Exception as e:
            raise QueryExecutionError(
                "Warehouse statement failed",
                context={
                    "operation": statement.split(None, 1)[0].upper() if statement.strip() else "",
                    "parameter_count": len(values),
                },
                original_exception=e
            )

    async def dispose(self) -> None:
        await self.engine.dispose()
        logger.info("Warehouse engine disposed")
