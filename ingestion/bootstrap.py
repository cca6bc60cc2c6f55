"""
Identifier sanitizing and idempotent table creation at startup
"""

import logging
import re

from core.config import PropertiesDataType
from core.exceptions import ConfigurationError, ConnectivityError
from ingestion.loaders.redshift_loader import QueryExecutor

logger = logging.getLogger(__name__)

_UNSAFE_WITH_DOT = re.compile(r"[^A-Za-z0-9_.]+")
_UNSAFE_WITHOUT_DOT = re.compile(r"[^A-Za-z0-9_]+")

PROPERTIES_COLUMN_TYPES = {
    PropertiesDataType.VARCHAR: "varchar(65535)",
    PropertiesDataType.SUPER: "super",
}


def sanitize_identifier(name: str, allow_dot: bool = True) -> str:
    """Delete every character that cannot appear in an unquoted identifier"""
    pattern = _UNSAFE_WITH_DOT if allow_dot else _UNSAFE_WITHOUT_DOT
    return pattern.sub("", name or "")


def qualified_table_name(schema: str, table: str) -> str:
    """A table name that already carries a schema ("analytics.events") is kept as is"""
    table = sanitize_identifier(table)
    if "." in table:
        return table
    return f"{sanitize_identifier(schema, allow_dot=False)}.{table}"


def create_table_statement(
    table_name: str,
    properties_data_type: PropertiesDataType = PropertiesDataType.VARCHAR
) -> str:
    """CREATE TABLE IF NOT EXISTS for an already qualified, sanitized table name"""
    properties_type = PROPERTIES_COLUMN_TYPES[PropertiesDataType(properties_data_type)]
    return f"""CREATE TABLE IF NOT EXISTS {table_name} (
    uuid varchar(200),
    event varchar(200),
    properties {properties_type},
    elements varchar(65535),
    set {properties_type},
    set_once {properties_type},
    timestamp timestamp with time zone,
    team_id int,
    distinct_id varchar(200),
    ip varchar(200),
    site_url varchar(200)
);"""


async def bootstrap_table(
    executor: QueryExecutor,
    schema: str,
    table: str,
    properties_data_type: PropertiesDataType = PropertiesDataType.VARCHAR
) -> str:
    """
    Create the destination table if it does not exist yet.

    Returns:
        The qualified, sanitized table name used for inserts

    Raises:
        ConnectivityError: If the statement cannot be executed; startup must stop
    """
    table_name = qualified_table_name(schema, table)
    if table_name.startswith(".") or table_name.endswith("."):
        raise ConfigurationError(
            "Table name is empty after sanitizing",
            context={"schema": schema, "table": table}
        )

    logger.info(f"Ensuring table {table_name} exists")

    try:
        await executor.execute(create_table_statement(table_name, properties_data_type), [])
    except Exception as e:
        raise ConnectivityError(
            "Unable to connect to Redshift cluster and create table",
            context={"table_name": table_name},
            original_exception=e
        )

    logger.info(f"Table {table_name} is ready")
    return table_name
