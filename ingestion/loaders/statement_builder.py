"""
Build the multi-row parameterized INSERT used to deliver a batch
"""

from datetime import datetime
from typing import Any, List, Sequence, Tuple

from core.config import PropertiesDataType
from schemas.events import NormalizedRow, WAREHOUSE_COLUMNS

COLUMN_COUNT = len(WAREHOUSE_COLUMNS)

# Columns that hold JSON and become SUPER values in the structured dialect
STRUCTURED_COLUMNS = frozenset({"properties", "set", "set_once"})

TIMESTAMP_COLUMN_INDEX = WAREHOUSE_COLUMNS.index("timestamp")


class InsertStatementBuilder:
    """
    Turn an ordered batch of rows into one INSERT statement.

    Row i, column j is bound to placeholder ${11*i + j + 1}; the values list
    is the row-major concatenation of every row's column values. With the
    SUPER dialect the JSON columns are parsed on insert via JSON_PARSE.
    """

    def __init__(self, properties_data_type: PropertiesDataType = PropertiesDataType.VARCHAR):
        self.properties_data_type = PropertiesDataType(properties_data_type)

    def _placeholder(self, column: str, index: int) -> str:
        placeholder = f"${index}"
        if self.properties_data_type == PropertiesDataType.SUPER and column in STRUCTURED_COLUMNS:
            return f"JSON_PARSE({placeholder})"
        return placeholder

    def build(self, rows: Sequence[NormalizedRow], table_name: str) -> Tuple[str, List[Any]]:
        """
        Args:
            rows: Non-empty ordered rows
            table_name: Already sanitized (optionally schema-qualified) table

        Returns:
            (statement text, flat positional values)
        """
        if not rows:
            raise ValueError("Cannot build an INSERT for an empty batch")

        groups = []
        values: List[Any] = []

        for i, row in enumerate(rows):
            placeholders = ", ".join(
                self._placeholder(column, COLUMN_COUNT * i + j + 1)
                for j, column in enumerate(WAREHOUSE_COLUMNS)
            )
            groups.append(f"({placeholders})")
            values.extend(row.as_values())

        statement = (
            f"INSERT INTO {table_name} ({', '.join(WAREHOUSE_COLUMNS)})\n"
            f"VALUES {', '.join(groups)}"
        )
        return statement, values

    def driver_values(self, values: Sequence[Any]) -> List[Any]:
        """
        Values as the driver binds them.

        asyncpg types each placeholder from the table, so the timestamp
        column is bound as an aware datetime instead of its canonical text.
        """
        bound = list(values)
        for index in range(TIMESTAMP_COLUMN_INDEX, len(bound), COLUMN_COUNT):
            value = bound[index]
            if isinstance(value, str):
                bound[index] = datetime.fromisoformat(value.replace("Z", "+00:00"))
        return bound
