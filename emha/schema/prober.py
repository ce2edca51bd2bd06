"""Schema prober - information_schema lookups through a SQL channel"""

import logging
from typing import Any, Iterable, Optional

from ..config import DB_SCHEMA
from .channel import SqlChannel, sql_literal

logger = logging.getLogger(__name__)


def table_query(schema: str, table: str) -> str:
    return (
        "SELECT table_name FROM information_schema.tables "
        f"WHERE table_schema = {sql_literal(schema)} AND table_name = {sql_literal(table)}"
    )


def columns_query(schema: str, table: str, names: Optional[Iterable[str]] = None) -> str:
    sql = (
        "SELECT column_name, data_type, column_default, is_nullable "
        "FROM information_schema.columns "
        f"WHERE table_schema = {sql_literal(schema)} AND table_name = {sql_literal(table)}"
    )
    if names is not None:
        in_list = ", ".join(sql_literal(name) for name in names)
        sql += f" AND column_name IN ({in_list})"
    return sql + " ORDER BY ordinal_position"


class SchemaProber:
    """Answers "does this table / column exist" for one schema"""

    def __init__(self, channel: SqlChannel, schema: str = DB_SCHEMA):
        self.channel = channel
        self.schema = schema

    def table_exists(self, table: str) -> bool:
        rows = self.channel.query(table_query(self.schema, table))
        return len(rows) > 0

    def get_columns(
        self, table: str, names: Optional[Iterable[str]] = None
    ) -> dict[str, dict[str, Any]]:
        """Column name -> {data_type, column_default, is_nullable}; restricted to names if given"""
        names = list(names) if names is not None else None
        if names == []:
            return {}
        rows = self.channel.query(columns_query(self.schema, table, names))
        columns = {}
        for row in rows:
            columns[row["column_name"]] = {
                "data_type": row.get("data_type"),
                "column_default": row.get("column_default"),
                "is_nullable": row.get("is_nullable"),
            }
        return columns

    def column_exists(self, table: str, column: str) -> bool:
        return column in self.get_columns(table, [column])

    def missing_columns(self, table: str, names: Iterable[str]) -> list[str]:
        """Names (in the given order) that the table does not have"""
        names = list(names)
        existing = self.get_columns(table, names)
        missing = [name for name in names if name not in existing]
        logger.debug(f"{self.schema}.{table}: {len(existing)} present, {len(missing)} missing")
        return missing
