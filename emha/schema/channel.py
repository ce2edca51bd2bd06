"""
SQL execution channels.

Every statement the reconciliation issues goes through one of these:

- RpcSqlChannel: the hosted backend's execute_sql remote procedure, which
  takes a single text parameter. Queries come back as a JSON row array;
  statements as {"success": true} or {"success": false, "error", "detail"}.
- EngineSqlChannel: a direct SQLAlchemy connection (DATABASE_URL).

Both raise ChannelUnavailableError when statements cannot be run at all and
SqlExecutionError when a statement ran and failed.
"""

import logging
from typing import Any, Optional

from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, OperationalError

from ..backend.client import BackendClient
from ..backend.errors import (
    UNAVAILABLE_CODES,
    BackendError,
    ChannelUnavailableError,
    SqlExecutionError,
)
from ..config import EXEC_SQL_FUNCTION, EXEC_SQL_PARAM

logger = logging.getLogger(__name__)

# Statements are sent verbatim: no bind-parameter parsing, no driver % formatting
_RAW = {"no_parameters": True}


def quote_ident(name: str) -> str:
    """Double-quote an identifier, preserving case"""
    return '"' + name.replace('"', '""') + '"'


def qualified_name(schema: Optional[str], table: str) -> str:
    if schema:
        return f"{quote_ident(schema)}.{quote_ident(table)}"
    return quote_ident(table)


def sql_literal(value: Any) -> str:
    """Render a Python value as a SQL literal for statements sent as plain text"""
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, (int, float)):
        return repr(value)
    return "'" + str(value).replace("'", "''") + "'"


class SqlChannel:
    """Runs SQL text against the live database"""

    description = "sql"

    def execute(self, sql: str) -> None:
        raise NotImplementedError

    def query(self, sql: str) -> list[dict[str, Any]]:
        raise NotImplementedError


class RpcSqlChannel(SqlChannel):
    """Runs SQL through the backend's arbitrary-SQL remote procedure"""

    def __init__(
        self,
        client: BackendClient,
        function: str = EXEC_SQL_FUNCTION,
        param: str = EXEC_SQL_PARAM,
    ):
        self.client = client
        self.function = function
        self.param = param
        self.description = f"rpc:{function}"

    def _call(self, sql: str) -> Any:
        try:
            result = self.client.rpc(self.function, {self.param: sql})
        except ChannelUnavailableError:
            raise
        except BackendError as e:
            raise SqlExecutionError(
                e.message, code=e.code, details=e.details, hint=e.hint, status_code=e.status_code
            ) from e

        if isinstance(result, dict) and result.get("success") is False:
            message = result.get("error") or result.get("message") or "SQL execution failed"
            code = result.get("code") or result.get("detail")
            error_cls = ChannelUnavailableError if code in UNAVAILABLE_CODES else SqlExecutionError
            raise error_cls(str(message), code=code, details=result.get("detail"))
        return result

    def execute(self, sql: str) -> None:
        self._call(sql)

    def query(self, sql: str) -> list[dict[str, Any]]:
        # The procedure wraps queries in a subselect, so no trailing semicolon
        result = self._call(sql.strip().rstrip(";"))
        if isinstance(result, list):
            return result
        if isinstance(result, dict) and isinstance(result.get("rows"), list):
            return result["rows"]
        # A procedure that only reports success cannot answer queries
        raise ChannelUnavailableError(
            f"{self.function} cannot return rows; install it with `emha-schema install-exec-sql`",
            code="NO_ROWS",
            details=str(result)[:200],
        )


class EngineSqlChannel(SqlChannel):
    """Runs SQL over a direct SQLAlchemy connection"""

    def __init__(self, engine: Engine):
        self.engine = engine
        self.description = f"engine:{engine.dialect.name}"

    def _translate(self, e: DBAPIError) -> BackendError:
        code = getattr(e.orig, "pgcode", None)
        message = str(e.orig) if e.orig is not None else str(e)
        unavailable = (
            code in UNAVAILABLE_CODES
            or (code or "").startswith("08")  # connection_exception class
            or e.connection_invalidated
            or (isinstance(e, OperationalError) and self.engine.dialect.name != "sqlite")
        )
        error_cls = ChannelUnavailableError if unavailable else SqlExecutionError
        return error_cls(message.strip(), code=code)

    def execute(self, sql: str) -> None:
        try:
            with self.engine.begin() as conn:
                conn.exec_driver_sql(sql, execution_options=_RAW)
        except DBAPIError as e:
            raise self._translate(e) from e

    def query(self, sql: str) -> list[dict[str, Any]]:
        try:
            with self.engine.connect() as conn:
                result = conn.exec_driver_sql(sql, execution_options=_RAW)
                return [dict(row._mapping) for row in result]
        except DBAPIError as e:
            raise self._translate(e) from e
