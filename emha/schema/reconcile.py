"""
Schema reconciliation - bring a live table in line with the columns the
application expects before a read/write proceeds.

For every (column, type, default) triple the table is probed through
information_schema and, when the column is absent, an additive
ALTER TABLE ... ADD COLUMN IF NOT EXISTS is issued through the SQL channel.
Nothing is ever dropped. Non-column objects (policies, triggers) are
created the same way, each behind its own existence query. Checks and
alterations are separate statements without locking, so two processes
reconciling the same table can race; the IF NOT EXISTS guard keeps that
harmless for column additions.

When the channel cannot run statements at all, the routine degrades: it
probes the table through the row API (if a probe was given), logs the SQL
for manual execution and returns a failed result instead of raising.
"""

import logging
from typing import Callable, Iterable, Optional, Union

from pydantic import BaseModel, Field, field_validator

from ..backend.errors import BackendError, ChannelUnavailableError, SqlExecutionError
from ..config import DB_SCHEMA
from .channel import SqlChannel, qualified_name, quote_ident
from .prober import SchemaProber

logger = logging.getLogger(__name__)

# Makes the row API pick up new columns without a restart
SCHEMA_RELOAD_SQL = "NOTIFY pgrst, 'reload schema'"


class ColumnSpec(BaseModel):
    """A column the application expects: name, SQL type and optional SQL default expression"""

    name: str
    type: str
    default: Optional[str] = None

    @field_validator("name", "type")
    @classmethod
    def validate_not_blank(cls, v):
        if not v or not v.strip():
            raise ValueError("must not be blank")
        return v.strip()

    @field_validator("type", "default")
    @classmethod
    def validate_single_statement(cls, v):
        if v is not None and ";" in v:
            raise ValueError("must not contain ';'")
        return v

    @classmethod
    def coerce(cls, value: Union["ColumnSpec", tuple, list, dict]) -> "ColumnSpec":
        if isinstance(value, ColumnSpec):
            return value
        if isinstance(value, dict):
            return cls(**value)
        name, type_, *rest = value
        return cls(name=name, type=type_, default=rest[0] if rest else None)


class GuardedStatement(BaseModel):
    """
    A non-column schema object (policy, trigger, function) that is created
    only when exists_sql returns no rows.
    """

    name: str
    exists_sql: str
    sql: str


class ReconcileResult(BaseModel):
    table: str
    success: bool = True
    added: list[str] = Field(default_factory=list)
    existing: list[str] = Field(default_factory=list)
    failed: dict[str, str] = Field(default_factory=dict)
    backfilled: list[str] = Field(default_factory=list)
    applied: list[str] = Field(default_factory=list)
    already_applied: list[str] = Field(default_factory=list)
    table_created: bool = False
    table_reachable: Optional[bool] = None
    channel_unavailable: bool = False
    manual_sql: list[str] = Field(default_factory=list)
    error: Optional[str] = None

    @property
    def requires_manual_action(self) -> bool:
        return bool(self.manual_sql)


def add_column_sql(schema: Optional[str], table: str, column: ColumnSpec) -> str:
    sql = (
        f"ALTER TABLE {qualified_name(schema, table)} "
        f"ADD COLUMN IF NOT EXISTS {quote_ident(column.name)} {column.type}"
    )
    if column.default is not None:
        sql += f" DEFAULT {column.default}"
    return sql


def backfill_sql(schema: Optional[str], table: str, column: ColumnSpec) -> str:
    name = quote_ident(column.name)
    return (
        f"UPDATE {qualified_name(schema, table)} SET {name} = {column.default} "
        f"WHERE {name} IS NULL"
    )


def render_script(statements: Iterable[str]) -> str:
    """Join statements into a script an operator can paste into a SQL editor"""
    lines = []
    for statement in statements:
        statement = statement.strip()
        lines.append(statement if statement.endswith(";") else statement + ";")
    return "\n".join(lines)


class SchemaReconciler:
    """Check-then-alter reconciliation for one schema"""

    def __init__(
        self,
        channel: SqlChannel,
        schema: str = DB_SCHEMA,
        table_probe: Optional[Callable[[str], bool]] = None,
        reload_schema_cache: bool = True,
    ):
        self.channel = channel
        self.schema = schema
        self.prober = SchemaProber(channel, schema)
        self.table_probe = table_probe
        self.reload_schema_cache = reload_schema_cache

    def reconcile(
        self,
        table: str,
        columns: Iterable[Union[ColumnSpec, tuple]],
        create_table_sql: Optional[list[str]] = None,
        backfill: bool = False,
        guarded: Optional[list[GuardedStatement]] = None,
    ) -> ReconcileResult:
        columns = [ColumnSpec.coerce(c) for c in columns]
        create_table_sql = create_table_sql or []
        guarded = guarded or []
        guarded_sql = [g.sql for g in guarded]
        result = ReconcileResult(table=table)

        logger.info(
            f"🔍 Reconciling {self.schema}.{table} ({len(columns)} columns) "
            f"via {self.channel.description}"
        )

        try:
            if create_table_sql and not self.prober.table_exists(table):
                logger.info(f"ℹ️  {table} does not exist, creating it")
                for statement in create_table_sql:
                    self.channel.execute(statement)
                result.table_created = True
                logger.info(f"✅ Created table {table}")
            missing = set(self.prober.missing_columns(table, [c.name for c in columns]))
        except ChannelUnavailableError as e:
            statements = (
                list(create_table_sql)
                + [add_column_sql(self.schema, table, c) for c in columns]
                + guarded_sql
            )
            return self._degrade(result, e, statements)
        except SqlExecutionError as e:
            result.success = False
            result.error = f"Schema check failed for {table}: {e.message}"
            result.manual_sql.extend(
                list(create_table_sql)
                + [add_column_sql(self.schema, table, c) for c in columns]
                + guarded_sql
            )
            logger.error(f"❌ {result.error}")
            return result

        for index, column in enumerate(columns):
            if column.name not in missing:
                result.existing.append(column.name)
                logger.info(f"ℹ️  {column.name} column already exists in {table}")
                continue

            sql = add_column_sql(self.schema, table, column)
            try:
                self.channel.execute(sql)
            except ChannelUnavailableError as e:
                remaining = [
                    add_column_sql(self.schema, table, c)
                    for c in columns[index:]
                    if c.name in missing
                ]
                return self._degrade(result, e, remaining + guarded_sql)
            except SqlExecutionError as e:
                result.failed[column.name] = e.message
                result.manual_sql.append(sql)
                logger.error(f"❌ Error adding {column.name} column to {table}: {e.message}")
                continue

            result.added.append(column.name)
            logger.info(f"✅ Added {column.name} column to {table}")

        if backfill:
            self._backfill(table, columns, result)

        if result.added and self.reload_schema_cache:
            try:
                self.channel.execute(SCHEMA_RELOAD_SQL)
            except BackendError as e:
                logger.warning(f"⚠️  Schema cache reload failed (new columns may lag): {e.message}")

        for index, statement in enumerate(guarded):
            try:
                self._apply_guarded(statement, result)
            except ChannelUnavailableError as e:
                return self._degrade(result, e, guarded_sql[index:])

        if result.failed:
            result.success = False
            result.error = f"{len(result.failed)} change(s) could not be applied to {table}"
            logger.warning(f"⚠️  {result.error}; apply manually:\n{render_script(result.manual_sql)}")
        else:
            logger.info(
                f"✅ {table} reconciled: {len(result.added)} added, "
                f"{len(result.existing)} already present"
            )
        return result

    def run_migration(self, migration, backfill: bool = False) -> ReconcileResult:
        """Reconcile a catalog migration: table, columns, then guarded statements"""
        return self.reconcile(
            migration.table,
            migration.columns,
            create_table_sql=migration.create_statements(self.schema),
            backfill=backfill,
            guarded=migration.statements,
        )

    def _apply_guarded(self, statement: GuardedStatement, result: ReconcileResult) -> None:
        try:
            if self.channel.query(statement.exists_sql):
                result.already_applied.append(statement.name)
                logger.info(f"ℹ️  {statement.name} already in place")
                return
            self.channel.execute(statement.sql)
        except SqlExecutionError as e:
            result.failed[statement.name] = e.message
            result.manual_sql.append(statement.sql)
            logger.error(f"❌ Error applying {statement.name}: {e.message}")
            return
        result.applied.append(statement.name)
        logger.info(f"✅ Applied {statement.name}")

    def _backfill(self, table: str, columns: list[ColumnSpec], result: ReconcileResult) -> None:
        for column in columns:
            if column.default is None or column.name in result.failed:
                continue
            sql = backfill_sql(self.schema, table, column)
            try:
                self.channel.execute(sql)
            except BackendError as e:
                result.manual_sql.append(sql)
                logger.warning(f"⚠️  Backfill of {column.name} failed: {e.message}")
                continue
            result.backfilled.append(column.name)

    def _degrade(
        self, result: ReconcileResult, error: BackendError, statements: list[str]
    ) -> ReconcileResult:
        result.success = False
        result.channel_unavailable = True
        result.error = f"SQL execution channel unavailable: {error.message}"
        logger.error(f"❌ {result.error}")

        if self.table_probe is not None:
            logger.info(f"ℹ️  Trying direct table probe for {result.table}...")
            try:
                result.table_reachable = bool(self.table_probe(result.table))
            except BackendError as probe_error:
                logger.error(f"❌ Direct table probe failed: {probe_error.message}")
                result.table_reachable = False

            if result.table_reachable:
                logger.info(f"ℹ️  {result.table} is reachable; the columns must be added manually")
            else:
                logger.error(f"❌ {result.table} is not reachable through the row API either")

        result.manual_sql.extend(statements)
        logger.warning(f"⚠️  Please apply this SQL manually:\n{render_script(statements)}")
        return result


def reconcile_columns(
    channel: SqlChannel,
    table: str,
    columns: Iterable[Union[ColumnSpec, tuple]],
    schema: str = DB_SCHEMA,
    table_probe: Optional[Callable[[str], bool]] = None,
    **kwargs,
) -> ReconcileResult:
    """One-shot reconciliation of a table's columns"""
    reconciler = SchemaReconciler(channel, schema=schema, table_probe=table_probe)
    return reconciler.reconcile(table, columns, **kwargs)
