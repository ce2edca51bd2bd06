"""
emha-schema - operator tooling for schema reconciliation.

    emha-schema list
    emha-schema print-sql NAME
    emha-schema reconcile NAME [URL KEY] [--backfill]
    emha-schema verify NAME [URL KEY]
    emha-schema run-sql FILE [URL KEY]
    emha-schema install-exec-sql [URL KEY] [--print-only]
    emha-schema fix-roles [URL KEY]

URL and KEY default to BACKEND_URL / BACKEND_SERVICE_KEY. With --database-url
(or DATABASE_URL when no URL is given) statements run over a direct database
connection instead of the execute_sql remote procedure.

Exit status is 1 for missing configuration, unknown migrations and backend
errors. When the database has to be changed by hand the SQL is printed and
the exit status is 0.
"""

import argparse
import logging
import sys
from contextlib import contextmanager
from typing import Iterator, Optional

from .backend.client import BackendClient
from .backend.errors import BackendError, ChannelUnavailableError, SqlExecutionError
from .config import BACKEND_SERVICE_KEY, BACKEND_URL, DATABASE_URL, DB_SCHEMA
from .database import create_db_engine
from .domain.ambassadors.roles import AmbassadorRoleRepair
from .schema.catalog import (
    MIGRATIONS,
    UnknownMigrationError,
    exec_function_statements,
    get_migration,
)
from .schema.channel import EngineSqlChannel, RpcSqlChannel, SqlChannel
from .schema.reconcile import ReconcileResult, SchemaReconciler, add_column_sql, render_script
from .schema.sqlfile import read_statements

logger = logging.getLogger(__name__)


class CliError(Exception):
    pass


class Connection:
    """SQL channel plus, in REST mode, the client behind it"""

    def __init__(
        self, channel: SqlChannel, client: Optional[BackendClient] = None, schema: str = DB_SCHEMA
    ):
        self.channel = channel
        self.client = client
        self.schema = schema

    def reconciler(self) -> SchemaReconciler:
        probe = self.client.table_reachable if self.client is not None else None
        return SchemaReconciler(self.channel, schema=self.schema, table_probe=probe)


@contextmanager
def connect(args: argparse.Namespace) -> Iterator[Connection]:
    database_url = args.database_url or (DATABASE_URL if not args.url else None)
    if database_url:
        engine = create_db_engine(database_url)
        try:
            yield Connection(EngineSqlChannel(engine))
        finally:
            engine.dispose()
        return

    url = args.url or BACKEND_URL
    key = args.key or BACKEND_SERVICE_KEY
    if not url or not key:
        raise CliError(
            "Backend URL and service key are required "
            "(pass them as arguments or set BACKEND_URL and BACKEND_SERVICE_KEY)"
        )
    with BackendClient(url, key) as client:
        yield Connection(RpcSqlChannel(client), client=client)


def print_manual_sql(statements: list[str]) -> None:
    print("\n⚠️  Please run this SQL in your database SQL editor:\n")
    print(render_script(statements))
    print()


def report(result: ReconcileResult) -> int:
    if result.table_created:
        print(f"✅ Created table {result.table}")
    for name in result.added:
        print(f"✅ Added {name}")
    for name in result.existing:
        print(f"ℹ️  {name} already exists")
    for name, error in result.failed.items():
        print(f"❌ {name}: {error}")
    for name in result.backfilled:
        print(f"✅ Backfilled NULL values in {name}")
    for name in result.applied:
        print(f"✅ Applied {name}")
    for name in result.already_applied:
        print(f"ℹ️  {name} already in place")

    if result.success:
        print(f"\n✅ {result.table} is up to date")
    else:
        print(f"\n❌ {result.error}")
        if result.table_reachable is not None:
            state = "reachable" if result.table_reachable else "not reachable"
            print(f"ℹ️  {result.table} is {state} through the row API")
    if result.requires_manual_action:
        print_manual_sql(result.manual_sql)
    return 0


def cmd_list(args) -> int:
    for migration in MIGRATIONS.values():
        aliases = f" (aliases: {', '.join(migration.aliases)})" if migration.aliases else ""
        print(f"{migration.name:<20} {migration.table:<22} {migration.description}{aliases}")
    return 0


def cmd_print_sql(args) -> int:
    migration = get_migration(args.name)
    statements = migration.create_statements(DB_SCHEMA) + [
        add_column_sql(DB_SCHEMA, migration.table, column) for column in migration.columns
    ] + [statement.sql for statement in migration.statements]
    print(render_script(statements))
    return 0


def cmd_reconcile(args) -> int:
    migration = get_migration(args.name)
    with connect(args) as conn:
        result = conn.reconciler().run_migration(migration, backfill=args.backfill)
    return report(result)


def cmd_verify(args) -> int:
    migration = get_migration(args.name)
    names = [column.name for column in migration.columns]
    with connect(args) as conn:
        existing = conn.reconciler().prober.get_columns(migration.table, names)

    missing = [column for column in migration.columns if column.name not in existing]
    for name in names:
        if name in existing:
            info = existing[name]
            print(f"✅ {name}: {info['data_type']} (default: {info['column_default']})")
        else:
            print(f"❌ {name}: missing")

    if missing:
        print(f"\n⚠️  {len(missing)} column(s) missing from {migration.table}")
        print_manual_sql([add_column_sql(conn.schema, migration.table, c) for c in missing])
    else:
        print(f"\n✅ All {len(names)} columns present in {migration.table}")
    return 0


def cmd_run_sql(args) -> int:
    try:
        statements = read_statements(args.file)
    except FileNotFoundError:
        raise CliError(f"Migration file not found: {args.file}") from None

    logger.info(f"Found {len(statements)} SQL statements to execute")
    with connect(args) as conn:
        for i, statement in enumerate(statements, 1):
            logger.info(f"Executing statement {i}/{len(statements)}...")
            try:
                conn.channel.execute(statement)
            except ChannelUnavailableError as e:
                logger.error(f"❌ Cannot execute SQL through {conn.channel.description}: {e.message}")
                print_manual_sql(statements[i - 1 :])
                return 0
            except SqlExecutionError as e:
                logger.error(f"❌ Statement {i} failed: {e.message}")
                return 1

    logger.info("✅ Migration completed successfully!")
    return 0


def cmd_install_exec_sql(args) -> int:
    if args.print_only:
        print(render_script(exec_function_statements(schema=DB_SCHEMA)))
        return 0

    with connect(args) as conn:
        statements = exec_function_statements(schema=conn.schema)
        if isinstance(conn.channel, EngineSqlChannel):
            for statement in statements:
                conn.channel.execute(statement)
            logger.info("✅ execute_sql function installed")
            return 0

        try:
            rows = conn.channel.query("SELECT 1 AS ok")
        except ChannelUnavailableError as e:
            logger.warning(f"⚠️  execute_sql is missing or cannot return rows: {e.message}")
            print_manual_sql(statements)
            return 0
        if not rows:
            logger.warning("⚠️  execute_sql returned no rows for SELECT 1")
            print_manual_sql(statements)
            return 0

    logger.info("ℹ️  execute_sql function is already installed")
    return 0


def cmd_fix_roles(args) -> int:
    with connect(args) as conn:
        if conn.client is None:
            raise CliError("fix-roles needs the backend REST API (URL and service key)")
        stats = AmbassadorRoleRepair(conn.client).run()

    print("\n📊 Summary:")
    print(f"   Total ambassadors: {stats.total}")
    print(f"   Updated: {stats.updated}")
    print(f"   Already correct: {stats.already_correct}")
    print(f"   Errors: {stats.errors}")
    return 0


def _add_connection_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("url", nargs="?", help="Backend URL (default: BACKEND_URL)")
    parser.add_argument("key", nargs="?", help="Service role key (default: BACKEND_SERVICE_KEY)")
    parser.add_argument("--database-url", help="Run statements over a direct database connection")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="emha-schema", description="Schema reconciliation tooling")
    subparsers = parser.add_subparsers(dest="command", required=True)

    p = subparsers.add_parser("list", help="List known migrations")
    p.set_defaults(func=cmd_list)

    p = subparsers.add_parser("print-sql", help="Print a migration's SQL for manual execution")
    p.add_argument("name")
    p.set_defaults(func=cmd_print_sql)

    p = subparsers.add_parser("reconcile", help="Add missing columns for a migration")
    p.add_argument("name")
    _add_connection_args(p)
    p.add_argument("--backfill", action="store_true", help="Set NULL values to column defaults")
    p.set_defaults(func=cmd_reconcile)

    p = subparsers.add_parser("verify", help="Report which of a migration's columns exist")
    p.add_argument("name")
    _add_connection_args(p)
    p.set_defaults(func=cmd_verify)

    p = subparsers.add_parser("run-sql", help="Execute a SQL file statement by statement")
    p.add_argument("file")
    _add_connection_args(p)
    p.set_defaults(func=cmd_run_sql)

    p = subparsers.add_parser("install-exec-sql", help="Install the execute_sql remote procedure")
    _add_connection_args(p)
    p.add_argument("--print-only", action="store_true", help="Only print the SQL")
    p.set_defaults(func=cmd_install_exec_sql)

    p = subparsers.add_parser("fix-roles", help="Give every ambassador profile owner the ambassador role")
    _add_connection_args(p)
    p.set_defaults(func=cmd_fix_roles)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    args = build_parser().parse_args(argv)
    try:
        return args.func(args)
    except UnknownMigrationError as e:
        logger.error(f"❌ Unknown migration: {e}. Run 'emha-schema list' to see the options")
        return 1
    except CliError as e:
        logger.error(f"❌ {e}")
        return 1
    except BackendError as e:
        logger.error(f"❌ Backend error: {e.message} (code={e.code})")
        return 1


if __name__ == "__main__":
    sys.exit(main())
