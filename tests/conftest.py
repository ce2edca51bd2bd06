import re

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from emha.backend.client import BackendClient
from emha.backend.errors import ChannelUnavailableError, SqlExecutionError
from emha import models  # noqa: F401
from emha.database import Base
from emha.schema.channel import SqlChannel

PROFILE_ID = "5f0c6a8e-3b1d-4c52-9a57-2e6f1d9b7c11"

_TABLE = re.compile(r"table_name = '([^']*)'")
_IN_LIST = re.compile(r"column_name IN \(([^)]*)\)")
_ADD_COLUMN = re.compile(r'ALTER TABLE "[^"]+"\."([^"]+)" ADD COLUMN IF NOT EXISTS "([^"]+)"')
_CREATE_TABLE = re.compile(r'CREATE TABLE IF NOT EXISTS "[^"]+"\."([^"]+)"')

# Non-column objects: (statement that creates it, existence query that finds it)
_OBJECTS = [
    (re.compile(r'CREATE POLICY "([^"]+)"'), re.compile(r"policyname = '([^']+)'")),
    (
        re.compile(r'ALTER TABLE "[^"]+"\."([^"]+)" ENABLE ROW LEVEL SECURITY'),
        re.compile(r"c\.relname = '([^']+)' AND c\.relrowsecurity"),
    ),
    (re.compile(r'CREATE OR REPLACE FUNCTION "[^"]+"\."([^"]+)"'), re.compile(r"proname = '([^']+)'")),
    (re.compile(r'CREATE TRIGGER "([^"]+)"'), re.compile(r"tgname = '([^']+)'")),
]


class FakeCatalogChannel(SqlChannel):
    """
    In-memory stand-in for a database reached through a SQL channel. Understands
    the information_schema probes and ADD COLUMN / CREATE TABLE statements the
    reconciler issues, tracks policies, triggers and functions it creates, and
    records everything else.
    """

    description = "fake"

    def __init__(self, tables=None, available=True, failing_columns=(), failing_objects=()):
        self.tables = {name: list(columns) for name, columns in (tables or {}).items()}
        self.available = available
        self.failing_columns = set(failing_columns)
        self.failing_objects = set(failing_objects)
        self.objects = set()
        self.statements = []
        self.queries = []

    def _check_available(self):
        if not self.available:
            raise ChannelUnavailableError(
                "Could not find the function public.execute_sql(sql_query) in the schema cache",
                code="PGRST202",
            )

    def query(self, sql):
        self._check_available()
        self.queries.append(sql)
        match = _TABLE.search(sql)
        table = match.group(1) if match else None

        if "information_schema.tables" in sql:
            return [{"table_name": table}] if table in self.tables else []

        if "information_schema.columns" in sql:
            columns = self.tables.get(table, [])
            names = _IN_LIST.search(sql)
            if names:
                wanted = set(re.findall(r"'([^']*)'", names.group(1)))
                columns = [c for c in columns if c in wanted]
            return [
                {"column_name": c, "data_type": "text", "column_default": None, "is_nullable": "YES"}
                for c in columns
            ]

        for _, find in _OBJECTS:
            match = find.search(sql)
            if match:
                return [{"name": match.group(1)}] if match.group(1) in self.objects else []

        return [{"ok": 1}]

    def execute(self, sql):
        self._check_available()
        self.statements.append(sql)

        match = _CREATE_TABLE.match(sql)
        if match:
            self.tables.setdefault(match.group(1), ["id", "created_at", "updated_at"])
            return

        match = _ADD_COLUMN.match(sql)
        if match:
            table, column = match.groups()
            if column in self.failing_columns:
                raise SqlExecutionError('type "bogus" does not exist', code="42704")
            if table not in self.tables:
                raise SqlExecutionError(f'relation "{table}" does not exist', code="42P01")
            if column not in self.tables[table]:
                self.tables[table].append(column)
            return

        for create, _ in _OBJECTS:
            match = create.match(sql)
            if match:
                if match.group(1) in self.failing_objects:
                    raise SqlExecutionError(f'policy "{match.group(1)}" is malformed', code="42601")
                self.objects.add(match.group(1))
                return

    def alters(self):
        return [s for s in self.statements if s.startswith("ALTER TABLE")]


@pytest.fixture()
def catalog():
    return FakeCatalogChannel(
        tables={"ambassador_profiles": ["id", "full_name", "email", "created_at", "updated_at"]}
    )


@pytest.fixture()
def sqlite_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


def make_client(handler):
    """BackendClient whose requests are answered by handler(request) -> httpx.Response"""
    return BackendClient(
        "https://backend.test",
        "service-key",
        transport=httpx.MockTransport(handler),
    )
