"""
Catalog of named migrations.

Each migration is a table plus the columns the application expects on it,
and optionally the body of a CREATE TABLE for when the table is missing.
Types and defaults are Postgres SQL fragments. Policies, functions and
triggers ride along as guarded statements.
"""

from typing import Optional

from pydantic import BaseModel, Field

from ..config import DB_SCHEMA, EXEC_SQL_FUNCTION, EXEC_SQL_PARAM
from .channel import qualified_name, quote_ident, sql_literal
from .reconcile import ColumnSpec, GuardedStatement, ReconcileResult, SchemaReconciler

UTC_NOW = "timezone('utc'::text, now())"

TIMESTAMP_COLUMNS = f"""
    created_at TIMESTAMPTZ NOT NULL DEFAULT {UTC_NOW},
    updated_at TIMESTAMPTZ NOT NULL DEFAULT {UTC_NOW}"""


class UnknownMigrationError(LookupError):
    pass


class Migration(BaseModel):
    name: str
    table: str
    description: str
    columns: list[ColumnSpec]
    create_table: Optional[str] = None  # column definitions for CREATE TABLE IF NOT EXISTS
    aliases: list[str] = Field(default_factory=list)
    statements: list[GuardedStatement] = Field(default_factory=list)  # applied after the columns

    def create_statements(self, schema: str = DB_SCHEMA) -> list[str]:
        if not self.create_table:
            return []
        table = qualified_name(schema, self.table)
        trigger = quote_ident(f"{self.table}_set_updated_at")
        return [
            f"CREATE TABLE IF NOT EXISTS {table} ({self.create_table.rstrip()}\n)",
            updated_at_function_sql(schema),
            f"CREATE OR REPLACE TRIGGER {trigger} BEFORE UPDATE ON {table} "
            f"FOR EACH ROW EXECUTE FUNCTION {qualified_name(schema, 'set_updated_at')}()",
        ]


def updated_at_function_sql(schema: str = DB_SCHEMA) -> str:
    return f"""CREATE OR REPLACE FUNCTION {qualified_name(schema, 'set_updated_at')}()
RETURNS trigger
LANGUAGE plpgsql
AS $$
BEGIN
  NEW.updated_at = {UTC_NOW};
  RETURN NEW;
END;
$$"""


_EXEC_SQL_TEMPLATE = r"""CREATE OR REPLACE FUNCTION {qualified}({param} text)
RETURNS jsonb
LANGUAGE plpgsql
SECURITY DEFINER
AS $$
DECLARE
  result jsonb;
BEGIN
  IF {param} ~* '^\s*(select|with)\s' THEN
    EXECUTE format('SELECT coalesce(jsonb_agg(t), ''[]''::jsonb) FROM (%s) t', {param}) INTO result;
    RETURN result;
  END IF;
  EXECUTE {param};
  RETURN jsonb_build_object('success', true);
EXCEPTION WHEN OTHERS THEN
  RETURN jsonb_build_object('success', false, 'error', SQLERRM, 'detail', SQLSTATE);
END;
$$"""


def exec_function_statements(
    function: str = EXEC_SQL_FUNCTION, param: str = EXEC_SQL_PARAM, schema: str = DB_SCHEMA
) -> list[str]:
    """
    SQL that installs the arbitrary-SQL remote procedure (service role only).
    An older procedure returning json or void must go first: Postgres will not
    replace a function with a different return type.
    """
    qualified = qualified_name(schema, function)
    return [
        f"DROP FUNCTION IF EXISTS {qualified}(text)",
        _EXEC_SQL_TEMPLATE.format(qualified=qualified, param=param),
        f"REVOKE ALL ON FUNCTION {qualified}(text) FROM PUBLIC, anon, authenticated",
        f"GRANT EXECUTE ON FUNCTION {qualified}(text) TO service_role",
    ]


AMBASSADOR_PROFILE_COLUMNS = [
    ColumnSpec(name="full_name", type="TEXT"),
    ColumnSpec(name="email", type="TEXT"),
    ColumnSpec(name="phone_number", type="TEXT"),
    ColumnSpec(name="bio", type="TEXT"),
    ColumnSpec(name="specialty", type="TEXT"),
    ColumnSpec(name="location", type="TEXT"),
    ColumnSpec(name="availability_status", type="TEXT"),
    ColumnSpec(name="avatar_url", type="TEXT"),
    ColumnSpec(name="credentials", type="TEXT"),
    ColumnSpec(name="gender", type="TEXT"),
    ColumnSpec(name="awards", type="JSONB", default="'[]'::jsonb"),
    ColumnSpec(name="specialties", type="TEXT[]", default="'{}'::text[]"),
    ColumnSpec(name="languages", type="TEXT[]", default="'{}'::text[]"),
    ColumnSpec(name="education", type="JSONB", default="'[]'::jsonb"),
    ColumnSpec(name="experience", type="JSONB", default="'[]'::jsonb"),
    ColumnSpec(name="therapyTypes", type="JSONB", default="'[]'::jsonb"),
    ColumnSpec(name="services", type="TEXT[]", default="'{}'::text[]"),
    ColumnSpec(name="gallery_images", type="TEXT[]", default="'{}'::text[]"),
    ColumnSpec(name="consultation_fee", type="DECIMAL", default="0"),
    ColumnSpec(name="isFree", type="BOOLEAN", default="true"),
]

def policy_statement(table: str, policy: str, clause: str, schema: str = DB_SCHEMA) -> GuardedStatement:
    return GuardedStatement(
        name=f"policy {policy}",
        exists_sql=(
            "SELECT policyname FROM pg_policies "
            f"WHERE schemaname = {sql_literal(schema)} AND tablename = {sql_literal(table)} "
            f"AND policyname = {sql_literal(policy)}"
        ),
        sql=f"CREATE POLICY {quote_ident(policy)} ON {qualified_name(schema, table)} {clause}",
    )


def row_level_security_statement(table: str, schema: str = DB_SCHEMA) -> GuardedStatement:
    return GuardedStatement(
        name=f"row level security on {table}",
        exists_sql=(
            "SELECT c.relname FROM pg_class c JOIN pg_namespace n ON n.oid = c.relnamespace "
            f"WHERE n.nspname = {sql_literal(schema)} AND c.relname = {sql_literal(table)} "
            "AND c.relrowsecurity"
        ),
        sql=f"ALTER TABLE {qualified_name(schema, table)} ENABLE ROW LEVEL SECURITY",
    )


def new_user_hook_statements(schema: str = DB_SCHEMA) -> list[GuardedStatement]:
    """Mirror every new auth user into users, and ambassadors into ambassador_profiles"""
    function = qualified_name(schema, "handle_new_user")
    users = qualified_name(schema, "users")
    profiles = qualified_name(schema, "ambassador_profiles")
    create_function = f"""CREATE OR REPLACE FUNCTION {function}()
RETURNS trigger
LANGUAGE plpgsql
SECURITY DEFINER
AS $$
BEGIN
  INSERT INTO {users} (id, email, full_name, role)
  VALUES (
    NEW.id,
    NEW.email,
    COALESCE(NEW.raw_user_meta_data->>'full_name', NEW.email),
    COALESCE(NEW.raw_user_meta_data->>'role', 'patient')
  )
  ON CONFLICT (id) DO NOTHING;

  IF NEW.raw_user_meta_data->>'role' = 'ambassador' THEN
    INSERT INTO {profiles} (id, full_name, email)
    VALUES (NEW.id, NEW.raw_user_meta_data->>'full_name', NEW.email)
    ON CONFLICT (id) DO NOTHING;
  END IF;

  RETURN NEW;
END;
$$"""
    return [
        GuardedStatement(
            name="function handle_new_user",
            exists_sql=(
                "SELECT p.proname FROM pg_proc p JOIN pg_namespace n ON n.oid = p.pronamespace "
                f"WHERE n.nspname = {sql_literal(schema)} AND p.proname = 'handle_new_user'"
            ),
            sql=create_function,
        ),
        GuardedStatement(
            name="trigger on_auth_user_created",
            exists_sql=(
                "SELECT tgname FROM pg_trigger "
                "WHERE tgname = 'on_auth_user_created' AND tgrelid = 'auth.users'::regclass"
            ),
            sql=(
                'CREATE TRIGGER "on_auth_user_created" AFTER INSERT ON auth.users '
                f"FOR EACH ROW EXECUTE FUNCTION {function}()"
            ),
        ),
    ]


AMBASSADOR_POLICIES = [
    row_level_security_statement("ambassador_profiles"),
    policy_statement("ambassador_profiles", "Anyone can view ambassador profiles", "FOR SELECT USING (true)"),
    policy_statement(
        "ambassador_profiles",
        "Ambassadors can update their own profile",
        "FOR UPDATE USING (auth.uid() = id)",
    ),
    policy_statement(
        "ambassador_profiles",
        "Ambassadors can insert their own profile",
        "FOR INSERT WITH CHECK (auth.uid() = id)",
    ),
    *new_user_hook_statements(),
]

_PROFILE_COLUMNS_BY_NAME = {c.name: c for c in AMBASSADOR_PROFILE_COLUMNS}

_AUTH_USER_PK = "\n    id UUID PRIMARY KEY REFERENCES auth.users(id) ON DELETE CASCADE,"
_GENERATED_PK = "\n    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),"

MIGRATIONS = {
    m.name: m
    for m in [
        Migration(
            name="ambassador_profile",
            table="ambassador_profiles",
            description="Full ambassador profile column set",
            columns=AMBASSADOR_PROFILE_COLUMNS,
            create_table=_AUTH_USER_PK + TIMESTAMP_COLUMNS,
            aliases=["fix_missing_columns", "ensure_ambassador_profile_schema"],
        ),
        Migration(
            name="ambassador_policies",
            table="ambassador_profiles",
            description="Row level security, profile policies and the new-user hook",
            columns=[],
            statements=AMBASSADOR_POLICIES,
            aliases=["fix_all_ambassador_issues", "rls"],
        ),
        Migration(
            name="consultation_fee",
            table="ambassador_profiles",
            description="Add consultation_fee to ambassador profiles",
            columns=[_PROFILE_COLUMNS_BY_NAME["consultation_fee"]],
            aliases=["add_consultation_fee"],
        ),
        Migration(
            name="is_free",
            table="ambassador_profiles",
            description="Add the isFree flag to ambassador profiles",
            columns=[_PROFILE_COLUMNS_BY_NAME["isFree"]],
            aliases=["add_is_free", "isFree"],
        ),
        Migration(
            name="awards",
            table="ambassador_profiles",
            description="Add awards to ambassador profiles",
            columns=[_PROFILE_COLUMNS_BY_NAME["awards"]],
            aliases=["add_awards"],
        ),
        Migration(
            name="users_role",
            table="users",
            description="Public users table with role",
            columns=[
                ColumnSpec(name="email", type="TEXT"),
                ColumnSpec(name="full_name", type="TEXT"),
                ColumnSpec(
                    name="role",
                    type="TEXT CHECK (role IN ('patient', 'ambassador', 'admin'))",
                    default="'patient'",
                ),
                ColumnSpec(name="user_metadata", type="JSONB", default="'{}'::jsonb"),
            ],
            create_table=_AUTH_USER_PK + TIMESTAMP_COLUMNS,
            aliases=["add_role"],
        ),
        Migration(
            name="appointments",
            table="appointments",
            description="Bookings between patients and ambassadors",
            columns=[
                ColumnSpec(name="patient_id", type="UUID REFERENCES auth.users(id) ON DELETE CASCADE"),
                ColumnSpec(name="ambassador_id", type="UUID REFERENCES auth.users(id) ON DELETE CASCADE"),
                ColumnSpec(name="date", type="DATE"),
                ColumnSpec(name="time", type="TIME"),
                ColumnSpec(
                    name="status",
                    type="TEXT CHECK (status IN ('pending', 'confirmed', 'cancelled', 'completed'))",
                    default="'pending'",
                ),
                ColumnSpec(name="notes", type="TEXT"),
            ],
            create_table=_GENERATED_PK + TIMESTAMP_COLUMNS,
        ),
        Migration(
            name="reviews",
            table="reviews",
            description="Patient reviews of ambassadors",
            columns=[
                ColumnSpec(name="booking_id", type="UUID REFERENCES appointments(id) ON DELETE SET NULL"),
                ColumnSpec(name="ambassador_id", type="UUID REFERENCES auth.users(id) ON DELETE CASCADE"),
                ColumnSpec(name="user_id", type="UUID REFERENCES auth.users(id) ON DELETE CASCADE"),
                ColumnSpec(name="rating", type="INTEGER CHECK (rating BETWEEN 1 AND 5)"),
                ColumnSpec(name="comment", type="TEXT"),
            ],
            create_table=_GENERATED_PK + TIMESTAMP_COLUMNS,
        ),
    ]
}


def get_migration(name: str) -> Migration:
    """Look up a migration by name or alias"""
    if name in MIGRATIONS:
        return MIGRATIONS[name]
    for migration in MIGRATIONS.values():
        if name in migration.aliases:
            return migration
    raise UnknownMigrationError(name)


def ensure_catalog_tables(reconciler: SchemaReconciler) -> list[ReconcileResult]:
    """Create or complete every table the catalog knows how to build, in dependency order"""
    results = []
    for migration in MIGRATIONS.values():
        if migration.create_table:
            results.append(reconciler.run_migration(migration))
    return results
