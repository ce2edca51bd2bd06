from contextlib import contextmanager

import httpx
import pytest

from emha import cli
from emha.schema.channel import RpcSqlChannel

from conftest import FakeCatalogChannel, make_client


@pytest.fixture()
def channel(monkeypatch):
    fake = FakeCatalogChannel(tables={"ambassador_profiles": ["id", "email", "created_at", "updated_at"]})

    @contextmanager
    def connect(args):
        yield cli.Connection(fake)

    monkeypatch.setattr(cli, "connect", connect)
    return fake


def test_list_shows_migrations(capsys):
    assert cli.main(["list"]) == 0
    out = capsys.readouterr().out
    assert "ambassador_profile" in out
    assert "consultation_fee" in out


def test_print_sql(capsys):
    assert cli.main(["print-sql", "add_awards"]) == 0
    out = capsys.readouterr().out
    assert out.strip() == (
        'ALTER TABLE "public"."ambassador_profiles" '
        "ADD COLUMN IF NOT EXISTS \"awards\" JSONB DEFAULT '[]'::jsonb;"
    )


def test_unknown_migration_exits_non_zero(channel):
    assert cli.main(["reconcile", "nope"]) == 1
    assert channel.statements == []


def test_missing_configuration_exits_non_zero(monkeypatch):
    monkeypatch.setattr(cli, "BACKEND_URL", None)
    monkeypatch.setattr(cli, "BACKEND_SERVICE_KEY", None)
    monkeypatch.setattr(cli, "DATABASE_URL", None)

    assert cli.main(["reconcile", "is_free"]) == 1


def test_reconcile_adds_columns(channel, capsys):
    assert cli.main(["reconcile", "ambassador_profile"]) == 0
    out = capsys.readouterr().out
    assert "✅ Added isFree" in out
    assert "ℹ️  email already exists" in out
    assert "isFree" in channel.tables["ambassador_profiles"]


def test_reconcile_with_unavailable_channel_prints_sql(channel, capsys):
    channel.available = False

    assert cli.main(["reconcile", "is_free"]) == 0
    out = capsys.readouterr().out
    assert 'ADD COLUMN IF NOT EXISTS "isFree" BOOLEAN DEFAULT true;' in out


def test_verify_reports_missing_columns(channel, capsys):
    assert cli.main(["verify", "consultation_fee"]) == 0
    out = capsys.readouterr().out
    assert "❌ consultation_fee: missing" in out
    assert 'ADD COLUMN IF NOT EXISTS "consultation_fee"' in out
    assert channel.statements == []


def test_verify_with_unavailable_channel_fails(channel):
    channel.available = False
    assert cli.main(["verify", "consultation_fee"]) == 1


def test_run_sql_executes_each_statement(channel, tmp_path):
    script = tmp_path / "migration.sql"
    script.write_text(
        "-- add the fee\n"
        'ALTER TABLE "public"."ambassador_profiles" ADD COLUMN IF NOT EXISTS "consultation_fee" DECIMAL DEFAULT 0;\n'
        "COMMENT ON COLUMN ambassador_profiles.consultation_fee IS 'Fee; per session';\n"
    )

    assert cli.main(["run-sql", str(script)]) == 0
    assert len(channel.statements) == 2
    assert channel.statements[1].endswith("'Fee; per session'")
    assert "consultation_fee" in channel.tables["ambassador_profiles"]


def test_run_sql_stops_on_failed_statement(channel, tmp_path):
    channel.failing_columns.add("bad")
    script = tmp_path / "migration.sql"
    script.write_text(
        'ALTER TABLE "public"."ambassador_profiles" ADD COLUMN IF NOT EXISTS "bad" bogus;\n'
        "SELECT 1;\n"
    )

    assert cli.main(["run-sql", str(script)]) == 1
    assert len(channel.statements) == 1


def test_run_sql_missing_file(channel, tmp_path):
    assert cli.main(["run-sql", str(tmp_path / "missing.sql")]) == 1


def test_install_exec_sql_print_only(capsys):
    assert cli.main(["install-exec-sql", "--print-only"]) == 0
    out = capsys.readouterr().out
    assert 'CREATE OR REPLACE FUNCTION "public"."execute_sql"(sql_query text)' in out
    assert "GRANT EXECUTE" in out
    assert "anon" in out  # only in the REVOKE


def test_install_exec_sql_when_missing_prints_sql(channel, capsys):
    channel.available = False
    assert cli.main(["install-exec-sql"]) == 0
    assert "execute_sql" in capsys.readouterr().out


def test_install_exec_sql_replaces_success_only_procedure(monkeypatch, capsys):
    sent = []

    def handler(request):
        sent.append(request)
        return httpx.Response(200, json={"success": True})

    @contextmanager
    def connect(args):
        client = make_client(handler)
        yield cli.Connection(RpcSqlChannel(client), client=client)

    monkeypatch.setattr(cli, "connect", connect)

    assert cli.main(["install-exec-sql"]) == 0
    out = capsys.readouterr().out
    assert 'DROP FUNCTION IF EXISTS "public"."execute_sql"(text);' in out
    assert "RETURNS jsonb" in out
    assert len(sent) == 1


def test_reconcile_policies_reports_applied_objects(channel, capsys):
    assert cli.main(["reconcile", "rls"]) == 0
    assert "✅ Applied policy Anyone can view ambassador profiles" in capsys.readouterr().out

    assert cli.main(["reconcile", "rls"]) == 0
    assert "ℹ️  trigger on_auth_user_created already in place" in capsys.readouterr().out


def test_print_sql_includes_policies(capsys):
    assert cli.main(["print-sql", "ambassador_policies"]) == 0
    out = capsys.readouterr().out
    assert 'CREATE POLICY "Ambassadors can insert their own profile"' in out
    assert "ENABLE ROW LEVEL SECURITY;" in out


def test_fix_roles_needs_rest_client(channel):
    assert cli.main(["fix-roles"]) == 1
