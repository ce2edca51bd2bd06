from emha.schema.catalog import exec_function_statements
from emha.schema.reconcile import render_script
from emha.schema.sqlfile import read_statements, split_statements


def test_splits_on_top_level_semicolons():
    assert split_statements("SELECT 1; SELECT 2;\n\n") == ["SELECT 1", "SELECT 2"]


def test_keeps_semicolons_in_literals():
    sql = "UPDATE t SET note = 'a; b'; UPDATE t SET \"we;ird\" = 1"
    assert split_statements(sql) == ["UPDATE t SET note = 'a; b'", 'UPDATE t SET "we;ird" = 1']


def test_escaped_quotes():
    assert split_statements("SELECT 'it''s; fine'; SELECT 2") == ["SELECT 'it''s; fine'", "SELECT 2"]


def test_drops_comments():
    sql = "-- header; with semicolon\nSELECT 1; /* block; comment */ SELECT 2"
    assert split_statements(sql) == ["SELECT 1", "SELECT 2"]


def test_dollar_quoted_function_bodies_stay_whole():
    statements = exec_function_statements()
    script = render_script(statements)

    assert split_statements(script) == [s.strip() for s in statements]


def test_read_statements(tmp_path):
    path = tmp_path / "m.sql"
    path.write_text("ALTER TABLE t ADD COLUMN IF NOT EXISTS c TEXT;\n", encoding="utf-8")
    assert read_statements(path) == ["ALTER TABLE t ADD COLUMN IF NOT EXISTS c TEXT"]
