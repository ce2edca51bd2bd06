import json

import httpx
import pytest

from emha.backend.errors import ChannelUnavailableError, SqlExecutionError
from emha.schema.channel import EngineSqlChannel, RpcSqlChannel, qualified_name, quote_ident, sql_literal

from conftest import make_client


def rpc_channel(responder):
    calls = []

    def handler(request):
        calls.append(request)
        return responder(request)

    return RpcSqlChannel(make_client(handler)), calls


def test_rpc_sends_single_text_parameter():
    channel, calls = rpc_channel(lambda request: httpx.Response(200, json={"success": True}))

    channel.execute('ALTER TABLE "public"."t" ADD COLUMN IF NOT EXISTS "c" TEXT')

    assert calls[0].method == "POST"
    assert calls[0].url.path == "/rest/v1/rpc/execute_sql"
    assert json.loads(calls[0].content) == {
        "sql_query": 'ALTER TABLE "public"."t" ADD COLUMN IF NOT EXISTS "c" TEXT'
    }
    assert calls[0].headers["apikey"] == "service-key"
    assert calls[0].headers["Authorization"] == "Bearer service-key"


def test_rpc_query_returns_rows_without_trailing_semicolon():
    rows = [{"column_name": "bio"}]
    channel, calls = rpc_channel(lambda request: httpx.Response(200, json=rows))

    assert channel.query("SELECT column_name FROM information_schema.columns;") == rows
    assert json.loads(calls[0].content)["sql_query"].endswith("columns")


def test_rpc_query_against_success_only_procedure_is_unavailable():
    channel, _ = rpc_channel(lambda request: httpx.Response(200, json={"success": True}))

    with pytest.raises(ChannelUnavailableError) as exc_info:
        channel.query("SELECT 1")

    assert exc_info.value.code == "NO_ROWS"
    assert "install-exec-sql" in exc_info.value.message


def test_rpc_query_accepts_rows_envelope():
    channel, _ = rpc_channel(lambda request: httpx.Response(200, json={"rows": [{"ok": 1}]}))
    assert channel.query("SELECT 1 AS ok") == [{"ok": 1}]


def test_rpc_query_empty_result_is_empty_list():
    channel, _ = rpc_channel(lambda request: httpx.Response(200, json=[]))
    assert channel.query("SELECT 1 WHERE false") == []


@pytest.mark.parametrize(
    "status,body",
    [
        (404, {"code": "PGRST202", "message": "Could not find the function public.execute_sql"}),
        (404, {"code": "42883", "message": "function execute_sql(text) does not exist"}),
        (403, {"code": "42501", "message": "permission denied for function execute_sql"}),
        (401, {"message": "Invalid API key"}),
    ],
)
def test_rpc_missing_or_forbidden_is_unavailable(status, body):
    channel, _ = rpc_channel(lambda request: httpx.Response(status, json=body))

    with pytest.raises(ChannelUnavailableError):
        channel.execute("SELECT 1")


def test_rpc_network_failure_is_unavailable():
    def refuse(request):
        raise httpx.ConnectError("Connection refused", request=request)

    channel, _ = rpc_channel(refuse)

    with pytest.raises(ChannelUnavailableError) as exc_info:
        channel.query("SELECT 1")
    assert exc_info.value.code == "NETWORK_ERROR"


def test_rpc_http_sql_error_is_execution_error():
    body = {"code": "42P01", "message": 'relation "nope" does not exist', "details": None, "hint": None}
    channel, _ = rpc_channel(lambda request: httpx.Response(400, json=body))

    with pytest.raises(SqlExecutionError) as exc_info:
        channel.execute("ALTER TABLE nope ADD COLUMN x TEXT")
    assert exc_info.value.code == "42P01"
    assert exc_info.value.status_code == 400


def test_rpc_error_payload_is_execution_error():
    payload = {"success": False, "error": 'type "bogus" does not exist', "detail": "42704"}
    channel, _ = rpc_channel(lambda request: httpx.Response(200, json=payload))

    with pytest.raises(SqlExecutionError) as exc_info:
        channel.execute("ALTER TABLE t ADD COLUMN x bogus")
    assert exc_info.value.message == 'type "bogus" does not exist'


def test_rpc_privilege_error_payload_is_unavailable():
    payload = {"success": False, "error": "permission denied for schema public", "detail": "42501"}
    channel, _ = rpc_channel(lambda request: httpx.Response(200, json=payload))

    with pytest.raises(ChannelUnavailableError):
        channel.execute("ALTER TABLE t ADD COLUMN x TEXT")


def test_engine_channel_runs_literals_verbatim(sqlite_engine):
    channel = EngineSqlChannel(sqlite_engine)
    channel.execute("CREATE TABLE notes (id INTEGER PRIMARY KEY, body TEXT)")
    channel.execute("INSERT INTO notes (body) VALUES ('at 10:00, 100% booked')")

    assert channel.query("SELECT body FROM notes") == [{"body": "at 10:00, 100% booked"}]
    assert channel.description == "engine:sqlite"


def test_engine_channel_sql_error(sqlite_engine):
    channel = EngineSqlChannel(sqlite_engine)

    with pytest.raises(SqlExecutionError):
        channel.execute('ALTER TABLE "missing" ADD COLUMN "c" TEXT')


def test_identifier_and_literal_quoting():
    assert quote_ident("isFree") == '"isFree"'
    assert quote_ident('we"ird') == '"we""ird"'
    assert qualified_name("public", "users") == '"public"."users"'
    assert qualified_name(None, "users") == '"users"'
    assert sql_literal("O'Brien") == "'O''Brien'"
    assert sql_literal(None) == "NULL"
    assert sql_literal(True) == "TRUE"
    assert sql_literal(3) == "3"
