import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

# Backend-as-a-Service REST endpoint (row API + RPC). Older scripts used the
# SUPABASE_* / VITE_SUPABASE_* names, so those are accepted as fallbacks.
BACKEND_URL = (
    os.getenv("BACKEND_URL") or os.getenv("SUPABASE_URL") or os.getenv("VITE_SUPABASE_URL")
)
BACKEND_SERVICE_KEY = (
    os.getenv("BACKEND_SERVICE_KEY")
    or os.getenv("SUPABASE_SERVICE_ROLE_KEY")
    or os.getenv("SUPABASE_SERVICE_KEY")
)
BACKEND_TIMEOUT = float(os.getenv("BACKEND_TIMEOUT", "15"))

# Direct Postgres connection. When set, statements and profile reads/writes go
# through SQLAlchemy instead of the REST API.
DATABASE_URL = os.getenv("DATABASE_URL")

DB_SCHEMA = os.getenv("DB_SCHEMA", "public")

# Remote procedure used to run arbitrary SQL text
EXEC_SQL_FUNCTION = os.getenv("EXEC_SQL_FUNCTION", "execute_sql")
EXEC_SQL_PARAM = os.getenv("EXEC_SQL_PARAM", "sql_query")

# Shared secret for /admin routes; admin routes answer 503 while unset
ADMIN_API_KEY = os.getenv("ADMIN_API_KEY")

ALLOWED_ORIGINS = os.getenv(
    "ALLOWED_ORIGINS",
    "http://localhost:5173,http://localhost:3000",
).split(",")
