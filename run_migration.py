"""
Generic migration runner script
Usage: python run_migration.py <migration_file.sql> [backend_url] [service_key]

Statements go through the execute_sql remote procedure, or a direct
connection when DATABASE_URL is set. If neither can run them, the SQL is
printed for the database SQL editor.
"""
import sys

from emha.cli import main

if __name__ == "__main__":
    if len(sys.argv) < 2:
        print("Usage: python run_migration.py <migration_file.sql> [backend_url] [service_key]")
        sys.exit(1)

    sys.exit(main(["run-sql", *sys.argv[1:]]))
