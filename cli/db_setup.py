"""
Database setup commands for the wallet ledger.

Applies ``db/schema.sql`` and ``db/drop.sql`` with psycopg. The connection comes
from DATABASE_URL_ADMIN, falling back to DATABASE_URL_APP and then to the
DATABASE_* component settings.

Usage:
    uv run db-init          # Create the wallet schema (idempotent)
    uv run db-verify        # Check connectivity, tables and enum type
    uv run db-reset --yes   # Drop this service's objects and re-apply the schema
"""

from __future__ import annotations

import argparse
import sys
from dataclasses import dataclass
from pathlib import Path

import psycopg
from psycopg.rows import dict_row

from wallet.core.config import DatabaseConfig

SCHEMA_NAME = "wallet"
EXPECTED_TABLES = ("fraud_alert", "ledger_transaction", "user_balance")
EXPECTED_TYPES = ("transaction_type",)


@dataclass
class SetupResult:
    """Result of a setup step."""

    success: bool
    message: str
    details: str | None = None


class DatabaseSetup:
    """Creates, verifies and resets the wallet schema."""

    def __init__(self, admin_url: str, sql_dir: Path | None = None):
        self.admin_url = admin_url
        self.sql_dir = sql_dir or Path(__file__).parent.parent / "db"

    def _load_sql_file(self, filename: str) -> str:
        sql_path = self.sql_dir / filename
        if not sql_path.exists():
            raise FileNotFoundError(f"SQL file not found: {sql_path}")
        return sql_path.read_text(encoding="utf-8")

    def _execute_sql(self, conn: psycopg.Connection, filename: str) -> SetupResult:
        """Run one SQL file as a single script and commit it."""
        try:
            # No bind parameters, so the whole file goes through the simple query protocol
            conn.execute(self._load_sql_file(filename))  # type: ignore[arg-type]
            conn.commit()
            return SetupResult(success=True, message=filename, details="applied")
        except psycopg.Error as e:
            conn.rollback()
            return SetupResult(
                success=False,
                message=filename,
                details=f"{type(e).__name__}: {e}",
            )

    def init(self) -> int:
        """Apply the schema."""
        print("Initializing wallet schema...")
        try:
            with psycopg.connect(self.admin_url, autocommit=False) as conn:
                result = self._execute_sql(conn, "schema.sql")
        except psycopg.Error as e:
            print(f"ERROR: Database connection failed: {e}")
            return 1

        if not result.success:
            print(f"ERROR: {result.details}")
            return 1
        print("Database initialization complete.")
        return 0

    def reset(self, force: bool = False) -> int:
        """Drop this service's tables and enum type, then re-apply the schema."""
        print("Resetting wallet tables...")

        if not force:
            response = input("This will destroy all ledger data. Continue? [y/N]: ")
            if response.lower() != "y":
                print("Aborted.")
                return 1

        try:
            with psycopg.connect(self.admin_url, autocommit=False) as conn:
                for filename in ("drop.sql", "schema.sql"):
                    result = self._execute_sql(conn, filename)
                    if not result.success:
                        print(f"ERROR: {result.details}")
                        return 1
                    print(f"  {filename} {result.details}")
        except psycopg.Error as e:
            print(f"ERROR: Database reset failed: {e}")
            return 1

        print("Database reset complete.")
        return 0

    def verify(self) -> int:
        """Verify connectivity, tables and the transaction_type enum."""
        print("Verifying database setup...")
        errors: list[str] = []

        try:
            with psycopg.connect(self.admin_url, autocommit=True, row_factory=dict_row) as conn:
                print("  [OK] Database connection")

                rows = conn.execute(
                    """
                    SELECT table_name FROM information_schema.tables
                    WHERE table_schema = %(schema)s
                    ORDER BY table_name
                    """,
                    {"schema": SCHEMA_NAME},
                ).fetchall()
                tables = {row["table_name"] for row in rows}
                missing = [t for t in EXPECTED_TABLES if t not in tables]
                if missing:
                    errors.append(f"Missing tables: {missing}")
                else:
                    print(f"  [OK] Tables exist: {', '.join(EXPECTED_TABLES)}")

                rows = conn.execute(
                    """
                    SELECT t.typname FROM pg_type t
                    JOIN pg_namespace n ON n.oid = t.typnamespace
                    WHERE n.nspname = %(schema)s
                    """,
                    {"schema": SCHEMA_NAME},
                ).fetchall()
                types = {row["typname"] for row in rows}
                missing_types = [t for t in EXPECTED_TYPES if t not in types]
                if missing_types:
                    errors.append(f"Missing enum types: {missing_types}")
                else:
                    print("  [OK] Enum types exist")
        except psycopg.Error as e:
            errors.append(f"Database check failed: {e}")

        if errors:
            for error in errors:
                print(f"  [FAIL] {error}")
            return 1

        print("Database verification complete.")
        return 0


def _setup_from_env() -> DatabaseSetup:
    return DatabaseSetup(DatabaseConfig().sync_url)


def init() -> None:
    """Apply db/schema.sql."""
    sys.exit(_setup_from_env().init())


def verify() -> None:
    """Verify the wallet schema."""
    sys.exit(_setup_from_env().verify())


def reset() -> None:
    """Drop and recreate the wallet schema objects."""
    parser = argparse.ArgumentParser(prog="db-reset")
    parser.add_argument("--yes", action="store_true", help="Skip confirmation prompt")
    args = parser.parse_args(sys.argv[1:])
    sys.exit(_setup_from_env().reset(force=args.yes))
