# content_swap/db/client.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ContextManager, Mapping, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine, URL, Connection, make_url
from sqlalchemy.sql.elements import TextClause

from content_swap.config import DatabaseSettings, PromoteSettings
from content_swap.utils.identifiers import sanitize_ident, qident


def _connect_options(schema: str, settings: Optional[PromoteSettings]) -> str:
    """libpq `options` string: search_path plus optional server-side timeouts."""
    opts = [f"-csearch_path={schema},public"]
    if settings is not None:
        if settings.statement_timeout_ms:
            opts.append(f"-cstatement_timeout={settings.statement_timeout_ms}")
        if settings.lock_wait_timeout_ms:
            opts.append(f"-clock_timeout={settings.lock_wait_timeout_ms}")
    return " ".join(opts)


@dataclass(frozen=True)
class PostgresClient:
    """
    Small wrapper around a SQLAlchemy Postgres engine.

    Purpose:
    - Create and configure the engine
    - Keep schema handling consistent
    - Provide catalog probes (tables, triggers)
    """

    engine: Engine
    schema: str = "public"

    @classmethod
    def from_params(
        cls,
        user: str,
        password: str,
        host: str,
        port: int,
        db: str,
        schema: str = "public",
        settings: Optional[PromoteSettings] = None,
        ensure_schema: bool = True,
    ) -> "PostgresClient":
        """
        Build a PostgresClient from connection parameters.
        """
        # Build database URL (handles special characters safely)
        url = URL.create(
            drivername="postgresql+psycopg2",
            username=user,
            password=password,
            host=host,
            port=port,
            database=db,
        )
        return cls.from_url(url, schema=schema, settings=settings, ensure_schema=ensure_schema)

    @classmethod
    def from_url(
        cls,
        url: "str | URL",
        schema: str = "public",
        settings: Optional[PromoteSettings] = None,
        ensure_schema: bool = True,
    ) -> "PostgresClient":
        """
        `ensure_schema=False` issues no DDL on connect (read-only callers such
        as dry runs and history); the schema must then already exist.
        """
        schema = schema.strip()
        if not schema:
            raise ValueError("schema must be a non-empty string")
        sanitize_ident(schema)

        url = make_url(url)
        if url.drivername == "postgresql":
            url = url.set(drivername="postgresql+psycopg2")

        engine = create_engine(
            url,
            pool_pre_ping=True,   # reconnect if connection is stale
            future=True,
            connect_args={"options": _connect_options(schema, settings)},
        )

        client = cls(engine=engine, schema=schema)
        if ensure_schema:
            client.ensure_schema_exists()
        return client

    @classmethod
    def from_settings(
        cls,
        db_settings: DatabaseSettings,
        promote_settings: Optional[PromoteSettings] = None,
        ensure_schema: bool = True,
    ) -> "PostgresClient":
        if db_settings.url:
            return cls.from_url(db_settings.url, schema=db_settings.schema, settings=promote_settings,
                                ensure_schema=ensure_schema)
        return cls.from_params(
            user=db_settings.user,
            password=db_settings.password,
            host=db_settings.host,
            port=db_settings.port,
            db=db_settings.name,
            schema=db_settings.schema,
            settings=promote_settings,
            ensure_schema=ensure_schema,
        )

    def ensure_schema_exists(self) -> None:
        """
        Create schema if it does not exist.
        """
        schema = sanitize_ident(self.schema)
        with self.engine.begin() as conn:
            conn.execute(text(f"CREATE SCHEMA IF NOT EXISTS {qident(schema)}"))

    # ------------------------------------------------------------------

    def execute(
        self,
        stmt: TextClause,
        params: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        """
        Execute a statement using a short-lived connection.
        """
        with self.engine.connect() as conn:
            return conn.execute(stmt, params or {})

    def table_exists(self, table: str) -> bool:
        """
        Check whether a table exists in the configured schema.
        """
        table = sanitize_ident(table)
        with self.engine.connect() as conn:
            return bool(
                conn.execute(
                    text(
                        """
                        SELECT EXISTS (
                            SELECT 1
                            FROM information_schema.tables
                            WHERE table_schema = :s
                              AND table_name   = :t
                        )
                        """
                    ),
                    {"s": self.schema, "t": table},
                ).scalar_one()
            )

    def begin(self) -> ContextManager[Connection]:
        """
        Transaction context manager.
        """
        return self.engine.begin()

    def connect(self) -> ContextManager[Connection]:
        """
        Connection context manager.
        """
        return self.engine.connect()


def trigger_exists(conn: Connection, schema: str, table: str, trigger: str) -> bool:
    """Catalog probe usable inside an open transaction."""
    return bool(
        conn.execute(
            text(
                """
                SELECT EXISTS (
                    SELECT 1
                    FROM pg_trigger t
                    JOIN pg_class c ON t.tgrelid = c.oid
                    JOIN pg_namespace n ON c.relnamespace = n.oid
                    WHERE n.nspname = :s
                      AND c.relname = :t
                      AND t.tgname  = :g
                      AND NOT t.tgisinternal
                )
                """
            ),
            {"s": schema, "t": sanitize_ident(table), "g": sanitize_ident(trigger)},
        ).scalar_one()
    )


def relation_exists(conn: Connection, schema: str, table: str) -> bool:
    """to_regclass() probe usable inside an open transaction."""
    reg = f"{qident(schema)}.{qident(table)}"
    return bool(
        conn.execute(text("SELECT to_regclass(:t) IS NOT NULL"), {"t": reg}).scalar_one()
    )
