"""
Pytest fixtures for the promotion engine.

Unit tests run against `RecordingDatabase`, an in-memory stand-in for the
`Database` port. It keeps a tiny catalog (tables with row counts, triggers,
foreign keys, deployment rows), applies the DDL the engine emits, and gives
`begin()` real transaction semantics: the catalog is copied on BEGIN and only
written back on COMMIT, so a failing statement leaves it untouched.

Integration tests use a real PostgreSQL when TEST_DATABASE_URL is set.
"""

from __future__ import annotations

import copy
import os
import re
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple

import pytest
from loguru import logger
from sqlalchemy.exc import ProgrammingError

_NAME = r'"(?P<schema>\w+)"\."(?P<name>\w+)"'


def _qname(text_: str) -> str:
    m = re.search(_NAME, text_)
    return m.group("name") if m else ""


@dataclass
class Catalog:
    tables: Dict[str, int] = field(default_factory=dict)
    triggers: Dict[str, Set[str]] = field(default_factory=dict)
    disabled: Set[Tuple[str, str]] = field(default_factory=set)
    # constraint name -> (source table, target table)
    foreign_keys: Dict[str, Tuple[str, str]] = field(default_factory=dict)
    functions: Set[str] = field(default_factory=set)
    deployments: List[Dict[str, Any]] = field(default_factory=list)
    patterns: List[Tuple[str, str]] = field(default_factory=list)


class FakeResult:
    def __init__(self, value: Any = None, rows: Optional[List[Any]] = None, rowcount: int = 0):
        self._value = value
        self._rows = rows or []
        self.rowcount = rowcount

    def scalar_one(self) -> Any:
        return self._value

    def scalar(self) -> Any:
        return self._value

    def fetchall(self) -> List[Any]:
        return list(self._rows)

    def mappings(self) -> "FakeResult":
        return self

    def all(self) -> List[Any]:
        return list(self._rows)


class FakeConnection:
    def __init__(self, db: "RecordingDatabase", catalog: Catalog):
        self.db = db
        self.catalog = catalog

    def commit(self) -> None:
        return

    def _fail(self, sql: str, message: str) -> None:
        raise ProgrammingError(sql, {}, Exception(message))

    def _require_table(self, sql: str, table: str) -> None:
        if table not in self.catalog.tables:
            self._fail(sql, f'relation "{table}" does not exist')

    def execute(self, stmt: Any, params: Any = None) -> FakeResult:
        sql = " ".join(str(stmt).split())
        self.db.statements.append(sql)
        self.db.executed.append((sql, params))

        for needle in self.db.fail_on:
            if needle in sql:
                self._fail(sql, f"injected failure on {needle!r}")

        cat = self.catalog
        p = params if isinstance(params, dict) else {}

        if "to_regclass" in sql:
            return FakeResult(_qname(p["t"]) in cat.tables)

        if "FROM pg_trigger" in sql:
            return FakeResult(p["g"] in cat.triggers.get(p["t"], set()))

        if "pg_try_advisory_lock" in sql or "pg_advisory_unlock" in sql:
            return FakeResult(True)

        if sql.startswith("SELECT COUNT(*) FROM"):
            table = _qname(sql)
            self._require_table(sql, table)
            return FakeResult(cat.tables[table])

        if sql.startswith("CREATE OR REPLACE FUNCTION"):
            cat.functions.add(_qname(sql))
            return FakeResult()

        m = re.match(r'ALTER TABLE (IF EXISTS )?' + _NAME + r' RENAME TO "(?P<new>\w+)"', sql)
        if m:
            old, new = m.group("name"), m.group("new")
            if old not in cat.tables:
                if m.group(1):
                    return FakeResult()
                self._fail(sql, f'relation "{old}" does not exist')
            if new in cat.tables:
                self._fail(sql, f'relation "{new}" already exists')
            cat.tables[new] = cat.tables.pop(old)
            cat.triggers[new] = cat.triggers.pop(old, set())
            cat.disabled = {(new if t == old else t, g) for t, g in cat.disabled}
            cat.foreign_keys = {
                c: (new if s == old else s, new if t == old else t) for c, (s, t) in cat.foreign_keys.items()
            }
            return FakeResult()

        m = re.match(r'ALTER TABLE ' + _NAME + r' DISABLE TRIGGER "(?P<trg>\w+)"', sql)
        if m:
            table = m.group("name")
            self._require_table(sql, table)
            if m.group("trg") not in cat.triggers.get(table, set()):
                self._fail(sql, f'trigger "{m.group("trg")}" for table "{table}" does not exist')
            cat.disabled.add((table, m.group("trg")))
            return FakeResult()

        m = re.match(r'ALTER TABLE (IF EXISTS )?' + _NAME + r' DROP CONSTRAINT IF EXISTS "(?P<c>\w+)"', sql)
        if m:
            if m.group("name") in cat.tables:
                cat.foreign_keys.pop(m.group("c"), None)
            return FakeResult()

        m = re.match(
            r'ALTER TABLE ' + _NAME + r' ADD CONSTRAINT "(?P<c>\w+)" FOREIGN KEY \("\w+"\) '
            r'REFERENCES "\w+"\."(?P<target>\w+)"',
            sql,
        )
        if m:
            self._require_table(sql, m.group("name"))
            self._require_table(sql, m.group("target"))
            if m.group("c") in cat.foreign_keys:
                self._fail(sql, f'constraint "{m.group("c")}" already exists')
            cat.foreign_keys[m.group("c")] = (m.group("name"), m.group("target"))
            return FakeResult()

        m = re.match(r'DROP TRIGGER IF EXISTS "(?P<trg>\w+)" ON ' + _NAME, sql)
        if m:
            cat.triggers.get(m.group("name"), set()).discard(m.group("trg"))
            return FakeResult()

        m = re.match(r'CREATE TRIGGER "(?P<trg>\w+)" .*? ON ' + _NAME, sql)
        if m:
            table = m.group("name")
            self._require_table(sql, table)
            cat.triggers.setdefault(table, set()).add(m.group("trg"))
            return FakeResult()

        m = re.match(r'DROP TABLE (IF EXISTS )?' + _NAME, sql)
        if m:
            table = m.group("name")
            if table not in cat.tables:
                if m.group(1):
                    return FakeResult()
                self._fail(sql, f'table "{table}" does not exist')
            del cat.tables[table]
            cat.triggers.pop(table, None)
            cat.foreign_keys = {c: st for c, st in cat.foreign_keys.items() if table not in st}
            return FakeResult()

        m = re.match(r'CREATE TABLE ' + _NAME + r' \(LIKE "\w+"\."(?P<src>\w+)" INCLUDING ALL\)', sql)
        if m:
            self._require_table(sql, m.group("src"))
            if m.group("name") in cat.tables:
                self._fail(sql, f'relation "{m.group("name")}" already exists')
            cat.tables[m.group("name")] = 0
            return FakeResult()

        if sql.startswith("TRUNCATE TABLE"):
            for name in re.findall(r'"\w+"\."(\w+)"', sql):
                self._require_table(sql, name)
                cat.tables[name] = 0
            return FakeResult()

        if sql.startswith("CREATE TABLE IF NOT EXISTS") or sql.startswith("CREATE INDEX IF NOT EXISTS"):
            cat.tables.setdefault(_qname(sql), 0)
            return FakeResult()

        if sql.startswith("INSERT INTO") and "content_deployments" in sql:
            status = p["status"]
            row = {
                "id": str(uuid.uuid4()),
                "table_group": p["g"],
                "status": status,
                "row_count": p["n"],
                "metadata": p["m"],
                "promoted": "promoted_at" in sql,
                "staged_at": "2026-01-01 00:00:00+00",
                "promoted_at": "2026-01-01 00:00:00+00" if "promoted_at" in sql else None,
            }
            cat.deployments.append(row)
            return FakeResult(row["id"])

        if sql.startswith("UPDATE") and "content_deployments" in sql:
            swept = 0
            for row in cat.deployments:
                if row["table_group"] == p["g"] and row["status"] == p["live"] and row["id"] != p["id"]:
                    row["status"] = p["retired"]
                    swept += 1
            return FakeResult(rowcount=swept)

        if sql.startswith("INSERT INTO"):
            table = _qname(sql)
            self._require_table(sql, table)
            if table in self.db.locked_tables(cat):
                self._fail(sql, f'Table "{table}" is locked. Write to "{table}_staging" instead.')
            batch = params if isinstance(params, list) else [params]
            cat.tables[table] += len(batch)
            return FakeResult(rowcount=len(batch))

        if sql.startswith('SELECT "id", "title" FROM'):
            return FakeResult(rows=list(cat.patterns))

        if sql.startswith("SELECT id, table_group"):
            rows = [r for r in reversed(cat.deployments) if r["table_group"] == p["g"]]
            return FakeResult(rows=rows[: p["lim"]])

        raise AssertionError(f"RecordingDatabase does not understand: {sql}")


class RecordingDatabase:
    """In-memory `Database` port with transactional catalog semantics."""

    def __init__(self, schema: str = "public"):
        self.engine = None
        self.schema = schema
        self.catalog = Catalog()
        self.statements: List[str] = []
        self.executed: List[Tuple[str, Any]] = []
        self.transactions: List[str] = []
        self.fail_on: List[str] = []

    @staticmethod
    def locked_tables(cat: Catalog) -> Set[str]:
        return {
            t for t, trgs in cat.triggers.items()
            if any((t, g) not in cat.disabled for g in trgs)
        }

    def table_exists(self, table: str) -> bool:
        return table in self.catalog.tables

    def execute(self, stmt: Any, params: Any = None) -> FakeResult:
        with self.connect() as conn:
            return conn.execute(stmt, params)

    @contextmanager
    def connect(self):
        yield FakeConnection(self, self.catalog)

    @contextmanager
    def begin(self):
        working = copy.deepcopy(self.catalog)
        self.transactions.append("BEGIN")
        try:
            yield FakeConnection(self, working)
        except BaseException:
            self.transactions.append("ROLLBACK")
            raise
        self.catalog = working
        self.transactions.append("COMMIT")

    def ddl_statements(self) -> List[str]:
        return [
            s for s in self.statements
            if s.startswith(("ALTER", "DROP", "CREATE", "TRUNCATE"))
        ]


@pytest.fixture
def db() -> RecordingDatabase:
    return RecordingDatabase()


@pytest.fixture
def live_catalog(db: RecordingDatabase) -> RecordingDatabase:
    """
    A database that has been promoted before: live tables locked, staging
    tables loaded with new content, tour_progress referencing tour_steps.
    """
    cat = db.catalog
    cat.tables.update(
        {
            "patterns": 100,
            "patterns_staging": 120,
            "rules": 10,
            "rules_staging": 12,
            "tour_lessons": 5,
            "tour_lessons_staging": 6,
            "tour_steps": 40,
            "tour_steps_staging": 44,
            "tour_progress": 7,
        }
    )
    cat.triggers.update(
        {
            "patterns": {"lock_patterns"},
            "rules": {"lock_rules"},
            "tour_lessons": {"lock_tour_lessons"},
            "tour_steps": {"lock_tour_steps"},
        }
    )
    cat.foreign_keys.update(
        {
            "tour_progress_step_id_tour_steps_id_fk": ("tour_progress", "tour_steps"),
            "tour_steps_lesson_id_tour_lessons_id_fk": ("tour_steps", "tour_lessons"),
        }
    )
    cat.functions.add("reject_content_writes")
    return db


@pytest.fixture
def clean_env():
    """
    Fixture that provides a clean environment for testing.
    Saves and restores environment variables.
    """
    original_env = os.environ.copy()
    yield os.environ
    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def log_messages():
    """Collect loguru output for assertions."""
    messages: List[str] = []
    handler_id = logger.add(lambda m: messages.append(str(m)), level="DEBUG", format="{message}")
    yield messages
    logger.remove(handler_id)


# --- PostgreSQL (integration) ---------------------------------------------

TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")


@pytest.fixture
def pg_client():
    """
    PostgresClient bound to a throwaway schema, dropped afterwards.
    """
    from sqlalchemy import text

    from content_swap.db.client import PostgresClient

    schema = f"swap_test_{uuid.uuid4().hex[:10]}"
    client = PostgresClient.from_url(TEST_DATABASE_URL, schema=schema)
    try:
        yield client
    finally:
        with client.begin() as conn:
            conn.execute(text(f'DROP SCHEMA IF EXISTS "{schema}" CASCADE'))
        client.engine.dispose()
