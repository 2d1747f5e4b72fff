# content_swap/db/swapper.py

from __future__ import annotations

from dataclasses import dataclass
from typing import AbstractSet, List

from loguru import logger
from sqlalchemy import text
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from content_swap.core.swap_groups import ForeignKeyRef, SwapGroup
from content_swap.db.client import relation_exists, trigger_exists
from content_swap.errors import RetiredTablesPendingError, TransactionError
from content_swap.ports.database import Database
from content_swap.ports.swapper import Swapper
from content_swap.utils.identifiers import (
    fk_action,
    qident,
    qualified,
    retired_name,
    sanitize_ident,
    staging_name,
)

REJECT_WRITES_FN = "reject_content_writes"


@dataclass(frozen=True)
class SwapStatement:
    step: str
    sql: str


@dataclass(frozen=True)
class BlueGreenSwapper(Swapper):
    """
    Promotes a swap group's `_staging` tables to live in one transaction.

    Postgres DDL is transactional: the renames only become visible at commit,
    and any failure rolls back every earlier statement, leaving the previous
    live tables, triggers and constraints exactly as they were.
    """
    db: Database

    def _schema_name(self) -> str:
        return sanitize_ident(getattr(self.db, "schema", "public"))

    def _qtable(self, table: str) -> str:
        return qualified(self._schema_name(), table)

    # ------------------------------------------------------------------
    # statement builders

    def reject_writes_function_sql(self) -> str:
        fn = qualified(self._schema_name(), REJECT_WRITES_FN)
        return (
            f"CREATE OR REPLACE FUNCTION {fn}() RETURNS trigger AS $$\n"
            "BEGIN\n"
            "  RAISE EXCEPTION 'Table \"%\" is locked. Write to \"%_staging\" instead.', "
            "TG_TABLE_NAME, TG_TABLE_NAME;\n"
            "  RETURN NULL;\n"
            "END;\n"
            "$$ LANGUAGE plpgsql"
        )

    def _add_fk_sql(self, fk: ForeignKeyRef) -> str:
        return (
            f"ALTER TABLE {self._qtable(fk.source_table)} "
            f"ADD CONSTRAINT {qident(fk.constraint_name)} "
            f"FOREIGN KEY ({qident(fk.source_column)}) "
            f"REFERENCES {self._qtable(fk.target_table)} ({qident(fk.target_column)}) "
            f"ON DELETE {fk_action(fk.on_delete)}"
        )

    def lock_trigger_sql(self, table: str, trigger_name: str) -> List[str]:
        """DROP + CREATE of the write-protection trigger on a live table."""
        fn = qualified(self._schema_name(), REJECT_WRITES_FN)
        return [
            f"DROP TRIGGER IF EXISTS {qident(trigger_name)} ON {self._qtable(table)}",
            f"CREATE TRIGGER {qident(trigger_name)} BEFORE INSERT OR UPDATE OR DELETE "
            f"ON {self._qtable(table)} FOR EACH ROW EXECUTE FUNCTION {fn}()",
        ]

    def plan(
            self,
            group: SwapGroup,
            keep_retired: bool = False,
            existing_triggers: AbstractSet[str] | None = None,
            skipped_foreign_keys: AbstractSet[str] = frozenset(),
    ) -> List[SwapStatement]:
        """
        Ordered statements for one promotion.

        `existing_triggers` names the lock triggers present on the current live
        tables; None assumes all of them (used for dry-run output).
        `skipped_foreign_keys` names constraints whose source table is absent.
        """
        statements: List[SwapStatement] = []

        # 1. trigger function, so a freshly provisioned database works too
        statements.append(SwapStatement("ensure_function", self.reject_writes_function_sql()))

        # 2. disable lock triggers that exist on the outgoing live tables
        for lt in group.lock_triggers:
            if existing_triggers is not None and lt.trigger_name not in existing_triggers:
                continue
            statements.append(
                SwapStatement(
                    "disable_trigger",
                    f"ALTER TABLE {self._qtable(lt.table)} DISABLE TRIGGER {qident(lt.trigger_name)}",
                )
            )

        foreign_keys = [fk for fk in group.foreign_keys if fk.constraint_name not in skipped_foreign_keys]

        # 3. drop FKs crossing the swap boundary
        for fk in foreign_keys:
            statements.append(
                SwapStatement(
                    "drop_fk",
                    f"ALTER TABLE IF EXISTS {self._qtable(fk.source_table)} "
                    f"DROP CONSTRAINT IF EXISTS {qident(fk.constraint_name)}",
                )
            )

        # 4. live -> retired (may not exist yet), staging -> live (mandatory)
        for table in group.tables:
            statements.append(
                SwapStatement(
                    "rename_live",
                    f"ALTER TABLE IF EXISTS {self._qtable(table)} RENAME TO {qident(retired_name(table))}",
                )
            )
            statements.append(
                SwapStatement(
                    "rename_staging",
                    f"ALTER TABLE {self._qtable(staging_name(table))} RENAME TO {qident(table)}",
                )
            )

        # 5. FKs now resolve to the new live tables
        for fk in foreign_keys:
            statements.append(SwapStatement("add_fk", self._add_fk_sql(fk)))

        # 6. lock the new live tables
        for lt in group.lock_triggers:
            for sql in self.lock_trigger_sql(lt.table, lt.trigger_name):
                statements.append(SwapStatement("lock_trigger", sql))

        # 7. drop retired tables, reverse order for intra-group dependencies
        if not keep_retired:
            for table in reversed(group.tables):
                statements.append(
                    SwapStatement(
                        "drop_retired",
                        f"DROP TABLE IF EXISTS {self._qtable(retired_name(table))} CASCADE",
                    )
                )

        return statements

    # ------------------------------------------------------------------
    # preconditions, evaluated inside the swap transaction

    def _check_no_pending_retired(self, conn: Connection, group: SwapGroup) -> None:
        schema = self._schema_name()
        pending = [
            retired_name(t) for t in group.tables if relation_exists(conn, schema, retired_name(t))
        ]
        if pending:
            raise RetiredTablesPendingError(
                f"Retired tables from an earlier promotion still exist: {', '.join(pending)}. "
                f"Drop them (drop-retired {group.label}) before promoting again.",
                group=group.label,
                table=pending[0],
            )

    def _existing_triggers(self, conn: Connection, group: SwapGroup) -> AbstractSet[str]:
        schema = self._schema_name()
        found = set()
        for lt in group.lock_triggers:
            if trigger_exists(conn, schema, lt.table, lt.trigger_name):
                found.add(lt.trigger_name)
            else:
                logger.info(f"Lock trigger {lt.trigger_name} not present on {lt.table}; nothing to disable")
        return found

    def _skipped_foreign_keys(self, conn: Connection, group: SwapGroup) -> AbstractSet[str]:
        # Sources inside the group always exist after the renames.
        schema = self._schema_name()
        skipped = set()
        for fk in group.foreign_keys:
            if fk.source_table in group.tables:
                continue
            if not relation_exists(conn, schema, fk.source_table):
                logger.warning(
                    f"FK source table {fk.source_table} does not exist; "
                    f"skipping constraint {fk.constraint_name}"
                )
                skipped.add(fk.constraint_name)
        return skipped

    # ------------------------------------------------------------------

    def swap(self, group: SwapGroup, keep_retired: bool = False) -> None:
        schema = self._schema_name()

        logger.info(
            f"Swapping atomically (schema={schema}, group={group.label}): "
            f"tables=<green>{', '.join(group.tables)}</green> keep_retired={keep_retired}"
        )

        try:
            with self.db.begin() as conn:
                self._check_no_pending_retired(conn, group)

                statements = self.plan(
                    group,
                    keep_retired=keep_retired,
                    existing_triggers=self._existing_triggers(conn, group),
                    skipped_foreign_keys=self._skipped_foreign_keys(conn, group),
                )

                for stmt in statements:
                    logger.debug(f"[{group.label}:{stmt.step}] {stmt.sql}")
                    conn.execute(text(stmt.sql))

        except SQLAlchemyError as e:
            logger.error(f"Swap of group '{group.label}' rolled back: {e}")
            raise TransactionError(group.label, e) from e

        logger.success(f"Swap completed: <green>{group.label}</green> is live")
