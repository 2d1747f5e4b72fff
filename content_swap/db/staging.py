# content_swap/db/staging.py

from __future__ import annotations

from dataclasses import dataclass
from typing import List

from loguru import logger
from sqlalchemy import text

from content_swap.core.swap_groups import SwapGroup
from content_swap.db.client import relation_exists
from content_swap.ports.database import Database
from content_swap.ports.staging import StagingManager
from content_swap.utils.identifiers import qualified, retired_name, sanitize_ident, staging_name


@dataclass(frozen=True)
class PostgresStagingManager(StagingManager):
    """
    Manages the non-live copies of a swap group's tables.

    Capabilities:
    - Rebuilds empty `_staging` tables from the live schema after a promotion.
    - Creates only the missing staging tables (bootstrap).
    - Drops `_retired` tables kept by `--keep-retired`.
    """
    db: Database

    def _schema_name(self) -> str:
        return sanitize_ident(getattr(self.db, "schema", "public"))

    def _like_live_sql(self, table: str) -> str:
        # LIKE ... INCLUDING ALL copies columns, defaults, constraints and indexes.
        # Foreign keys and triggers are never copied, so staging stays writable.
        schema = self._schema_name()
        return (
            f"CREATE TABLE {qualified(schema, staging_name(table))} "
            f"(LIKE {qualified(schema, table)} INCLUDING ALL)"
        )

    def recreate_staging(self, group: SwapGroup) -> None:
        """
        Drops any leftover staging table and creates a new empty one
        mirroring the structure of the live table.
        """
        schema = self._schema_name()

        with self.db.begin() as conn:
            for table in group.tables:
                conn.execute(text(f"DROP TABLE IF EXISTS {qualified(schema, staging_name(table))} CASCADE"))
                conn.execute(text(self._like_live_sql(table)))

        logger.info(
            f"Created staging tables for <green>{group.label}</green>: "
            f"{', '.join(staging_name(t) for t in group.tables)}"
        )

    def ensure_staging(self, group: SwapGroup) -> List[str]:
        """Create staging tables that are missing; existing ones keep their rows."""
        schema = self._schema_name()
        created: List[str] = []

        with self.db.begin() as conn:
            for table in group.tables:
                if relation_exists(conn, schema, staging_name(table)):
                    continue
                if not relation_exists(conn, schema, table):
                    logger.warning(f"Live table {schema}.{table} missing; cannot derive {staging_name(table)}")
                    continue
                conn.execute(text(self._like_live_sql(table)))
                created.append(staging_name(table))

        if created:
            logger.info(f"Created missing staging tables: <green>{', '.join(created)}</green>")
        return created

    def clear_staging(self, group: SwapGroup) -> None:
        """Empty every staging table of the group (staging is scratch space)."""
        schema = self._schema_name()
        tables = ", ".join(qualified(schema, staging_name(t)) for t in group.tables)
        with self.db.begin() as conn:
            conn.execute(text(f"TRUNCATE TABLE {tables}"))
        logger.info(f"Cleared staging tables for <green>{group.label}</green>")

    def drop_retired(self, group: SwapGroup) -> List[str]:
        schema = self._schema_name()
        dropped: List[str] = []

        with self.db.begin() as conn:
            for table in reversed(group.tables):
                retired = retired_name(table)
                if relation_exists(conn, schema, retired):
                    conn.execute(text(f"DROP TABLE {qualified(schema, retired)} CASCADE"))
                    dropped.append(retired)

        if dropped:
            logger.info(f"Dropped retired tables: <green>{', '.join(dropped)}</green>")
        else:
            logger.info(f"No retired tables for <green>{group.label}</green>")
        return dropped
