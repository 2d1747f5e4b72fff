# content_swap/db/staging_loader.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Sequence

from loguru import logger
from sqlalchemy import text

from content_swap.core.swap_groups import SwapGroup
from content_swap.ports.database import Database
from content_swap.utils.identifiers import qident, qualified, sanitize_ident, staging_name
from content_swap.utils.progress import track


@dataclass(frozen=True)
class StagingRowLoader:
    """
    Batched INSERT of row payloads into a group's `_staging` tables.

    - Only the staging copy of a table in the group can be targeted; live
      tables are rejected here and by their write-protection trigger.
    - Column list is taken from the first row; every row must carry the same keys.
    """
    db: Database
    batch_size: int = 500

    def _schema_name(self) -> str:
        return sanitize_ident(getattr(self.db, "schema", "public"))

    def _insert_sql(self, staging_table: str, columns: Sequence[str]) -> str:
        cols = ", ".join(qident(c) for c in columns)
        # Bind names are positional so that column names never reach the bind parser.
        binds = ", ".join(f":p{i}" for i in range(len(columns)))
        return f"INSERT INTO {qualified(self._schema_name(), staging_table)} ({cols}) VALUES ({binds})"

    def load(self, group: SwapGroup, table: str, rows: Iterable[Mapping[str, Any]]) -> int:
        if table not in group.tables:
            raise ValueError(f"Table {table!r} is not part of swap group {group.label!r}")

        staging_table = staging_name(table)
        rows = list(rows)
        if not rows:
            logger.warning(f"No rows to load into {staging_table}")
            return 0

        columns: List[str] = [sanitize_ident(c) for c in rows[0].keys()]
        expected = set(columns)
        stmt = text(self._insert_sql(staging_table, columns))

        loaded = 0
        with track(total=len(rows), desc=f"Staging {table}") as bar:
            with self.db.begin() as conn:
                for start in range(0, len(rows), self.batch_size):
                    batch: List[Dict[str, Any]] = []
                    for row in rows[start:start + self.batch_size]:
                        if set(row.keys()) != expected:
                            raise ValueError(
                                f"Row columns {sorted(row.keys())} do not match {sorted(expected)} "
                                f"for {staging_table}"
                            )
                        batch.append({f"p{i}": row[c] for i, c in enumerate(columns)})

                    conn.execute(stmt, batch)
                    loaded += len(batch)
                    bar.update(len(batch))

        logger.info(f"Loaded <green>{loaded}</green> rows into <green>{staging_table}</green>")
        return loaded
