from __future__ import annotations

from dataclasses import dataclass
from typing import Dict

from loguru import logger
from sqlalchemy import text

from content_swap.core.swap_groups import SwapGroup
from content_swap.db.client import relation_exists
from content_swap.errors import StagingEmptyError, StagingMissingError
from content_swap.ports.database import Database
from content_swap.ports.validator import Validator
from content_swap.utils.identifiers import qualified, sanitize_ident, staging_name


@dataclass(frozen=True)
class PostgresStagingValidator(Validator):
    """
    Preflight check run before every swap.

    Read-only: uses a plain connection, never a write transaction, so a failed
    validation cannot leave anything behind.
    """
    db: Database

    def _schema_name(self) -> str:
        return sanitize_ident(getattr(self.db, "schema", "public"))

    def validate(self, group: SwapGroup) -> Dict[str, int]:
        schema = self._schema_name()
        counts: Dict[str, int] = {}

        with self.db.connect() as conn:
            for table in group.tables:
                staging_table = staging_name(table)

                # Check table exists
                if not relation_exists(conn, schema, staging_table):
                    raise StagingMissingError(
                        f"Staging table {schema}.{staging_table} does not exist. "
                        f"Run the content loader for '{group.label}' first.",
                        group=group.label,
                        table=staging_table,
                    )

                # Count rows
                rowcount = int(
                    conn.execute(
                        text(f"SELECT COUNT(*) FROM {qualified(schema, staging_table)}")
                    ).scalar_one()
                )

                if rowcount == 0:
                    raise StagingEmptyError(
                        f"Staging table {schema}.{staging_table} is empty. Aborting swap.",
                        group=group.label,
                        table=staging_table,
                    )

                counts[staging_table] = rowcount
                logger.info(f"  <green>{staging_table}</green>: {rowcount} rows")

        return counts
