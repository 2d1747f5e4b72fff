# content_swap/db/recorder.py

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from loguru import logger
from sqlalchemy import text

from content_swap.core.swap_groups import SwapGroup
from content_swap.ports.database import Database
from content_swap.ports.recorder import Recorder
from content_swap.utils.identifiers import qident, qualified, sanitize_ident

DEPLOYMENTS_TABLE = "content_deployments"

STATUS_STAGED = "staged"
STATUS_LIVE = "live"
STATUS_RETIRED = "retired"


@dataclass(frozen=True)
class DeploymentRecorder(Recorder):
    """
    Append-only audit trail of content deployments.

    Rows move staged -> live -> retired and are never deleted. A promotion
    inserts a new `live` row and, in the same transaction, sweeps every other
    `live` row of the group to `retired`.
    """
    db: Database
    table: str = DEPLOYMENTS_TABLE

    def _qtable(self) -> str:
        schema = sanitize_ident(getattr(self.db, "schema", "public"))
        return qualified(schema, self.table)

    def ensure_table(self) -> None:
        table = self._qtable()
        index = sanitize_ident(f"{self.table}_group_status_idx")
        with self.db.begin() as conn:
            conn.execute(
                text(
                    f"""
                    CREATE TABLE IF NOT EXISTS {table} (
                        id uuid PRIMARY KEY DEFAULT gen_random_uuid() NOT NULL,
                        table_group text NOT NULL,
                        status text DEFAULT 'staged' NOT NULL
                            CHECK (status IN ('staged', 'live', 'retired')),
                        row_count integer,
                        metadata jsonb DEFAULT '{{}}'::jsonb,
                        staged_at timestamp with time zone DEFAULT now() NOT NULL,
                        promoted_at timestamp with time zone,
                        retired_at timestamp with time zone
                    )
                    """
                )
            )
            conn.execute(
                text(f"CREATE INDEX IF NOT EXISTS {qident(index)} ON {table} (table_group, status)")
            )
        logger.info(f"Deployment table ready: <green>{self.table}</green>")

    def record_staged(
            self,
            group: SwapGroup,
            row_count: int,
            metadata: Optional[Mapping[str, Any]] = None,
    ) -> str:
        with self.db.begin() as conn:
            deployment_id = conn.execute(
                text(
                    f"""
                    INSERT INTO {self._qtable()} (table_group, status, row_count, metadata)
                    VALUES (:g, :status, :n, CAST(:m AS JSONB))
                    RETURNING id
                    """
                ),
                {
                    "g": group.label,
                    "status": STATUS_STAGED,
                    "n": row_count,
                    "m": json.dumps(dict(metadata or {}), default=str),
                },
            ).scalar_one()

        logger.info(f"Recorded staged deployment for <green>{group.label}</green> ({row_count} rows)")
        return str(deployment_id)

    def record_promoted(
            self,
            group: SwapGroup,
            row_count: int,
            metadata: Optional[Mapping[str, Any]] = None,
    ) -> str:
        table = self._qtable()
        with self.db.begin() as conn:
            deployment_id = conn.execute(
                text(
                    f"""
                    INSERT INTO {table} (table_group, status, row_count, metadata, promoted_at)
                    VALUES (:g, :status, :n, CAST(:m AS JSONB), now())
                    RETURNING id
                    """
                ),
                {
                    "g": group.label,
                    "status": STATUS_LIVE,
                    "n": row_count,
                    "m": json.dumps(dict(metadata or {}), default=str),
                },
            ).scalar_one()

            # Every other live row of the group is older than this one,
            # including any left behind by a skipped cleanup.
            retired = conn.execute(
                text(
                    f"""
                    UPDATE {table}
                    SET status = :retired, retired_at = now()
                    WHERE table_group = :g
                      AND status = :live
                      AND id <> :id
                    """
                ),
                {"g": group.label, "live": STATUS_LIVE, "retired": STATUS_RETIRED, "id": deployment_id},
            ).rowcount

        logger.info(
            f"Recorded live deployment for <green>{group.label}</green> "
            f"({row_count} rows, retired {retired} previous)"
        )
        return str(deployment_id)

    def history(self, group: SwapGroup, limit: int = 20) -> List[Dict[str, Any]]:
        with self.db.connect() as conn:
            rows = conn.execute(
                text(
                    f"""
                    SELECT id, table_group, status, row_count, metadata,
                           staged_at, promoted_at, retired_at
                    FROM {self._qtable()}
                    WHERE table_group = :g
                    ORDER BY COALESCE(promoted_at, staged_at) DESC
                    LIMIT :lim
                    """
                ),
                {"g": group.label, "lim": limit},
            ).mappings().all()
        return [dict(r) for r in rows]
