# content_swap/core/staging_flow.py

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Mapping, Optional

from loguru import logger
from sqlalchemy import text

from content_swap.utils.identifiers import qident, qualified, sanitize_ident, staging_name

if TYPE_CHECKING:
    from content_swap.core.swap_groups import SwapGroup
    from content_swap.db.staging_loader import StagingRowLoader
    from content_swap.ports.database import Database
    from content_swap.ports.recorder import Recorder
    from content_swap.ports.staging import StagingManager

# Loaders may name a linked pattern by title; it is stored as pattern_id.
PATTERN_TITLE_KEY = "pattern_title"
PATTERN_ID_KEY = "pattern_id"


@dataclass(frozen=True)
class ContentStager:
    """
    Entry point for content loaders.

    Clears a group's staging tables, loads the new row payloads and records a
    `staged` deployment. Live tables are never touched.

    Rows carrying `pattern_title` (tour steps) are linked to the live patterns
    table: the title is replaced by `pattern_id`, or None when no pattern
    has that title.
    """
    staging: StagingManager
    loader: StagingRowLoader
    recorder: Recorder

    def stage(
            self,
            group: SwapGroup,
            payload: Mapping[str, Iterable[Mapping[str, Any]]],
            metadata: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, int]:
        unknown = set(payload) - set(group.tables)
        if unknown:
            raise ValueError(f"Tables {sorted(unknown)} are not part of swap group {group.label!r}")
        missing = [t for t in group.tables if t not in payload]
        if missing:
            raise ValueError(f"No rows supplied for {missing} in swap group {group.label!r}")

        rows_by_table = self._link_patterns(group, payload)

        self.staging.ensure_staging(group)
        self.staging.clear_staging(group)

        # Group order: parents (e.g. tour_lessons) before children.
        counts: Dict[str, int] = {}
        for table in group.tables:
            counts[staging_name(table)] = self.loader.load(group, table, rows_by_table[table])

        total = sum(counts.values())
        self.recorder.record_staged(group, total, {**dict(metadata or {}), "counts": counts})

        logger.success(f"Staging complete for <green>{group.label}</green>: {counts}")
        return counts

    def _link_patterns(
            self,
            group: SwapGroup,
            payload: Mapping[str, Iterable[Mapping[str, Any]]],
    ) -> Dict[str, List[Dict[str, Any]]]:
        lookup: Optional[PatternLookup] = None
        rows_by_table: Dict[str, List[Dict[str, Any]]] = {}

        for table in group.tables:
            rows = [dict(r) for r in payload[table]]
            for row in rows:
                if PATTERN_TITLE_KEY not in row:
                    continue
                # One lookup per stage() call
                if lookup is None:
                    lookup = PatternLookup.from_database(self.loader.db)
                row[PATTERN_ID_KEY] = lookup.resolve(row.pop(PATTERN_TITLE_KEY))
            rows_by_table[table] = rows

        return rows_by_table


@dataclass(frozen=True)
class PatternLookup:
    """
    Request-scoped title -> id map over the live patterns table.

    Built once per load and passed to the loader that needs it, so two loads
    never share a stale map.
    """
    ids_by_title: Mapping[str, str]

    @classmethod
    def from_database(cls, db: Database, table: str = "patterns") -> "PatternLookup":
        schema = sanitize_ident(getattr(db, "schema", "public"))
        with db.connect() as conn:
            rows = conn.execute(
                text(f"SELECT {qident('id')}, {qident('title')} FROM {qualified(schema, table)}")
            ).fetchall()
        lookup = cls({title: str(pid) for pid, title in rows})
        logger.info(f"Loaded {len(lookup)} patterns for linking")
        return lookup

    def __len__(self) -> int:
        return len(self.ids_by_title)

    def resolve(self, title: Optional[str]) -> Optional[str]:
        if not title:
            return None
        pid = self.ids_by_title.get(title)
        if pid is None:
            logger.warning(f"Pattern not found: {title!r}")
        return pid
