# content_swap/core/swap_groups.py

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import List, Mapping, Tuple, Union

from content_swap.errors import ConfigurationError
from content_swap.utils.identifiers import fk_action, sanitize_ident


class SwapGroupName(str, Enum):
    """Every content domain that can be promoted. Adding one means adding a registry entry."""

    PATTERNS = "patterns"
    RULES = "rules"
    TOUR = "tour"


ALL_TARGET = "all"


@dataclass(frozen=True)
class LockTrigger:
    table: str
    trigger_name: str

    def __post_init__(self) -> None:
        sanitize_ident(self.table)
        sanitize_ident(self.trigger_name)


@dataclass(frozen=True)
class ForeignKeyRef:
    """
    FK that crosses the swap boundary: dropped before the renames and
    re-created afterwards against the new live target.
    """
    constraint_name: str
    source_table: str
    source_column: str
    target_table: str
    target_column: str
    on_delete: str = "CASCADE"

    def __post_init__(self) -> None:
        for ident in (
            self.constraint_name,
            self.source_table,
            self.source_column,
            self.target_table,
            self.target_column,
        ):
            sanitize_ident(ident)
        fk_action(self.on_delete)


@dataclass(frozen=True)
class SwapGroup:
    name: SwapGroupName
    # Order drives FK re-creation and the reverse-order drop of retired tables.
    tables: Tuple[str, ...]
    lock_triggers: Tuple[LockTrigger, ...]
    foreign_keys: Tuple[ForeignKeyRef, ...] = ()

    def __post_init__(self) -> None:
        for table in self.tables:
            sanitize_ident(table)
        if len(set(self.tables)) != len(self.tables):
            raise ValueError(f"Duplicate table in swap group {self.name.value}")
        locked = {lt.table for lt in self.lock_triggers}
        if locked != set(self.tables):
            raise ValueError(
                f"Swap group {self.name.value} needs exactly one lock trigger per table, "
                f"tables={list(self.tables)} triggers={sorted(locked)}"
            )

    @property
    def label(self) -> str:
        return self.name.value


def _build_registry() -> Mapping[SwapGroupName, SwapGroup]:
    groups = {
        SwapGroupName.PATTERNS: SwapGroup(
            name=SwapGroupName.PATTERNS,
            tables=("patterns",),
            lock_triggers=(LockTrigger("patterns", "lock_patterns"),),
        ),
        SwapGroupName.RULES: SwapGroup(
            name=SwapGroupName.RULES,
            tables=("rules",),
            lock_triggers=(LockTrigger("rules", "lock_rules"),),
        ),
        SwapGroupName.TOUR: SwapGroup(
            name=SwapGroupName.TOUR,
            tables=("tour_lessons", "tour_steps"),
            lock_triggers=(
                LockTrigger("tour_lessons", "lock_tour_lessons"),
                LockTrigger("tour_steps", "lock_tour_steps"),
            ),
            foreign_keys=(
                # User progress is never swapped; it must follow the new tour_steps.
                ForeignKeyRef(
                    constraint_name="tour_progress_step_id_tour_steps_id_fk",
                    source_table="tour_progress",
                    source_column="step_id",
                    target_table="tour_steps",
                    target_column="id",
                ),
                ForeignKeyRef(
                    constraint_name="tour_steps_lesson_id_tour_lessons_id_fk",
                    source_table="tour_steps",
                    source_column="lesson_id",
                    target_table="tour_lessons",
                    target_column="id",
                ),
            ),
        ),
    }

    missing = set(SwapGroupName) - set(groups)
    if missing:
        raise RuntimeError(f"Swap group registry is missing: {sorted(m.value for m in missing)}")

    return MappingProxyType(groups)


SWAP_GROUPS: Mapping[SwapGroupName, SwapGroup] = _build_registry()


def group_for(name: Union[str, SwapGroupName]) -> SwapGroup:
    """Look up a swap group by enum member or name."""
    try:
        key = SwapGroupName(name)
    except ValueError:
        known = ", ".join(g.value for g in SwapGroupName)
        raise ConfigurationError(f"Unknown swap group {name!r} (known: {known})") from None
    return SWAP_GROUPS[key]


def expand_target(target: str) -> List[SwapGroup]:
    """Resolve a CLI target (a group name or 'all') to swap groups, in registry order."""
    if target == ALL_TARGET:
        return list(SWAP_GROUPS.values())
    return [group_for(target)]
