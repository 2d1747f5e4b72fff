"""Tests for the swap group registry and identifier helpers."""

import pytest

from content_swap.core.swap_groups import (
    SWAP_GROUPS,
    ForeignKeyRef,
    LockTrigger,
    SwapGroup,
    SwapGroupName,
    expand_target,
    group_for,
)
from content_swap.errors import ConfigurationError
from content_swap.utils.identifiers import fk_action, qident, qualified, sanitize_ident


class TestRegistry:

    def test_every_name_has_a_group(self):
        assert set(SWAP_GROUPS) == set(SwapGroupName)

    def test_lookup_by_string_and_enum(self):
        assert group_for("tour") is group_for(SwapGroupName.TOUR)

    def test_unknown_group_is_configuration_error(self):
        with pytest.raises(ConfigurationError, match="Unknown swap group"):
            group_for("lessons")

    def test_registry_is_read_only(self):
        with pytest.raises(TypeError):
            SWAP_GROUPS[SwapGroupName.RULES] = SWAP_GROUPS[SwapGroupName.PATTERNS]  # type: ignore[index]

    def test_groups_are_frozen(self):
        with pytest.raises(AttributeError):
            group_for("patterns").tables = ("other",)  # type: ignore[misc]

    def test_tour_group_layout(self):
        tour = group_for("tour")
        assert tour.tables == ("tour_lessons", "tour_steps")
        assert [lt.trigger_name for lt in tour.lock_triggers] == ["lock_tour_lessons", "lock_tour_steps"]
        sources = {fk.source_table for fk in tour.foreign_keys}
        assert sources == {"tour_progress", "tour_steps"}
        assert all(fk.on_delete == "CASCADE" for fk in tour.foreign_keys)

    def test_expand_all_in_registry_order(self):
        assert [g.label for g in expand_target("all")] == ["patterns", "rules", "tour"]

    def test_expand_single(self):
        assert [g.label for g in expand_target("rules")] == ["rules"]

    def test_expand_unknown(self):
        with pytest.raises(ConfigurationError):
            expand_target("everything")


class TestGroupValidation:

    def test_trigger_required_per_table(self):
        with pytest.raises(ValueError, match="one lock trigger per table"):
            SwapGroup(
                name=SwapGroupName.PATTERNS,
                tables=("patterns", "extra"),
                lock_triggers=(LockTrigger("patterns", "lock_patterns"),),
            )

    def test_unsafe_table_name_rejected(self):
        with pytest.raises(ValueError):
            LockTrigger('patterns"; DROP TABLE x; --', "lock")

    def test_unknown_fk_action_rejected(self):
        with pytest.raises(ValueError):
            ForeignKeyRef("c", "a", "b", "c", "d", on_delete="EXPLODE")


class TestIdentifiers:

    def test_qident_quotes(self):
        assert qident("tour_steps") == '"tour_steps"'

    def test_qualified(self):
        assert qualified("public", "rules") == '"public"."rules"'

    @pytest.mark.parametrize("name", ["1abc", "a-b", 'a"b', "", "a" * 64])
    def test_sanitize_rejects(self, name):
        with pytest.raises(ValueError):
            sanitize_ident(name)

    def test_fk_action_normalizes(self):
        assert fk_action("set  null") == "SET NULL"
