"""Tests for the staging preflight check."""

import pytest

from content_swap.core.swap_groups import group_for
from content_swap.db.validator_repo import PostgresStagingValidator
from content_swap.errors import StagingEmptyError, StagingMissingError, ValidationError


def test_returns_counts_in_group_order(live_catalog):
    counts = PostgresStagingValidator(live_catalog).validate(group_for("tour"))
    assert list(counts.items()) == [("tour_lessons_staging", 6), ("tour_steps_staging", 44)]


def test_missing_staging_table(live_catalog):
    del live_catalog.catalog.tables["tour_steps_staging"]

    with pytest.raises(StagingMissingError) as excinfo:
        PostgresStagingValidator(live_catalog).validate(group_for("tour"))

    assert excinfo.value.table == "tour_steps_staging"
    assert excinfo.value.group == "tour"
    assert isinstance(excinfo.value, ValidationError)


def test_empty_staging_table(live_catalog):
    live_catalog.catalog.tables["rules_staging"] = 0

    with pytest.raises(StagingEmptyError, match="rules_staging"):
        PostgresStagingValidator(live_catalog).validate(group_for("rules"))


@pytest.mark.parametrize("breakage", ["missing", "empty"])
def test_failed_validation_issues_no_ddl(live_catalog, breakage):
    if breakage == "missing":
        del live_catalog.catalog.tables["patterns_staging"]
    else:
        live_catalog.catalog.tables["patterns_staging"] = 0
    before = live_catalog.catalog

    with pytest.raises(ValidationError):
        PostgresStagingValidator(live_catalog).validate(group_for("patterns"))

    assert live_catalog.ddl_statements() == []
    assert live_catalog.transactions == []
    assert live_catalog.catalog is before
    assert live_catalog.catalog.triggers["patterns"] == {"lock_patterns"}
