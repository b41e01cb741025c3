from __future__ import annotations

import pytest

from privacyhub.core.errors import DomainValidationError
from privacyhub.services.hierarchy import (
    HIERARCHY_ORGANIZATIONAL,
    HIERARCHY_PROCESSOR_CHAIN,
    RECIPIENT_HIERARCHY,
    DepthViolation,
    HierarchyHealthReport,
    hierarchy_type_for,
)


def test_hierarchy_type_derived_from_recipient_type() -> None:
    assert hierarchy_type_for(RECIPIENT_HIERARCHY, "SUB_PROCESSOR") == HIERARCHY_PROCESSOR_CHAIN
    assert hierarchy_type_for(RECIPIENT_HIERARCHY, "INTERNAL_DEPARTMENT") == HIERARCHY_ORGANIZATIONAL
    assert hierarchy_type_for(RECIPIENT_HIERARCHY, "PROCESSOR") is None


def test_unknown_recipient_type_is_rejected() -> None:
    with pytest.raises(DomainValidationError):
        RECIPIENT_HIERARCHY.rule_for("FRIEND")


def test_rule_table_matches_parent_policy() -> None:
    rules = RECIPIENT_HIERARCHY.rules
    assert rules["SUB_PROCESSOR"].allowed_parent_types == ("PROCESSOR", "SUB_PROCESSOR")
    assert rules["SUB_PROCESSOR"].max_depth == 5
    assert rules["INTERNAL_DEPARTMENT"].max_depth == 10
    assert not rules["PROCESSOR"].can_have_parent
    assert not rules["INTERNAL_DEPARTMENT"].requires_external_link


def test_health_report_totals_every_finding() -> None:
    report = HierarchyHealthReport(
        orphaned=["a"],
        unlinked=["b", "c"],
        depth_violations=[DepthViolation(node="d", current_depth=7, max_allowed=5)],
        cycles=["e"],
    )
    assert report.total_issues == 5
    assert HierarchyHealthReport().total_issues == 0
