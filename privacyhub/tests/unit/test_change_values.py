from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from privacyhub.core.errors import ChangeValueError
from privacyhub.domain.models import ProcessingActivity
from privacyhub.services.change_ledger import diff_snapshots, normalize_change_value, snapshot


def test_normalize_scalar_values() -> None:
    assert normalize_change_value(None) is None
    assert normalize_change_value("name") == "name"
    assert normalize_change_value(3) == 3
    assert normalize_change_value(True) is True
    assert normalize_change_value(Decimal("1.50")) == "1.50"
    assert normalize_change_value(date(2026, 1, 2)) == "2026-01-02"


def test_normalize_datetimes_to_utc_iso() -> None:
    assert normalize_change_value(datetime(2026, 1, 2, 3, 4, 5)) == "2026-01-02T03:04:05+00:00"
    aware = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    assert normalize_change_value(aware) == "2026-01-02T03:04:05+00:00"


def test_normalize_nested_structures() -> None:
    value = {"when": datetime(2026, 1, 1), "tags": ("a", Decimal("2"))}
    assert normalize_change_value(value) == {"when": "2026-01-01T00:00:00+00:00", "tags": ["a", "2"]}


def test_unserializable_values_are_rejected() -> None:
    with pytest.raises(ChangeValueError):
        normalize_change_value(object())
    with pytest.raises(ChangeValueError):
        normalize_change_value({"nested": {1, 2}})


def test_snapshot_captures_tracked_fields_only() -> None:
    activity = ProcessingActivity(
        id="a1",
        organization_id="org-1",
        name="Payroll",
        status="draft",
        requires_dpia=False,
    )
    captured = snapshot("PROCESSING_ACTIVITY", activity)
    assert captured["name"] == "Payroll"
    assert "organization_id" not in captured
    assert "id" not in captured


def test_diff_snapshots_reports_changed_fields() -> None:
    before = {"name": "Payroll", "status": "draft", "risk_level": None}
    after = {"name": "Payroll", "status": "active", "risk_level": "HIGH"}
    assert diff_snapshots(before, after) == [
        ("status", "draft", "active"),
        ("risk_level", None, "HIGH"),
    ]
    assert diff_snapshots(after, after) == []
