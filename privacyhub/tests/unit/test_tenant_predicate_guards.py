from __future__ import annotations

import pytest

from privacyhub.core.config import get_settings
from privacyhub.domain.models import ProcessingActivity, Recipient
from privacyhub.persistence.guards import (
    TenantPredicateError,
    get_owned,
    require_all_owned,
    require_organization_id,
    require_owned,
    tenant_or_global_predicate,
    tenant_predicate,
)
from privacyhub.persistence.repos import activities as activities_repo
from privacyhub.persistence.repos import change_logs as change_logs_repo
from privacyhub.persistence.repos import recipients as recipients_repo
from privacyhub.services.change_ledger import record_change


def _set_guard(monkeypatch: pytest.MonkeyPatch, enabled: bool) -> None:
    monkeypatch.setenv("REQUIRE_TENANT_PREDICATE", "true" if enabled else "false")
    get_settings.cache_clear()


def test_missing_organization_id_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    _set_guard(monkeypatch, True)
    with pytest.raises(TenantPredicateError) as excinfo:
        require_organization_id(None)
    assert "organization_id" in excinfo.value.message
    with pytest.raises(TenantPredicateError):
        tenant_predicate(Recipient, "")
    with pytest.raises(TenantPredicateError):
        tenant_or_global_predicate(Recipient, None)  # type: ignore[arg-type]


def test_guard_can_be_disabled(monkeypatch: pytest.MonkeyPatch) -> None:
    _set_guard(monkeypatch, False)
    require_organization_id(None)


def test_tenant_predicate_renders_organization_filter(monkeypatch: pytest.MonkeyPatch) -> None:
    _set_guard(monkeypatch, True)
    assert "recipients.organization_id" in str(tenant_predicate(Recipient, "org-1"))
    assert "IS NULL" in str(tenant_or_global_predicate(Recipient, "org-1"))


@pytest.mark.asyncio
async def test_guard_helpers_require_organization(monkeypatch: pytest.MonkeyPatch) -> None:
    _set_guard(monkeypatch, True)
    with pytest.raises(TenantPredicateError):
        await get_owned(None, ProcessingActivity, "a1", None)  # type: ignore[arg-type]
    with pytest.raises(TenantPredicateError):
        await require_owned(None, ProcessingActivity, "a1", None)  # type: ignore[arg-type]
    with pytest.raises(TenantPredicateError):
        await require_all_owned(None, Recipient, ["r1"], None)  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_repositories_require_organization(monkeypatch: pytest.MonkeyPatch) -> None:
    _set_guard(monkeypatch, True)
    with pytest.raises(TenantPredicateError):
        await activities_repo.list_activities(None, None)  # type: ignore[arg-type]
    with pytest.raises(TenantPredicateError):
        await recipients_repo.get_recipient(None, "r1", None)  # type: ignore[arg-type]
    with pytest.raises(TenantPredicateError):
        await change_logs_repo.get_component_change_history(None, "RECIPIENT", "r1", None)  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_change_log_reads_check_organization_before_querying(monkeypatch: pytest.MonkeyPatch) -> None:
    # No session is needed: the organization check fires before any statement runs.
    _set_guard(monkeypatch, True)
    with pytest.raises(TenantPredicateError):
        await change_logs_repo.get_recent_changes(None, None)  # type: ignore[arg-type]
    with pytest.raises(TenantPredicateError):
        await change_logs_repo.get_changes_for_user(None, "u1", None)  # type: ignore[arg-type]
    with pytest.raises(TenantPredicateError):
        await change_logs_repo.get_changes_by_component_type(None, "RECIPIENT", None)  # type: ignore[arg-type]
    with pytest.raises(TenantPredicateError):
        await change_logs_repo.list_change_logs(None, None)  # type: ignore[arg-type]
    with pytest.raises(TenantPredicateError):
        await change_logs_repo.get_change_stats_by_type(None, None)  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_change_recording_requires_organization(monkeypatch: pytest.MonkeyPatch) -> None:
    _set_guard(monkeypatch, True)
    with pytest.raises(TenantPredicateError):
        await record_change(
            None,  # type: ignore[arg-type]
            organization_id=None,  # type: ignore[arg-type]
            component_type="RECIPIENT",
            component_id="r1",
            change_type="CREATED",
        )
