"""
Tests for plan gating: descriptor permission and count ceilings.
"""
import pytest

from projecthub.core.config import Settings
from projecthub.core.errors import ConflictError, PermissionError
from projecthub.features.plans.service import (
    EXTERNAL_API_FORBIDDEN,
    allows_descriptors,
    authorize_write,
    check_entry_capacity,
    check_project_capacity,
    entry_limit,
    get_plan_limits,
    project_limit,
)
from projecthub.models.plan import PlanTier, UNLIMITED

DOC_WITH_DESCRIPTOR = [{"amount": 1}, {"source": {"fetchUrl": "https://api.example.com"}}]
DOC_WITHOUT_DESCRIPTOR = [{"amount": 1}, [1, 2, {"url": "https://api.example.com"}]]


def test_free_plan_forbidden_for_descriptors():
    with pytest.raises(PermissionError) as exc:
        authorize_write("free", DOC_WITH_DESCRIPTOR)
    assert exc.value.message == EXTERNAL_API_FORBIDDEN
    assert exc.value.status_code == 403


def test_basic_plan_forbidden_for_descriptors():
    with pytest.raises(PermissionError):
        authorize_write(PlanTier.BASIC, DOC_WITH_DESCRIPTOR)


@pytest.mark.parametrize("plan", ["premium", "admin", PlanTier.PREMIUM])
def test_premium_and_admin_may_use_descriptors(plan):
    authorize_write(plan, DOC_WITH_DESCRIPTOR)


@pytest.mark.parametrize("plan", ["free", "basic", "premium", "admin"])
def test_literal_documents_allowed_for_every_plan(plan):
    authorize_write(plan, DOC_WITHOUT_DESCRIPTOR)


def test_deeply_nested_descriptor_detected():
    entries = [{"a": [{"b": [{"c": {"apiUrl": "https://legacy.example"}}]}]}]
    with pytest.raises(PermissionError):
        authorize_write("free", entries)


def test_unknown_plan_treated_as_free():
    assert PlanTier.coerce("enterprise") == PlanTier.FREE
    assert PlanTier.coerce(None) == PlanTier.FREE
    assert PlanTier.coerce(" Premium ") == PlanTier.PREMIUM
    assert allows_descriptors("enterprise") is False
    assert entry_limit("enterprise") == entry_limit("free")


def test_default_limits():
    assert entry_limit("free") == 1
    assert entry_limit("basic") == 5
    assert entry_limit("premium") == 10
    assert entry_limit("admin") == UNLIMITED
    assert project_limit("free") == 1
    assert project_limit("admin") == UNLIMITED


def test_entry_capacity_free_plan():
    check_entry_capacity("free", 0)
    with pytest.raises(ConflictError) as exc:
        check_entry_capacity("free", 1)
    assert "1" in exc.value.message
    assert exc.value.status_code == 409


def test_entry_capacity_counts_batch():
    check_entry_capacity("basic", 3, adding=2)
    with pytest.raises(ConflictError):
        check_entry_capacity("basic", 3, adding=3)


def test_entry_capacity_nothing_added_is_allowed():
    check_entry_capacity("free", 4, adding=0)


def test_admin_is_unlimited():
    check_entry_capacity("admin", 10_000)
    check_project_capacity("admin", 10_000)


def test_project_capacity():
    check_project_capacity("basic", 4)
    with pytest.raises(ConflictError) as exc:
        check_project_capacity("basic", 5)
    assert "Basic plan allows up to 5 projects" == exc.value.message


def test_limits_overridable_through_settings():
    cfg = Settings(FREE_ENTRY_LIMIT=3, PREMIUM_PROJECT_LIMIT=2)
    assert entry_limit("free", cfg) == 3
    assert project_limit("premium", cfg) == 2
    check_entry_capacity("free", 2, settings_obj=cfg)


def test_plan_limits_model():
    limits = get_plan_limits("premium")
    assert limits.plan == PlanTier.PREMIUM
    assert limits.external_integrations is True
    assert get_plan_limits("basic").external_integrations is False
