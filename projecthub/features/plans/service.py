"""
projecthub/features/plans/service.py

Plan gate: descriptor permission and entry/project caps per subscription tier.

Handles:
- Plan limit resolution (caps overridable through settings)
- authorize_write: only premium/admin may store external-data descriptors
- Entry and project count ceilings (Conflict on violation)
"""

from typing import Any, Iterable, Optional, Union

from projecthub.core.config import Settings, settings as default_settings
from projecthub.core.errors import ConflictError, PermissionError
from projecthub.core.logging import log_event
from projecthub.features.resolution.detector import has_any_descriptor
from projecthub.models.plan import PlanLimits, PlanTier, UNLIMITED

EXTERNAL_API_FORBIDDEN = "External API integration requires Premium plan"

DESCRIPTOR_PLANS = frozenset({PlanTier.PREMIUM, PlanTier.ADMIN})


def get_plan_limits(plan: Union[PlanTier, str, None], settings_obj: Optional[Settings] = None) -> PlanLimits:
    cfg = settings_obj or default_settings
    tier = PlanTier.coerce(plan)
    if tier == PlanTier.ADMIN:
        max_entries, max_projects = UNLIMITED, UNLIMITED
    elif tier == PlanTier.PREMIUM:
        max_entries, max_projects = cfg.PREMIUM_ENTRY_LIMIT, cfg.PREMIUM_PROJECT_LIMIT
    elif tier == PlanTier.BASIC:
        max_entries, max_projects = cfg.BASIC_ENTRY_LIMIT, cfg.BASIC_PROJECT_LIMIT
    else:
        max_entries, max_projects = cfg.FREE_ENTRY_LIMIT, cfg.FREE_PROJECT_LIMIT
    return PlanLimits(
        plan=tier,
        max_entries=max_entries,
        max_projects=max_projects,
        external_integrations=tier in DESCRIPTOR_PLANS,
    )


def allows_descriptors(plan: Union[PlanTier, str, None]) -> bool:
    return PlanTier.coerce(plan) in DESCRIPTOR_PLANS


def entry_limit(plan: Union[PlanTier, str, None], settings_obj: Optional[Settings] = None) -> int:
    return get_plan_limits(plan, settings_obj).max_entries


def project_limit(plan: Union[PlanTier, str, None], settings_obj: Optional[Settings] = None) -> int:
    return get_plan_limits(plan, settings_obj).max_projects


def authorize_write(plan: Union[PlanTier, str, None], entries: Iterable[Any], *, user_id: Optional[str] = None) -> None:
    """Raise PermissionError if any incoming entry holds a descriptor the plan cannot use."""
    if allows_descriptors(plan):
        return
    if any(has_any_descriptor(entry) for entry in entries):
        log_event(
            "warning",
            "plan.denied",
            user_id=user_id,
            event_type="plan.denied",
            error_code="forbidden",
            extra={"plan": PlanTier.coerce(plan).value, "reason": "external_integration"},
        )
        raise PermissionError(EXTERNAL_API_FORBIDDEN)


def _plan_label(tier: PlanTier) -> str:
    return tier.value.capitalize()


def check_entry_capacity(
    plan: Union[PlanTier, str, None],
    existing_count: int,
    adding: int = 1,
    settings_obj: Optional[Settings] = None,
) -> None:
    limits = get_plan_limits(plan, settings_obj)
    if adding <= 0 or limits.entries_unlimited():
        return
    if existing_count + adding > limits.max_entries:
        raise ConflictError(
            f"{_plan_label(limits.plan)} plan allows up to {limits.max_entries} entries per project"
        )


def check_project_capacity(
    plan: Union[PlanTier, str, None],
    existing_count: int,
    settings_obj: Optional[Settings] = None,
) -> None:
    limits = get_plan_limits(plan, settings_obj)
    if limits.projects_unlimited():
        return
    if existing_count >= limits.max_projects:
        raise ConflictError(
            f"{_plan_label(limits.plan)} plan allows up to {limits.max_projects} projects"
        )
