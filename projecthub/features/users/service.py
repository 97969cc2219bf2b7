"""
User plan lookup.
- plan_of(user_id)
- set_plan(user_id, plan)

Users without a record are on the free plan.
"""

from datetime import datetime, timezone
from typing import Dict, Protocol, Union
import os

from sqlalchemy import select, insert, update

from projecthub.core.database import ensure_schema, get_db_session, users as app_users
from projecthub.core.errors import ValidationError
from projecthub.core.logging import log_event
from projecthub.models.plan import PlanTier


class PlanLookup(Protocol):
    def plan_of(self, user_id: str) -> PlanTier: ...
    def set_plan(self, user_id: str, plan: Union[PlanTier, str]) -> PlanTier: ...


def parse_plan(plan: Union[PlanTier, str]) -> PlanTier:
    """Strict plan parsing for assignments (unknown names are rejected)."""
    if isinstance(plan, PlanTier):
        return plan
    try:
        return PlanTier((plan or "").strip().lower())
    except ValueError:
        allowed = ", ".join(t.value for t in PlanTier)
        raise ValidationError(f"Unknown plan {plan!r}; expected one of: {allowed}")


class InMemoryUserDirectory:
    def __init__(self):
        self._plans: Dict[str, PlanTier] = {}

    def clear(self) -> None:
        self._plans.clear()

    def plan_of(self, user_id: str) -> PlanTier:
        return self._plans.get(user_id, PlanTier.FREE)

    def set_plan(self, user_id: str, plan: Union[PlanTier, str]) -> PlanTier:
        tier = parse_plan(plan)
        self._plans[user_id] = tier
        log_event("info", "user.plan_set", user_id=user_id, event_type="user.plan_set", extra={"plan": tier.value})
        return tier


class SqlUserDirectory:
    def __init__(self):
        ensure_schema()

    def plan_of(self, user_id: str) -> PlanTier:
        with get_db_session() as session:
            row = session.execute(
                select(app_users.c.plan).where(app_users.c.user_id == user_id)
            ).first()
            return PlanTier.coerce(row.plan) if row else PlanTier.FREE

    def set_plan(self, user_id: str, plan: Union[PlanTier, str]) -> PlanTier:
        tier = parse_plan(plan)
        now = datetime.now(timezone.utc)
        with get_db_session() as session:
            result = session.execute(
                update(app_users)
                .where(app_users.c.user_id == user_id)
                .values(plan=tier.value, updated_at=now)
            )
            if result.rowcount == 0:
                session.execute(
                    insert(app_users).values(user_id=user_id, plan=tier.value, created_at=now, updated_at=now)
                )
        log_event("info", "user.plan_set", user_id=user_id, event_type="user.plan_set", extra={"plan": tier.value})
        return tier


_memory_directory = InMemoryUserDirectory()


def _use_persistence() -> bool:
    return os.getenv("DATABASE_URL") is not None


def get_user_directory() -> PlanLookup:
    return SqlUserDirectory() if _use_persistence() else _memory_directory


def clear_users() -> None:
    """Clear in-memory plan assignments (testing only)."""
    _memory_directory.clear()
