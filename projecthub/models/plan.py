"""
projecthub/models/plan.py

Subscription plan tiers and their capability limits.
"""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict

UNLIMITED = -1


class PlanTier(str, Enum):
    FREE = "free"
    BASIC = "basic"
    PREMIUM = "premium"
    ADMIN = "admin"

    @classmethod
    def coerce(cls, value: Optional[str]) -> "PlanTier":
        """Map a stored plan name to a tier; unknown or missing plans are free."""
        if isinstance(value, cls):
            return value
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.FREE


class PlanLimits(BaseModel):
    """
    Capabilities granted by a plan.

    -1 means unlimited for the count limits.
    """
    model_config = ConfigDict(frozen=True)

    plan: PlanTier
    max_entries: int
    max_projects: int
    external_integrations: bool = False

    def entries_unlimited(self) -> bool:
        return self.max_entries == UNLIMITED

    def projects_unlimited(self) -> bool:
        return self.max_projects == UNLIMITED
