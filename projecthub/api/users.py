"""
projecthub/api/users.py
User plan endpoints. Assignment is admin-only; plans normally come from billing.
"""

from fastapi import APIRouter, Depends

from projecthub.core.admin_auth import AdminActor, require_admin
from projecthub.core.logging import log_event
from projecthub.features.plans.service import get_plan_limits
from projecthub.features.users.service import get_user_directory
from projecthub.models.project import SetPlanRequest

router = APIRouter(prefix="/v1/users", tags=["users"])


@router.get("/{user_id}/plan")
async def get_plan_endpoint(user_id: str):
    plan = get_user_directory().plan_of(user_id)
    return {"data": get_plan_limits(plan).model_dump(mode="json")}


@router.put("/{user_id}/plan")
async def set_plan_endpoint(user_id: str, request: SetPlanRequest, actor: AdminActor = Depends(require_admin)):
    plan = get_user_directory().set_plan(user_id, request.plan)
    log_event(
        "info",
        "admin.plan_assigned",
        user_id=user_id,
        event_type="admin.plan_assigned",
        extra={"actor": actor.actor_id, "plan": plan.value},
    )
    return {"data": get_plan_limits(plan).model_dump(mode="json")}
