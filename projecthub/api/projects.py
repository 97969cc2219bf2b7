"""
projecthub/api/projects.py
Projects API: project CRUD and the project data document (dataInfo).
"""

from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Header

from projecthub.features.projects.service import ProjectService
from projecthub.models.project import (
    CreateEntryRequest,
    CreateProjectRequest,
    UpdateDataInfoRequest,
)

router = APIRouter(prefix="/v1/projects", tags=["projects"])


def get_project_service() -> ProjectService:
    return ProjectService()


def get_acting_user(x_user_id: Optional[str] = Header(None)) -> Optional[str]:
    return x_user_id


@router.post("", status_code=201)
async def create_project_endpoint(
    request: CreateProjectRequest,
    user_id: Optional[str] = Depends(get_acting_user),
    service: ProjectService = Depends(get_project_service),
):
    """Create a project owned by the acting user"""
    project = service.create_project(user_id, request.name, request.data_info)
    return {"data": project.model_dump(mode="json")}


@router.get("/user/{owner_id}")
async def list_projects_endpoint(owner_id: str, service: ProjectService = Depends(get_project_service)):
    """List projects owned by a user"""
    projects = service.list_projects(owner_id)
    return {
        "data": [p.model_dump(mode="json") for p in projects],
        "count": len(projects),
    }


@router.get("/{project_id}")
async def get_project_endpoint(project_id: str, service: ProjectService = Depends(get_project_service)):
    project = service.get_project(project_id)
    return {"data": project.model_dump(mode="json")}


@router.delete("/{project_id}")
async def delete_project_endpoint(project_id: str, service: ProjectService = Depends(get_project_service)):
    service.delete_project(project_id)
    return {"message": "Project deleted successfully"}


@router.get("/{project_id}/datainfo")
async def get_data_info_endpoint(project_id: str, service: ProjectService = Depends(get_project_service)):
    """Resolved document; external fetch failures are embedded as outcome strings"""
    document = await service.get_resolved_document(project_id)
    return {"data": document}


@router.put("/{project_id}/datainfo")
async def update_data_info_endpoint(
    project_id: str,
    request: UpdateDataInfoRequest,
    user_id: Optional[str] = Depends(get_acting_user),
    service: ProjectService = Depends(get_project_service),
):
    """Bulk update: known entry ids replaced, other keys added as new entries"""
    document = service.update_data_info(project_id, request.data_info, acting_user_id=user_id)
    return {"data": document}


@router.post("/{project_id}/datainfo/entries", status_code=201)
async def create_entry_endpoint(
    project_id: str,
    request: CreateEntryRequest,
    user_id: Optional[str] = Depends(get_acting_user),
    service: ProjectService = Depends(get_project_service),
):
    entry = service.create_entry(project_id, user_id, request.name, request.value)
    return {"data": entry}


@router.put("/{project_id}/datainfo/entry/{entry_id}")
async def replace_entry_endpoint(
    project_id: str,
    entry_id: str,
    value: Any = Body(...),
    user_id: Optional[str] = Depends(get_acting_user),
    service: ProjectService = Depends(get_project_service),
):
    """Replace one entry wholesale (or merge, per ENTRY_UPDATE_POLICY)"""
    document = service.replace_entry(project_id, entry_id, value, acting_user_id=user_id)
    return {"data": document}


@router.delete("/{project_id}/datainfo/entry/{entry_id}")
async def delete_entry_endpoint(
    project_id: str,
    entry_id: str,
    user_id: Optional[str] = Depends(get_acting_user),
    service: ProjectService = Depends(get_project_service),
):
    document = service.delete_entry(project_id, entry_id, acting_user_id=user_id)
    return {"data": document}
