"""
projecthub/models/project.py
Project models: stored project plus request bodies for the data document.
"""

from pydantic import BaseModel, Field, ConfigDict
from datetime import datetime
from typing import Any, Dict, Optional


class Project(BaseModel):
    """Project owned by a user; data_info maps entry ids to entry values"""

    model_config = ConfigDict(frozen=True)

    project_id: str = Field(description="32-char hex id")
    owner_id: str
    name: str = Field(max_length=200)
    data_info: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime


class CreateProjectRequest(BaseModel):
    """Request to create a project; data_info keys are display labels"""

    name: str = Field(min_length=1, max_length=200)
    data_info: Optional[Dict[str, Any]] = Field(default=None, alias="dataInfo")

    model_config = ConfigDict(populate_by_name=True)


class CreateEntryRequest(BaseModel):
    """Request to add one entry to a project document"""

    name: str = Field(min_length=1, max_length=200, description="Display label kept inside the entry")
    value: Any = Field(description="Literal JSON value or external-data descriptor")


class UpdateDataInfoRequest(BaseModel):
    """Bulk update: known entry ids are replaced, other keys become new entries"""

    data_info: Dict[str, Any] = Field(alias="dataInfo")

    model_config = ConfigDict(populate_by_name=True)


class SetPlanRequest(BaseModel):
    plan: str = Field(description="'free' | 'basic' | 'premium' | 'admin'")
