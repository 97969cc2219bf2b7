"""
projecthub/features/projects/service.py

Project service: project CRUD plus the data document write and read paths.

Write path: validate input -> plan gate -> entry identity -> persist.
Any failure before the final save aborts with no mutation.

Read path: load -> resolve every descriptor -> persist snapshot -> return.
A read succeeds even when every fetch fails; failures are stored as data.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from projecthub.core.errors import NotFoundError, ValidationError
from projecthub.core.logging import log_event
from projecthub.features.entries.identity import (
    EntryIdentityManager,
    is_valid_identifier,
    require_identifier,
)
from projecthub.features.plans.service import (
    authorize_write,
    check_entry_capacity,
    check_project_capacity,
)
from projecthub.features.projects.store import DocumentStore, get_project_store
from projecthub.features.resolution.detector import count_descriptors, validate_descriptors
from projecthub.features.resolution.tree import TreeResolver
from projecthub.features.users.service import PlanLookup, get_user_directory
from projecthub.models.entry import parse_value, dump_value
from projecthub.models.plan import PlanTier
from projecthub.models.project import Project


def sanitize_incoming(value: Any) -> Any:
    """Strict parse of a caller value: strips results, checks descriptor config."""
    node = parse_value(value, strict=True, keep_outcome=False)
    validate_descriptors(node)
    return dump_value(node)


def _require_user(user_id: Optional[str]) -> str:
    if not user_id or not str(user_id).strip():
        raise ValidationError("User ID is required")
    return str(user_id).strip()


class ProjectService:
    def __init__(
        self,
        store: Optional[DocumentStore] = None,
        users: Optional[PlanLookup] = None,
        resolver: Optional[TreeResolver] = None,
        identity: Optional[EntryIdentityManager] = None,
    ):
        self.store = store or get_project_store()
        self.users = users or get_user_directory()
        self.resolver = resolver or TreeResolver()
        self.identity = identity or EntryIdentityManager()

    # Projects

    def _get_project_or_404(self, project_id: str) -> Project:
        require_identifier(project_id, "project")
        project = self.store.get_project(project_id)
        if project is None:
            raise NotFoundError("Project not found")
        return project

    def _owner_plan(self, project_id: str) -> PlanTier:
        return self.users.plan_of(self._get_project_or_404(project_id).owner_id)

    def _recheck_combined(self, plan: PlanTier, value: Any, acting_user_id: Optional[str]) -> Any:
        """Validate an entry as it will be stored after a merge with its previous value."""
        if self.identity.update_policy != "merge":
            return value
        checked = sanitize_incoming(value)
        authorize_write(plan, [checked], user_id=acting_user_id)
        return checked

    def get_project(self, project_id: str) -> Project:
        return self._get_project_or_404(project_id)

    def list_projects(self, owner_id: str) -> List[Project]:
        owner_id = _require_user(owner_id)
        return self.store.list_projects(owner_id)

    def create_project(self, owner_id: str, name: str, data_info: Optional[Dict[str, Any]] = None) -> Project:
        owner_id = _require_user(owner_id)
        if not name or not name.strip():
            raise ValidationError("Project name is required")

        incoming = {key: sanitize_incoming(value) for key, value in (data_info or {}).items()}
        plan = self.users.plan_of(owner_id)
        check_project_capacity(plan, self.store.count_projects(owner_id))
        authorize_write(plan, incoming.values(), user_id=owner_id)
        check_entry_capacity(plan, 0, adding=len(incoming))

        document, _ = self.identity.rekey_document({}, incoming)
        now = datetime.now(timezone.utc)
        project = Project(
            project_id=self.identity.generator.new_id(),
            owner_id=owner_id,
            name=name.strip(),
            data_info=document,
            created_at=now,
            updated_at=now,
        )
        self.store.create_project(project)
        log_event(
            "info",
            "project.created",
            user_id=owner_id,
            project_id=project.project_id,
            event_type="project.created",
            extra={"entries": len(document), "descriptors": count_descriptors(document)},
        )
        return project

    def delete_project(self, project_id: str) -> None:
        require_identifier(project_id, "project")
        if not self.store.delete_project(project_id):
            raise NotFoundError("Project not found")
        log_event("info", "project.deleted", project_id=project_id, event_type="project.deleted")

    # Document entries

    def create_entry(self, project_id: str, acting_user_id: Optional[str], name: str, value: Any) -> Dict[str, Any]:
        """Add one labelled entry; returns {"entryId": ..., "value": ...}."""
        sanitized = sanitize_incoming(value)
        plan = self._owner_plan(project_id)
        authorize_write(plan, [sanitized], user_id=acting_user_id)

        document = self.store.load_document(project_id)
        check_entry_capacity(plan, len(document))
        updated, identifier = self.identity.add_entry(document, name, sanitized)
        self.store.save_document(project_id, updated)

        log_event(
            "info",
            "entry.created",
            user_id=acting_user_id,
            project_id=project_id,
            entry_id=identifier,
            event_type="entry.created",
        )
        return {"entryId": identifier, "value": updated[identifier]}

    async def get_resolved_document(self, project_id: str) -> Dict[str, Any]:
        require_identifier(project_id, "project")
        document = self.store.load_document(project_id)
        resolved = await self.resolver.resolve_document(document, project_id=project_id)
        if resolved != document:
            self.store.save_document(project_id, resolved)
        return resolved

    def replace_entry(self, project_id: str, identifier: str, new_value: Any, acting_user_id: Optional[str] = None) -> Dict[str, Any]:
        require_identifier(identifier, "entry")
        sanitized = sanitize_incoming(new_value)
        plan = self._owner_plan(project_id)
        authorize_write(plan, [sanitized], user_id=acting_user_id)

        document = self.store.load_document(project_id)
        updated = self.identity.replace_entry(document, identifier, sanitized)
        updated[identifier] = self._recheck_combined(plan, updated[identifier], acting_user_id)
        self.store.save_document(project_id, updated)

        log_event(
            "info",
            "entry.replaced",
            user_id=acting_user_id,
            project_id=project_id,
            entry_id=identifier,
            event_type="entry.replaced",
            extra={"policy": self.identity.update_policy},
        )
        return updated

    def delete_entry(self, project_id: str, identifier: str, acting_user_id: Optional[str] = None) -> Dict[str, Any]:
        require_identifier(project_id, "project")
        require_identifier(identifier, "entry")
        document = self.store.load_document(project_id)
        updated = self.identity.remove_entry(document, identifier)
        self.store.save_document(project_id, updated)

        log_event(
            "info",
            "entry.deleted",
            user_id=acting_user_id,
            project_id=project_id,
            entry_id=identifier,
            event_type="entry.deleted",
        )
        return updated

    def update_data_info(self, project_id: str, data_info: Dict[str, Any], acting_user_id: Optional[str] = None) -> Dict[str, Any]:
        """Bulk upsert: existing ids are replaced, other keys are added as new entries."""
        incoming = {key: sanitize_incoming(value) for key, value in data_info.items()}
        plan = self._owner_plan(project_id)
        authorize_write(plan, incoming.values(), user_id=acting_user_id)

        document = self.store.load_document(project_id)
        new_keys = [key for key in incoming if key not in document]
        for key in new_keys:
            if is_valid_identifier(key):
                # Looks like an id but is unknown here; refuse rather than invent a new label
                raise NotFoundError(f"Entry {key} not found")
        check_entry_capacity(plan, len(document), adding=len(new_keys))

        updated, created = self.identity.rekey_document(document, incoming)
        for key in incoming:
            if key in document:
                updated[key] = self._recheck_combined(plan, updated[key], acting_user_id)
        self.store.save_document(project_id, updated)

        log_event(
            "info",
            "document.updated",
            user_id=acting_user_id,
            project_id=project_id,
            event_type="document.updated",
            extra={"replaced": len(incoming) - len(created), "created": len(created)},
        )
        return updated
