"""
projecthub/features/entries/identity.py

Stable identities for top-level document entries.

The generated identifier is the document key. The caller's display name is
kept inside the value under ``entryLabel``; maps receive the field directly,
other values are wrapped as ``{"entryLabel": name, "value": value}``.

All operations return new dicts and leave their inputs untouched, so a
failed call cannot leave a half-modified document behind.
"""

import re
import uuid
from typing import Any, Dict, List, Optional, Protocol, Tuple

from projecthub.core.config import settings
from projecthub.core.errors import ConflictError, NotFoundError, ValidationError
from projecthub.models.entry import ENTRY_LABEL, LEGACY_ALIASES, RESULT

ENTRY_VALUE = "value"
IDENTIFIER_RE = re.compile(r"^[0-9a-f]{32}$")

_RESULT_FIELDS = {RESULT} | {k for k, v in LEGACY_ALIASES.items() if v == RESULT}


class IdentityGenerator(Protocol):
    def new_id(self) -> str:
        ...


class UuidIdentityGenerator:
    """uuid4 hex identifiers (32 lowercase hex chars)."""

    def new_id(self) -> str:
        return uuid.uuid4().hex


def is_valid_identifier(value: Any) -> bool:
    return isinstance(value, str) and bool(IDENTIFIER_RE.match(value))


def require_identifier(value: Any, kind: str = "entry") -> str:
    if not is_valid_identifier(value):
        raise ValidationError(f"Invalid {kind} ID")
    return value


def label_value(name: str, value: Any) -> Any:
    if isinstance(value, dict):
        labelled = dict(value)
        labelled[ENTRY_LABEL] = name
        return labelled
    return {ENTRY_LABEL: name, ENTRY_VALUE: value}


def entry_label(stored: Any) -> Optional[str]:
    if isinstance(stored, dict):
        label = stored.get(ENTRY_LABEL)
        return label if isinstance(label, str) else None
    return None


class EntryIdentityManager:
    def __init__(self, generator: Optional[IdentityGenerator] = None, *, update_policy: Optional[str] = None):
        self.generator = generator or UuidIdentityGenerator()
        self.update_policy = update_policy or settings.ENTRY_UPDATE_POLICY
        if self.update_policy not in ("replace", "merge"):
            raise ValueError(f"Unknown entry update policy: {self.update_policy}")

    def assign_identity(self, name: str, value: Any) -> Tuple[str, Any]:
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("Entry name is required")
        identifier = self.generator.new_id()
        if not is_valid_identifier(identifier):
            raise ValueError(f"Identity generator produced an invalid id: {identifier!r}")
        return identifier, label_value(name.strip(), value)

    def add_entry(self, document: Dict[str, Any], name: str, value: Any) -> Tuple[Dict[str, Any], str]:
        identifier, stored = self.assign_identity(name, value)
        if identifier in document:
            raise ConflictError(f"Entry {identifier} already exists")
        updated = dict(document)
        updated[identifier] = stored
        return updated, identifier

    def _combine(self, previous: Any, new_value: Any) -> Any:
        if self.update_policy == "merge" and isinstance(previous, dict) and isinstance(new_value, dict):
            merged = {k: v for k, v in previous.items() if k not in _RESULT_FIELDS}
            merged.update(new_value)
            return merged
        return new_value

    def replace_entry(self, document: Dict[str, Any], identifier: str, new_value: Any) -> Dict[str, Any]:
        if identifier not in document:
            raise NotFoundError(f"Entry {identifier} not found")
        previous = document[identifier]
        combined = self._combine(previous, new_value)
        label = entry_label(previous)
        updated = dict(document)
        updated[identifier] = label_value(label, combined) if label is not None else combined
        return updated

    def remove_entry(self, document: Dict[str, Any], identifier: str) -> Dict[str, Any]:
        if identifier not in document:
            raise NotFoundError(f"Entry {identifier} not found")
        return {k: v for k, v in document.items() if k != identifier}

    def rekey_document(self, document: Dict[str, Any], incoming: Dict[str, Any]) -> Tuple[Dict[str, Any], List[str]]:
        """Apply a bulk payload: known ids are replaced, other keys become labelled entries.

        Returns the new document and the identifiers created for new entries.
        """
        updated = dict(document)
        created: List[str] = []
        for key, value in incoming.items():
            if key in document:
                updated = self.replace_entry(updated, key, value)
            else:
                updated, identifier = self.add_entry(updated, key, value)
                created.append(identifier)
        return updated, created
