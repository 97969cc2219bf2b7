"""
Tests for entry identity: generation, labels, replacement policies, removal.
"""
import copy

import pytest

from projecthub.core.errors import ConflictError, NotFoundError, ValidationError
from projecthub.features.entries.identity import (
    EntryIdentityManager,
    UuidIdentityGenerator,
    entry_label,
    is_valid_identifier,
)


class SequenceGenerator:
    """Deterministic ids: 000...001, 000...002, ..."""

    def __init__(self):
        self.counter = 0

    def new_id(self) -> str:
        self.counter += 1
        return f"{self.counter:032x}"


class FixedGenerator:
    def __init__(self, value):
        self.value = value

    def new_id(self) -> str:
        return self.value


@pytest.fixture
def manager():
    return EntryIdentityManager(SequenceGenerator(), update_policy="replace")


def test_uuid_generator_unique_and_valid():
    generator = UuidIdentityGenerator()
    ids = {generator.new_id() for _ in range(200)}
    assert len(ids) == 200
    assert all(is_valid_identifier(i) for i in ids)


def test_assign_identity_twice_never_repeats():
    manager = EntryIdentityManager()
    first, _ = manager.assign_identity("budget", {"amount": 500})
    second, _ = manager.assign_identity("notes", "text")
    assert first != second


def test_assign_identity_labels_map_values(manager):
    identifier, stored = manager.assign_identity("budget", {"amount": 500})
    assert identifier == f"{1:032x}"
    assert stored == {"amount": 500, "entryLabel": "budget"}


def test_assign_identity_wraps_scalars_and_lists(manager):
    _, scalar = manager.assign_identity("limit", 10)
    _, listed = manager.assign_identity("tags", ["a", "b"])
    assert scalar == {"entryLabel": "limit", "value": 10}
    assert listed == {"entryLabel": "tags", "value": ["a", "b"]}


def test_assign_identity_requires_name(manager):
    with pytest.raises(ValidationError):
        manager.assign_identity("  ", 1)


def test_invalid_generator_output_rejected():
    manager = EntryIdentityManager(FixedGenerator("not-an-id"))
    with pytest.raises(ValueError):
        manager.assign_identity("x", 1)


def test_add_entry_does_not_mutate_input(manager):
    document = {}
    updated, identifier = manager.add_entry(document, "budget", {"amount": 500})
    assert document == {}
    assert list(updated) == [identifier]


def test_add_entry_collision_is_conflict():
    fixed = "a" * 32
    manager = EntryIdentityManager(FixedGenerator(fixed))
    with pytest.raises(ConflictError):
        manager.add_entry({fixed: 1}, "again", 2)


def test_replace_entry_missing_is_not_found(manager):
    document, identifier = manager.add_entry({}, "budget", {"amount": 500})
    snapshot = copy.deepcopy(document)
    with pytest.raises(NotFoundError):
        manager.replace_entry(document, "f" * 32, {"amount": 1})
    assert document == snapshot


def test_replace_entry_is_wholesale(manager):
    document, identifier = manager.add_entry({}, "budget", {"amount": 500, "currency": "BRL"})
    updated = manager.replace_entry(document, identifier, {"amount": 750})
    assert updated[identifier] == {"amount": 750, "entryLabel": "budget"}
    assert document[identifier]["amount"] == 500


def test_replace_entry_keeps_identity_when_payload_is_empty(manager):
    document, identifier = manager.add_entry({}, "budget", {"amount": 500})
    updated = manager.replace_entry(document, identifier, {})
    assert list(updated) == [identifier]
    assert entry_label(updated[identifier]) == "budget"


def test_replace_entry_label_cannot_be_overwritten(manager):
    document, identifier = manager.add_entry({}, "budget", {"amount": 500})
    updated = manager.replace_entry(document, identifier, {"entryLabel": "hijack", "amount": 1})
    assert entry_label(updated[identifier]) == "budget"


def test_replace_entry_scalar_with_map(manager):
    document, identifier = manager.add_entry({}, "limit", 10)
    updated = manager.replace_entry(document, identifier, 20)
    assert updated[identifier] == {"entryLabel": "limit", "value": 20}


def test_merge_policy_keeps_prior_fields_and_drops_outcome():
    manager = EntryIdentityManager(SequenceGenerator(), update_policy="merge")
    document = {
        f"{1:032x}": {
            "entryLabel": "feed",
            "fetchUrl": "https://a.example",
            "extractPath": "$.a",
            "result": 5,
        }
    }
    updated = manager.replace_entry(document, f"{1:032x}", {"extractPath": "$.b"})
    assert updated[f"{1:032x}"] == {
        "entryLabel": "feed",
        "fetchUrl": "https://a.example",
        "extractPath": "$.b",
    }


def test_unknown_policy_rejected():
    with pytest.raises(ValueError):
        EntryIdentityManager(update_policy="deep")


def test_remove_entry(manager):
    document, identifier = manager.add_entry({}, "budget", 1)
    document, other = manager.add_entry(document, "notes", 2)
    updated = manager.remove_entry(document, identifier)
    assert list(updated) == [other]
    assert identifier in document


def test_remove_entry_missing_is_not_found(manager):
    document, _ = manager.add_entry({}, "budget", 1)
    snapshot = copy.deepcopy(document)
    with pytest.raises(NotFoundError):
        manager.remove_entry(document, "e" * 32)
    assert document == snapshot


def test_rekey_document_mixes_replace_and_add(manager):
    document, existing = manager.add_entry({}, "budget", {"amount": 1})
    updated, created = manager.rekey_document(document, {existing: {"amount": 2}, "notes": "hello"})
    assert len(created) == 1
    assert updated[existing] == {"amount": 2, "entryLabel": "budget"}
    assert updated[created[0]] == {"entryLabel": "notes", "value": "hello"}
    assert "notes" not in updated
