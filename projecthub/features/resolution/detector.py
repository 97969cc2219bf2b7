"""
projecthub/features/resolution/detector.py

Descriptor detection over raw JSON and parsed entry values.

Handles:
- is_descriptor: single node test (fetchUrl present, non-empty string)
- find_descriptor_key: one-level scan of a map
- has_any_descriptor: full recursive scan, short-circuits on first hit
- validate_descriptors: configuration-time checks for incoming writes
"""

from typing import Any, Iterable, Iterator, Optional
from urllib.parse import urlparse

from projecthub.core.errors import ValidationError
from projecthub.features.resolution.path import validate_path
from projecthub.models.entry import (
    Descriptor,
    ListNode,
    MapNode,
    EntryValue,
    FETCH_URL,
    LEGACY_ALIASES,
)

_URL_FIELDS = (FETCH_URL,) + tuple(k for k, v in LEGACY_ALIASES.items() if v == FETCH_URL)


def is_descriptor(value: Any) -> bool:
    if isinstance(value, Descriptor):
        return True
    if not isinstance(value, dict):
        return False
    for key in _URL_FIELDS:
        url = value.get(key)
        if isinstance(url, str) and url.strip():
            return True
    return False


def find_descriptor_key(container: Any) -> Optional[str]:
    """First key whose value is a descriptor, scanning one level only."""
    if isinstance(container, MapNode):
        items: Iterable = container.fields.items()
    elif isinstance(container, dict):
        items = container.items()
    else:
        return None
    for key, value in items:
        if is_descriptor(value):
            return key
    return None


def _children(value: Any) -> Iterable[Any]:
    if isinstance(value, MapNode):
        return value.fields.values()
    if isinstance(value, ListNode):
        return value.items
    if isinstance(value, dict):
        return value.values()
    if isinstance(value, (list, tuple)):
        return value
    return ()


def has_any_descriptor(tree: Any) -> bool:
    """True if any node anywhere in tree is a descriptor."""
    stack = [tree]
    while stack:
        node = stack.pop()
        if is_descriptor(node):
            return True
        stack.extend(_children(node))
    return False


def iter_descriptors(node: EntryValue) -> Iterator[Descriptor]:
    """Yield descriptors of a parsed tree depth-first in iteration order."""
    if isinstance(node, Descriptor):
        yield node
    elif isinstance(node, MapNode):
        for child in node.fields.values():
            yield from iter_descriptors(child)
    elif isinstance(node, ListNode):
        for child in node.items:
            yield from iter_descriptors(child)


def count_descriptors(tree: Any) -> int:
    count = 0
    stack = [tree]
    while stack:
        node = stack.pop()
        if is_descriptor(node):
            count += 1
            continue
        stack.extend(_children(node))
    return count


def validate_descriptors(node: EntryValue) -> None:
    """Reject descriptors whose URL or extraction path cannot work."""
    for descriptor in iter_descriptors(node):
        parsed = urlparse(descriptor.fetch_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValidationError(f"fetchUrl must be an absolute http(s) URL: {descriptor.fetch_url!r}")
        if descriptor.extract_path is not None and not validate_path(descriptor.extract_path):
            raise ValidationError(f"Invalid extractPath expression: {descriptor.extract_path!r}")
