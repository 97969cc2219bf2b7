"""
projecthub/models/entry.py

Entry value tagged union.

A project document maps entry ids to arbitrary JSON. Inside that JSON any map
carrying a ``fetchUrl`` is an external-data descriptor. Raw JSON is parsed
into ``Scalar | ListNode | MapNode | Descriptor`` so detection and resolution
work on types instead of sniffing fields everywhere.

Wire form of a descriptor::

    {"fetchUrl": "https://api.example.com/data",
     "extractPath": "$.value",          # optional
     "x-api-key": "secret",             # optional, single credential field
     "result": 42}                      # last outcome, server-written
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple, Union

from projecthub.core.errors import ValidationError

FETCH_URL = "fetchUrl"
EXTRACT_PATH = "extractPath"
RESULT = "result"
ENTRY_LABEL = "entryLabel"

# Field names used by earlier revisions of the document format
LEGACY_ALIASES = {
    "apiUrl": FETCH_URL,
    "JSONPath": EXTRACT_PATH,
    "dataReturn": RESULT,
}

DESCRIPTOR_FIELDS = frozenset({FETCH_URL, EXTRACT_PATH, RESULT})
BOOKKEEPING_FIELDS = frozenset({ENTRY_LABEL})
RESERVED_FIELDS = DESCRIPTOR_FIELDS | BOOKKEEPING_FIELDS | frozenset(LEGACY_ALIASES)


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING = _Missing()


@dataclass(frozen=True)
class Scalar:
    value: Any


@dataclass(frozen=True)
class ListNode:
    items: Tuple["EntryValue", ...] = ()


@dataclass(frozen=True)
class MapNode:
    fields: Dict[str, "EntryValue"] = field(default_factory=dict)


@dataclass(frozen=True)
class Descriptor:
    fetch_url: str
    extract_path: Optional[str] = None
    credential_header: Optional[str] = None
    credential_value: Any = None
    last_outcome: Any = MISSING
    bookkeeping: Dict[str, Any] = field(default_factory=dict)
    # Stored fields beyond the credential, kept verbatim (lenient parsing only)
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def has_outcome(self) -> bool:
        return self.last_outcome is not MISSING

    def with_outcome(self, outcome: Any) -> "Descriptor":
        return Descriptor(
            fetch_url=self.fetch_url,
            extract_path=self.extract_path,
            credential_header=self.credential_header,
            credential_value=self.credential_value,
            last_outcome=outcome,
            bookkeeping=dict(self.bookkeeping),
            extra=dict(self.extra),
        )


EntryValue = Union[Scalar, ListNode, MapNode, Descriptor]


def normalize_aliases(mapping: Dict[str, Any]) -> Dict[str, Any]:
    """Rename legacy descriptor fields to their canonical names.

    A canonical field wins over its alias when both are present.
    """
    if not any(key in LEGACY_ALIASES for key in mapping):
        return dict(mapping)
    normalized: Dict[str, Any] = {}
    for key, value in mapping.items():
        canonical = LEGACY_ALIASES.get(key)
        if canonical is None:
            normalized[key] = value
        elif canonical not in mapping:
            normalized[canonical] = value
    return normalized


def _looks_like_descriptor(mapping: Dict[str, Any]) -> bool:
    url = mapping.get(FETCH_URL)
    return isinstance(url, str) and bool(url.strip())


def _parse_descriptor(mapping: Dict[str, Any], strict: bool, keep_outcome: bool) -> Descriptor:
    candidates = [(k, v) for k, v in mapping.items() if k not in RESERVED_FIELDS]
    if strict and len(candidates) > 1:
        names = ", ".join(k for k, _ in candidates)
        raise ValidationError(
            f"Descriptor for {mapping[FETCH_URL]!r} has more than one credential field ({names}); at most one is allowed"
        )

    header, credential = (candidates[0] if candidates else (None, None))
    if strict and header is not None and (credential is None or isinstance(credential, (dict, list))):
        raise ValidationError(f"Credential field {header!r} must be a string or number")

    extract_path = mapping.get(EXTRACT_PATH)
    if extract_path is not None and not isinstance(extract_path, str):
        if strict:
            raise ValidationError("extractPath must be a string")
        extract_path = str(extract_path)
    if extract_path is not None and not extract_path.strip():
        extract_path = None

    outcome = mapping.get(RESULT, MISSING) if keep_outcome else MISSING

    return Descriptor(
        fetch_url=mapping[FETCH_URL].strip(),
        extract_path=extract_path,
        credential_header=header,
        credential_value=credential,
        last_outcome=outcome,
        bookkeeping={k: mapping[k] for k in BOOKKEEPING_FIELDS if k in mapping},
        extra=dict(candidates[1:]),
    )


def parse_value(raw: Any, *, strict: bool = False, keep_outcome: bool = True) -> EntryValue:
    """Parse raw JSON into the entry value union.

    strict is used for incoming writes: a descriptor with several credential
    candidates or a non-string path is rejected. Lenient parsing (stored
    documents) takes the first credential candidate in iteration order and
    keeps the remaining fields in ``extra``.
    keep_outcome=False drops any ``result`` so callers cannot forge outcomes.
    """
    if isinstance(raw, dict):
        mapping = normalize_aliases(raw)
        if _looks_like_descriptor(mapping):
            return _parse_descriptor(mapping, strict, keep_outcome)
        if strict and FETCH_URL in mapping:
            raise ValidationError("fetchUrl must be a non-empty URL string")
        return MapNode({
            str(k): parse_value(v, strict=strict, keep_outcome=keep_outcome)
            for k, v in mapping.items()
        })
    if isinstance(raw, (list, tuple)):
        return ListNode(tuple(parse_value(v, strict=strict, keep_outcome=keep_outcome) for v in raw))
    return Scalar(raw)


def dump_value(node: EntryValue) -> Any:
    """Serialize a parsed node back to plain JSON."""
    if isinstance(node, Descriptor):
        out: Dict[str, Any] = dict(node.bookkeeping)
        out[FETCH_URL] = node.fetch_url
        if node.extract_path is not None:
            out[EXTRACT_PATH] = node.extract_path
        if node.credential_header is not None:
            out[node.credential_header] = node.credential_value
        out.update(node.extra)
        if node.has_outcome:
            out[RESULT] = node.last_outcome
        return out
    if isinstance(node, MapNode):
        return {k: dump_value(v) for k, v in node.fields.items()}
    if isinstance(node, ListNode):
        return [dump_value(v) for v in node.items]
    return node.value

