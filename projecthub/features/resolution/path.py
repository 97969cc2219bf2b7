"""
projecthub/features/resolution/path.py

JSONPath extraction for external responses.

extract() never raises: a malformed expression and an expression that matches
nothing are both reported as values so a single bad descriptor cannot abort a
resolution pass.
"""

from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from typing import Any, Optional
import logging

from jsonpath_ng.ext import parse as parse_jsonpath

logger = logging.getLogger("projecthub")


class ExtractStatus(str, Enum):
    MATCH = "MATCH"
    NO_MATCH = "NO_MATCH"
    INVALID = "INVALID"


@dataclass(frozen=True)
class ExtractResult:
    status: ExtractStatus
    value: Any = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == ExtractStatus.MATCH


@lru_cache(maxsize=256)
def _compile(path_expr: str):
    return parse_jsonpath(path_expr)


def compile_path(path_expr: str):
    """Compile a path expression, raising ValueError when it does not parse."""
    if not isinstance(path_expr, str) or not path_expr.strip():
        raise ValueError("path expression must be a non-empty string")
    try:
        return _compile(path_expr.strip())
    except Exception as exc:
        raise ValueError(str(exc) or exc.__class__.__name__) from exc


def validate_path(path_expr: str) -> bool:
    try:
        compile_path(path_expr)
    except ValueError:
        return False
    return True


def extract(value: Any, path_expr: str) -> ExtractResult:
    """Return the first match of path_expr in value, in document order."""
    try:
        expression = compile_path(path_expr)
    except ValueError as exc:
        return ExtractResult(ExtractStatus.INVALID, error=str(exc))

    try:
        matches = expression.find(value)
    except Exception as exc:
        # Evaluation errors (e.g. filters comparing incompatible types)
        logger.warning(f"[path] evaluation failed for {path_expr!r}: {exc}")
        return ExtractResult(ExtractStatus.INVALID, error=str(exc) or exc.__class__.__name__)

    if not matches:
        return ExtractResult(ExtractStatus.NO_MATCH)
    return ExtractResult(ExtractStatus.MATCH, value=matches[0].value)
