"""
Admin authentication for plan assignment.

Shared-secret X-Admin-Key checked against ADMIN_KEY. When no key is
configured every admin request is refused.
"""
import hashlib
import hmac
from dataclasses import dataclass
from typing import Optional

from fastapi import Header

from projecthub.core.config import settings
from projecthub.core.errors import PermissionError


@dataclass
class AdminActor:
    """Represents an authenticated admin actor."""
    actor_id: str  # "key:<hash>"


def require_admin(x_admin_key: Optional[str] = Header(None)) -> AdminActor:
    expected = settings.ADMIN_KEY
    provided = (x_admin_key or "").strip()
    if not expected or not provided or not hmac.compare_digest(provided, expected):
        raise PermissionError("Admin access required")
    key_hash = hashlib.sha256(provided.encode()).hexdigest()[:16]
    return AdminActor(actor_id=f"key:{key_hash}")
