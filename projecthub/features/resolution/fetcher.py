"""
projecthub/features/resolution/fetcher.py

Resolve a single external-data descriptor: one GET, optional JSONPath
extraction, outcome written back onto the descriptor.

Failures never propagate. Network errors, timeouts, non-2xx responses and
undecodable bodies become ``fetch error: ...`` strings stored as the outcome.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional
import asyncio

import httpx

from projecthub.core.config import settings
from projecthub.core.logging import log_event
from projecthub.features.resolution.path import ExtractStatus, extract
from projecthub.models.entry import Descriptor

INVALID_PATH = "invalid extraction path"
NO_DATA = "no data at path"
FETCH_ERROR = "fetch error"


def fetch_error(detail: str) -> str:
    return f"{FETCH_ERROR}: {detail}"


def is_failure_outcome(outcome: Any) -> bool:
    return isinstance(outcome, str) and outcome.startswith((INVALID_PATH, NO_DATA, FETCH_ERROR))


def build_headers(descriptor: Descriptor) -> Dict[str, str]:
    headers = {"Accept": "application/json"}
    if descriptor.credential_header:
        headers[descriptor.credential_header] = str(descriptor.credential_value)
    return headers


def apply_extract_path(body: Any, path_expr: Optional[str]) -> Any:
    """Outcome for a decoded body; the whole body when no path is set."""
    if not path_expr:
        return body
    result = extract(body, path_expr)
    if result.status == ExtractStatus.MATCH:
        return result.value
    if result.status == ExtractStatus.NO_MATCH:
        return f'{NO_DATA}: "{path_expr}"'
    return f'{INVALID_PATH}: "{path_expr}" ({result.error})'


class FetchResolver:
    """Performs the HTTP side of descriptor resolution.

    A shared ``httpx.AsyncClient`` may be injected. Otherwise ``session()``
    opens one client that a whole resolution pass shares, and a bare
    ``resolve()`` opens its own. ``transport`` is handed to those clients
    (tests pass ``httpx.MockTransport``).
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None,
        enabled: Optional[bool] = None,
    ):
        self._client = client
        self._transport = transport
        self.timeout = timeout if timeout is not None else settings.FETCH_TIMEOUT_SECONDS
        self.enabled = enabled if enabled is not None else settings.EXTERNAL_FETCH_ENABLED

    @asynccontextmanager
    async def session(self) -> AsyncIterator[httpx.AsyncClient]:
        """Yield the client to use for a batch of fetches."""
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout, follow_redirects=True) as client:
            yield client

    async def _get(self, url: str, headers: Dict[str, str], client: Optional[httpx.AsyncClient]) -> httpx.Response:
        if client is not None:
            return await client.get(url, headers=headers)
        async with self.session() as own:
            return await own.get(url, headers=headers)

    async def fetch_outcome(self, descriptor: Descriptor, client: Optional[httpx.AsyncClient] = None) -> Any:
        if not self.enabled:
            return fetch_error("external fetch disabled")

        try:
            response = await asyncio.wait_for(
                self._get(descriptor.fetch_url, build_headers(descriptor), client),
                timeout=self.timeout,
            )
        except (httpx.TimeoutException, asyncio.TimeoutError):
            return self._failed(descriptor, "timeout")
        except httpx.HTTPError as exc:
            return self._failed(descriptor, str(exc) or exc.__class__.__name__)
        except Exception as exc:
            # Malformed URLs or header names surface as non-httpx errors
            return self._failed(descriptor, str(exc) or exc.__class__.__name__)

        if not response.is_success:
            reason = response.reason_phrase or ""
            return self._failed(descriptor, f"HTTP {response.status_code} {reason}".strip())

        try:
            body = response.json()
        except ValueError as exc:
            return self._failed(descriptor, f"invalid JSON response ({exc})")

        return apply_extract_path(body, descriptor.extract_path)

    async def resolve(self, descriptor: Descriptor, client: Optional[httpx.AsyncClient] = None) -> Descriptor:
        """Return a copy of descriptor carrying a fresh outcome."""
        outcome = await self.fetch_outcome(descriptor, client)
        return descriptor.with_outcome(outcome)

    def _failed(self, descriptor: Descriptor, detail: str) -> str:
        log_event(
            "warning",
            "fetch.failed",
            event_type="fetch.failed",
            error_code="external_fetch_failure",
            extra={"url": descriptor.fetch_url, "detail": detail},
        )
        return fetch_error(detail)
