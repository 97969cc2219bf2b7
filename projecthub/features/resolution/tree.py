"""
projecthub/features/resolution/tree.py

Resolution pass over a whole project document.

Every descriptor found at any depth is fetched concurrently (bounded by a
semaphore), then the tree is rebuilt once from the collected outcomes. Each
fetch only produces the value for its own node, so the merged document does
not depend on completion order.
"""

from typing import Any, Callable, Dict, List, Optional
import asyncio
import copy

from projecthub.core.config import settings
from projecthub.core.logging import log_event
from projecthub.features.resolution.detector import has_any_descriptor, iter_descriptors
from projecthub.features.resolution.fetcher import FetchResolver, is_failure_outcome
from projecthub.models.entry import (
    Descriptor,
    EntryValue,
    ListNode,
    MapNode,
    dump_value,
    parse_value,
)


def map_descriptors(node: EntryValue, fn: Callable[[Descriptor], EntryValue]) -> EntryValue:
    """Rebuild node with every descriptor replaced by fn(descriptor)."""
    if isinstance(node, Descriptor):
        return fn(node)
    if isinstance(node, MapNode):
        return MapNode({k: map_descriptors(v, fn) for k, v in node.fields.items()})
    if isinstance(node, ListNode):
        return ListNode(tuple(map_descriptors(v, fn) for v in node.items))
    return node


class TreeResolver:
    def __init__(self, fetcher: Optional[FetchResolver] = None, *, max_concurrency: Optional[int] = None):
        self.fetcher = fetcher or FetchResolver()
        limit = max_concurrency if max_concurrency is not None else settings.FETCH_MAX_CONCURRENCY
        self.max_concurrency = max(1, limit)

    async def resolve_descriptors(self, descriptors: List[Descriptor]) -> List[Descriptor]:
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async with self.fetcher.session() as client:

            async def bounded(descriptor: Descriptor) -> Descriptor:
                async with semaphore:
                    return await self.fetcher.resolve(descriptor, client)

            return list(await asyncio.gather(*(bounded(d) for d in descriptors)))

    async def resolve_value(self, value: Any) -> Any:
        """Resolve a single entry value (raw JSON in, raw JSON out)."""
        resolved = await self.resolve_document({"_": value})
        return resolved["_"]

    async def resolve_document(self, document: Dict[str, Any], *, project_id: Optional[str] = None) -> Dict[str, Any]:
        if not has_any_descriptor(document):
            return copy.deepcopy(document)

        parsed = {key: parse_value(value) for key, value in document.items()}
        pending: List[Descriptor] = []
        for node in parsed.values():
            pending.extend(iter_descriptors(node))

        resolved = await self.resolve_descriptors(pending)
        remaining = iter(resolved)
        rebuilt = {
            key: dump_value(map_descriptors(node, lambda _d: next(remaining)))
            for key, node in parsed.items()
        }

        failures = sum(1 for d in resolved if is_failure_outcome(d.last_outcome))
        log_event(
            "info",
            "document.resolved",
            project_id=project_id,
            event_type="document.resolved",
            extra={"descriptors": len(resolved), "failures": failures},
        )
        return rebuilt
