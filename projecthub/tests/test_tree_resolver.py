"""
Tests for whole-document resolution: in-place merge, isolation of failures,
bounded concurrency and order independence.
"""
import asyncio
import copy

import httpx
import pytest

from projecthub.features.resolution.fetcher import FetchResolver
from projecthub.features.resolution.tree import TreeResolver


@pytest.mark.asyncio
async def test_document_without_descriptors_is_unchanged(make_fetcher):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={})

    document = {
        "a1": {"entryLabel": "budget", "amount": 500, "tags": ["x", {"y": None}]},
        "b2": {"entryLabel": "note", "value": "plain text"},
    }
    resolver = TreeResolver(make_fetcher(handler))

    resolved = await resolver.resolve_document(document)

    assert resolved == document
    assert resolved is not document
    assert calls == []


@pytest.mark.asyncio
async def test_nested_descriptor_resolved_with_path(make_fetcher, json_handler):
    handler = json_handler({"http://x/data": {"value": 42}})
    resolver = TreeResolver(make_fetcher(handler))
    document = {"e1": {"source": {"fetchUrl": "http://x/data", "extractPath": "$.value"}}}

    resolved = await resolver.resolve_document(document)

    assert resolved["e1"]["source"]["result"] == 42
    assert resolved["e1"]["source"]["fetchUrl"] == "http://x/data"
    assert resolved["e1"]["source"]["extractPath"] == "$.value"


@pytest.mark.asyncio
async def test_non_descriptor_content_preserved(make_fetcher, json_handler):
    handler = json_handler({"http://x/rate": {"rate": 1.1}})
    resolver = TreeResolver(make_fetcher(handler))
    document = {
        "e1": {
            "entryLabel": "finance",
            "amount": 500,
            "history": [1, 2, {"fetchUrl": "http://x/rate", "extractPath": "$.rate"}, "tail"],
        },
        "e2": 7,
    }

    resolved = await resolver.resolve_document(document)

    assert resolved["e1"]["entryLabel"] == "finance"
    assert resolved["e1"]["amount"] == 500
    assert resolved["e1"]["history"][:2] == [1, 2]
    assert resolved["e1"]["history"][2]["result"] == 1.1
    assert resolved["e1"]["history"][3] == "tail"
    assert resolved["e2"] == 7


@pytest.mark.asyncio
async def test_input_document_not_mutated(make_fetcher, json_handler):
    handler = json_handler({"http://x/data": {"value": 1}})
    resolver = TreeResolver(make_fetcher(handler))
    document = {"e1": {"fetchUrl": "http://x/data", "result": "stale"}}
    snapshot = copy.deepcopy(document)

    await resolver.resolve_document(document)

    assert document == snapshot


@pytest.mark.asyncio
async def test_failures_do_not_abort_other_entries(make_fetcher):
    def handler(request):
        if request.url.path == "/broken":
            return httpx.Response(500)
        return httpx.Response(200, json={"value": "fine"})

    resolver = TreeResolver(make_fetcher(handler))
    document = {
        "bad": {"fetchUrl": "http://x/broken", "extractPath": "$.value"},
        "good": {"fetchUrl": "http://x/ok", "extractPath": "$.value"},
    }

    resolved = await resolver.resolve_document(document)

    assert resolved["bad"]["result"].startswith("fetch error:")
    assert resolved["good"]["result"] == "fine"


@pytest.mark.asyncio
async def test_stale_outcome_is_replaced_not_accumulated(make_fetcher, json_handler):
    handler = json_handler({"http://x/data": {"value": 2}})
    resolver = TreeResolver(make_fetcher(handler))
    document = {"e1": {"fetchUrl": "http://x/data", "extractPath": "$.value", "result": 1}}

    first = await resolver.resolve_document(document)
    second = await resolver.resolve_document(first)

    assert first["e1"]["result"] == 2
    assert second == first
    assert list(second["e1"].keys()).count("result") == 1


@pytest.mark.asyncio
async def test_legacy_field_names_normalized_on_resolve(make_fetcher, json_handler):
    handler = json_handler({"http://x/data": {"results": [1]}})
    resolver = TreeResolver(make_fetcher(handler))
    document = {"e1": {"apiUrl": "http://x/data", "JSONPath": "$.results", "dataReturn": "old"}}

    resolved = await resolver.resolve_document(document)

    assert resolved["e1"] == {"fetchUrl": "http://x/data", "extractPath": "$.results", "result": [1]}


@pytest.mark.asyncio
async def test_credential_field_kept_in_document(make_fetcher, json_handler):
    handler = json_handler({"http://x/data": {"v": 1}})
    resolver = TreeResolver(make_fetcher(handler))
    document = {"e1": {"fetchUrl": "http://x/data", "x-api-key": "k"}}

    resolved = await resolver.resolve_document(document)

    assert resolved["e1"]["x-api-key"] == "k"
    assert resolved["e1"]["result"] == {"v": 1}


@pytest.mark.asyncio
async def test_stored_fields_beyond_credential_survive_resolve(make_fetcher, json_handler):
    handler = json_handler({"http://x/data": {"value": 42}})
    resolver = TreeResolver(make_fetcher(handler))
    document = {
        "e1": {"apiUrl": "http://x/data", "JSONPath": "$.value", "x-api-key": "k", "note": "keep me"},
    }

    resolved = await resolver.resolve_document(document)

    assert resolved["e1"] == {
        "fetchUrl": "http://x/data",
        "extractPath": "$.value",
        "x-api-key": "k",
        "note": "keep me",
        "result": 42,
    }


@pytest.mark.asyncio
async def test_concurrency_is_bounded(make_fetcher):
    state = {"active": 0, "peak": 0}

    async def handler(request):
        state["active"] += 1
        state["peak"] = max(state["peak"], state["active"])
        await asyncio.sleep(0.01)
        state["active"] -= 1
        return httpx.Response(200, json={"n": request.url.path})

    resolver = TreeResolver(make_fetcher(handler), max_concurrency=2)
    document = {f"e{i}": {"fetchUrl": f"http://x/{i}", "extractPath": "$.n"} for i in range(6)}

    resolved = await resolver.resolve_document(document)

    assert state["peak"] <= 2
    assert {k: v["result"] for k, v in resolved.items()} == {f"e{i}": f"/{i}" for i in range(6)}


@pytest.mark.asyncio
async def test_result_independent_of_completion_order(make_fetcher):
    async def handler(request):
        index = int(request.url.path.strip("/"))
        # Earlier descriptors finish last
        await asyncio.sleep(0.005 * (5 - index))
        return httpx.Response(200, json={"index": index})

    resolver = TreeResolver(make_fetcher(handler), max_concurrency=8)
    document = {"e": [{"fetchUrl": f"http://x/{i}", "extractPath": "$.index"} for i in range(5)]}

    resolved = await resolver.resolve_document(document)

    assert [item["result"] for item in resolved["e"]] == [0, 1, 2, 3, 4]


@pytest.mark.asyncio
async def test_resolve_value_single_entry(make_fetcher, json_handler):
    handler = json_handler({"http://x/data": {"value": 42}})
    resolver = TreeResolver(make_fetcher(handler))

    resolved = await resolver.resolve_value({"fetchUrl": "http://x/data", "extractPath": "$.value"})

    assert resolved["result"] == 42


@pytest.mark.asyncio
async def test_one_client_per_resolution_pass(monkeypatch):
    opened = []
    real_client = httpx.AsyncClient

    def recording_client(**kwargs):
        client = real_client(**kwargs)
        opened.append(client)
        return client

    monkeypatch.setattr(httpx, "AsyncClient", recording_client)
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"v": request.url.path}))
    resolver = TreeResolver(FetchResolver(transport=transport, enabled=True))
    document = {
        "e1": {"fetchUrl": "http://x/a"},
        "e2": [{"fetchUrl": "http://x/b"}, {"fetchUrl": "http://x/c"}],
    }

    resolved = await resolver.resolve_document(document)

    assert resolved["e1"]["result"] == {"v": "/a"}
    assert [d["result"] for d in resolved["e2"]] == [{"v": "/b"}, {"v": "/c"}]
    assert len(opened) == 1
    assert opened[0].is_closed
