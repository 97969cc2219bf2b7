# projecthub/conftest.py
import pytest
import httpx

from projecthub.features.entries.identity import EntryIdentityManager
from projecthub.features.projects.service import ProjectService
from projecthub.features.projects.store import InMemoryProjectStore, clear_store
from projecthub.features.resolution.fetcher import FetchResolver
from projecthub.features.resolution.tree import TreeResolver
from projecthub.features.users.service import InMemoryUserDirectory, clear_users


@pytest.fixture(scope="function", autouse=True)
def clean_state(monkeypatch):
    """
    Force in-memory stores and start every test from an empty state.
    """
    monkeypatch.delenv("DATABASE_URL", raising=False)
    clear_store()
    clear_users()
    yield
    clear_store()
    clear_users()


@pytest.fixture
def make_fetcher():
    """
    Build a FetchResolver whose HTTP traffic goes to an in-process handler.

    Each resolution pass opens and closes its own client over the mock
    transport. The handler receives an httpx.Request and returns an
    httpx.Response (sync or async), or raises an httpx error to simulate network failure.
    """

    def factory(handler, **kwargs) -> FetchResolver:
        return FetchResolver(transport=httpx.MockTransport(handler), enabled=True, **kwargs)

    return factory


@pytest.fixture
def json_handler():
    """Handler serving fixed JSON bodies keyed by URL."""

    def factory(routes, status_code: int = 200):
        def handler(request: httpx.Request) -> httpx.Response:
            url = str(request.url)
            if url not in routes:
                return httpx.Response(404, json={"error": "unknown route"})
            return httpx.Response(status_code, json=routes[url])

        return handler

    return factory


@pytest.fixture
def users():
    return InMemoryUserDirectory()


@pytest.fixture
def build_service(users, make_fetcher):
    """ProjectService wired to isolated in-memory stores and a mocked fetcher."""

    def factory(handler=None, update_policy: str = "replace") -> ProjectService:
        if handler is None:
            def handler(request):
                return httpx.Response(200, json={})
        return ProjectService(
            store=InMemoryProjectStore(),
            users=users,
            resolver=TreeResolver(make_fetcher(handler)),
            identity=EntryIdentityManager(update_policy=update_policy),
        )

    return factory
