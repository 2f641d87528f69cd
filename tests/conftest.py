"""
Shared pytest fixtures.

Provides:
- In-memory SQLite CatalogStore (FTS5 index and triggers included)
- A session bound to that store
- A deterministic fake embedding provider with failure injection
- FastAPI TestClient wired to the store and the fake provider
"""

import hashlib
import re
import threading
from types import SimpleNamespace
from typing import Callable, Generator, Optional

import httpx
import openai
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from cmdsearch.db.session import CatalogStore

DIMENSIONS = 8

_TOKEN_RE = re.compile(r"[a-z0-9][a-z0-9_-]*")


def hashed_vector(text: str, dimensions: int = DIMENSIONS) -> list[float]:
    """Bag-of-words vector: each token adds 1.0 to an md5-chosen component."""
    vector = [0.0] * dimensions
    for token in _TOKEN_RE.findall(text.lower()):
        index = int(hashlib.md5(token.encode("utf-8")).hexdigest(), 16) % dimensions
        vector[index] += 1.0
    if not any(vector):
        vector[0] = 1.0
    return vector


class FakeEmbeddingClient:
    """
    Stand-in for ``openai.OpenAI`` exposing ``embeddings.create``.

    Args:
        vectors: Exact text → vector overrides.
        fail_when: Predicate on a text; a batch containing a matching text
            raises ``openai.APIConnectionError``.
    """

    def __init__(
        self,
        vectors: Optional[dict[str, list[float]]] = None,
        fail_when: Optional[Callable[[str], bool]] = None,
    ):
        self.vectors = dict(vectors or {})
        self.fail_when = fail_when
        self.calls: list[list[str]] = []
        self._lock = threading.Lock()
        self.embeddings = SimpleNamespace(create=self._create)

    def vector_for(self, text: str) -> list[float]:
        return list(self.vectors.get(text) or hashed_vector(text))

    def _create(self, input, model):
        texts = [input] if isinstance(input, str) else list(input)
        with self._lock:
            self.calls.append(texts)
        if self.fail_when is not None and any(self.fail_when(t) for t in texts):
            raise openai.APIConnectionError(
                message="Connection refused",
                request=httpx.Request("POST", "http://localhost:11434/v1/embeddings"),
            )
        data = [
            SimpleNamespace(embedding=self.vector_for(text), index=i)
            for i, text in enumerate(texts)
        ]
        return SimpleNamespace(data=data, usage=None)

    @property
    def texts(self) -> list[str]:
        return [text for batch in self.calls for text in batch]


def command_payload(name: str, category: str = "clusterxl", **overrides) -> dict:
    """Minimal valid command payload."""
    payload = {
        "name": name,
        "category": category,
        "description": f"{name} command",
        "arguments": [],
        "mode": "expert",
        "type": "query",
        "device": "firewall",
        "impact": "low",
    }
    payload.update(overrides)
    return payload


# =============================================================================
# Store & session
# =============================================================================
@pytest.fixture()
def store() -> Generator[CatalogStore, None, None]:
    """A fresh in-memory catalog per test."""
    catalog = CatalogStore("sqlite://").open()
    yield catalog
    catalog.close()


@pytest.fixture()
def db(store: CatalogStore) -> Generator[Session, None, None]:
    with store.session() as session:
        yield session


@pytest.fixture()
def fake_client() -> FakeEmbeddingClient:
    return FakeEmbeddingClient()


# =============================================================================
# FastAPI TestClient with store & provider overrides
# =============================================================================
@pytest.fixture()
def client(store: CatalogStore, fake_client: FakeEmbeddingClient) -> Generator[TestClient, None, None]:
    """
    TestClient serving the in-memory store, with the embedding provider
    replaced by ``fake_client``.
    """
    from cmdsearch.main import create_app
    from cmdsearch.search.embeddings import get_embedding_client

    app = create_app(store)
    app.dependency_overrides[get_embedding_client] = lambda: fake_client

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()
