"""Shared fixtures: temporary LanceDB stores and a fake Ollama endpoint."""

import json
import math
import threading
import time
from datetime import timedelta

import pytest
import requests

from semantic_memory import (
    Config,
    MemoryService,
    OllamaClient,
    RankingEngine,
    RecordStore,
    ReinforcementOperator,
)
from semantic_memory.models import Memory, new_memory_id
from semantic_memory.utils import utcnow

EMBEDDING_DIM = 1024
MODEL = "mxbai-embed-large"


def make_embedding(seed: float = 1.0) -> list[float]:
    """Deterministic dummy vector; equal seeds give identical vectors."""
    return [math.sin(seed + i * 0.1) for i in range(EMBEDDING_DIM)]


def unit_mix(similarity: float) -> list[float]:
    """Vector whose cosine similarity to axis_vector() is exactly `similarity`."""
    vector = [0.0] * EMBEDDING_DIM
    vector[0] = similarity
    vector[1] = math.sqrt(1 - similarity**2)
    return vector


def axis_vector() -> list[float]:
    vector = [0.0] * EMBEDDING_DIM
    vector[0] = 1.0
    return vector


def make_memory(content: str = "Test memory content", collection: str = "default", **overrides) -> Memory:
    fields = {"id": new_memory_id(), "content": content, "collection": collection}
    fields.update(overrides)
    return Memory(**fields)


def days_ago(days: float):
    return utcnow() - timedelta(days=days)


def make_response(status: int = 200, body=None, text: str | None = None) -> requests.Response:
    response = requests.Response()
    response.status_code = status
    response.encoding = "utf-8"
    payload = json.dumps(body) if body is not None else (text or "")
    response._content = payload.encode("utf-8")
    return response


class FakeSession:
    """Stands in for requests.Session; routes calls to handler callables.

    Handlers receive the JSON payload (post) or nothing (get) and return a
    requests.Response or raise a requests exception.
    """

    def __init__(self, on_post=None, on_get=None):
        self.on_post = on_post
        self.on_get = on_get
        self.posts: list[dict] = []
        self.gets = 0
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def post(self, url, json=None, timeout=None):
        with self._lock:
            self.posts.append(json)
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            return self.on_post(json)
        finally:
            with self._lock:
                self.in_flight -= 1

    def get(self, url, timeout=None):
        self.gets += 1
        return self.on_get()


def embedding_for(text: str) -> list[float]:
    return make_embedding(float(sum(map(ord, text)) % 97))


def echo_embeddings(payload):
    """Fake /api/embeddings that returns a stable vector per prompt."""
    return make_response(body={"embedding": embedding_for(payload["prompt"])})


def slow_echo(delays: dict[str, float]):
    def handler(payload):
        time.sleep(delays.get(payload["prompt"], 0.0))
        return echo_embeddings(payload)

    return handler


def tags_response(*names: str):
    return lambda: make_response(body={"models": [{"name": n} for n in names]})


@pytest.fixture
def store(tmp_path):
    return RecordStore(tmp_path / "lancedb", embedding_dim=EMBEDDING_DIM)


@pytest.fixture
def engine(store):
    return RankingEngine(store, half_life_days=90.0)


@pytest.fixture
def config(tmp_path):
    return Config(data_path=tmp_path, ollama_model=MODEL)


@pytest.fixture
def session():
    return FakeSession(on_post=echo_embeddings, on_get=tags_response(f"{MODEL}:latest"))


@pytest.fixture
def service(config, session):
    store = RecordStore.from_config(config)
    return MemoryService(
        config=config,
        store=store,
        embedder=OllamaClient.from_config(config, session=session),
        engine=RankingEngine(store, half_life_days=config.decay_half_life_days),
        reinforcer=ReinforcementOperator(store),
    )
