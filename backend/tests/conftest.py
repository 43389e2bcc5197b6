"""
Test configuration and fixtures.

External services are replaced by fakes: a scripted completion client, a
mocked Chroma client and an in-memory SQLite engine in place of SQL Server.
"""
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, text
from sqlalchemy.pool import StaticPool

from app.services.pipeline import PipelineOrchestrator
from app.utils.cache import ResponseCache
from core.retry import RetryPolicy
from core.truncation import TruncationPolicy
from db.safe_query import QueryExecutor
from llm.rewriter import QuestionRewriter
from llm.sql_generator import SqlGenerator
from llm.summarizer import ResultSummarizer
from memory.store import MemorySessionStore
from rag.retriever import SchemaRetriever

EMPLOYEES_SCHEMA = (
    "Table: dbo.employees\n"
    "Description: One row per employee.\n\n"
    "Columns:\n- id (int): primary key\n- name (nvarchar): full name\n"
    "- active (bit): 1 when currently employed\n- salary (decimal): monthly salary"
)
DEPARTMENTS_SCHEMA = (
    "Table: dbo.departments\n"
    "Description: Company departments.\n\n"
    "Columns:\n- id (int): primary key\n- name (nvarchar): department name"
)
DEFAULT_DOCS = [
    ("employees", EMPLOYEES_SCHEMA, 0.12),
    ("departments", DEPARTMENTS_SCHEMA, 0.48),
]


class FakeLLM:
    """Completion client that replays scripted outputs (or raises scripted errors)."""

    def __init__(self, responses=None, vector=None):
        self.responses = list(responses or [])
        self.prompts = []
        self.embedded = []
        self.vector = vector if vector is not None else [0.1, 0.2, 0.3]

    async def complete(self, prompt, model=None, temperature=None):
        self.prompts.append(prompt)
        if not self.responses:
            raise RuntimeError("no scripted completion left")
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    async def embed(self, text):
        self.embedded.append(text)
        return self.vector


def chroma_factory(docs=None, count=None):
    """Async factory returning a mocked Chroma client whose collection serves `docs`."""
    docs = DEFAULT_DOCS if docs is None else docs
    collection = MagicMock()
    collection.query = AsyncMock(return_value={
        "ids": [[name for name, _, _ in docs]],
        "documents": [[content for _, content, _ in docs]],
        "metadatas": [[{"tableName": name} for name, _, _ in docs]],
        "distances": [[distance for _, _, distance in docs]],
    })
    collection.count = AsyncMock(return_value=len(docs) if count is None else count)

    client = MagicMock()
    client.get_or_create_collection = AsyncMock(return_value=collection)
    factory = AsyncMock(return_value=client)
    factory.collection = collection
    factory.client = client
    return factory


NO_RETRY = RetryPolicy(max_attempts=1, base_delay=0, max_delay=0)


@pytest.fixture
def fake_llm():
    return FakeLLM


@pytest.fixture
def sqlite_engine():
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    with engine.begin() as conn:
        conn.execute(text(
            "CREATE TABLE employees (id INTEGER PRIMARY KEY, name TEXT, active INTEGER, salary NUMERIC)"
        ))
        conn.execute(
            text("INSERT INTO employees (name, active, salary) VALUES (:name, :active, :salary)"),
            [
                {"name": f"Employee {i}", "active": 0 if i % 5 == 0 else 1, "salary": 1000 + i * 10}
                for i in range(1, 26)
            ],
        )
    yield engine
    engine.dispose()


@pytest.fixture
def executor(sqlite_engine):
    return QueryExecutor(sqlite_engine, max_rows=10, timeout_ms=5000, connect_retries=1)


@pytest.fixture
def build_pipeline(sqlite_engine):
    """Builds an orchestrator over fakes; keyword overrides replace single components."""

    def _build(llm, docs=None, **overrides):
        truncation = TruncationPolicy(max_chars=10000, max_rows=50, max_data_chars=50000, min_rows=10)
        components = dict(
            session_store=MemorySessionStore(ttl_seconds=3600, max_sessions=100),
            cache=ResponseCache(ttl_seconds=300, max_entries=100),
            rewriter=QuestionRewriter(llm, history_pairs=3, timeout=1.0),
            retriever=SchemaRetriever(
                embed=llm.embed,
                client_factory=chroma_factory(docs),
                top_k=3,
                connect_policy=NO_RETRY,
            ),
            generator=SqlGenerator(llm, truncation=truncation, retry_policy=NO_RETRY),
            executor=QueryExecutor(sqlite_engine, max_rows=10, timeout_ms=5000, connect_retries=1),
            summarizer=ResultSummarizer(llm, truncation=truncation, retry_policy=NO_RETRY),
            max_question_length=500,
            max_turn_pairs=2,
        )
        components.update(overrides)
        return PipelineOrchestrator(**components)

    return _build


@pytest.fixture
def client():
    """
    Create a test client for the FastAPI app.

    Dependency overrides set by a test are cleared afterwards.
    """
    from app.main import app

    yield TestClient(app)
    app.dependency_overrides.clear()
