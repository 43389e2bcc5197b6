"""
Tests for schema retrieval.
"""
import asyncio

import pytest

from app.utils.exceptions import (
    EmbeddingFailed,
    InvalidInput,
    NoRelevantSchema,
    SchemaIndexMissing,
    SchemaRetrievalTimeout,
    SchemaStoreUnavailable,
)
from core.retry import RetryPolicy
from rag.models import SCHEMA_SEPARATOR
from rag.retriever import SchemaRetriever, is_connection_error

from conftest import DEFAULT_DOCS, DEPARTMENTS_SCHEMA, EMPLOYEES_SCHEMA, NO_RETRY, chroma_factory


def _retriever(llm, factory, **kwargs):
    kwargs.setdefault("connect_policy", NO_RETRY)
    return SchemaRetriever(embed=llm.embed, client_factory=factory, **kwargs)


async def _hang(*args, **kwargs):
    await asyncio.sleep(3600)


@pytest.mark.asyncio
async def test_retrieve_orders_by_distance(fake_llm):
    llm = fake_llm()
    factory = chroma_factory(list(reversed(DEFAULT_DOCS)))
    retriever = _retriever(llm, factory, top_k=3)

    result = await retriever.retrieve("how many active employees are there")

    assert result.table_names == ["employees", "departments"]
    assert result.distances == [0.12, 0.48]
    assert result.context == EMPLOYEES_SCHEMA + SCHEMA_SEPARATOR + DEPARTMENTS_SCHEMA
    assert llm.embedded == ["how many active employees are there"]
    factory.collection.query.assert_awaited_once_with(
        query_embeddings=[llm.vector],
        n_results=3,
        include=["documents", "metadatas", "distances"],
    )


@pytest.mark.asyncio
async def test_collection_opened_once(fake_llm):
    factory = chroma_factory()
    retriever = _retriever(fake_llm(), factory)

    await retriever.retrieve("first")
    await retriever.retrieve("second")

    assert factory.await_count == 1
    assert factory.client.get_or_create_collection.await_count == 1
    assert retriever.is_connected


@pytest.mark.asyncio
async def test_empty_question_rejected(fake_llm):
    retriever = _retriever(fake_llm(), chroma_factory())
    with pytest.raises(InvalidInput):
        await retriever.retrieve("   ")


@pytest.mark.asyncio
async def test_no_matches(fake_llm):
    factory = chroma_factory(docs=[], count=5)
    retriever = _retriever(fake_llm(), factory)

    with pytest.raises(NoRelevantSchema) as exc_info:
        await retriever.retrieve("what colour is the sky")

    assert type(exc_info.value) is NoRelevantSchema
    assert exc_info.value.status_code == 404


@pytest.mark.asyncio
async def test_empty_index(fake_llm):
    retriever = _retriever(fake_llm(), chroma_factory(docs=[]))

    with pytest.raises(SchemaIndexMissing) as exc_info:
        await retriever.retrieve("anything")

    assert exc_info.value.status_code == 503


@pytest.mark.asyncio
async def test_embedding_failure():
    async def broken_embed(text):
        raise ValueError("Failed to generate embedding for question")

    retriever = SchemaRetriever(embed=broken_embed, client_factory=chroma_factory(), connect_policy=NO_RETRY)

    with pytest.raises(EmbeddingFailed) as exc_info:
        await retriever.retrieve("q")
    assert exc_info.value.status_code == 502
    assert exc_info.value.code is None


@pytest.mark.asyncio
async def test_embedding_timeout():
    retriever = SchemaRetriever(
        embed=_hang, client_factory=chroma_factory(), embed_timeout=0.05, connect_policy=NO_RETRY
    )

    with pytest.raises(EmbeddingFailed) as exc_info:
        await asyncio.wait_for(retriever.retrieve("q"), timeout=5)

    assert exc_info.value.status_code == 504
    assert exc_info.value.code == "TIMEOUT"
    assert "timed out" in exc_info.value.message
    assert "configuration" not in exc_info.value.message


@pytest.mark.asyncio
async def test_connect_retried_then_unavailable(fake_llm):
    factory = chroma_factory()
    factory.side_effect = ConnectionError("Could not connect to tenant default_tenant")
    retriever = _retriever(
        fake_llm(),
        factory,
        connect_policy=RetryPolicy(max_attempts=3, base_delay=0, max_delay=0, should_retry=is_connection_error),
    )

    with pytest.raises(SchemaStoreUnavailable) as exc_info:
        await retriever.retrieve("q")

    assert factory.await_count == 3
    assert exc_info.value.status_code == 503
    assert not retriever.is_connected


@pytest.mark.asyncio
async def test_missing_collection_on_query(fake_llm):
    factory = chroma_factory()
    factory.collection.query.side_effect = Exception("Collection sql_schemas does not exist.")
    retriever = _retriever(fake_llm(), factory)

    with pytest.raises(SchemaIndexMissing):
        await retriever.retrieve("q")
    assert not retriever.is_connected


@pytest.mark.asyncio
async def test_unexpected_query_error_message_is_generic(fake_llm):
    factory = chroma_factory()
    factory.collection.query.side_effect = Exception("internal stack detail")
    retriever = _retriever(fake_llm(), factory)

    with pytest.raises(SchemaStoreUnavailable) as exc_info:
        await retriever.retrieve("q")
    assert "internal stack detail" not in exc_info.value.message


@pytest.mark.asyncio
async def test_stats(fake_llm):
    retriever = _retriever(fake_llm(), chroma_factory(), top_k=4)

    assert await retriever.stats() == {
        "is_connected": True,
        "collection_name": "sql_schemas",
        "documents_count": 2,
        "top_k": 4,
    }


def test_table_name_falls_back_to_id():
    matches = SchemaRetriever._matches({
        "ids": [["orders"]],
        "documents": [["Table: dbo.orders"]],
        "metadatas": [[None]],
        "distances": [[0.3]],
    })
    assert [m.document.table_name for m in matches] == ["orders"]


@pytest.mark.asyncio
async def test_hanging_query_times_out(fake_llm):
    factory = chroma_factory()
    factory.collection.query = _hang
    retriever = _retriever(fake_llm(), factory, query_timeout=0.05)

    with pytest.raises(SchemaRetrievalTimeout) as exc_info:
        await asyncio.wait_for(retriever.retrieve("q"), timeout=5)

    assert exc_info.value.kind == "SCHEMA_RETRIEVAL_TIMEOUT"
    assert exc_info.value.code == "TIMEOUT"
    assert exc_info.value.status_code == 504
    assert "Schema query" in exc_info.value.message


@pytest.mark.asyncio
async def test_hanging_handshake_times_out(fake_llm):
    factory = chroma_factory()
    factory.client.get_or_create_collection = _hang
    retriever = _retriever(
        fake_llm(),
        factory,
        connect_policy=RetryPolicy(max_attempts=2, base_delay=0, max_delay=0, attempt_timeout=0.05),
    )

    with pytest.raises(SchemaRetrievalTimeout) as exc_info:
        await asyncio.wait_for(retriever.retrieve("q"), timeout=5)

    assert exc_info.value.status_code == 504
    assert not retriever.is_connected


@pytest.mark.asyncio
async def test_stats_reports_hanging_count(fake_llm):
    factory = chroma_factory()
    factory.collection.count = _hang
    retriever = _retriever(fake_llm(), factory, query_timeout=0.05)

    stats = await asyncio.wait_for(retriever.stats(), timeout=5)

    assert stats["is_connected"] is False
    assert "Schema count timed out" in stats["error"]
