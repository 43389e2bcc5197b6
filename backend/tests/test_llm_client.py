"""
Tests for the completion/embedding client wrapper.
"""
from unittest.mock import AsyncMock, MagicMock

import pytest

from llm.client import CompletionClient


def _chat_model(content):
    model = MagicMock()
    model.ainvoke = AsyncMock(return_value=MagicMock(content=content))
    return model


@pytest.mark.asyncio
async def test_complete_strips_content():
    llm_factory = MagicMock(return_value=_chat_model("  SELECT 1  \n"))
    client = CompletionClient(llm_factory=llm_factory)

    assert await client.complete("prompt", model="sql-model", temperature=0.0) == "SELECT 1"
    llm_factory.assert_called_once_with("sql-model", 0.0)


@pytest.mark.asyncio
async def test_models_reused_per_name_and_temperature():
    llm_factory = MagicMock(side_effect=lambda model, temperature: _chat_model(model))
    client = CompletionClient(llm_factory=llm_factory)

    await client.complete("a", model="sql-model", temperature=0.0)
    await client.complete("b", model="sql-model", temperature=0.0)
    await client.complete("c", model="analysis-model", temperature=0.0)

    assert llm_factory.call_count == 2


@pytest.mark.asyncio
async def test_embed():
    embeddings = MagicMock()
    embeddings.aembed_query = AsyncMock(return_value=(0.5, 0.25))
    embeddings_factory = MagicMock(return_value=embeddings)
    client = CompletionClient(embeddings_factory=embeddings_factory)

    assert await client.embed("question") == [0.5, 0.25]
    assert await client.embed("question") == [0.5, 0.25]
    embeddings_factory.assert_called_once_with()


@pytest.mark.asyncio
async def test_empty_embedding_raises():
    embeddings = MagicMock()
    embeddings.aembed_query = AsyncMock(return_value=[])
    client = CompletionClient(embeddings_factory=MagicMock(return_value=embeddings))

    with pytest.raises(ValueError):
        await client.embed("question")
