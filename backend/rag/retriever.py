"""
Schema retrieval over the Chroma collection built by the offline indexer.

Each indexed document describes one table (columns, types, relationships,
common query patterns); its id is the table name.
"""
import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional

import chromadb
import httpx
from fastapi import status

from app.utils.exceptions import (
    AppException,
    EmbeddingFailed,
    ExternalCallTimeout,
    InvalidInput,
    NoRelevantSchema,
    SchemaIndexMissing,
    SchemaRetrievalTimeout,
    SchemaStoreUnavailable,
)
from core.config import settings
from core.logging import get_logger, preview
from core.retry import RetryPolicy, with_deadline
from rag.models import RetrievalResult, RetrievedSchema, SchemaDocument

logger = get_logger(__name__)

COLLECTION_METADATA = {"description": "Database table schemas for text-to-SQL generation"}


async def connect_chroma() -> Any:
    return await chromadb.AsyncHttpClient(host=settings.CHROMA_HOST, port=settings.CHROMA_PORT)


def is_connection_error(exc: BaseException) -> bool:
    if isinstance(exc, (httpx.ConnectError, httpx.ConnectTimeout, ConnectionError)):
        return True
    message = str(exc).lower()
    return "could not connect" in message or "connection refused" in message


def _is_missing_collection(exc: BaseException) -> bool:
    message = str(exc).lower()
    return "collection" in message and ("does not exist" in message or "not found" in message)


class SchemaRetriever:
    def __init__(
        self,
        embed: Callable[[str], Awaitable[List[float]]],
        client_factory: Callable[[], Awaitable[Any]] = connect_chroma,
        collection_name: str = "sql_schemas",
        top_k: int = 3,
        embed_timeout: Optional[float] = 10.0,
        query_timeout: Optional[float] = 10.0,
        connect_policy: Optional[RetryPolicy] = None,
    ):
        self._embed = embed
        self._client_factory = client_factory
        self.collection_name = collection_name
        self.top_k = top_k
        self.embed_timeout = embed_timeout
        self.query_timeout = query_timeout
        self.connect_policy = connect_policy or RetryPolicy(
            max_attempts=3,
            base_delay=2.0,
            max_delay=6.0,
            attempt_timeout=10.0,
            should_retry=is_connection_error,
        )
        self._client = None
        self._collection = None
        self._lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        return self._collection is not None

    async def _open_collection(self) -> Any:
        if self._client is None:
            self._client = await self._client_factory()
        return await self._client.get_or_create_collection(
            name=self.collection_name, metadata=COLLECTION_METADATA
        )

    async def get_collection(self) -> Any:
        """Collection handle; created on first use and reused afterwards."""
        if self._collection is not None:
            return self._collection
        async with self._lock:
            if self._collection is None:
                try:
                    self._collection = await self.connect_policy.run(
                        self._open_collection, label="Chroma connect"
                    )
                except Exception as e:
                    self._client = None
                    logger.error(f"Failed to connect to Chroma collection '{self.collection_name}': {e}")
                    if isinstance(e, ExternalCallTimeout):
                        raise SchemaRetrievalTimeout(e.label, e.seconds) from e
                    raise SchemaStoreUnavailable() from e
                logger.info(f"Connected to Chroma collection '{self.collection_name}'")
        return self._collection

    async def retrieve(self, question: str) -> RetrievalResult:
        if not isinstance(question, str) or not question.strip():
            raise InvalidInput("Question must be a non-empty string", code="EMPTY_QUESTION")

        started = time.perf_counter()
        collection = await self.get_collection()

        try:
            vector = await with_deadline(self._embed(question), self.embed_timeout, "Question embedding")
        except ExternalCallTimeout as e:
            logger.error(f"Embedding timed out for question '{preview(question)}': {e}")
            raise EmbeddingFailed(
                f"Question embedding timed out after {e.seconds:g}s. Please try again.",
                status.HTTP_504_GATEWAY_TIMEOUT,
                code="TIMEOUT",
            ) from e
        except Exception as e:
            logger.error(f"Embedding failed for question '{preview(question)}': {e}")
            raise EmbeddingFailed() from e

        try:
            results = await with_deadline(
                collection.query(
                    query_embeddings=[vector],
                    n_results=self.top_k,
                    include=["documents", "metadatas", "distances"],
                ),
                self.query_timeout,
                "Schema query",
            )
        except Exception as e:
            raise self._translate(e) from e

        matches = self._matches(results)
        if not matches:
            logger.warning(f"No relevant schemas found for question '{preview(question)}'")
            if await self.count() == 0:
                raise SchemaIndexMissing(self.collection_name)
            raise NoRelevantSchema()

        result = RetrievalResult(matches=matches)
        logger.info(
            f"Retrieved {len(matches)} schemas {result.table_names} "
            f"distances={result.distances} in {int((time.perf_counter() - started) * 1000)}ms"
        )
        return result

    def _translate(self, exc: Exception) -> AppException:
        if isinstance(exc, ExternalCallTimeout):
            return SchemaRetrievalTimeout(exc.label, exc.seconds)
        if isinstance(exc, AppException):
            return exc
        if _is_missing_collection(exc):
            self._collection = None
            return SchemaIndexMissing(self.collection_name)
        if is_connection_error(exc):
            self._collection = None
            self._client = None
            return SchemaStoreUnavailable()
        logger.error(f"Unexpected Chroma query error: {exc}")
        return SchemaStoreUnavailable("Could not retrieve relevant database schemas.")

    @staticmethod
    def _matches(results: Dict[str, Any]) -> List[RetrievedSchema]:
        documents = (results.get("documents") or [[]])[0] or []
        ids = (results.get("ids") or [[]])[0] or []
        metadatas = (results.get("metadatas") or [[]])[0] or []
        distances = (results.get("distances") or [[]])[0] or []

        matches = []
        for i, content in enumerate(documents):
            if not content:
                continue
            metadata = (metadatas[i] if i < len(metadatas) else None) or {}
            table_name = metadata.get("tableName") or (ids[i] if i < len(ids) else f"table_{i}")
            matches.append(
                RetrievedSchema(
                    document=SchemaDocument(table_name=table_name, content=content, metadata=metadata),
                    distance=distances[i] if i < len(distances) else None,
                )
            )
        return matches

    async def count(self) -> int:
        collection = await self.get_collection()
        try:
            return await with_deadline(collection.count(), self.query_timeout, "Schema count")
        except Exception as e:
            raise self._translate(e) from e

    async def stats(self) -> Dict[str, Any]:
        try:
            count = await self.count()
        except AppException as e:
            return {"is_connected": False, "collection_name": self.collection_name, "error": e.message}
        return {
            "is_connected": True,
            "collection_name": self.collection_name,
            "documents_count": count,
            "top_k": self.top_k,
        }
