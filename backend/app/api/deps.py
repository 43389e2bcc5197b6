"""
Component wiring for API endpoints.

Each component is built once per process on first use; nothing here
opens a network connection at import time.
"""
from functools import lru_cache

from app.services.pipeline import PipelineOrchestrator
from app.utils.cache import ResponseCache
from core.config import settings
from core.retry import RetryPolicy
from core.truncation import TruncationPolicy
from db.engine import get_engine
from db.safe_query import QueryExecutor
from llm.client import CompletionClient
from llm.rewriter import QuestionRewriter
from llm.sql_generator import SqlGenerator
from llm.summarizer import ResultSummarizer
from memory.store import SessionStore, build_session_store
from rag.retriever import SchemaRetriever, is_connection_error


@lru_cache
def get_llm_client() -> CompletionClient:
    return CompletionClient()


@lru_cache
def get_truncation_policy() -> TruncationPolicy:
    return TruncationPolicy(
        max_chars=settings.MAX_SCHEMA_CHARS,
        max_rows=settings.MAX_ANALYSIS_ROWS,
        max_data_chars=settings.MAX_ANALYSIS_CHARS,
        min_rows=settings.MIN_ANALYSIS_ROWS,
    )


@lru_cache
def get_cache() -> ResponseCache:
    return ResponseCache(ttl_seconds=settings.CACHE_TTL_SECONDS, max_entries=settings.CACHE_MAX_ENTRIES)


@lru_cache
def get_session_store() -> SessionStore:
    return build_session_store()


@lru_cache
def get_retriever() -> SchemaRetriever:
    return SchemaRetriever(
        embed=get_llm_client().embed,
        collection_name=settings.RAG_COLLECTION_NAME,
        top_k=settings.RAG_TOP_K,
        embed_timeout=settings.EMBED_TIMEOUT_SECONDS,
        query_timeout=settings.RAG_QUERY_TIMEOUT_SECONDS,
        connect_policy=RetryPolicy(
            max_attempts=settings.RAG_CONNECT_RETRIES,
            base_delay=2.0,
            max_delay=6.0,
            attempt_timeout=settings.RAG_CONNECT_TIMEOUT_SECONDS,
            should_retry=is_connection_error,
        ),
    )


@lru_cache
def get_executor() -> QueryExecutor:
    return QueryExecutor(
        get_engine(),
        max_rows=settings.MAX_RESULT_ROWS,
        timeout_ms=settings.QUERY_TIMEOUT_MS,
        connect_retries=settings.DB_MAX_RETRIES,
    )


def get_summary_retry_policy() -> RetryPolicy:
    """Summaries get strictly fewer attempts than SQL generation."""
    return RetryPolicy(
        max_attempts=min(settings.SUMMARY_MAX_RETRIES, max(1, settings.LLM_MAX_RETRIES - 1)),
        base_delay=settings.LLM_RETRY_DELAY,
        max_delay=settings.LLM_RETRY_MAX_DELAY,
        attempt_timeout=settings.ANALYSIS_TIMEOUT_SECONDS,
    )


@lru_cache
def get_pipeline() -> PipelineOrchestrator:
    llm = get_llm_client()
    truncation = get_truncation_policy()
    return PipelineOrchestrator(
        session_store=get_session_store(),
        cache=get_cache(),
        rewriter=QuestionRewriter(
            llm,
            model=settings.GROQ_ANALYSIS_MODEL,
            history_pairs=settings.REWRITE_HISTORY_PAIRS,
            timeout=settings.REWRITE_TIMEOUT_SECONDS,
        ),
        retriever=get_retriever(),
        generator=SqlGenerator(
            llm,
            model=settings.GROQ_SQL_MODEL,
            temperature=settings.LLM_TEMPERATURE,
            schema_name=settings.DB_SCHEMA,
            truncation=truncation,
            retry_policy=RetryPolicy(
                max_attempts=settings.LLM_MAX_RETRIES,
                base_delay=settings.LLM_RETRY_DELAY,
                max_delay=settings.LLM_RETRY_MAX_DELAY,
                attempt_timeout=settings.SQL_TIMEOUT_SECONDS,
            ),
        ),
        executor=get_executor(),
        summarizer=ResultSummarizer(
            llm,
            model=settings.GROQ_ANALYSIS_MODEL,
            truncation=truncation,
            retry_policy=get_summary_retry_policy(),
        ),
        max_question_length=settings.MAX_QUESTION_LENGTH,
        max_turn_pairs=settings.SESSION_MAX_TURN_PAIRS,
    )
