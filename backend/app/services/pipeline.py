"""
Question-answering pipeline.

SessionResolved -> Rewritten -> SchemaRetrieved -> SqlGenerated -> Executed
-> Summarized -> Responded. Any stage error moves the run to Failed and is
re-raised with the stage it came from; each component owns its own retry
and timeout policy, the orchestrator retries nothing.
"""
import time
import uuid
from enum import Enum
from typing import Any, Awaitable, Dict, Optional

from app.schemas.chat import AskResponse
from app.utils.cache import ResponseCache
from app.utils.exceptions import AppException, SUMMARIZATION_DEGRADED
from core.logging import get_logger, preview
from db.safe_query import QueryExecutor
from db.sql_safety import validate_question
from llm.rewriter import QuestionRewriter
from llm.sql_generator import SqlGenerator
from llm.summarizer import ResultSummarizer
from memory.models import Turn, trim_turns
from memory.store import SessionStore
from rag.retriever import SchemaRetriever

logger = get_logger(__name__)


class PipelineState(str, Enum):
    STARTED = "Started"
    SESSION_RESOLVED = "SessionResolved"
    REWRITTEN = "Rewritten"
    SCHEMA_RETRIEVED = "SchemaRetrieved"
    SQL_GENERATED = "SqlGenerated"
    EXECUTED = "Executed"
    SUMMARIZED = "Summarized"
    RESPONDED = "Responded"
    FAILED = "Failed"


STAGE_TIMING_KEYS = {
    PipelineState.SESSION_RESOLVED: "sessionMs",
    PipelineState.REWRITTEN: "rewriteMs",
    PipelineState.SCHEMA_RETRIEVED: "retrievalMs",
    PipelineState.SQL_GENERATED: "generationMs",
    PipelineState.EXECUTED: "executionMs",
    PipelineState.SUMMARIZED: "summarizationMs",
}


class PipelineRun:
    """Bookkeeping for one request: current state, per-stage timings, failure point."""

    def __init__(self, request_id: Optional[str] = None):
        self.request_id = request_id or uuid.uuid4().hex[:12]
        self.state = PipelineState.STARTED
        self.failed_stage: Optional[PipelineState] = None
        self.timings: Dict[str, int] = {}
        self.started = time.perf_counter()

    def advance(self, state: PipelineState, elapsed_ms: int) -> None:
        self.state = state
        key = STAGE_TIMING_KEYS.get(state)
        if key:
            self.timings[key] = elapsed_ms

    def fail(self, stage: PipelineState) -> None:
        self.failed_stage = stage
        self.state = PipelineState.FAILED

    def elapsed_ms(self) -> int:
        return int((time.perf_counter() - self.started) * 1000)


class PipelineError(AppException):
    kind = "INTERNAL_ERROR"

    def __init__(self):
        super().__init__("An unexpected error occurred while processing your question.", 500)


class PipelineOrchestrator:
    def __init__(
        self,
        session_store: SessionStore,
        cache: ResponseCache,
        rewriter: QuestionRewriter,
        retriever: SchemaRetriever,
        generator: SqlGenerator,
        executor: QueryExecutor,
        summarizer: ResultSummarizer,
        max_question_length: int = 500,
        max_turn_pairs: int = 10,
    ):
        self.session_store = session_store
        self.cache = cache
        self.rewriter = rewriter
        self.retriever = retriever
        self.generator = generator
        self.executor = executor
        self.summarizer = summarizer
        self.max_question_length = max_question_length
        self.max_turn_pairs = max_turn_pairs

    async def _stage(self, run: PipelineRun, target: PipelineState, call: Awaitable[Any]) -> Any:
        started = time.perf_counter()
        try:
            result = await call
        except AppException as e:
            run.fail(target)
            e.request_id = run.request_id
            e.failed_stage = target.value
            logger.error(f"[{run.request_id}] {target.value} failed: {e.kind}: {e.message}")
            raise
        except Exception as e:
            run.fail(target)
            logger.exception(f"[{run.request_id}] {target.value} failed unexpectedly: {e}")
            error = PipelineError()
            error.request_id = run.request_id
            error.failed_stage = target.value
            raise error from e
        run.advance(target, int((time.perf_counter() - started) * 1000))
        return result

    async def ask(self, question: Any, session_id: Optional[str] = None) -> AskResponse:
        run = PipelineRun()
        try:
            question = validate_question(question, self.max_question_length)
        except AppException as e:
            run.fail(PipelineState.STARTED)
            e.request_id = run.request_id
            logger.warning(f"[{run.request_id}] Question rejected: {e.code}")
            raise

        logger.info(f"[{run.request_id}] Processing question '{preview(question)}'")
        session_id = session_id or str(uuid.uuid4())
        history = await self._stage(run, PipelineState.SESSION_RESOLVED, self.session_store.get(session_id))

        cached = self.cache.get(question)
        if cached is not None:
            logger.info(f"[{run.request_id}] Cache hit in {run.elapsed_ms()}ms")
            await self._remember(session_id, history, question, cached["answer"])
            run.state = PipelineState.RESPONDED
            return AskResponse(
                answer=cached["answer"],
                generated_sql=cached["generatedSql"],
                raw_data=cached["rawData"],
                metadata=cached["metadata"],
                session_id=session_id,
                cached=True,
                timings={"totalMs": run.elapsed_ms()},
                request_id=run.request_id,
            )

        standalone = await self._stage(run, PipelineState.REWRITTEN, self.rewriter.rewrite(question, history))
        schemas = await self._stage(run, PipelineState.SCHEMA_RETRIEVED, self.retriever.retrieve(standalone))
        sql = await self._stage(
            run, PipelineState.SQL_GENERATED, self.generator.generate(standalone, schemas.context)
        )
        result = await self._stage(run, PipelineState.EXECUTED, self.executor.execute(sql))
        summary = await self._stage(
            run,
            PipelineState.SUMMARIZED,
            self.summarizer.summarize(question, result.rows, result.total_row_count),
        )

        metadata = {
            "schemaTablesUsed": len(schemas.table_names),
            "tablesUsed": schemas.table_names,
            "standaloneQuestion": standalone,
            "resultCount": len(result.rows),
            "totalRowCount": result.total_row_count,
            "truncated": result.truncated,
            "executionTimeMs": run.elapsed_ms(),
            "summaryDegraded": summary.degraded,
        }
        if summary.degraded:
            metadata["warning"] = SUMMARIZATION_DEGRADED

        await self._remember(session_id, history, question, summary.answer)
        self.cache.set(question, {
            "answer": summary.answer,
            "generatedSql": sql,
            "rawData": result.rows,
            "metadata": metadata,
        })

        run.timings["totalMs"] = run.elapsed_ms()
        run.state = PipelineState.RESPONDED
        logger.info(
            f"[{run.request_id}] Question processed in {run.timings['totalMs']}ms, rows={result.total_row_count}"
        )
        return AskResponse(
            answer=summary.answer,
            generated_sql=sql,
            raw_data=result.rows,
            session_id=session_id,
            cached=False,
            timings=dict(run.timings),
            metadata=metadata,
            request_id=run.request_id,
        )

    async def _remember(self, session_id: str, history, question: str, answer: str) -> None:
        turns = list(history) + [Turn(role="user", content=question), Turn(role="assistant", content=answer)]
        await self.session_store.put(session_id, trim_turns(turns, self.max_turn_pairs))
