import time
from typing import Optional

from app.utils.exceptions import (
    ExternalCallTimeout,
    MalformedSql,
    SqlGenerationFailed,
    UnansweredQuestion,
)
from core.logging import get_logger, preview
from core.retry import RetryPolicy
from core.truncation import TruncationPolicy
from db.sql_safety import (
    UNANSWERABLE_SENTINEL,
    ensure_terminator,
    extract_sql,
    is_unanswerable,
    starts_with_select,
)
from llm.prompts import sql_generation_prompt

logger = get_logger(__name__)


def clean_generated_sql(raw: str) -> str:
    """
    Turn raw model output into a terminated SELECT statement, or raise the
    generation failure that explains why it is not one.
    """
    sql = extract_sql(raw)
    if is_unanswerable(sql):
        raise UnansweredQuestion()
    if not starts_with_select(sql):
        raise MalformedSql(sql)
    return ensure_terminator(sql)


class SqlGenerator:
    def __init__(
        self,
        llm,
        model: Optional[str] = None,
        temperature: float = 0.0,
        schema_name: str = "dbo",
        truncation: Optional[TruncationPolicy] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self.llm = llm
        self.model = model
        self.temperature = temperature
        self.schema_name = schema_name
        self.truncation = truncation or TruncationPolicy()
        self.retry_policy = retry_policy or RetryPolicy(max_attempts=3, base_delay=1.0, attempt_timeout=15.0)

    def build_prompt(self, question: str, schema_context: str) -> str:
        return sql_generation_prompt.format(
            schema_name=self.schema_name,
            sentinel=UNANSWERABLE_SENTINEL,
            schema_context=self.truncation.truncate_text(schema_context),
            question=question,
        )

    async def _attempt(self, prompt: str) -> str:
        raw = await self.llm.complete(prompt, model=self.model, temperature=self.temperature)
        return clean_generated_sql(raw)

    async def generate(self, question: str, schema_context: str) -> str:
        started = time.perf_counter()
        prompt = self.build_prompt(question, schema_context)
        try:
            sql = await self.retry_policy.run(self._attempt, prompt, label="SQL generation")
        except SqlGenerationFailed as e:
            raise self._exhausted(e.reason, e) from e
        except ExternalCallTimeout as e:
            raise self._exhausted("timeout", e) from e
        except Exception as e:
            raise self._exhausted("upstream_error", e) from e

        logger.info(f"SQL generated in {int((time.perf_counter() - started) * 1000)}ms: {preview(sql, 200)}")
        return sql

    def _exhausted(self, reason: str, last_error: BaseException) -> SqlGenerationFailed:
        attempts = self.retry_policy.max_attempts
        logger.error(f"SQL generation failed after {attempts} attempts: {last_error}")
        if reason == "unanswerable":
            message = str(last_error)
        else:
            message = f"Failed to generate a valid SQL query after {attempts} attempts."
        return SqlGenerationFailed(message, reason=reason, last_error=last_error)
