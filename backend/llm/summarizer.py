from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from core.logging import get_logger
from core.retry import RetryPolicy
from core.truncation import TruncationPolicy, serialize_rows
from llm.prompts import analysis_prompt, coverage_note

logger = get_logger(__name__)

NO_DATA_ANSWER = "No data was found matching your query criteria."


@dataclass
class Summary:
    answer: str
    degraded: bool = False
    rows_shown: int = 0


def fallback_answer(total_count: int) -> str:
    if total_count <= 10:
        return f"Found {total_count} result(s). Analysis unavailable, but you can view the raw data below."
    return (
        f"Found {total_count} result(s). Analysis unavailable due to processing error. "
        "Please try refining your question or view the raw data."
    )


class ResultSummarizer:
    """Prose answer for a result set; degrades to a fixed sentence instead of failing."""

    def __init__(
        self,
        llm,
        model: Optional[str] = None,
        truncation: Optional[TruncationPolicy] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self.llm = llm
        self.model = model
        self.truncation = truncation or TruncationPolicy()
        self.retry_policy = retry_policy or RetryPolicy(max_attempts=2, base_delay=1.0, attempt_timeout=20.0)

    async def summarize(self, question: str, rows: List[Dict[str, Any]], total_count: Optional[int] = None) -> Summary:
        total = len(rows) if total_count is None else total_count
        if not rows:
            return Summary(NO_DATA_ANSWER)

        if total == 1 and len(rows) == 1 and len(rows[0]) == 1:
            value = next(iter(rows[0].values()))
            return Summary(f"Result: {value}", rows_shown=1)

        preview = self.truncation.truncate_rows(rows, total)
        if preview.was_truncated:
            logger.info(f"Analysis optimized: processing {len(preview.rows)} of {preview.original_count} rows")

        prompt = analysis_prompt.format(
            question=question,
            coverage_note=coverage_note(len(preview.rows), preview.original_count),
            data=serialize_rows(preview.rows, indent=2),
        )
        try:
            answer = await self.retry_policy.run(
                self.llm.complete, prompt, model=self.model, label="Result analysis"
            )
        except Exception as e:
            logger.error(f"Analysis failed after all retries: {e}")
            return Summary(fallback_answer(total), degraded=True, rows_shown=len(preview.rows))

        if not answer:
            return Summary(fallback_answer(total), degraded=True, rows_shown=len(preview.rows))
        return Summary(answer.strip(), rows_shown=len(preview.rows))
