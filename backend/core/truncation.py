import json
from dataclasses import dataclass
from typing import Any, Dict, List

from core.logging import get_logger

logger = get_logger(__name__)

TRUNCATION_MARKER = "\n... (truncated)"


@dataclass
class TruncatedRows:
    rows: List[Dict[str, Any]]
    original_count: int

    @property
    def was_truncated(self) -> bool:
        return len(self.rows) < self.original_count


@dataclass(frozen=True)
class TruncationPolicy:
    """
    Size limits applied before data is embedded in a prompt.

    max_chars bounds the schema context handed to SQL generation;
    max_rows / max_data_chars / min_rows bound the result preview handed to
    summarization.
    """
    max_chars: int = 10000
    max_rows: int = 50
    max_data_chars: int = 50000
    min_rows: int = 10

    def truncate_text(self, text: str) -> str:
        if len(text) <= self.max_chars:
            return text
        logger.warning(f"Schema context truncated from {len(text)} to {self.max_chars} chars")
        return text[: self.max_chars] + TRUNCATION_MARKER

    def truncate_rows(self, rows: List[Dict[str, Any]], total_count: int = None) -> TruncatedRows:
        """
        Cap rows by count, then by serialized size.

        When the JSON form of the capped rows is still above max_data_chars,
        the row count is cut using the average row size, but never below
        min_rows.
        """
        original_count = len(rows) if total_count is None else max(total_count, len(rows))
        kept = rows[: self.max_rows]
        if not kept:
            return TruncatedRows(kept, original_count)

        size = len(serialize_rows(kept))
        if size > self.max_data_chars:
            avg_row_size = size / len(kept)
            fit = int(self.max_data_chars // avg_row_size)
            logger.warning(f"Result preview still too large ({size} chars), reducing to {max(self.min_rows, fit)} rows")
            kept = kept[: max(self.min_rows, fit)]

        return TruncatedRows(kept, original_count)


def serialize_rows(rows: List[Dict[str, Any]], indent: int = None) -> str:
    return json.dumps(rows, default=str, ensure_ascii=False, indent=indent)
