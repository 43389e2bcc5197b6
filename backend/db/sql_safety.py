import re
from typing import Any

from app.utils.exceptions import InvalidInput, UnsafeQueryRejected

UNANSWERABLE_SENTINEL = "CANNOT_ANSWER"

# Screening of the user's question, before anything else runs.
HARMFUL_QUESTION_PATTERNS = [
    r"drop\s+table",
    r"delete\s+from",
    r"truncate\s+table",
    r"alter\s+table",
    r"create\s+table",
    r"insert\s+into",
    r"update\s+.+set",
    r"exec\s*\(",
    r"execute\s*\(",
    r"xp_cmdshell",
    r"sp_executesql",
]

# Gate in front of the database, independent of how the SQL was produced.
FORBIDDEN_SQL = [
    r";\s*(DROP|DELETE|UPDATE|INSERT|ALTER|CREATE|TRUNCATE|EXEC|EXECUTE)\b",
    r"\bxp_cmdshell\b",
    r"\bsp_executesql\b",
    r"--[^\r\n]*$",
    r"/\*[\s\S]*?\*/",
]


def validate_question(question: Any, max_length: int) -> str:
    if question is None:
        raise InvalidInput("Question is required.", code="MISSING_QUESTION")
    if not isinstance(question, str):
        raise InvalidInput("Question must be a string.", code="INVALID_QUESTION_TYPE")
    if not question.strip():
        raise InvalidInput("Question cannot be empty.", code="EMPTY_QUESTION")
    if len(question) > max_length:
        raise InvalidInput(
            f"Question is too long. Maximum {max_length} characters allowed.",
            code="QUESTION_TOO_LONG",
        )
    if any(re.search(p, question, re.IGNORECASE) for p in HARMFUL_QUESTION_PATTERNS):
        raise InvalidInput("Question contains potentially harmful content.", code="HARMFUL_CONTENT")
    return question.strip()


def extract_sql(text_out: str) -> str:
    """Pull the statement out of model output: fenced block body, else the bare text."""
    if not text_out:
        return ""
    fenced = re.search(r"```(?:sql|tsql|t-sql|mssql)?\s*(.*?)```", text_out, re.IGNORECASE | re.DOTALL)
    if fenced:
        sql = fenced.group(1).strip()
    else:
        sql = re.sub(r"```(?:sql|tsql|t-sql|mssql)?", "", text_out, flags=re.IGNORECASE).strip()
    if "SQLQuery:" in sql:
        sql = sql.split("SQLQuery:", 1)[1].strip()
    sql = re.sub(r"^\s*(?:t-?sql|sql)\b\s*:?\s*", "", sql, flags=re.IGNORECASE)
    return sql.strip().strip("`").strip()


def is_unanswerable(sql: str) -> bool:
    return sql.strip().strip(";").strip().upper() == UNANSWERABLE_SENTINEL


def starts_with_select(sql: str) -> bool:
    return (sql or "").strip().upper().startswith("SELECT")


def ensure_terminator(sql: str) -> str:
    sql = sql.strip()
    return sql if sql.endswith(";") else sql + ";"


def validate_select_query(sql: str) -> str:
    """
    Hard gate run right before execution. Anything suspicious is rejected,
    nothing is rewritten.
    """
    if not sql or not sql.strip():
        raise UnsafeQueryRejected("SQL query cannot be empty.")
    if not starts_with_select(sql):
        raise UnsafeQueryRejected("For security reasons, only SELECT queries are allowed.")
    for pattern in FORBIDDEN_SQL:
        if re.search(pattern, sql, flags=re.IGNORECASE | re.MULTILINE):
            raise UnsafeQueryRejected()
    return sql.strip()
