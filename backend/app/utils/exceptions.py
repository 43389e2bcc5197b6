from typing import Optional

from fastapi import status


class AppException(Exception):
    """Base application exception"""
    kind = "INTERNAL_ERROR"
    request_id: Optional[str] = None
    failed_stage: Optional[str] = None

    def __init__(self, message: str, status_code: int = 500, code: Optional[str] = None):
        self.message = message
        self.status_code = status_code
        self.code = code
        super().__init__(self.message)

    def to_payload(self) -> dict:
        error = {"kind": self.kind, "message": self.message}
        if self.code:
            error["code"] = self.code
        return error


class InvalidInput(AppException):
    kind = "INVALID_INPUT"

    def __init__(self, message: str = "Invalid question", code: str = "INVALID_INPUT"):
        super().__init__(message, status.HTTP_400_BAD_REQUEST, code)


class NoRelevantSchema(AppException):
    kind = "NO_RELEVANT_SCHEMA"

    def __init__(
        self,
        message: str = (
            "No relevant schemas found for the question. Please try rephrasing your "
            "question or check if the relevant tables have been indexed."
        ),
        status_code: int = status.HTTP_404_NOT_FOUND,
        code: Optional[str] = None,
    ):
        super().__init__(message, status_code, code)


class SchemaIndexMissing(NoRelevantSchema):
    kind = "SCHEMA_INDEX_MISSING"

    def __init__(self, collection_name: str):
        super().__init__(
            f"Schema collection '{collection_name}' is empty or does not exist. "
            "Please run the schema indexing job first.",
            status.HTTP_503_SERVICE_UNAVAILABLE,
        )


class SchemaStoreUnavailable(NoRelevantSchema):
    kind = "SCHEMA_STORE_UNAVAILABLE"

    def __init__(self, message: str = "The schema vector store is not reachable. Please make sure Chroma is running."):
        super().__init__(message, status.HTTP_503_SERVICE_UNAVAILABLE)


class SchemaRetrievalTimeout(SchemaStoreUnavailable):
    kind = "SCHEMA_RETRIEVAL_TIMEOUT"

    def __init__(self, label: str, seconds: float):
        super().__init__(f"{label} timed out after {seconds:g}s. The schema vector store is not responding.")
        self.status_code = status.HTTP_504_GATEWAY_TIMEOUT
        self.code = "TIMEOUT"


class SqlGenerationFailed(AppException):
    kind = "SQL_GENERATION_FAILED"

    def __init__(self, message: str, reason: str = "upstream_error", last_error: Optional[BaseException] = None):
        self.reason = reason
        self.last_error = last_error
        super().__init__(message, status.HTTP_502_BAD_GATEWAY, reason.upper())


class UnansweredQuestion(SqlGenerationFailed):
    """The model emitted the unanswerable sentinel for this question."""

    def __init__(self):
        super().__init__(
            "This question cannot be answered using the available database schema.",
            reason="unanswerable",
        )


class MalformedSql(SqlGenerationFailed):
    def __init__(self, sql: str):
        super().__init__(
            f"Generated query is not a SELECT statement: {sql[:100]}",
            reason="malformed_output",
        )


class UnsafeQueryRejected(AppException):
    kind = "UNSAFE_QUERY_REJECTED"

    def __init__(self, message: str = "Query contains potentially unsafe patterns."):
        super().__init__(message, status.HTTP_422_UNPROCESSABLE_ENTITY)


EXECUTION_MESSAGES = {
    "timeout": ("Query execution timed out. Please try a simpler query.", status.HTTP_504_GATEWAY_TIMEOUT),
    "authentication": ("Database authentication failed.", status.HTTP_502_BAD_GATEWAY),
    "connectivity": ("Database server is not accessible. Please try again.", status.HTTP_503_SERVICE_UNAVAILABLE),
    "invalid_identifier": ("Invalid table or column name in the generated query.", status.HTTP_502_BAD_GATEWAY),
    "unknown": ("Error executing database query.", status.HTTP_500_INTERNAL_SERVER_ERROR),
}


class ExecutionFailed(AppException):
    kind = "EXECUTION_FAILED"

    def __init__(self, reason: str = "unknown"):
        if reason not in EXECUTION_MESSAGES:
            reason = "unknown"
        self.reason = reason
        message, status_code = EXECUTION_MESSAGES[reason]
        super().__init__(message, status_code, reason.upper())


class ExternalCallTimeout(AppException):
    """A single external call outlived its deadline; callers translate this."""
    kind = "TIMEOUT"

    def __init__(self, label: str, seconds: float):
        self.label = label
        self.seconds = seconds
        super().__init__(f"{label} timed out after {seconds:g}s", status.HTTP_504_GATEWAY_TIMEOUT)


class EmbeddingFailed(NoRelevantSchema):
    kind = "EMBEDDING_FAILED"

    def __init__(
        self,
        message: str = "Failed to generate embedding for the question. Please check the embedding service configuration.",
        status_code: int = status.HTTP_502_BAD_GATEWAY,
        code: Optional[str] = None,
    ):
        super().__init__(message, status_code, code)


SUMMARIZATION_DEGRADED = "SUMMARIZATION_DEGRADED"

