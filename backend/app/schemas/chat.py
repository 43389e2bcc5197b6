from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AskRequest(CamelModel):
    # screened by db.sql_safety.validate_question inside the pipeline
    question: Any = None
    session_id: Optional[str] = None


class AskResponse(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    answer: str
    generated_sql: str
    raw_data: List[Dict[str, Any]]
    session_id: str
    cached: bool = False
    timings: Dict[str, int] = {}
    metadata: Dict[str, Any] = {}
    request_id: Optional[str] = None


class ErrorDetail(BaseModel):
    kind: str
    message: str
    code: Optional[str] = None


class ErrorResponse(CamelModel):
    error: ErrorDetail
    request_id: Optional[str] = None


class CacheStats(CamelModel):
    hits: int
    misses: int
    keys: int
    evictions: int
    expirations: int
    ttl_seconds: int
    max_entries: int
