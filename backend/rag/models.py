from typing import Any, Dict, List, Optional

from pydantic import BaseModel, model_validator

SCHEMA_SEPARATOR = "\n\n---\n\n"


class SchemaDocument(BaseModel):
    """Description of one table as indexed in the vector store."""
    table_name: str
    content: str
    metadata: Dict[str, Any] = {}


class RetrievedSchema(BaseModel):
    document: SchemaDocument
    distance: Optional[float] = None


class RetrievalResult(BaseModel):
    """Retrieved schemas, nearest first."""
    matches: List[RetrievedSchema]

    @model_validator(mode="after")
    def _nearest_first(self):
        self.matches.sort(key=lambda m: float("inf") if m.distance is None else m.distance)
        return self

    @property
    def table_names(self) -> List[str]:
        return [m.document.table_name for m in self.matches]

    @property
    def distances(self) -> List[Optional[float]]:
        return [m.distance for m in self.matches]

    @property
    def context(self) -> str:
        return SCHEMA_SEPARATOR.join(m.document.content for m in self.matches)
