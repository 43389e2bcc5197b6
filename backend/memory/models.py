import time
from typing import List, Literal

from pydantic import BaseModel, Field


class Turn(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class SessionState(BaseModel):
    """Turn history of one conversation, oldest turn first."""
    turns: List[Turn] = []
    created_at: float = Field(default_factory=time.time)
    last_access: float = Field(default_factory=time.time)


def trim_turns(turns: List[Turn], max_pairs: int) -> List[Turn]:
    """Keep only the newest `max_pairs` user/assistant pairs (oldest dropped first)."""
    if max_pairs <= 0:
        return []
    return list(turns[-2 * max_pairs:])
