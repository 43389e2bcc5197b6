from pathlib import Path
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict

# config.py -> core -> backend -> project root
_ENV_PATH = Path(__file__).resolve().parent.parent.parent / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(_ENV_PATH) if _ENV_PATH.exists() else ".env",
        extra="ignore",
    )

    # Server
    APP_ENV: str = "development"
    CORS_ORIGINS: str = "*"
    LOG_LEVEL: str = "INFO"

    # SQL Server
    DB_HOST: str = "localhost"
    DB_PORT: int = 1433
    DB_NAME: str = "master"
    DB_SCHEMA: str = "dbo"
    DB_USER: str = "sa"
    DB_PASSWORD: str = ""
    DB_CONNECTION_TIMEOUT: int = 15
    DB_POOL_MAX: int = 10
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_IDLE_TIMEOUT: int = 30
    DB_MAX_RETRIES: int = 2

    @property
    def DATABASE_URL(self) -> str:
        return (
            f"mssql+pymssql://{self.DB_USER}:{self.DB_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        )

    # Groq
    GROQ_API_KEY: str = ""
    GROQ_SQL_MODEL: str = "llama-3.3-70b-versatile"
    GROQ_ANALYSIS_MODEL: str = "llama-3.1-8b-instant"
    LLM_TEMPERATURE: float = 0.0
    LLM_MAX_RETRIES: int = 3
    LLM_RETRY_DELAY: float = 1.0
    LLM_RETRY_MAX_DELAY: float = 10.0
    SUMMARY_MAX_RETRIES: int = 2
    SQL_TIMEOUT_SECONDS: float = 15.0
    ANALYSIS_TIMEOUT_SECONDS: float = 20.0
    REWRITE_TIMEOUT_SECONDS: float = 10.0

    # Embeddings
    GOOGLE_API_KEY: str = ""
    EMBEDDING_MODEL: str = "models/text-embedding-004"
    EMBED_TIMEOUT_SECONDS: float = 10.0

    # Chroma
    CHROMA_HOST: str = "localhost"
    CHROMA_PORT: int = 8000
    RAG_COLLECTION_NAME: str = "sql_schemas"
    RAG_TOP_K: int = 3
    RAG_CONNECT_RETRIES: int = 3
    RAG_CONNECT_TIMEOUT_SECONDS: float = 10.0
    RAG_QUERY_TIMEOUT_SECONDS: float = 10.0

    # Truncation
    MAX_SCHEMA_CHARS: int = 10000
    MAX_ANALYSIS_ROWS: int = 50
    MAX_ANALYSIS_CHARS: int = 50000
    MIN_ANALYSIS_ROWS: int = 10

    # Safety
    MAX_QUESTION_LENGTH: int = 500
    MAX_RESULT_ROWS: int = 1000
    QUERY_TIMEOUT_MS: int = 30000

    # Response cache
    CACHE_TTL_SECONDS: int = 300
    CACHE_MAX_ENTRIES: int = 1000

    # Sessions
    SESSION_BACKEND: str = "memory"
    REDIS_URL: str = "redis://localhost:6379/0"
    SESSION_TTL_SECONDS: int = 3600
    SESSION_MAX_TURN_PAIRS: int = 10
    SESSION_MAX_SESSIONS: int = 10000
    REWRITE_HISTORY_PAIRS: int = 3

    @property
    def cors_origins(self) -> List[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]


settings = Settings()
