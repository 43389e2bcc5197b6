from typing import Dict, List, Optional, Tuple

from langchain_google_genai import GoogleGenerativeAIEmbeddings
from langchain_groq import ChatGroq

from core.config import settings
from core.logging import get_logger

logger = get_logger(__name__)


def get_llm(model: Optional[str] = None, temperature: Optional[float] = None) -> ChatGroq:
    model = model or settings.GROQ_SQL_MODEL
    logger.debug(f"Initializing ChatGroq with model: {model}")
    return ChatGroq(
        model=model,
        temperature=settings.LLM_TEMPERATURE if temperature is None else temperature,
        api_key=settings.GROQ_API_KEY,
        max_retries=0,
    )


def get_embeddings() -> GoogleGenerativeAIEmbeddings:
    return GoogleGenerativeAIEmbeddings(
        model=settings.EMBEDDING_MODEL,
        google_api_key=settings.GOOGLE_API_KEY,
        task_type="retrieval_query",
    )


class CompletionClient:
    """
    Text completion (Groq chat models) and embeddings (Google) behind one
    small async surface. Clients are built on first use.
    """

    def __init__(self, llm_factory=get_llm, embeddings_factory=get_embeddings):
        self._llm_factory = llm_factory
        self._embeddings_factory = embeddings_factory
        self._llms: Dict[Tuple[str, float], ChatGroq] = {}
        self._embeddings = None

    def _llm(self, model: Optional[str], temperature: Optional[float]):
        key = (model or settings.GROQ_SQL_MODEL, settings.LLM_TEMPERATURE if temperature is None else temperature)
        if key not in self._llms:
            self._llms[key] = self._llm_factory(*key)
        return self._llms[key]

    async def complete(self, prompt: str, model: Optional[str] = None, temperature: Optional[float] = None) -> str:
        response = await self._llm(model, temperature).ainvoke(prompt)
        if hasattr(response, "content"):
            return str(response.content).strip()
        return str(response).strip()

    async def embed(self, text: str) -> List[float]:
        if self._embeddings is None:
            self._embeddings = self._embeddings_factory()
        vector = await self._embeddings.aembed_query(text)
        if not vector:
            raise ValueError("Failed to generate embedding for question")
        return list(vector)
