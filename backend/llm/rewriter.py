from typing import List, Optional

from core.logging import get_logger, preview
from core.retry import with_deadline
from llm.prompts import standalone_question_prompt
from memory.models import Turn, trim_turns

logger = get_logger(__name__)


def format_history(turns: List[Turn]) -> str:
    return "\n".join(
        f"{'User' if turn.role == 'user' else 'Bot'}: {turn.content}" for turn in turns
    )


class QuestionRewriter:
    """
    Folds a follow-up question and recent turns into one standalone question.
    Never fails: any error returns the question as asked.
    """

    def __init__(self, llm, model: Optional[str] = None, history_pairs: int = 3, timeout: float = 10.0):
        self.llm = llm
        self.model = model
        self.history_pairs = history_pairs
        self.timeout = timeout

    async def rewrite(self, question: str, history: List[Turn]) -> str:
        if not history:
            return question

        recent = trim_turns(history, self.history_pairs)
        prompt = standalone_question_prompt.format(history=format_history(recent), question=question)
        try:
            rewritten = await with_deadline(
                self.llm.complete(prompt, model=self.model), self.timeout, "Question rewrite"
            )
        except Exception as e:
            logger.warning(f"Failed to rewrite question, using original: {e}")
            return question

        rewritten = (rewritten or "").strip().strip('"').strip()
        if not rewritten:
            return question
        logger.debug(f"Rewrote '{preview(question)}' -> '{preview(rewritten)}'")
        return rewritten
