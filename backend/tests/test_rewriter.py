"""
Tests for follow-up question rewriting.
"""
import asyncio

import pytest

from llm.rewriter import QuestionRewriter, format_history
from memory.models import Turn


def _history(pairs):
    turns = []
    for i in range(pairs):
        turns.append(Turn(role="user", content=f"question {i}"))
        turns.append(Turn(role="assistant", content=f"answer {i}"))
    return turns


@pytest.mark.asyncio
async def test_empty_history_skips_model(fake_llm):
    llm = fake_llm()
    rewriter = QuestionRewriter(llm)

    assert await rewriter.rewrite("how many active employees are there", []) == "how many active employees are there"
    assert llm.prompts == []


@pytest.mark.asyncio
async def test_rewrite_uses_recent_turns_only(fake_llm):
    llm = fake_llm(['"How many employees are in the sales department?"'])
    rewriter = QuestionRewriter(llm, history_pairs=3)

    rewritten = await rewriter.rewrite("and in sales?", _history(5))

    assert rewritten == "How many employees are in the sales department?"
    prompt = llm.prompts[0]
    assert "User: question 4" in prompt
    assert "Bot: answer 2" in prompt
    assert "question 1" not in prompt
    assert 'Follow-up Question: "and in sales?"' in prompt


@pytest.mark.asyncio
async def test_rewrite_failure_returns_original(fake_llm):
    llm = fake_llm([RuntimeError("groq unavailable")])
    rewriter = QuestionRewriter(llm)

    assert await rewriter.rewrite("and last year?", _history(1)) == "and last year?"


@pytest.mark.asyncio
async def test_blank_rewrite_returns_original(fake_llm):
    rewriter = QuestionRewriter(fake_llm(['  ""  ']))

    assert await rewriter.rewrite("and last year?", _history(1)) == "and last year?"


@pytest.mark.asyncio
async def test_rewrite_timeout_returns_original():
    class SlowLLM:
        async def complete(self, prompt, model=None, temperature=None):
            await asyncio.sleep(1)
            return "never used"

    rewriter = QuestionRewriter(SlowLLM(), timeout=0.05)

    assert await rewriter.rewrite("and last year?", _history(1)) == "and last year?"


def test_format_history():
    assert format_history(_history(1)) == "User: question 0\nBot: answer 0"
