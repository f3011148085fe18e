"""Tests for chat assistance."""

import asyncio
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from server.config import Settings
from server.services import chat_service
from server.services.llm.provider import FakeProvider, LLMError
from server.services.qa_pairs import coerce_qa_pair


def _pair():
    return coerce_qa_pair({
        "question": "What is osmosis?",
        "options": ["Solute flow", "Water flow", "Pumping", "Engulfing"],
        "correctAnswer": 1,
        "explanation": "Water crosses the membrane.",
    }, "3-7")


def test_render_qa_context_lists_correct_option():
    (line,) = chat_service.render_qa_context([_pair()])
    assert line.startswith("1. Question: What is osmosis?")
    assert "A. Solute flow, B. Water flow, C. Pumping, D. Engulfing" in line
    assert "Correct Answer: B. Water flow" in line
    assert "Page Range: 3-7" in line


def test_render_history_keeps_last_turns():
    history = [{"role": "user", "content": f"m{i}"} for i in range(10)]
    lines = chat_service.render_history(history, turns=6)
    assert lines == [f"user: m{i}" for i in range(4, 10)]
    assert chat_service.render_history(history, turns=0) == []


def test_reply_sends_grounded_system_prompt():
    provider = FakeProvider(responses=["  Osmosis moves water.  "])
    settings = Settings(openai_api_key="sk-test", chat_model="gpt-4.1-mini")
    text = asyncio.run(chat_service.reply(
        provider,
        "Explain osmosis",
        [_pair()],
        context="Biology chapter 3",
        history=[{"role": "assistant", "content": "Hi!"}],
        settings=settings,
    ))
    assert text == "Osmosis moves water."
    call = provider.calls[0]
    assert call["prompt"] == "Explain osmosis"
    assert "Additional Context: Biology chapter 3" in call["system"]
    assert "Available Q&A Content:" in call["system"]
    assert "Recent Conversation:\nassistant: Hi!" in call["system"]
    assert call["temperature"] == 0.7
    assert call["max_tokens"] == 10000
    assert call["model"] == "gpt-4.1-mini"


def test_reply_without_pairs_omits_sections():
    provider = FakeProvider(responses=["ok"])
    asyncio.run(chat_service.reply(provider, "hi"))
    system = provider.calls[0]["system"]
    assert "Available Q&A Content" not in system
    assert "Recent Conversation" not in system


def test_reply_propagates_provider_error():
    provider = FakeProvider(error=LLMError(kind="unavailable", message="down"))
    with pytest.raises(LLMError):
        asyncio.run(chat_service.reply(provider, "hi"))
