"""Chat assistance grounded in the current QAPair set."""

from __future__ import annotations

import logging
from typing import List, Mapping, Optional, Sequence

from server.services.llm.prompts import chat_system_prompt, option_letter
from server.services.llm.provider import LLMProvider
from server.services.qa_pairs import QAPair

logger = logging.getLogger("quizling.chat")


def render_qa_context(pairs: Sequence[QAPair]) -> List[str]:
    lines = []
    for i, qa in enumerate(pairs, 1):
        opts = ", ".join(f"{option_letter(j)}. {opt}" for j, opt in enumerate(qa.options))
        lines.append(
            f"{i}. Question: {qa.question}\n"
            f"   Options: {opts}\n"
            f"   Correct Answer: {option_letter(qa.correct_answer)}. {qa.correct_option}\n"
            f"   Explanation: {qa.explanation}\n"
            f"   Page Range: {qa.page_range}"
        )
    return lines


def render_history(history: Sequence[Mapping[str, str]], turns: int = 6) -> List[str]:
    """Last `turns` messages as 'role: content' lines."""
    if turns <= 0:
        return []
    return [f"{m.get('role', 'user')}: {m.get('content', '')}" for m in list(history)[-turns:]]


async def reply(
    provider: LLMProvider,
    message: str,
    pairs: Sequence[QAPair] = (),
    *,
    context: Optional[str] = None,
    history: Sequence[Mapping[str, str]] = (),
    settings=None,
) -> str:
    """One chat turn. LLMError propagates to the caller."""
    system = chat_system_prompt(
        render_qa_context(pairs),
        render_history(history, getattr(settings, "chat_history_turns", 6)),
        context=context,
    )
    logger.debug("Chat turn: %d pairs, %d history messages", len(pairs), len(history))
    text = await provider.complete(
        message,
        system=system,
        temperature=getattr(settings, "chat_temperature", 0.7),
        max_tokens=getattr(settings, "chat_max_tokens", 10000),
        model=getattr(settings, "chat_model", None),
    )
    return text.strip()
