"""
Multiple-choice QAPair type and the pair generator.

The model is asked for {"qa_pairs": [...]}. Its reply may carry prose around
the JSON, so the first balanced top-level object is located by brace matching.
Every entry is coerced field by field into a valid QAPair (coerce_qa_pair is
total); only a reply with no parseable object at all yields nothing.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from server.services.llm.prompts import chunk_qa_prompt
from server.services.llm.provider import ImageInput, LLMProvider

logger = logging.getLogger("quizling.llm")

NUM_OPTIONS = 4
DEFAULT_QUESTION = "Unknown question"
DEFAULT_OPTIONS = ("Option A", "Option B", "Option C", "Option D")
DEFAULT_WRONG_EXPLANATIONS = ("Wrong A", "Wrong B", "Wrong C")
DEFAULT_CONFIDENCE = 0.7
IMAGE_PAGE_RANGE = "Extracted from image"


@dataclass(frozen=True)
class QAPair:
    question: str
    options: Tuple[str, str, str, str]
    correct_answer: int
    explanation: str
    wrong_answer_explanations: Tuple[str, str, str]
    page_range: str
    confidence: float

    @property
    def correct_option(self) -> str:
        return self.options[self.correct_answer]

    def wrong_explanation_for(self, option_index: int) -> Optional[str]:
        """Explanation for a wrong option; the list skips the correct index."""
        if option_index == self.correct_answer or not 0 <= option_index < NUM_OPTIONS:
            return None
        slot = option_index if option_index < self.correct_answer else option_index - 1
        return self.wrong_answer_explanations[slot]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "question": self.question,
            "options": list(self.options),
            "correctAnswer": self.correct_answer,
            "explanation": self.explanation,
            "wrongAnswerExplanations": list(self.wrong_answer_explanations),
            "page_range": self.page_range,
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class ParsedPairs:
    pairs: Tuple[QAPair, ...]


@dataclass(frozen=True)
class Empty:
    reason: str


GenerationResult = Union[ParsedPairs, Empty]


# ---------------------------------------------------------------------------
# Field coercion
# ---------------------------------------------------------------------------

def _is_number(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool)


def _coerce_question(v: Any) -> str:
    if _is_number(v) and v:
        v = str(v)
    if isinstance(v, str) and v.strip():
        return v.strip()
    return DEFAULT_QUESTION


def _coerce_string_list(v: Any, length: int, default: Tuple[str, ...]) -> Tuple[str, ...]:
    # All-or-nothing: a partial list is replaced wholesale.
    if isinstance(v, (list, tuple)) and len(v) == length:
        return tuple("" if x is None else str(x) for x in v)
    return default


def _coerce_correct_answer(v: Any) -> int:
    if _is_number(v) and not (isinstance(v, float) and not v.is_integer()):
        idx = int(v)
        if 0 <= idx < NUM_OPTIONS:
            return idx
    return 0


def _coerce_confidence(v: Any) -> float:
    if not _is_number(v) or not v or math.isnan(v):
        return DEFAULT_CONFIDENCE
    return float(min(1.0, max(0.0, v)))


def coerce_qa_pair(item: Any, page_range: Optional[str] = None) -> QAPair:
    """Map a loosely typed record to a QAPair. Never raises."""
    if not isinstance(item, Mapping):
        item = {}
    if page_range is None:
        raw_range = item.get("page_range")
        page_range = raw_range if isinstance(raw_range, str) else ""
    explanation = item.get("explanation")
    return QAPair(
        question=_coerce_question(item.get("question")),
        options=_coerce_string_list(item.get("options"), NUM_OPTIONS, DEFAULT_OPTIONS),
        correct_answer=_coerce_correct_answer(item.get("correctAnswer")),
        explanation=explanation if isinstance(explanation, str) else "",
        wrong_answer_explanations=_coerce_string_list(
            item.get("wrongAnswerExplanations"), NUM_OPTIONS - 1, DEFAULT_WRONG_EXPLANATIONS,
        ),
        page_range=page_range,
        confidence=_coerce_confidence(item.get("confidence")),
    )


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------

def extract_json_object(text: str) -> Optional[str]:
    """
    Return the first balanced top-level {...} in text, or None.

    Braces inside JSON strings are ignored.
    """
    if not text:
        return None
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start:i + 1]
        # Unbalanced from this brace; nothing later can close it either.
        return None
    return None


def parse_qa_response(raw: str, page_range: str) -> GenerationResult:
    """Parse a model reply into ParsedPairs, or Empty when no object is usable."""
    json_str = extract_json_object(raw)
    if json_str is None:
        return Empty("No valid JSON found in the response")
    try:
        data = json.loads(json_str)
    except json.JSONDecodeError as e:
        return Empty(f"Invalid JSON: {e}")
    entries = data.get("qa_pairs") if isinstance(data, dict) else None
    if not isinstance(entries, list):
        return Empty("Response has no qa_pairs list")
    return ParsedPairs(tuple(coerce_qa_pair(item, page_range) for item in entries))


def pairs_from_dicts(items: Sequence[Any]) -> List[QAPair]:
    """Rehydrate QAPairs supplied by a caller (chat context, quiz grading)."""
    return [coerce_qa_pair(item) for item in items]


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------

async def request_qa_pairs(
    provider: LLMProvider,
    prompt: str,
    page_range: str,
    *,
    system: Optional[str] = None,
    json_mode: bool = False,
    image: Optional[ImageInput] = None,
    temperature: Optional[float] = None,
    max_tokens: Optional[int] = None,
    model: Optional[str] = None,
) -> GenerationResult:
    """One model call plus parsing. Provider errors propagate."""
    raw = await provider.complete(
        prompt,
        system=system,
        json_mode=json_mode,
        image=image,
        temperature=temperature,
        max_tokens=max_tokens,
        model=model,
    )
    return parse_qa_response(raw, page_range)


async def generate_qa_pairs(
    provider: LLMProvider,
    text: str,
    page_range: str,
    *,
    temperature: Optional[float] = None,
) -> List[QAPair]:
    """Generate pairs for one chunk. Any failure yields an empty list."""
    try:
        result = await request_qa_pairs(
            provider, chunk_qa_prompt(text), page_range, temperature=temperature,
        )
    except Exception as e:
        logger.warning("Q&A generation failed for pages %s: %s", page_range, e)
        return []
    if isinstance(result, Empty):
        logger.warning("Unparseable model response for pages %s: %s", page_range, result.reason)
        return []
    return list(result.pairs)
