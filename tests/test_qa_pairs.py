"""Tests for QAPair coercion and model response parsing."""

import asyncio
import json
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from server.services.llm.provider import FakeProvider, LLMError
from server.services.qa_pairs import (
    DEFAULT_CONFIDENCE,
    DEFAULT_OPTIONS,
    DEFAULT_QUESTION,
    DEFAULT_WRONG_EXPLANATIONS,
    Empty,
    ParsedPairs,
    coerce_qa_pair,
    extract_json_object,
    generate_qa_pairs,
    pairs_from_dicts,
    parse_qa_response,
)


def _entry(question="What is osmosis?", correct=1, **extra):
    d = {
        "question": question,
        "options": ["Diffusion of solutes", "Diffusion of water", "Active transport", "Endocytosis"],
        "correctAnswer": correct,
        "explanation": "Osmosis is the movement of water across a membrane.",
        "wrongAnswerExplanations": ["Solutes, not water.", "Requires energy.", "Bulk uptake."],
        "confidence": 0.9,
    }
    d.update(extra)
    return d


def test_well_formed_response_parses():
    raw = json.dumps({"qa_pairs": [_entry(), _entry("What is diffusion?", 0)]})
    result = parse_qa_response(raw, "1-5")
    assert isinstance(result, ParsedPairs)
    assert len(result.pairs) == 2
    first = result.pairs[0]
    assert first.question == "What is osmosis?"
    assert first.correct_answer == 1
    assert first.correct_option == "Diffusion of water"
    assert first.page_range == "1-5"
    assert first.confidence == 0.9


def test_missing_fields_filled_with_defaults():
    result = parse_qa_response('{"qa_pairs":[{"question":"Q1"}]}', "3-7")
    assert isinstance(result, ParsedPairs)
    (pair,) = result.pairs
    assert pair.question == "Q1"
    assert pair.options == DEFAULT_OPTIONS
    assert pair.correct_answer == 0
    assert pair.explanation == ""
    assert pair.wrong_answer_explanations == DEFAULT_WRONG_EXPLANATIONS
    assert pair.confidence == DEFAULT_CONFIDENCE
    assert pair.page_range == "3-7"


def test_prose_around_json_is_ignored():
    raw = "Here are your questions:\n" + json.dumps({"qa_pairs": [_entry()]}) + "\nHope this helps! {not json"
    result = parse_qa_response(raw, "1")
    assert isinstance(result, ParsedPairs)
    assert len(result.pairs) == 1


def test_braces_inside_strings_do_not_confuse_matching():
    payload = {"qa_pairs": [_entry(question="In set notation, what does {x | x > 0} denote?")]}
    raw = "Sure! " + json.dumps(payload) + " trailing }"
    result = parse_qa_response(raw, "2")
    assert isinstance(result, ParsedPairs)
    assert result.pairs[0].question == "In set notation, what does {x | x > 0} denote?"


def test_escaped_quotes_inside_strings():
    text = '{"a": "say \\"}\\" here", "b": 1} tail'
    assert extract_json_object(text) == '{"a": "say \\"}\\" here", "b": 1}'


@pytest.mark.parametrize("raw", ["", "No questions here.", "{ unbalanced", '{"qa_pairs": [1, 2,]}'])
def test_unusable_response_is_empty(raw):
    assert isinstance(parse_qa_response(raw, "1"), Empty)


def test_object_without_qa_pairs_list_is_empty():
    assert isinstance(parse_qa_response('{"questions": []}', "1"), Empty)
    assert isinstance(parse_qa_response('{"qa_pairs": "none"}', "1"), Empty)


def test_empty_qa_pairs_list_parses_to_nothing():
    result = parse_qa_response('{"qa_pairs": []}', "1")
    assert isinstance(result, ParsedPairs)
    assert result.pairs == ()


def test_partial_arrays_replaced_wholesale():
    pair = coerce_qa_pair({"options": ["only", "two"], "wrongAnswerExplanations": ["x"]}, "1")
    assert pair.options == DEFAULT_OPTIONS
    assert pair.wrong_answer_explanations == DEFAULT_WRONG_EXPLANATIONS


@pytest.mark.parametrize("value,expected", [
    (2, 2),
    (3.0, 3),
    (4, 0),
    (-1, 0),
    (1.5, 0),
    ("2", 0),
    (True, 0),
    (None, 0),
])
def test_correct_answer_coercion(value, expected):
    assert coerce_qa_pair({"correctAnswer": value}, "1").correct_answer == expected


@pytest.mark.parametrize("value,expected", [
    (0.4, 0.4),
    (1.7, 1.0),
    (-0.5, 0.0),
    (0, DEFAULT_CONFIDENCE),
    (None, DEFAULT_CONFIDENCE),
    ("high", DEFAULT_CONFIDENCE),
    (float("nan"), DEFAULT_CONFIDENCE),
])
def test_confidence_coercion(value, expected):
    assert coerce_qa_pair({"confidence": value}, "1").confidence == expected


def test_numeric_question_kept_as_text():
    assert coerce_qa_pair({"question": 42}, "1").question == "42"
    assert coerce_qa_pair({"question": 0}, "1").question == DEFAULT_QUESTION
    assert coerce_qa_pair({"question": ["a"]}, "1").question == DEFAULT_QUESTION


def test_blank_question_gets_placeholder():
    assert coerce_qa_pair({"question": "   "}, "1").question == DEFAULT_QUESTION
    assert coerce_qa_pair("not a dict", "1").question == DEFAULT_QUESTION


def test_wrong_explanation_skips_correct_index():
    pair = coerce_qa_pair(_entry(correct=1), "1")
    assert pair.wrong_explanation_for(0) == "Solutes, not water."
    assert pair.wrong_explanation_for(1) is None
    assert pair.wrong_explanation_for(2) == "Requires energy."
    assert pair.wrong_explanation_for(3) == "Bulk uptake."


def test_to_dict_uses_wire_keys():
    d = coerce_qa_pair(_entry(), "4-8").to_dict()
    assert set(d) == {
        "question", "options", "correctAnswer", "explanation",
        "wrongAnswerExplanations", "page_range", "confidence",
    }
    assert d["page_range"] == "4-8"
    assert isinstance(d["options"], list)


def test_pairs_from_dicts_keeps_supplied_page_range():
    pairs = pairs_from_dicts([{**_entry(), "page_range": "9-12"}, {"question": "Q"}])
    assert pairs[0].page_range == "9-12"
    assert pairs[1].page_range == ""


def test_generate_qa_pairs_returns_pairs():
    provider = FakeProvider(responses=[json.dumps({"qa_pairs": [_entry()]})])
    pairs = asyncio.run(generate_qa_pairs(provider, "Osmosis text", "1-5"))
    assert len(pairs) == 1
    assert "Osmosis text" in provider.calls[0]["prompt"]


def test_generate_qa_pairs_swallows_provider_error(caplog):
    provider = FakeProvider(error=LLMError(kind="timeout", message="slow"))
    with caplog.at_level("WARNING", logger="quizling.llm"):
        pairs = asyncio.run(generate_qa_pairs(provider, "text", "1-5"))
    assert pairs == []
    assert "1-5" in caplog.text


def test_generate_qa_pairs_unparseable_reply_is_empty():
    provider = FakeProvider(responses=["I could not find any questions."])
    assert asyncio.run(generate_qa_pairs(provider, "text", "2")) == []
