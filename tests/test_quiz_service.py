"""Tests for quiz grading."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from server.services.qa_pairs import coerce_qa_pair
from server.services.quiz_service import grade_quiz


def _pair(question, correct):
    return coerce_qa_pair({
        "question": question,
        "options": ["A", "B", "C", "D"],
        "correctAnswer": correct,
        "explanation": f"{question} explained",
        "wrongAnswerExplanations": ["w1", "w2", "w3"],
    }, "1")


def test_all_correct_scores_100():
    pairs = [_pair("Q1", 0), _pair("Q2", 3)]
    result = grade_quiz(pairs, {0: 0, 1: 3})
    assert result["score"] == 100
    assert result["correctAnswers"] == 2
    assert all(r["isCorrect"] for r in result["results"])


def test_score_is_rounded_percentage():
    pairs = [_pair("Q1", 0), _pair("Q2", 1), _pair("Q3", 2)]
    result = grade_quiz(pairs, {0: 0, 1: 0, 2: 0})
    assert result["totalQuestions"] == 3
    assert result["correctAnswers"] == 1
    assert result["score"] == 33


def test_unanswered_counts_wrong_without_explanation():
    result = grade_quiz([_pair("Q1", 1)], {})
    row = result["results"][0]
    assert row["selected"] is None
    assert row["isCorrect"] is False
    assert row["wrongAnswerExplanation"] is None
    assert result["score"] == 0


def test_wrong_answer_gets_matching_explanation():
    # correct index 1: wrong explanations map to options 0, 2, 3
    result = grade_quiz([_pair("Q1", 1)], {0: 3})
    row = result["results"][0]
    assert row["correct"] == 1
    assert row["wrongAnswerExplanation"] == "w3"
    assert row["explanation"] == "Q1 explained"


def test_empty_quiz():
    result = grade_quiz([], {})
    assert result == {"totalQuestions": 0, "correctAnswers": 0, "score": 0, "results": []}
