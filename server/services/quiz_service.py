"""Grade a submitted quiz against its QAPairs."""

from typing import Any, Dict, List, Mapping, Optional, Sequence

from server.services.qa_pairs import QAPair


def grade_quiz(pairs: Sequence[QAPair], answers: Mapping[int, Optional[int]]) -> Dict[str, Any]:
    """
    Score answers (question index -> chosen option index).

    Unanswered questions count as wrong. Score is a rounded percentage.
    """
    results: List[Dict[str, Any]] = []
    correct = 0
    for i, pair in enumerate(pairs):
        selected = answers.get(i)
        is_correct = selected is not None and selected == pair.correct_answer
        if is_correct:
            correct += 1
        row: Dict[str, Any] = {
            "index": i,
            "selected": selected,
            "correct": pair.correct_answer,
            "isCorrect": is_correct,
            "explanation": pair.explanation,
            "wrongAnswerExplanation": None,
        }
        if selected is not None and not is_correct:
            row["wrongAnswerExplanation"] = pair.wrong_explanation_for(selected)
        results.append(row)

    total = len(pairs)
    score = round(correct / total * 100) if total else 0
    return {
        "totalQuestions": total,
        "correctAnswers": correct,
        "score": score,
        "results": results,
    }
