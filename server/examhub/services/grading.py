"""
Answer correlation and scoring.

Submitted answers either all carry a question id, in which case they are
matched to the answer key by id, or none do, in which case they are matched
by position and must cover every question.
"""
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple

from examhub.errors import ValidationFailed


@dataclass
class GradedAnswer:
    question_id: int
    selected_answer: Optional[str]
    is_correct: bool

    def to_dict(self) -> dict:
        return {
            "question_id": self.question_id,
            "selected_answer": self.selected_answer,
            "is_correct": self.is_correct,
        }


@dataclass
class GradeResult:
    answers: List[GradedAnswer] = field(default_factory=list)
    total: int = 0

    @property
    def correct(self) -> int:
        return sum(1 for a in self.answers if a.is_correct)

    @property
    def wrong(self) -> int:
        return self.total - self.correct

    @property
    def wrong_question_ids(self) -> List[int]:
        return [a.question_id for a in self.answers if not a.is_correct]

    @property
    def percentage(self) -> float:
        if not self.total:
            return 0.0
        return self.correct / self.total * 100


def grade_answers(answer_key: Sequence[Tuple[int, str]], answers: Iterable) -> GradeResult:
    """
    Grade answers against an ordered answer key.

    Args:
        answer_key: (question_id, correct_answer) pairs in exam order
        answers: objects with ``question_id`` (optional) and ``selected_answer``

    Returns:
        GradeResult with one GradedAnswer per question, in exam order
    """
    answers = list(answers)
    with_ids = [a for a in answers if a.question_id is not None]

    if with_ids and len(with_ids) != len(answers):
        raise ValidationFailed(
            "Validation errors",
            [{"field": "answers", "msg": "Either every answer or none must carry a questionId"}],
        )

    if with_ids:
        selected = _correlate_by_id(answer_key, answers)
    else:
        selected = _correlate_by_position(answer_key, answers)

    result = GradeResult(total=len(answer_key))
    for (question_id, correct_answer), choice in zip(answer_key, selected):
        result.answers.append(
            GradedAnswer(
                question_id=question_id,
                selected_answer=choice,
                is_correct=choice is not None and choice == correct_answer,
            )
        )
    return result


def _correlate_by_id(answer_key, answers) -> List[Optional[str]]:
    known = {question_id for question_id, _ in answer_key}
    chosen = {}
    errors = []
    for i, answer in enumerate(answers):
        if answer.question_id not in known:
            errors.append({"field": f"answers.{i}.questionId", "msg": f"Unknown question {answer.question_id}"})
        elif answer.question_id in chosen:
            errors.append({"field": f"answers.{i}.questionId", "msg": f"Duplicate answer for question {answer.question_id}"})
        else:
            chosen[answer.question_id] = answer.selected_answer
    if errors:
        raise ValidationFailed("Validation errors", errors)
    # Unanswered questions are graded as wrong
    return [chosen.get(question_id) for question_id, _ in answer_key]


def _correlate_by_position(answer_key, answers) -> List[Optional[str]]:
    if len(answers) != len(answer_key):
        raise ValidationFailed(
            "Validation errors",
            [{
                "field": "answers",
                "msg": f"Expected {len(answer_key)} answers, got {len(answers)}",
            }],
        )
    return [a.selected_answer for a in answers]
