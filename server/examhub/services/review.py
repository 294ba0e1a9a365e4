"""
Review exams: practice exams assembled from the wrong answers of one attempt.

Questions are copied into the review exam when it is built, so later edits to
the source exam do not change how a review attempt is graded.
"""
import logging
import math
import random
from typing import List, MutableSequence, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from examhub.config import settings
from examhub.errors import NotFound, PermissionDenied
from examhub.models import Exam, ReviewAttempt, ReviewExam, ReviewQuestion, User
from examhub.services.grading import grade_answers

logger = logging.getLogger(__name__)


def review_time_limit(question_count: int) -> int:
    """Minutes allowed for a review exam of ``question_count`` questions."""
    per_question = math.ceil(settings.review_minutes_per_question * question_count)
    return max(settings.review_min_time_limit, per_question)


def shuffle_in_place(items: MutableSequence, rng: Optional[random.Random] = None) -> None:
    """Fisher-Yates shuffle"""
    rng = rng or random
    for i in range(len(items) - 1, 0, -1):
        j = rng.randint(0, i)
        items[i], items[j] = items[j], items[i]


def pick_review_questions(
    wrong_question_ids: Sequence[int],
    exam: Exam,
    rng: Optional[random.Random] = None,
) -> List[Tuple[int, int]]:
    """Return shuffled (question_id, original_question_index) pairs."""
    index_of = {q.id: i for i, q in enumerate(exam.questions)}
    picked = [(qid, index_of[qid]) for qid in wrong_question_ids if qid in index_of]
    shuffle_in_place(picked, rng)
    return picked


def generate_review_exam(
    db: Session,
    student: User,
    exam: Exam,
    wrong_question_ids: Sequence[int],
    rng: Optional[random.Random] = None,
) -> Optional[ReviewExam]:
    """Build and add a review exam; returns None when nothing was wrong."""
    picked = pick_review_questions(wrong_question_ids, exam, rng)
    if not picked:
        return None

    review = ReviewExam(
        student_id=student.id,
        original_exam_id=exam.id,
        title=f"امتحان مراجعة - {exam.title}",
        description=f"امتحان مراجعة للأسئلة الخاطئة من {exam.title}",
        time_limit=review_time_limit(len(picked)),
    )
    for position, (question_id, original_index) in enumerate(picked):
        source = exam.questions[original_index]
        review.questions.append(
            ReviewQuestion(
                position=position,
                question_id=question_id,
                original_question_index=original_index,
                question_image=source.question_image,
                correct_answer=source.correct_answer,
                explanation=source.explanation or "",
            )
        )
    db.add(review)
    db.flush()
    logger.info(
        "Review exam %s built for student %s from exam %s (%d questions)",
        review.id, student.id, exam.id, len(picked),
    )
    return review


def delete_review_exams(db: Session, student_id: int, exam_id: int) -> int:
    reviews = (
        db.query(ReviewExam)
        .filter(ReviewExam.student_id == student_id, ReviewExam.original_exam_id == exam_id)
        .all()
    )
    for review in reviews:
        db.delete(review)
    return len(reviews)


def list_student_reviews(db: Session, student: User) -> List[ReviewExam]:
    return (
        db.query(ReviewExam)
        .filter(ReviewExam.student_id == student.id, ReviewExam.is_active.is_(True))
        .order_by(ReviewExam.created_at.desc(), ReviewExam.id.desc())
        .all()
    )


def get_owned_review(db: Session, review_exam_id: int, student: User) -> ReviewExam:
    review = db.get(ReviewExam, review_exam_id)
    if review is None:
        raise NotFound("Review exam not found")
    if review.student_id != student.id:
        raise PermissionDenied("Access denied. This review exam does not belong to you.")
    return review


def submit_review_exam(db: Session, review_exam_id: int, student: User, answers) -> dict:
    """Grade a review attempt against the snapshot and record it."""
    review = get_owned_review(db, review_exam_id, student)

    answer_key = [(q.question_id, q.correct_answer) for q in review.questions]
    result = grade_answers(answer_key, answers)

    attempt = ReviewAttempt(
        attempt_number=review.current_attempt_number,
        score=result.correct,
        percentage=result.percentage,
        answers=[a.to_dict() for a in result.answers],
    )
    review.attempts.append(attempt)
    review.total_attempts = (review.total_attempts or 0) + 1

    if result.percentage > (review.best_percentage or 0.0):
        review.best_score = result.correct
        review.best_percentage = result.percentage
    # Ties with the previous best also count as a best score
    is_best = result.percentage == (review.best_percentage or 0.0)

    db.commit()

    return {
        "score": result.correct,
        "percentage": result.percentage,
        "correct_answers": result.correct,
        "total_questions": result.total,
        "wrong_answers": result.wrong,
        "attempt_number": attempt.attempt_number,
        "is_best_score": is_best,
    }
