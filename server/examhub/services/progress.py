"""
Student progress ledger.

Each (student, exam) pair has one ExamProgress row moving through
locked -> unlocked -> in_progress -> completed. Only a teacher repeat moves a
completed entry back (to not_started).
"""
import logging
import random
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from examhub.config import settings
from examhub.errors import Conflict, NotFound, PermissionDenied
from examhub.models import Exam, ExamProgress, ProgressStatus, ReviewExam, User, UserRole
from examhub.models.progress import ATTEMPTED_STATUSES, SUBMITTABLE_STATUSES
from examhub.services.grading import grade_answers
from examhub.services.progression import unlock_next_exam
from examhub.services.review import delete_review_exams, generate_review_exam

logger = logging.getLogger(__name__)

ALREADY_COMPLETED = "Exam already completed. You can only take each exam once."


def _now() -> datetime:
    return datetime.now(timezone.utc)


def get_exam_or_404(db: Session, exam_id: int) -> Exam:
    exam = db.get(Exam, exam_id)
    if exam is None:
        raise NotFound("Exam not found")
    return exam


def get_student_or_404(db: Session, student_id: int) -> User:
    student = db.get(User, student_id)
    if student is None or student.role != UserRole.STUDENT:
        raise NotFound("Student not found")
    return student


def get_entry(db: Session, student_id: int, exam_id: int) -> Optional[ExamProgress]:
    return (
        db.query(ExamProgress)
        .filter(ExamProgress.student_id == student_id, ExamProgress.exam_id == exam_id)
        .first()
    )


def recompute_student_totals(db: Session, student: User) -> None:
    """Total score and overall percentage over every completed entry."""
    total_score, total_questions = (
        db.query(
            func.coalesce(func.sum(ExamProgress.score), 0),
            func.coalesce(func.sum(ExamProgress.total_questions), 0),
        )
        .filter(
            ExamProgress.student_id == student.id,
            ExamProgress.status == ProgressStatus.COMPLETED.value,
        )
        .one()
    )
    student.total_score = int(total_score)
    student.overall_percentage = (total_score / total_questions * 100) if total_questions else 0.0


def start_exam(db: Session, student: User, exam_id: int) -> ExamProgress:
    exam = get_exam_or_404(db, exam_id)
    entry = get_entry(db, student.id, exam.id)
    if entry is None:
        raise NotFound("Exam progress not found")
    if entry.status == ProgressStatus.COMPLETED.value:
        raise Conflict(ALREADY_COMPLETED)
    if entry.status == ProgressStatus.LOCKED.value:
        raise PermissionDenied("Exam is locked")

    if entry.status != ProgressStatus.IN_PROGRESS.value:
        entry.status = ProgressStatus.IN_PROGRESS.value
        entry.started_at = _now()
        entry.total_questions = len(exam.questions)
        db.commit()
    return entry


def _record_exam_attempt(db: Session, exam_id: int, percentage: float) -> None:
    """Fold one attempt into the exam statistics in a single UPDATE."""
    passed = 1 if percentage >= settings.pass_percentage else 0
    db.query(Exam).filter(Exam.id == exam_id).update(
        {
            Exam.average_score: (Exam.average_score * Exam.total_attempts + percentage) / (Exam.total_attempts + 1),
            Exam.total_attempts: Exam.total_attempts + 1,
            Exam.pass_count: Exam.pass_count + passed,
        },
        synchronize_session=False,
    )


def submit_exam(
    db: Session,
    student: User,
    exam_id: int,
    answers,
    rng: Optional[random.Random] = None,
) -> Tuple[dict, dict]:
    """
    Grade a submission and complete the student's entry for the exam.

    The completed transition is a conditional UPDATE, so of two concurrent
    submissions for the same entry only one is graded and counted.

    Returns:
        (result, event) where result is the response body and event the
        ``exam-submitted`` notification payload
    """
    exam = get_exam_or_404(db, exam_id)
    entry = get_entry(db, student.id, exam.id)
    if entry is None:
        raise NotFound("Exam progress not found")
    if entry.status == ProgressStatus.COMPLETED.value:
        raise Conflict(ALREADY_COMPLETED)
    if entry.status not in SUBMITTABLE_STATUSES:
        raise PermissionDenied("Exam is locked")

    answer_key = [(q.id, q.correct_answer) for q in exam.questions]
    result = grade_answers(answer_key, answers)
    completed_at = _now()

    claimed = (
        db.query(ExamProgress)
        .filter(
            ExamProgress.id == entry.id,
            ExamProgress.status.in_(SUBMITTABLE_STATUSES),
        )
        .update(
            {
                ExamProgress.status: ProgressStatus.COMPLETED.value,
                ExamProgress.score: result.correct,
                ExamProgress.percentage: result.percentage,
                ExamProgress.total_questions: result.total,
                ExamProgress.completed_at: completed_at,
                ExamProgress.answers: [a.to_dict() for a in result.answers],
                ExamProgress.wrong_questions: result.wrong_question_ids,
            },
            synchronize_session=False,
        )
    )
    if claimed == 0:
        db.rollback()
        logger.warning("Concurrent submission rejected for student %s exam %s", student.id, exam.id)
        raise Conflict(ALREADY_COMPLETED)

    db.refresh(entry)

    review = None
    if result.wrong_question_ids:
        review = generate_review_exam(db, student, exam, result.wrong_question_ids, rng)
        entry.review_exam_id = review.id if review else None

    db.flush()
    recompute_student_totals(db, student)
    unlock_next_exam(db, student.id, exam.exam_group, exam.order)
    _record_exam_attempt(db, exam.id, result.percentage)
    db.commit()

    logger.info(
        "Student %s completed exam %s: %d/%d (%.1f%%)",
        student.id, exam.id, result.correct, result.total, result.percentage,
    )

    body = {
        "score": result.correct,
        "percentage": result.percentage,
        "correct_answers": result.correct,
        "total_questions": result.total,
        "wrong_answers": result.wrong,
        "has_review_exam": review is not None,
        "review_exam_id": review.id if review else None,
    }
    event = {
        "studentId": student.id,
        "studentName": student.name,
        "examId": exam.id,
        "examTitle": exam.title,
        "score": result.correct,
        "percentage": result.percentage,
        "examGroup": exam.exam_group,
    }
    return body, event


def repeat_exam(db: Session, exam_id: int, student_id: int) -> dict:
    """Teacher reset of one student's entry; drops the linked review exam."""
    student = get_student_or_404(db, student_id)
    exam = get_exam_or_404(db, exam_id)
    entry = get_entry(db, student.id, exam.id)
    if entry is None:
        raise NotFound("Student has no progress for this exam")

    entry.reset(total_questions=len(exam.questions))
    db.flush()
    removed = delete_review_exams(db, student.id, exam.id)
    recompute_student_totals(db, student)
    db.commit()

    logger.info("Exam %s reset for student %s (%d review exams removed)", exam.id, student.id, removed)
    return {
        "exam_id": exam.id,
        "exam_title": exam.title,
        "student_id": student.id,
        "student_name": student.name,
    }


def best_review_percentage(db: Session, entry: ExamProgress) -> float:
    if not entry.review_exam_id:
        return 0.0
    review = db.get(ReviewExam, entry.review_exam_id)
    return review.best_percentage if review else 0.0


def progress_view(db: Session, entry: ExamProgress) -> dict:
    """Progress entry with exam title and best review percentage"""
    return {
        "id": entry.id,
        "exam_id": entry.exam_id,
        "exam_group": entry.exam_group,
        "status": entry.status,
        "score": entry.score,
        "percentage": entry.percentage,
        "total_questions": entry.total_questions,
        "started_at": entry.started_at,
        "completed_at": entry.completed_at,
        "answers": entry.answers or [],
        "wrong_questions": entry.wrong_questions or [],
        "review_exam_id": entry.review_exam_id,
        "exam_title": entry.exam.title if entry.exam else None,
        "exam_order": entry.exam.order if entry.exam else None,
        "best_review_score": best_review_percentage(db, entry),
    }


def list_progress(db: Session, student: User) -> List[dict]:
    """Entries for active exams, sorted by (group, order)."""
    entries = (
        db.query(ExamProgress)
        .join(Exam, Exam.id == ExamProgress.exam_id)
        .filter(ExamProgress.student_id == student.id, Exam.is_active.is_(True))
        .order_by(Exam.exam_group, Exam.order)
        .all()
    )
    return [progress_view(db, e) for e in entries]


def get_submission(db: Session, exam_id: int, student_id: int) -> dict:
    exam = get_exam_or_404(db, exam_id)
    entry = get_entry(db, student_id, exam.id)
    if entry is None or entry.status not in ATTEMPTED_STATUSES:
        raise NotFound("Student has not attempted this exam yet")
    return {
        "exam": exam,
        "status": entry.status,
        "score": entry.score or 0,
        "total_questions": entry.total_questions or len(exam.questions),
        "percentage": entry.percentage or 0.0,
        "answers": entry.answers or [],
        "started_at": entry.started_at,
        "completed_at": entry.completed_at,
    }


def get_mistakes(db: Session, exam_id: int, student_id: int) -> List[dict]:
    """Wrong answers of a student's attempt, with the question they belong to."""
    exam = get_exam_or_404(db, exam_id)
    get_student_or_404(db, student_id)
    entry = get_entry(db, student_id, exam.id)
    if entry is None or entry.status not in ATTEMPTED_STATUSES:
        return []

    by_id = {q.id: q for q in exam.questions}
    mistakes = []
    for answer in entry.answers or []:
        question = by_id.get(answer.get("question_id"))
        if question is None or answer.get("selected_answer") == question.correct_answer:
            continue
        mistakes.append({
            "question": question,
            "student_answer": answer.get("selected_answer"),
            "correct_answer": question.correct_answer,
            "is_correct": bool(answer.get("is_correct")),
        })
    return mistakes
