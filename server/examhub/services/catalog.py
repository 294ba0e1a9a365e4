"""
Exam catalog: authoring, listing and free-exam management.
"""
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from examhub.errors import Conflict, NotFound, ValidationFailed
from examhub.models import BLANK_QUESTION_IMAGE, Exam, ExamProgress, Question, User
from examhub.schemas import ExamCreate, ExamUpdate, QuestionIn

logger = logging.getLogger(__name__)

DUPLICATE_SLOT = "Exam with this group and order already exists"


def list_active_exams(db: Session) -> List[Exam]:
    return (
        db.query(Exam)
        .filter(Exam.is_active.is_(True))
        .order_by(Exam.exam_group, Exam.order)
        .all()
    )


def list_group(db: Session, group_number: int) -> List[Exam]:
    if group_number < 1 or group_number > 8:
        raise ValidationFailed("Group number must be between 1 and 8")
    return (
        db.query(Exam)
        .filter(Exam.exam_group == group_number, Exam.is_active.is_(True))
        .order_by(Exam.order)
        .all()
    )


def get_exam(db: Session, exam_id: int) -> Exam:
    exam = db.get(Exam, exam_id)
    if exam is None:
        raise NotFound("Exam not found")
    return exam


def _slot_taken(db: Session, group: int, order: int, exclude_id: Optional[int] = None) -> bool:
    query = db.query(Exam.id).filter(
        Exam.exam_group == group,
        Exam.order == order,
        Exam.is_active.is_(True),
    )
    if exclude_id is not None:
        query = query.filter(Exam.id != exclude_id)
    return query.first() is not None


def _build_questions(items: List[QuestionIn]) -> List[Question]:
    return [
        Question(
            position=i,
            question_image=item.question_image or BLANK_QUESTION_IMAGE,
            correct_answer=item.correct_answer,
            explanation=item.explanation or "",
        )
        for i, item in enumerate(items)
    ]


def create_exam(db: Session, payload: ExamCreate, teacher: User) -> Exam:
    if _slot_taken(db, payload.exam_group, payload.order):
        raise Conflict(DUPLICATE_SLOT)

    exam = Exam(
        title=payload.title,
        description=payload.description,
        exam_group=payload.exam_group,
        order=payload.order,
        time_limit=payload.time_limit,
        created_by=teacher.id,
    )
    exam.questions = _build_questions(payload.questions)
    db.add(exam)
    db.commit()
    db.refresh(exam)
    logger.info("Exam %s created in group %s order %s by %s", exam.id, exam.exam_group, exam.order, teacher.id)
    return exam


def update_exam(db: Session, exam_id: int, payload: ExamUpdate) -> Exam:
    exam = get_exam(db, exam_id)
    fields = {
        key: value
        for key, value in payload.model_dump(exclude_unset=True, exclude={"questions"}).items()
        if value is not None or key == "description"
    }

    group = fields.get("exam_group", exam.exam_group)
    order = fields.get("order", exam.order)
    moving = (group, order) != (exam.exam_group, exam.order)
    reactivating = fields.get("is_active") is True and not exam.is_active
    if (moving or reactivating) and _slot_taken(db, group, order, exclude_id=exam.id):
        raise Conflict(DUPLICATE_SLOT)

    group_changed = group != exam.exam_group
    for key, value in fields.items():
        setattr(exam, key, value)

    if payload.questions is not None:
        exam.questions = _build_questions(payload.questions)

    if group_changed:
        # Progress rows carry a copy of the group
        synced = (
            db.query(ExamProgress)
            .filter(ExamProgress.exam_id == exam.id)
            .update({ExamProgress.exam_group: group}, synchronize_session=False)
        )
        logger.info("Exam %s moved to group %s, %d progress entries resynchronized", exam.id, group, synced)

    db.commit()
    db.refresh(exam)
    return exam


def delete_exam(db: Session, exam_id: int) -> int:
    """Soft delete and drop every student's progress entry for the exam."""
    exam = get_exam(db, exam_id)
    exam.is_active = False
    exam.is_free_exam = False
    exam.free_exam_order = None
    removed = (
        db.query(ExamProgress)
        .filter(ExamProgress.exam_id == exam.id)
        .delete(synchronize_session=False)
    )
    db.commit()
    logger.info("Exam %s deactivated, %d progress entries removed", exam.id, removed)
    return removed


def list_free_exams(db: Session) -> List[Exam]:
    return (
        db.query(Exam)
        .filter(Exam.is_free_exam.is_(True), Exam.is_active.is_(True))
        .order_by(Exam.free_exam_order)
        .all()
    )


def set_free_exam(db: Session, exam_id: int, free_exam_order: int) -> Exam:
    exam = get_exam(db, exam_id)
    if not exam.is_active:
        raise ValidationFailed("Inactive exams cannot be made free")
    taken = (
        db.query(Exam.id)
        .filter(
            Exam.is_free_exam.is_(True),
            Exam.free_exam_order == free_exam_order,
            Exam.id != exam.id,
        )
        .first()
    )
    if taken is not None:
        raise Conflict(f"Free exam slot {free_exam_order} is already used")
    exam.is_free_exam = True
    exam.free_exam_order = free_exam_order
    db.commit()
    db.refresh(exam)
    return exam


def remove_free_exam(db: Session, exam_id: int) -> Exam:
    exam = get_exam(db, exam_id)
    exam.is_free_exam = False
    exam.free_exam_order = None
    db.commit()
    db.refresh(exam)
    return exam


def get_public_exam(db: Session, exam_id: int) -> Exam:
    exam = db.get(Exam, exam_id)
    if exam is None or not exam.is_active or not exam.is_free_exam:
        raise NotFound("Exam not found")
    return exam
