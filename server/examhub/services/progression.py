"""
Moves a student forward through the (group, order) exam sequence.
"""
import logging
from typing import Optional

from sqlalchemy.orm import Session

from examhub.models import Exam, ExamProgress, ProgressStatus

logger = logging.getLogger(__name__)


def find_active_exam(db: Session, group: int, order: int) -> Optional[Exam]:
    return (
        db.query(Exam)
        .filter(Exam.exam_group == group, Exam.order == order, Exam.is_active.is_(True))
        .first()
    )


def next_exam_in_sequence(db: Session, group: int, order: int) -> Optional[Exam]:
    """Next exam in the same group, else the first exam of the next group."""
    following = find_active_exam(db, group, order + 1)
    if following is not None:
        return following
    return find_active_exam(db, group + 1, 1)


def unlock_next_exam(db: Session, student_id: int, group: int, order: int) -> Optional[Exam]:
    """
    Unlock the exam after (group, order) for one student.

    Returns the exam whose entry went from locked to unlocked, or None when
    there is no next exam or its entry is missing or not locked.
    """
    nxt = next_exam_in_sequence(db, group, order)
    if nxt is None:
        return None

    entry = (
        db.query(ExamProgress)
        .filter(ExamProgress.student_id == student_id, ExamProgress.exam_id == nxt.id)
        .first()
    )
    if entry is None or entry.status != ProgressStatus.LOCKED.value:
        return None

    entry.status = ProgressStatus.UNLOCKED.value
    logger.info("Unlocked exam %s (group %s order %s) for student %s", nxt.id, nxt.exam_group, nxt.order, student_id)
    return nxt
