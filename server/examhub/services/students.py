"""
Student roster management and teacher-side access control over exams.
"""
import logging
from typing import Iterable, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from examhub.errors import Conflict, NotFound, ValidationFailed
from examhub.models import Exam, ExamProgress, ProgressStatus, User, UserRole
from examhub.models.progress import ATTEMPTED_STATUSES
from examhub.schemas import StudentCreate, StudentUpdate
from examhub.security import hash_password
from examhub.services.fanout import initial_progress_for
from examhub.services.progress import get_entry, get_student_or_404, list_progress

logger = logging.getLogger(__name__)

DUPLICATE_CONTACT = "User already exists with this email or phone number"


def _contact_taken(db: Session, email: Optional[str], phone_number: Optional[str], exclude_id: Optional[int] = None) -> bool:
    clauses = []
    if email:
        clauses.append(User.email == email)
    if phone_number:
        clauses.append(User.phone_number == phone_number)
    if not clauses:
        return False
    query = db.query(User.id).filter(or_(*clauses))
    if exclude_id is not None:
        query = query.filter(User.id != exclude_id)
    return query.first() is not None


def list_students(db: Session) -> List[User]:
    return (
        db.query(User)
        .filter(User.role == UserRole.STUDENT)
        .order_by(User.created_at.desc(), User.id.desc())
        .all()
    )


def search_students(db: Session, name: Optional[str] = None, phone_number: Optional[str] = None) -> List[User]:
    query = db.query(User).filter(User.role == UserRole.STUDENT)
    if name:
        query = query.filter(User.name.ilike(f"%{name}%"))
    if phone_number:
        query = query.filter(User.phone_number.ilike(f"%{phone_number}%"))
    return query.order_by(User.created_at.desc(), User.id.desc()).all()


def student_detail(db: Session, student_id: int) -> dict:
    student = get_student_or_404(db, student_id)
    return {"student": student, "progress": list_progress(db, student)}


def create_student(db: Session, payload: StudentCreate) -> User:
    if _contact_taken(db, payload.email, payload.phone_number):
        raise Conflict(DUPLICATE_CONTACT)

    student = User(
        name=payload.name.strip(),
        email=payload.email,
        password_hash=hash_password(payload.password),
        phone_number=payload.phone_number.strip(),
        student_code=payload.student_code,
        role=UserRole.STUDENT,
    )
    db.add(student)
    db.flush()
    initial_progress_for(db, student)
    db.commit()
    db.refresh(student)
    logger.info("Student %s created", student.id)
    return student


def update_student(db: Session, student_id: int, payload: StudentUpdate) -> User:
    student = get_student_or_404(db, student_id)
    fields = {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None}

    email = fields.get("email")
    phone_number = fields.get("phone_number")
    if (email and email != student.email) or (phone_number and phone_number != student.phone_number):
        if _contact_taken(db, email, phone_number, exclude_id=student.id):
            raise Conflict(DUPLICATE_CONTACT)

    for key, value in fields.items():
        setattr(student, key, value.strip() if isinstance(value, str) else value)
    db.commit()
    db.refresh(student)
    return student


def delete_student(db: Session, student_id: int) -> dict:
    """Delete a student with their progress and review exams."""
    student = get_student_or_404(db, student_id)
    info = {
        "studentId": student.id,
        "studentName": student.name,
        "studentEmail": student.email,
        "studentPhoneNumber": student.phone_number,
    }
    for entry in student.progress:
        entry.review_exam_id = None
    db.flush()
    db.delete(student)
    db.commit()
    logger.info("Student %s deleted", student_id)
    return info


def _new_entry(student: User, exam: Exam, status: ProgressStatus) -> ExamProgress:
    return ExamProgress(
        student_id=student.id,
        exam_id=exam.id,
        exam_group=exam.exam_group,
        status=status.value,
        total_questions=exam.total_questions,
    )


def set_exam_status(db: Session, student_id: int, exam_id: int, status: ProgressStatus) -> ExamProgress:
    """
    Lock or unlock one exam for a student, creating the entry if needed.

    A completed entry is returned unchanged; only a repeat reopens it.
    """
    student = get_student_or_404(db, student_id)
    exam = db.get(Exam, exam_id)
    if exam is None:
        raise NotFound("Exam not found")

    entry = get_entry(db, student.id, exam.id)
    if entry is None:
        entry = _new_entry(student, exam, status)
        db.add(entry)
    elif entry.status == ProgressStatus.COMPLETED.value:
        logger.info("Exam %s already completed by student %s, status kept", exam.id, student.id)
        return entry
    else:
        entry.status = status.value
    db.commit()
    return entry


def toggle_exams(db: Session, student_id: int, exam_ids: Iterable[int], action: str) -> int:
    """Lock or unlock several exams; completed entries are skipped."""
    student = get_student_or_404(db, student_id)
    status = ProgressStatus.LOCKED if action == "lock" else ProgressStatus.UNLOCKED

    updated = 0
    for exam_id in exam_ids:
        entry = get_entry(db, student.id, exam_id)
        if entry is not None:
            if entry.status == ProgressStatus.COMPLETED.value:
                continue
            entry.status = status.value
            updated += 1
        elif status == ProgressStatus.UNLOCKED:
            exam = db.get(Exam, exam_id)
            if exam is None:
                continue
            db.add(_new_entry(student, exam, status))
            db.flush()
            updated += 1
    if updated:
        db.commit()
    return updated


def toggle_group(db: Session, student_id: int, group_number: int, action: str) -> int:
    student = get_student_or_404(db, student_id)
    status = ProgressStatus.LOCKED if action == "lock" else ProgressStatus.UNLOCKED
    updated = (
        db.query(ExamProgress)
        .filter(
            ExamProgress.student_id == student.id,
            ExamProgress.exam_group == group_number,
            ExamProgress.status != ProgressStatus.COMPLETED.value,
        )
        .update({ExamProgress.status: status.value}, synchronize_session=False)
    )
    db.commit()
    return updated


def set_all_exams(db: Session, student_id: int, status: ProgressStatus) -> int:
    """Open or close every entry that is not completed."""
    student = get_student_or_404(db, student_id)
    updated = (
        db.query(ExamProgress)
        .filter(
            ExamProgress.student_id == student.id,
            ExamProgress.status != ProgressStatus.COMPLETED.value,
        )
        .update({ExamProgress.status: status.value}, synchronize_session=False)
    )
    db.commit()
    return updated


def _assign(db: Session, student: User, exams: List[Exam]) -> List[Exam]:
    assigned = []
    for exam in exams:
        if get_entry(db, student.id, exam.id) is None:
            db.add(_new_entry(student, exam, ProgressStatus.UNLOCKED))
            db.flush()
            assigned.append(exam)
    return assigned


def assign_exams(db: Session, student_id: int, exam_ids: List[int]) -> List[Exam]:
    student = get_student_or_404(db, student_id)
    wanted = set(exam_ids)
    exams = db.query(Exam).filter(Exam.id.in_(wanted)).order_by(Exam.exam_group, Exam.order).all()
    if len(exams) != len(wanted):
        raise ValidationFailed("Some exams not found")
    _assign(db, student, exams)
    db.commit()
    return exams


def _group_exams(db: Session, group: int) -> List[Exam]:
    return (
        db.query(Exam)
        .filter(Exam.exam_group == group, Exam.is_active.is_(True))
        .order_by(Exam.order)
        .all()
    )


def assign_category(db: Session, student_id: int, category: int) -> List[Exam]:
    student = get_student_or_404(db, student_id)
    exams = _group_exams(db, category)
    if not exams:
        raise ValidationFailed("No exams found in this category")
    _assign(db, student, exams)
    db.commit()
    return exams


def assign_categories(db: Session, student_id: int, categories: List[int]) -> dict:
    student = get_student_or_404(db, student_id)
    assigned_categories = []
    total_assigned = 0
    for category in categories:
        exams = _group_exams(db, int(category))
        if not exams:
            continue
        total_assigned += len(_assign(db, student, exams))
        assigned_categories.append(int(category))
    db.commit()

    if not assigned_categories:
        message = "No exams found in the selected categories"
    elif total_assigned == 0:
        joined = ", ".join(str(c) for c in assigned_categories)
        message = f"Categories {joined} processed - all exams were already assigned to the student"
    else:
        message = f"Successfully assigned {len(assigned_categories)} categories with {total_assigned} new exams"
    return {
        "message": message,
        "assigned_categories": assigned_categories,
        "total_assigned_exams": total_assigned,
    }


def all_answers(db: Session, student_id: int) -> List[dict]:
    """Every attempted active exam of a student with the recorded answers."""
    student = get_student_or_404(db, student_id)
    rows = (
        db.query(ExamProgress, Exam)
        .join(Exam, Exam.id == ExamProgress.exam_id)
        .filter(
            ExamProgress.student_id == student.id,
            ExamProgress.status.in_(ATTEMPTED_STATUSES),
            Exam.is_active.is_(True),
        )
        .order_by(Exam.exam_group, Exam.order)
        .all()
    )
    return [
        {
            "exam": exam,
            "status": entry.status,
            "score": entry.score or 0,
            "total_questions": entry.total_questions or len(exam.questions),
            "percentage": entry.percentage or 0.0,
            "answers": entry.answers or [],
        }
        for entry, exam in rows
    ]


def dashboard_stats(db: Session) -> dict:
    completed = ExamProgress.status == ProgressStatus.COMPLETED.value
    total_students = db.query(func.count(User.id)).filter(User.role == UserRole.STUDENT).scalar()
    total_exams = db.query(func.count(Exam.id)).filter(Exam.is_active.is_(True)).scalar()
    students_with_completed = (
        db.query(func.count(func.distinct(ExamProgress.student_id))).filter(completed).scalar()
    )
    average = db.query(func.avg(ExamProgress.percentage)).filter(completed).scalar() or 0.0
    return {
        "total_students": total_students or 0,
        "total_exams": total_exams or 0,
        "completed_exams": students_with_completed or 0,
        "average_grade": round(float(average), 2),
    }


def analytics(db: Session, limit: int = 10) -> dict:
    stats = dashboard_stats(db)
    completed = ExamProgress.status == ProgressStatus.COMPLETED.value
    rows = (
        db.query(
            User.id,
            User.name,
            User.email,
            func.count(ExamProgress.id),
            func.avg(ExamProgress.percentage),
        )
        .join(ExamProgress, ExamProgress.student_id == User.id)
        .filter(User.role == UserRole.STUDENT, completed)
        .group_by(User.id, User.name, User.email)
        .order_by(func.avg(ExamProgress.percentage).desc())
        .limit(limit)
        .all()
    )
    stats["student_performance"] = [
        {
            "id": student_id,
            "name": name,
            "email": email,
            "total_completed": count,
            "average_grade": round(float(avg or 0.0), 2),
        }
        for student_id, name, email, count, avg in rows
    ]
    return stats
