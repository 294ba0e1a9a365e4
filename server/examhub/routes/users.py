from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.orm import Session

from examhub.database import get_db
from examhub.models import ProgressStatus, User
from examhub.responses import ok
from examhub.schemas import (
    AssignCategoriesRequest,
    AssignCategoryRequest,
    AssignExamsRequest,
    ExamIdRequest,
    ExamOut,
    ExamSummary,
    ProgressOut,
    StudentCreate,
    StudentDetail,
    StudentUpdate,
    ToggleExamsRequest,
    ToggleGroupRequest,
    UserOut,
)
from examhub.security import require_student, require_teacher
from examhub.services import progress, students
from examhub.services.notifications import STUDENT_ADDED, STUDENT_DELETED, teacher_notifier

router = APIRouter(tags=["Users"])


@router.get("/me/progress")
def my_progress(student: User = Depends(require_student), db: Session = Depends(get_db)):
    """The current student's ledger, sorted by group then order"""
    entries = [ProgressOut(**e) for e in progress.list_progress(db, student)]
    return ok(entries, count=len(entries))


# =============================================================================
# Roster
# =============================================================================

@router.get("/students")
def list_students(teacher: User = Depends(require_teacher), db: Session = Depends(get_db)):
    roster = [UserOut.model_validate(s) for s in students.list_students(db)]
    return ok(roster, count=len(roster))


@router.get("/students/search")
def search_students(
    name: Optional[str] = Query(None),
    phone_number: Optional[str] = Query(None, alias="phoneNumber"),
    teacher: User = Depends(require_teacher),
    db: Session = Depends(get_db),
):
    found = [UserOut.model_validate(s) for s in students.search_students(db, name, phone_number)]
    return ok(found, count=len(found))


@router.get("/students/{student_id}")
def get_student(student_id: int, teacher: User = Depends(require_teacher), db: Session = Depends(get_db)):
    """Student with their progress on active exams"""
    detail = students.student_detail(db, student_id)
    base = UserOut.model_validate(detail["student"]).model_dump()
    return ok(StudentDetail(**base, progress=[ProgressOut(**e) for e in detail["progress"]]))


@router.get("/students/{student_id}/all-answers")
def all_answers(student_id: int, teacher: User = Depends(require_teacher), db: Session = Depends(get_db)):
    rows = students.all_answers(db, student_id)
    for row in rows:
        row["exam"] = ExamOut.model_validate(row["exam"])
    return ok(rows, count=len(rows))


@router.post("/students", status_code=201)
def create_student(
    request: StudentCreate,
    background_tasks: BackgroundTasks,
    teacher: User = Depends(require_teacher),
    db: Session = Depends(get_db),
):
    student = students.create_student(db, request)
    background_tasks.add_task(
        teacher_notifier.broadcast,
        STUDENT_ADDED,
        {
            "studentId": student.id,
            "studentName": student.name,
            "studentEmail": student.email,
            "studentPhoneNumber": student.phone_number,
        },
    )
    return ok(UserOut.model_validate(student), message="Student created successfully")


@router.put("/students/{student_id}")
def update_student(
    student_id: int,
    request: StudentUpdate,
    teacher: User = Depends(require_teacher),
    db: Session = Depends(get_db),
):
    student = students.update_student(db, student_id, request)
    return ok(UserOut.model_validate(student), message="Student updated successfully")


@router.delete("/students/{student_id}")
def delete_student(
    student_id: int,
    background_tasks: BackgroundTasks,
    teacher: User = Depends(require_teacher),
    db: Session = Depends(get_db),
):
    """Delete a student together with their progress and review exams"""
    info = students.delete_student(db, student_id)
    background_tasks.add_task(teacher_notifier.broadcast, STUDENT_DELETED, info)
    return ok(message="Student deleted successfully")


# =============================================================================
# Exam access
# =============================================================================

@router.put("/students/{student_id}/unlock-exam")
def unlock_exam(
    student_id: int,
    request: ExamIdRequest,
    teacher: User = Depends(require_teacher),
    db: Session = Depends(get_db),
):
    entry = students.set_exam_status(db, student_id, request.exam_id, ProgressStatus.UNLOCKED)
    return ok(ProgressOut(**progress.progress_view(db, entry)), message="Exam unlocked successfully")


@router.put("/students/{student_id}/lock-exam")
def lock_exam(
    student_id: int,
    request: ExamIdRequest,
    teacher: User = Depends(require_teacher),
    db: Session = Depends(get_db),
):
    entry = students.set_exam_status(db, student_id, request.exam_id, ProgressStatus.LOCKED)
    return ok(ProgressOut(**progress.progress_view(db, entry)), message="Exam locked successfully")


@router.put("/students/{student_id}/toggle-exams")
def toggle_exams(
    student_id: int,
    request: ToggleExamsRequest,
    teacher: User = Depends(require_teacher),
    db: Session = Depends(get_db),
):
    updated = students.toggle_exams(db, student_id, request.exam_ids, request.action)
    return ok(
        {"updated_count": updated},
        message=f"{updated} exams {request.action}ed successfully",
    )


@router.put("/students/{student_id}/toggle-group")
def toggle_group(
    student_id: int,
    request: ToggleGroupRequest,
    teacher: User = Depends(require_teacher),
    db: Session = Depends(get_db),
):
    updated = students.toggle_group(db, student_id, request.group_number, request.action)
    return ok(
        {"updated_count": updated},
        message=f"Group {request.group_number} {request.action}ed successfully",
    )


@router.put("/students/{student_id}/open-all-exams")
def open_all_exams(student_id: int, teacher: User = Depends(require_teacher), db: Session = Depends(get_db)):
    updated = students.set_all_exams(db, student_id, ProgressStatus.UNLOCKED)
    return ok({"updated_count": updated}, message="All exams opened successfully")


@router.put("/students/{student_id}/close-all-exams")
def close_all_exams(student_id: int, teacher: User = Depends(require_teacher), db: Session = Depends(get_db)):
    updated = students.set_all_exams(db, student_id, ProgressStatus.LOCKED)
    return ok({"updated_count": updated}, message="All exams closed successfully")


@router.post("/students/{student_id}/assign-exams")
def assign_exams(
    student_id: int,
    request: AssignExamsRequest,
    teacher: User = Depends(require_teacher),
    db: Session = Depends(get_db),
):
    exams = students.assign_exams(db, student_id, request.exam_ids)
    return ok(
        [ExamSummary.model_validate(e) for e in exams],
        message=f"{len(exams)} exams assigned successfully",
    )


@router.post("/students/{student_id}/assign-category")
def assign_category(
    student_id: int,
    request: AssignCategoryRequest,
    teacher: User = Depends(require_teacher),
    db: Session = Depends(get_db),
):
    exams = students.assign_category(db, student_id, request.category)
    return ok(
        [ExamSummary.model_validate(e) for e in exams],
        message=f"Category {request.category} assigned successfully",
    )


@router.post("/students/{student_id}/assign-categories")
def assign_categories(
    student_id: int,
    request: AssignCategoriesRequest,
    teacher: User = Depends(require_teacher),
    db: Session = Depends(get_db),
):
    result = students.assign_categories(db, student_id, request.categories)
    message = result.pop("message")
    return ok(result, message=message)


# =============================================================================
# Reports
# =============================================================================

@router.get("/dashboard-stats")
def dashboard_stats(teacher: User = Depends(require_teacher), db: Session = Depends(get_db)):
    return ok(students.dashboard_stats(db))


@router.get("/analytics")
def analytics(teacher: User = Depends(require_teacher), db: Session = Depends(get_db)):
    """Dashboard totals plus the ten best students by average percentage"""
    return ok(students.analytics(db))
