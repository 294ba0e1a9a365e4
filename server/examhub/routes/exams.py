from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.orm import Session

from examhub.database import get_db
from examhub.errors import PermissionDenied
from examhub.models import User
from examhub.responses import ok
from examhub.schemas import (
    ExamCreate,
    ExamOut,
    ExamSummary,
    ExamUpdate,
    ProgressOut,
    PublicExamOut,
    QuestionOut,
    RepeatExamRequest,
    ReviewExamOut,
    ReviewSubmissionResult,
    SetFreeRequest,
    SubmissionResult,
    SubmitExamRequest,
)
from examhub.security import get_current_user, require_student, require_teacher
from examhub.services import catalog, progress, review
from examhub.services.fanout import enqueue_progress_sync, run_progress_fanout
from examhub.services.notifications import EXAM_SUBMITTED, teacher_notifier

router = APIRouter(tags=["Exams"])


def _summaries(exams):
    return [ExamSummary.model_validate(e) for e in exams]


def _schedule_fanout(db: Session, background_tasks: BackgroundTasks, exam_id=None):
    job = enqueue_progress_sync(db, exam_id)
    background_tasks.add_task(run_progress_fanout, job.id)
    return job


# =============================================================================
# Review exams (students)
# =============================================================================

@router.get("/review")
def list_review_exams(student: User = Depends(require_student), db: Session = Depends(get_db)):
    """Active review exams of the current student, newest first"""
    reviews = review.list_student_reviews(db, student)
    return ok([ReviewExamOut.model_validate(r) for r in reviews])


@router.get("/review/{review_exam_id}")
def get_review_exam(review_exam_id: int, student: User = Depends(require_student), db: Session = Depends(get_db)):
    return ok(ReviewExamOut.model_validate(review.get_owned_review(db, review_exam_id, student)))


@router.post("/review/{review_exam_id}/submit")
def submit_review_exam(
    review_exam_id: int,
    request: SubmitExamRequest,
    student: User = Depends(require_student),
    db: Session = Depends(get_db),
):
    """Grade a review attempt; review attempts are unlimited"""
    result = review.submit_review_exam(db, review_exam_id, student, request.answers)
    return ok(ReviewSubmissionResult(**result), message="Review exam submitted successfully")


# =============================================================================
# Free exams
# =============================================================================

@router.get("/free")
def list_free_exams(db: Session = Depends(get_db)):
    """Public listing of the free sample exams"""
    return ok([PublicExamOut.model_validate(e) for e in catalog.list_free_exams(db)])


@router.get("/free/manage")
def manage_free_exams(teacher: User = Depends(require_teacher), db: Session = Depends(get_db)):
    return ok(_summaries(catalog.list_free_exams(db)))


@router.get("/public/{exam_id}")
def get_public_exam(exam_id: int, db: Session = Depends(get_db)):
    """A free exam without its answer key"""
    return ok(PublicExamOut.model_validate(catalog.get_public_exam(db, exam_id)))


@router.put("/{exam_id}/set-free")
def set_free_exam(
    exam_id: int,
    request: SetFreeRequest,
    teacher: User = Depends(require_teacher),
    db: Session = Depends(get_db),
):
    exam = catalog.set_free_exam(db, exam_id, request.free_exam_order)
    return ok(ExamSummary.model_validate(exam), message="Exam marked as free")


@router.put("/{exam_id}/remove-free")
def remove_free_exam(exam_id: int, teacher: User = Depends(require_teacher), db: Session = Depends(get_db)):
    exam = catalog.remove_free_exam(db, exam_id)
    return ok(ExamSummary.model_validate(exam), message="Exam removed from free exams")


# =============================================================================
# Catalog
# =============================================================================

@router.post("/sync-progress", status_code=202)
def sync_progress(
    background_tasks: BackgroundTasks,
    teacher: User = Depends(require_teacher),
    db: Session = Depends(get_db),
):
    """Give every student an entry for every active exam (background job)"""
    job = _schedule_fanout(db, background_tasks)
    return ok({"job_id": job.id, "status": job.status}, message="Progress sync started")


@router.get("/group/{group_number}")
def list_group(group_number: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    exams = catalog.list_group(db, group_number)
    return ok(_summaries(exams), count=len(exams))


@router.get("")
def list_exams(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """All active exams sorted by group then order"""
    exams = catalog.list_active_exams(db)
    return ok(_summaries(exams), count=len(exams))


@router.post("", status_code=201)
def create_exam(
    request: ExamCreate,
    background_tasks: BackgroundTasks,
    teacher: User = Depends(require_teacher),
    db: Session = Depends(get_db),
):
    """
    Create an exam and start the background job that gives every
    student a progress entry for it.
    """
    exam = catalog.create_exam(db, request, teacher)
    _schedule_fanout(db, background_tasks, exam.id)
    return ok(ExamOut.model_validate(exam), message="Exam created successfully")


# =============================================================================
# Submissions (registered before /{exam_id} so the longer paths win)
# =============================================================================

@router.get("/{exam_id}/student-mistakes/{student_id}")
def student_mistakes(
    exam_id: int,
    student_id: int,
    teacher: User = Depends(require_teacher),
    db: Session = Depends(get_db),
):
    mistakes = progress.get_mistakes(db, exam_id, student_id)
    for item in mistakes:
        item["question"] = QuestionOut.model_validate(item["question"])
    return ok(mistakes, count=len(mistakes))


@router.get("/{exam_id}/student-submission/{student_id}")
def student_submission(
    exam_id: int,
    student_id: int,
    teacher: User = Depends(require_teacher),
    db: Session = Depends(get_db),
):
    """A student's answers for one exam, for the teacher"""
    return ok(_submission_view(db, exam_id, student_id))


@router.get("/{exam_id}/student-submission")
def my_submission(exam_id: int, student: User = Depends(require_student), db: Session = Depends(get_db)):
    return ok(_submission_view(db, exam_id, student.id))


def _submission_view(db: Session, exam_id: int, student_id: int) -> dict:
    submission = progress.get_submission(db, exam_id, student_id)
    submission["exam"] = ExamOut.model_validate(submission["exam"])
    return submission


@router.post("/{exam_id}/start")
def start_exam(exam_id: int, student: User = Depends(require_student), db: Session = Depends(get_db)):
    entry = progress.start_exam(db, student, exam_id)
    return ok(ProgressOut(**progress.progress_view(db, entry)), message="Exam started")


@router.post("/{exam_id}/submit")
def submit_exam(
    exam_id: int,
    request: SubmitExamRequest,
    background_tasks: BackgroundTasks,
    student: User = Depends(require_student),
    db: Session = Depends(get_db),
):
    """
    Grade a submission, complete the student's entry, build a review exam
    from the wrong answers and unlock the next exam in sequence.
    """
    result, event = progress.submit_exam(db, student, exam_id, request.answers)
    background_tasks.add_task(teacher_notifier.broadcast, EXAM_SUBMITTED, event)
    return ok(SubmissionResult(**result), message="Exam submitted successfully")


@router.post("/{exam_id}/repeat")
def repeat_exam(
    exam_id: int,
    request: RepeatExamRequest,
    teacher: User = Depends(require_teacher),
    db: Session = Depends(get_db),
):
    """Reset a student's attempt so the exam can be taken again"""
    result = progress.repeat_exam(db, exam_id, request.student_id)
    return ok(result, message="Exam reset successfully. Student can now take the exam again.")


# =============================================================================
# Single exam
# =============================================================================

@router.get("/{exam_id}")
def get_exam(exam_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    exam = catalog.get_exam(db, exam_id)
    if not exam.is_active and not user.is_teacher:
        raise PermissionDenied("Exam is not available")
    return ok(ExamOut.model_validate(exam))


@router.put("/{exam_id}")
def update_exam(
    exam_id: int,
    request: ExamUpdate,
    teacher: User = Depends(require_teacher),
    db: Session = Depends(get_db),
):
    exam = catalog.update_exam(db, exam_id, request)
    return ok(ExamOut.model_validate(exam), message="Exam updated successfully")


@router.delete("/{exam_id}")
def delete_exam(exam_id: int, teacher: User = Depends(require_teacher), db: Session = Depends(get_db)):
    removed = catalog.delete_exam(db, exam_id)
    return ok(
        {"exam_id": exam_id, "removed_progress": removed},
        message="Exam deleted successfully",
    )
