"""
Progress fan-out: give every student a progress entry for every active exam.

Runs as a background job after an exam is created. Students are processed in
batches and committed one at a time; a student who already has an entry for
an exam is skipped, so a failed or interrupted job can simply be run again.
"""
import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from examhub.config import settings
from examhub.database import SessionLocal
from examhub.models import Exam, ExamProgress, FanoutJob, JobStatus, ProgressStatus, User, UserRole

logger = logging.getLogger(__name__)


def _active_exams(db: Session) -> List[Exam]:
    return (
        db.query(Exam)
        .filter(Exam.is_active.is_(True))
        .order_by(Exam.exam_group, Exam.order)
        .all()
    )


def initial_progress_for(db: Session, student: User) -> List[ExamProgress]:
    """Entries for a new student: the first exam unlocked, the rest locked."""
    entries = []
    for index, exam in enumerate(_active_exams(db)):
        entries.append(
            ExamProgress(
                student_id=student.id,
                exam_id=exam.id,
                exam_group=exam.exam_group,
                status=ProgressStatus.UNLOCKED.value if index == 0 else ProgressStatus.LOCKED.value,
                total_questions=exam.total_questions,
            )
        )
    db.add_all(entries)
    return entries


def add_missing_progress(db: Session, student: User, exams: List[Exam]) -> int:
    """Add locked entries the student lacks; returns how many were added."""
    existing = {
        exam_id
        for (exam_id,) in db.query(ExamProgress.exam_id).filter(ExamProgress.student_id == student.id)
    }
    had_entries = bool(existing)

    added = 0
    for exam in exams:
        if exam.id in existing:
            continue
        is_first_exam = exam.exam_group == 1 and exam.order == 1
        status = ProgressStatus.UNLOCKED if is_first_exam and not had_entries else ProgressStatus.LOCKED
        db.add(
            ExamProgress(
                student_id=student.id,
                exam_id=exam.id,
                exam_group=exam.exam_group,
                status=status.value,
                total_questions=exam.total_questions,
            )
        )
        added += 1
    return added


def enqueue_progress_sync(db: Session, exam_id: Optional[int] = None) -> FanoutJob:
    job = FanoutJob(kind="progress_sync", exam_id=exam_id, status=JobStatus.PENDING.value)
    db.add(job)
    db.commit()
    db.refresh(job)
    return job


def run_progress_fanout(job_id: int, session_factory: Callable[[], Session] = SessionLocal) -> None:
    """Process one fan-out job to completion, recording counts on the job row."""
    db = session_factory()
    try:
        job = db.get(FanoutJob, job_id)
        if job is None:
            logger.error("Fan-out job %s not found", job_id)
            return
        job.status = JobStatus.RUNNING.value
        db.commit()

        exams = _active_exams(db)
        processed = skipped = failed = 0
        last_id = 0
        batch_size = max(1, settings.fanout_batch_size)

        while True:
            student_ids = [
                sid
                for (sid,) in db.query(User.id)
                .filter(User.role == UserRole.STUDENT, User.id > last_id)
                .order_by(User.id)
                .limit(batch_size)
            ]
            if not student_ids:
                break
            last_id = student_ids[-1]

            for student_id in student_ids:
                try:
                    student = db.get(User, student_id)
                    if add_missing_progress(db, student, exams):
                        processed += 1
                    else:
                        skipped += 1
                    db.commit()
                except Exception:
                    db.rollback()
                    failed += 1
                    logger.exception("Fan-out job %s failed for student %s", job_id, student_id)

        job = db.get(FanoutJob, job_id)
        job.processed = processed
        job.skipped = skipped
        job.failed = failed
        job.status = JobStatus.FAILED.value if failed else JobStatus.SUCCEEDED.value
        job.finished_at = datetime.now(timezone.utc)
        db.commit()
        logger.info(
            "Fan-out job %s finished: %d updated, %d already current, %d failed",
            job_id, processed, skipped, failed,
        )
    except Exception as e:
        db.rollback()
        logger.exception("Fan-out job %s aborted", job_id)
        job = db.get(FanoutJob, job_id)
        if job is not None:
            job.status = JobStatus.FAILED.value
            job.error = str(e)
            job.finished_at = datetime.now(timezone.utc)
            db.commit()
    finally:
        db.close()
