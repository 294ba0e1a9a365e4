from sqlalchemy import Column, Integer, Float, DateTime, ForeignKey, JSON, String, UniqueConstraint
from sqlalchemy.orm import relationship
from examhub.database import Base
import enum


class ProgressStatus(str, enum.Enum):
    LOCKED = "locked"
    UNLOCKED = "unlocked"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    NOT_STARTED = "not_started"  # Set by a teacher repeat, submittable like unlocked


SUBMITTABLE_STATUSES = (
    ProgressStatus.UNLOCKED.value,
    ProgressStatus.IN_PROGRESS.value,
    ProgressStatus.NOT_STARTED.value,
)

ATTEMPTED_STATUSES = (
    ProgressStatus.COMPLETED.value,
    ProgressStatus.IN_PROGRESS.value,
)


class ExamProgress(Base):
    """Per-student access and completion state of one exam"""
    __tablename__ = "exam_progress"
    __table_args__ = (UniqueConstraint("student_id", "exam_id", name="uq_progress_student_exam"),)

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    exam_id = Column(Integer, ForeignKey("exams.id"), nullable=False, index=True)
    exam_group = Column(Integer, nullable=False)  # Copy of exams.exam_group
    status = Column(String(16), nullable=False, default=ProgressStatus.LOCKED.value)

    score = Column(Integer, nullable=True)
    percentage = Column(Float, nullable=True)
    total_questions = Column(Integer, nullable=False, default=0)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    answers = Column(JSON, nullable=False, default=list)  # [{"question_id", "selected_answer", "is_correct"}]
    wrong_questions = Column(JSON, nullable=False, default=list)  # [question_id]
    review_exam_id = Column(Integer, ForeignKey("review_exams.id", ondelete="SET NULL"), nullable=True)

    # Relationships
    student = relationship("User", back_populates="progress")
    exam = relationship("Exam")

    def reset(self, total_questions: int) -> None:
        """Return the entry to a fresh, submittable state."""
        self.status = ProgressStatus.NOT_STARTED.value
        self.score = None
        self.percentage = None
        self.total_questions = total_questions
        self.started_at = None
        self.completed_at = None
        self.answers = []
        self.wrong_questions = []
        self.review_exam_id = None

    def __repr__(self):
        return f"<ExamProgress student={self.student_id} exam={self.exam_id} {self.status}>"
