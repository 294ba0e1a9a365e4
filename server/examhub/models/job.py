from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey
from sqlalchemy.sql import func
from examhub.database import Base
import enum


class JobStatus(str, enum.Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class FanoutJob(Base):
    """Background job that adds progress entries for every student"""
    __tablename__ = "fanout_jobs"

    id = Column(Integer, primary_key=True, index=True)
    kind = Column(String(32), nullable=False, default="progress_sync")
    exam_id = Column(Integer, ForeignKey("exams.id"), nullable=True)  # Exam whose creation triggered it
    status = Column(String(16), nullable=False, default=JobStatus.PENDING.value)
    processed = Column(Integer, nullable=False, default=0)
    skipped = Column(Integer, nullable=False, default=0)
    failed = Column(Integer, nullable=False, default=0)
    error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    finished_at = Column(DateTime(timezone=True), nullable=True)

    def __str__(self) -> str:
        return f"FanoutJob[{self.id}] {self.kind} - {self.status}"
