from sqlalchemy import Column, Integer, String, Text, Float, Boolean, DateTime, ForeignKey, JSON
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from examhub.database import Base


class ReviewExam(Base):
    """Practice exam built from the wrong answers of one attempt"""
    __tablename__ = "review_exams"

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    original_exam_id = Column(Integer, ForeignKey("exams.id"), nullable=False, index=True)
    title = Column(String, nullable=False, default="امتحان المراجعة")
    description = Column(Text, nullable=False, default="امتحان مراجعة للأسئلة الخاطئة")
    time_limit = Column(Integer, nullable=False, default=30)  # Minutes
    is_active = Column(Boolean, nullable=False, default=True)

    best_score = Column(Integer, nullable=False, default=0)
    best_percentage = Column(Float, nullable=False, default=0.0)
    total_attempts = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    student = relationship("User", back_populates="review_exams")
    original_exam = relationship("Exam")
    questions = relationship(
        "ReviewQuestion",
        back_populates="review_exam",
        cascade="all, delete-orphan",
        order_by="ReviewQuestion.position",
    )
    attempts = relationship(
        "ReviewAttempt",
        back_populates="review_exam",
        cascade="all, delete-orphan",
        order_by="ReviewAttempt.attempt_number",
    )

    @property
    def current_attempt_number(self) -> int:
        return (self.total_attempts or 0) + 1


class ReviewQuestion(Base):
    """Snapshot of a source question taken when the review exam was built"""
    __tablename__ = "review_questions"

    id = Column(Integer, primary_key=True, index=True)
    review_exam_id = Column(Integer, ForeignKey("review_exams.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    question_id = Column(Integer, nullable=False)
    original_question_index = Column(Integer, nullable=False)
    question_image = Column(Text, nullable=False)
    correct_answer = Column(String(1), nullable=False)
    explanation = Column(Text, nullable=False, default="")

    review_exam = relationship("ReviewExam", back_populates="questions")


class ReviewAttempt(Base):
    __tablename__ = "review_attempts"

    id = Column(Integer, primary_key=True, index=True)
    review_exam_id = Column(Integer, ForeignKey("review_exams.id"), nullable=False, index=True)
    attempt_number = Column(Integer, nullable=False)
    score = Column(Integer, nullable=False, default=0)
    percentage = Column(Float, nullable=False, default=0.0)
    answers = Column(JSON, nullable=False, default=list)
    completed_at = Column(DateTime(timezone=True), server_default=func.now())

    review_exam = relationship("ReviewExam", back_populates="attempts")
