from sqlalchemy import Column, Integer, String, Text, Float, Boolean, DateTime, ForeignKey
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from examhub.database import Base


# 1x1 transparent PNG used when a question is saved without an image
BLANK_QUESTION_IMAGE = (
    "data:image/png;base64,iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)

ANSWER_CHOICES = ("A", "B", "C", "D")


class Exam(Base):
    """Multiple-choice exam placed in a group at a given order"""
    __tablename__ = "exams"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    exam_group = Column(Integer, nullable=False, index=True)  # 0-8
    order = Column(Integer, nullable=False, default=1)
    time_limit = Column(Integer, nullable=False, default=60)  # Minutes
    total_questions = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)

    # Free exams shown on the public home page
    is_free_exam = Column(Boolean, nullable=False, default=False)
    free_exam_order = Column(Integer, nullable=True)  # 1-3

    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)

    # Statistics
    total_attempts = Column(Integer, nullable=False, default=0)
    average_score = Column(Float, nullable=False, default=0.0)
    pass_count = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    questions = relationship(
        "Question",
        back_populates="exam",
        cascade="all, delete-orphan",
        order_by="Question.position",
    )
    author = relationship("User")

    @property
    def pass_rate_percentage(self) -> float:
        if not self.total_attempts:
            return 0.0
        return self.pass_count / self.total_attempts * 100

    def __repr__(self):
        return f"<Exam {self.id} g{self.exam_group}/{self.order} {self.title!r}>"


class Question(Base):
    """One image question with a single correct choice"""
    __tablename__ = "questions"

    id = Column(Integer, primary_key=True, index=True)
    exam_id = Column(Integer, ForeignKey("exams.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    question_image = Column(Text, nullable=False, default=BLANK_QUESTION_IMAGE)
    correct_answer = Column(String(1), nullable=False)  # A, B, C or D
    explanation = Column(Text, nullable=False, default="")

    # Relationships
    exam = relationship("Exam", back_populates="questions")
