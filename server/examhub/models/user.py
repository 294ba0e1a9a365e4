from sqlalchemy import Column, Integer, String, Float, Boolean, DateTime, Enum as SQLEnum
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from examhub.database import Base
import enum


class UserRole(str, enum.Enum):
    TEACHER = "teacher"
    STUDENT = "student"
    ADMIN = "admin"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    password_hash = Column(String, nullable=False)
    role = Column(SQLEnum(UserRole, values_callable=lambda e: [m.value for m in e]), nullable=False, default=UserRole.STUDENT)
    student_code = Column(String, unique=True, nullable=True)
    phone_number = Column(String, unique=True, index=True, nullable=True)  # Required for students only
    is_active = Column(Boolean, nullable=False, default=True)
    last_login = Column(DateTime(timezone=True), nullable=True)

    # Aggregates over completed exams
    total_score = Column(Integer, nullable=False, default=0)
    overall_percentage = Column(Float, nullable=False, default=0.0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    progress = relationship(
        "ExamProgress",
        back_populates="student",
        cascade="all, delete-orphan",
        order_by="ExamProgress.id",
    )
    review_exams = relationship("ReviewExam", back_populates="student", cascade="all, delete-orphan")

    @property
    def is_teacher(self) -> bool:
        return self.role in (UserRole.TEACHER, UserRole.ADMIN)

    def __repr__(self):
        return f"<User {self.name} ({self.role})>"
