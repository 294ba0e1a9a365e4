"""
Models package initialization
Import all models here to ensure they are registered with SQLAlchemy
"""

from examhub.models.user import User, UserRole
from examhub.models.exam import Exam, Question, ANSWER_CHOICES, BLANK_QUESTION_IMAGE
from examhub.models.progress import ExamProgress, ProgressStatus
from examhub.models.review import ReviewExam, ReviewQuestion, ReviewAttempt
from examhub.models.job import FanoutJob, JobStatus

__all__ = [
    "User",
    "UserRole",
    "Exam",
    "Question",
    "ANSWER_CHOICES",
    "BLANK_QUESTION_IMAGE",
    "ExamProgress",
    "ProgressStatus",
    "ReviewExam",
    "ReviewQuestion",
    "ReviewAttempt",
    "FanoutJob",
    "JobStatus",
]
