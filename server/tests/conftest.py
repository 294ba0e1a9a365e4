import os

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key-with-enough-length-for-hs256"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["ENVIRONMENT"] = "test"

import pytest
from fastapi.testclient import TestClient

from examhub.database import Base, SessionLocal, engine
from examhub.main import app
from examhub.models import Exam, ExamProgress, ProgressStatus, Question, User, UserRole
from examhub.security import create_access_token, hash_password
from examhub.services import notifications


@pytest.fixture(autouse=True)
def _schema():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    notifications.teacher_notifier.active_connections.clear()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def make_user(db):
    def _make(name="User", email=None, role=UserRole.STUDENT, phone_number=None, password="secret123"):
        user = User(
            name=name,
            email=email or f"{name.lower().replace(' ', '.')}@example.com",
            password_hash=hash_password(password),
            role=role,
            phone_number=phone_number,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def teacher(make_user):
    return make_user(name="Teacher", email="teacher@example.com", role=UserRole.TEACHER)


@pytest.fixture
def student(make_user):
    return make_user(name="Student", email="student@example.com", phone_number="0100000001")


@pytest.fixture
def make_exam(db, teacher):
    def _make(group=1, order=1, answers="ABCD", title=None, is_active=True):
        exam = Exam(
            title=title or f"Exam {group}-{order}",
            exam_group=group,
            order=order,
            time_limit=30,
            is_active=is_active,
            created_by=teacher.id,
        )
        exam.questions = [
            Question(position=i, correct_answer=a, explanation=f"Explanation {i}")
            for i, a in enumerate(answers)
        ]
        db.add(exam)
        db.commit()
        db.refresh(exam)
        return exam

    return _make


@pytest.fixture
def give_progress(db):
    def _give(student, exam, status=ProgressStatus.UNLOCKED):
        entry = ExamProgress(
            student_id=student.id,
            exam_id=exam.id,
            exam_group=exam.exam_group,
            status=status.value,
            total_questions=exam.total_questions,
        )
        db.add(entry)
        db.commit()
        db.refresh(entry)
        return entry

    return _give


def auth_headers(user):
    return {"Authorization": f"Bearer {create_access_token(user)}"}


@pytest.fixture
def teacher_headers(teacher):
    return auth_headers(teacher)


@pytest.fixture
def student_headers(student):
    return auth_headers(student)


@pytest.fixture
def headers_for():
    return auth_headers
