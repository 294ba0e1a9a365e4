from types import SimpleNamespace

import pytest

from examhub.errors import Conflict, NotFound, ValidationFailed
from examhub.models import Exam, ExamProgress, ProgressStatus, ReviewExam, User
from examhub.schemas import StudentCreate, StudentUpdate
from examhub.security import verify_password
from examhub.services import students
from examhub.services.progress import submit_exam


def new_student(**overrides):
    data = {"name": "Sara", "email": "sara@example.com", "password": "secret123", "phoneNumber": "0111111111"}
    data.update(overrides)
    return StudentCreate(**data)


def ledger(db, student_id):
    db.expire_all()
    rows = db.query(ExamProgress).filter_by(student_id=student_id).all()
    return {row.exam_id: row.status for row in rows}


def test_create_student_builds_initial_ledger(db, make_exam):
    first = make_exam(1, 1)
    second = make_exam(1, 2)

    created = students.create_student(db, new_student())

    assert verify_password("secret123", created.password_hash)
    assert ledger(db, created.id) == {first.id: "unlocked", second.id: "locked"}


def test_duplicate_email_or_phone_is_rejected(db):
    students.create_student(db, new_student())
    with pytest.raises(Conflict):
        students.create_student(db, new_student(phoneNumber="0999"))
    with pytest.raises(Conflict):
        students.create_student(db, new_student(email="other@example.com"))


def test_update_student(db, student, make_user):
    make_user(name="Taken", phone_number="0222")

    updated = students.update_student(db, student.id, StudentUpdate(name="  Renamed  "))
    assert updated.name == "Renamed"

    with pytest.raises(Conflict):
        students.update_student(db, student.id, StudentUpdate(phoneNumber="0222"))


def test_teacher_is_not_a_student(db, teacher):
    with pytest.raises(NotFound):
        students.student_detail(db, teacher.id)


def test_delete_student_removes_progress_and_reviews(db, student, make_exam, give_progress):
    exam = make_exam(answers="AB")
    give_progress(student, exam)
    submit_exam(db, student, exam.id, [SimpleNamespace(question_id=None, selected_answer="C")] * 2)
    student_id = student.id

    info = students.delete_student(db, student_id)

    assert info["studentId"] == student_id
    db.expire_all()
    assert db.get(User, student_id) is None
    assert db.query(ExamProgress).count() == 0
    assert db.query(ReviewExam).count() == 0


def test_lock_and_unlock_single_exam(db, student, make_exam):
    exam = make_exam()

    entry = students.set_exam_status(db, student.id, exam.id, ProgressStatus.UNLOCKED)
    assert entry.status == "unlocked"
    students.set_exam_status(db, student.id, exam.id, ProgressStatus.LOCKED)
    assert ledger(db, student.id) == {exam.id: "locked"}

    with pytest.raises(NotFound):
        students.set_exam_status(db, student.id, 9999, ProgressStatus.UNLOCKED)


def test_toggle_exams_creates_entries_only_on_unlock(db, student, make_exam):
    first = make_exam(1, 1)
    second = make_exam(1, 2)

    assert students.toggle_exams(db, student.id, [first.id, second.id], "lock") == 0
    assert ledger(db, student.id) == {}

    assert students.toggle_exams(db, student.id, [first.id, second.id], "unlock") == 2
    assert ledger(db, student.id) == {first.id: "unlocked", second.id: "unlocked"}


def test_toggle_group(db, student, make_exam, give_progress):
    a = make_exam(1, 1)
    b = make_exam(2, 1)
    give_progress(student, a)
    give_progress(student, b)

    assert students.toggle_group(db, student.id, 2, "lock") == 1
    assert ledger(db, student.id) == {a.id: "unlocked", b.id: "locked"}


def test_unlocking_a_completed_exam_does_not_allow_a_second_attempt(db, student, make_exam, give_progress):
    exam = make_exam(answers="AB")
    give_progress(student, exam)
    wrong = [SimpleNamespace(question_id=None, selected_answer="A")] * 2
    submit_exam(db, student, exam.id, wrong)

    entry = students.set_exam_status(db, student.id, exam.id, ProgressStatus.UNLOCKED)

    assert entry.status == "completed"
    with pytest.raises(Conflict):
        submit_exam(db, student, exam.id, wrong)
    db.expire_all()
    assert db.get(Exam, exam.id).total_attempts == 1
    assert db.query(ReviewExam).filter_by(student_id=student.id).count() == 1


def test_locking_a_completed_exam_keeps_its_result(db, student, make_exam, give_progress):
    exam = make_exam(answers="AB")
    give_progress(student, exam)
    submit_exam(db, student, exam.id, [SimpleNamespace(question_id=None, selected_answer=a) for a in "AB"])

    students.set_exam_status(db, student.id, exam.id, ProgressStatus.LOCKED)

    db.expire_all()
    entry = db.query(ExamProgress).filter_by(student_id=student.id, exam_id=exam.id).one()
    assert entry.status == "completed"
    assert entry.score == 2


def test_toggles_skip_completed_entries(db, student, make_exam, give_progress):
    done = make_exam(1, 1)
    current = make_exam(1, 2)
    give_progress(student, done, ProgressStatus.COMPLETED)
    give_progress(student, current)

    assert students.toggle_exams(db, student.id, [done.id, current.id], "lock") == 1
    assert ledger(db, student.id) == {done.id: "completed", current.id: "locked"}

    assert students.toggle_group(db, student.id, 1, "unlock") == 1
    assert ledger(db, student.id) == {done.id: "completed", current.id: "unlocked"}
    assert students.toggle_group(db, student.id, 1, "lock") == 1
    assert ledger(db, student.id) == {done.id: "completed", current.id: "locked"}


def test_open_and_close_all_leave_completed_entries(db, student, make_exam, give_progress):
    done = make_exam(1, 1)
    pending = make_exam(1, 2)
    give_progress(student, done, ProgressStatus.COMPLETED)
    give_progress(student, pending, ProgressStatus.LOCKED)

    assert students.set_all_exams(db, student.id, ProgressStatus.UNLOCKED) == 1
    assert ledger(db, student.id) == {done.id: "completed", pending.id: "unlocked"}
    students.set_all_exams(db, student.id, ProgressStatus.LOCKED)
    assert ledger(db, student.id) == {done.id: "completed", pending.id: "locked"}


def test_assign_exams_requires_every_exam(db, student, make_exam, give_progress):
    first = make_exam(1, 1)
    second = make_exam(1, 2)
    give_progress(student, first, ProgressStatus.LOCKED)

    with pytest.raises(ValidationFailed):
        students.assign_exams(db, student.id, [first.id, 9999])

    students.assign_exams(db, student.id, [first.id, second.id])
    # Existing entries are untouched
    assert ledger(db, student.id) == {first.id: "locked", second.id: "unlocked"}


def test_assign_categories(db, student, make_exam):
    make_exam(1, 1)
    make_exam(1, 2)
    make_exam(3, 1)

    with pytest.raises(ValidationFailed):
        students.assign_category(db, student.id, 5)

    result = students.assign_categories(db, student.id, [1, 3, 5])
    assert result["assigned_categories"] == [1, 3]
    assert result["total_assigned_exams"] == 3

    again = students.assign_categories(db, student.id, [1])
    assert again["total_assigned_exams"] == 0
    assert "already assigned" in again["message"]


def test_search_students(db, make_user):
    make_user(name="Ahmed Ali", phone_number="0101")
    make_user(name="Mona", phone_number="0202")

    assert [s.name for s in students.search_students(db, name="ahmed")] == ["Ahmed Ali"]
    assert [s.name for s in students.search_students(db, phone_number="0202")] == ["Mona"]


def test_dashboard_and_analytics(db, make_user, make_exam, give_progress):
    exam = make_exam(answers="AB")
    good, weak, idle = make_user(name="Good"), make_user(name="Weak"), make_user(name="Idle")
    give_progress(good, exam)
    give_progress(weak, exam)
    submit_exam(db, good, exam.id, [SimpleNamespace(question_id=None, selected_answer=a) for a in "AB"])
    submit_exam(db, weak, exam.id, [SimpleNamespace(question_id=None, selected_answer=a) for a in "AA"])

    stats = students.dashboard_stats(db)
    assert stats == {"total_students": 3, "total_exams": 1, "completed_exams": 2, "average_grade": 75.0}

    report = students.analytics(db)
    assert [row["name"] for row in report["student_performance"]] == ["Good", "Weak"]
    assert report["student_performance"][0]["average_grade"] == 100.0
