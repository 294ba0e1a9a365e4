import asyncio

from examhub.models import ExamProgress, ProgressStatus, UserRole
from examhub.services.notifications import teacher_notifier


def exam_body(group=1, order=1, answers="ABCD"):
    return {
        "title": f"Exam {group}-{order}",
        "examGroup": group,
        "order": order,
        "timeLimit": 20,
        "questions": [{"correctAnswer": a, "explanation": f"because {a}"} for a in answers],
    }


# =============================================================================
# Auth and error envelope
# =============================================================================

def test_register_login_and_me(client):
    response = client.post(
        "/api/auth/register",
        json={"name": "Mr Teacher", "email": " Mr.T@Example.com ", "password": "secret123"},
    )
    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["data"]["user"]["role"] == "teacher"
    assert body["data"]["user"]["email"] == "mr.t@example.com"

    login = client.post("/api/auth/login", json={"email": "mr.t@example.com", "password": "secret123"})
    assert login.status_code == 200
    token = login.json()["data"]["token"]

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.json()["data"]["name"] == "Mr Teacher"
    assert me.json()["data"]["lastLogin"] is not None


def test_bad_credentials(client, teacher):
    response = client.post("/api/auth/login", json={"email": "teacher@example.com", "password": "wrong"})
    assert response.status_code == 401
    assert response.json() == {"success": False, "message": "Invalid credentials"}


def test_duplicate_registration(client, teacher):
    response = client.post(
        "/api/auth/register",
        json={"name": "Again", "email": "teacher@example.com", "password": "secret123"},
    )
    assert response.status_code == 400
    assert response.json()["success"] is False


def test_missing_and_invalid_tokens(client):
    assert client.get("/api/exams").status_code == 401
    response = client.get("/api/exams", headers={"Authorization": "Bearer not-a-token"})
    assert response.status_code == 401
    assert response.json()["message"] == "Not authorized to access this route"


def test_deactivated_user_is_rejected(client, db, student, student_headers):
    student.is_active = False
    db.commit()
    response = client.get("/api/auth/me", headers=student_headers)
    assert response.status_code == 401
    assert response.json()["message"] == "User account is deactivated"


def test_student_cannot_author_exams(client, student_headers):
    response = client.post("/api/exams", json=exam_body(), headers=student_headers)
    assert response.status_code == 403
    assert response.json()["success"] is False


def test_validation_errors_use_envelope(client, teacher_headers):
    body = exam_body()
    body["questions"] = []
    response = client.post("/api/exams", json=body, headers=teacher_headers)
    assert response.status_code == 400
    payload = response.json()
    assert payload["message"] == "Validation errors"
    assert any(err["field"] == "questions" for err in payload["errors"])


def test_unknown_route_uses_envelope(client):
    response = client.get("/api/nothing-here")
    assert response.status_code == 404
    assert response.json()["success"] is False


# =============================================================================
# Exams
# =============================================================================

def test_create_exam_fans_out_progress(client, db, student, teacher_headers):
    response = client.post("/api/exams", json=exam_body(), headers=teacher_headers)

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["totalQuestions"] == 4
    assert data["examGroup"] == 1
    assert data["questions"][0]["correctAnswer"] == "A"

    # The background job ran after the response
    db.expire_all()
    entry = db.query(ExamProgress).filter_by(student_id=student.id, exam_id=data["id"]).one()
    assert entry.status == "unlocked"


def test_duplicate_slot_is_rejected(client, teacher_headers):
    client.post("/api/exams", json=exam_body(), headers=teacher_headers)
    response = client.post("/api/exams", json=exam_body(), headers=teacher_headers)
    assert response.status_code == 400
    assert response.json()["message"] == "Exam with this group and order already exists"


def test_list_and_group_endpoints(client, make_exam, student_headers):
    make_exam(2, 1)
    make_exam(1, 1)

    listing = client.get("/api/exams", headers=student_headers).json()
    assert listing["count"] == 2
    assert [e["examGroup"] for e in listing["data"]] == [1, 2]

    assert client.get("/api/exams/group/2", headers=student_headers).json()["count"] == 1
    assert client.get("/api/exams/group/9", headers=student_headers).status_code == 400
    assert client.get("/api/exams/999", headers=student_headers).status_code == 404


def test_free_exam_is_public_without_answers(client, make_exam, teacher_headers):
    exam = make_exam()
    assert client.get(f"/api/exams/public/{exam.id}").status_code == 404

    response = client.put(f"/api/exams/{exam.id}/set-free", json={"freeExamOrder": 1}, headers=teacher_headers)
    assert response.status_code == 200

    public = client.get(f"/api/exams/public/{exam.id}").json()["data"]
    assert "correctAnswer" not in public["questions"][0]
    assert [e["id"] for e in client.get("/api/exams/free").json()["data"]] == [exam.id]


def test_sync_progress_job(client, db, student, make_exam, teacher_headers):
    exam = make_exam()

    response = client.post("/api/exams/sync-progress", headers=teacher_headers)

    assert response.status_code == 202
    assert "jobId" in response.json()["data"]
    db.expire_all()
    assert db.query(ExamProgress).filter_by(student_id=student.id, exam_id=exam.id).count() == 1


# =============================================================================
# Submission flow
# =============================================================================

def test_submit_flow(client, db, student, student_headers, teacher_headers, make_exam, give_progress):
    exam = make_exam(1, 1, answers="ABCD")
    nxt = make_exam(1, 2)
    give_progress(student, exam)
    give_progress(student, nxt, ProgressStatus.LOCKED)
    queue = asyncio.run(teacher_notifier.connect())

    response = client.post(
        f"/api/exams/{exam.id}/submit",
        json={"answers": [{"selectedAnswer": a} for a in "ABCA"]},
        headers=student_headers,
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["score"] == 3
    assert data["percentage"] == 75.0
    assert data["wrongAnswers"] == 1
    assert data["hasReviewExam"] is True

    event = queue.get_nowait()
    assert event["event"] == "exam-submitted"
    assert event["data"]["examId"] == exam.id

    again = client.post(
        f"/api/exams/{exam.id}/submit",
        json={"answers": [{"selectedAnswer": a} for a in "ABCD"]},
        headers=student_headers,
    )
    assert again.status_code == 400
    assert again.json()["message"] == "Exam already completed. You can only take each exam once."

    progress = client.get("/api/users/me/progress", headers=student_headers).json()["data"]
    assert [(p["examTitle"], p["status"]) for p in progress] == [("Exam 1-1", "completed"), ("Exam 1-2", "unlocked")]

    own = client.get(f"/api/exams/{exam.id}/student-submission", headers=student_headers).json()["data"]
    assert own["score"] == 3
    assert own["answers"][3] == {"questionId": exam.questions[3].id, "selectedAnswer": "A", "isCorrect": False}

    mistakes = client.get(f"/api/exams/{exam.id}/student-mistakes/{student.id}", headers=teacher_headers).json()
    assert mistakes["count"] == 1
    assert mistakes["data"][0]["correctAnswer"] == "D"


def test_locked_exam_cannot_be_submitted(client, student, student_headers, make_exam, give_progress):
    exam = make_exam()
    give_progress(student, exam, ProgressStatus.LOCKED)
    response = client.post(
        f"/api/exams/{exam.id}/submit",
        json={"answers": [{"selectedAnswer": "A"}] * 4},
        headers=student_headers,
    )
    assert response.status_code == 403


def test_answer_count_mismatch(client, student, student_headers, make_exam, give_progress):
    exam = make_exam(answers="ABCD")
    give_progress(student, exam)
    response = client.post(
        f"/api/exams/{exam.id}/submit",
        json={"answers": [{"selectedAnswer": "A"}]},
        headers=student_headers,
    )
    assert response.status_code == 400
    assert response.json()["errors"][0]["field"] == "answers"


def test_review_exam_endpoints(client, make_user, headers_for, student, student_headers, make_exam, give_progress):
    exam = make_exam(answers="ABCD")
    give_progress(student, exam)
    client.post(
        f"/api/exams/{exam.id}/submit",
        json={"answers": [{"selectedAnswer": "A"}] * 4},
        headers=student_headers,
    )

    reviews = client.get("/api/exams/review", headers=student_headers).json()["data"]
    assert len(reviews) == 1
    review = reviews[0]
    assert review["timeLimit"] == 15
    assert len(review["questions"]) == 3

    intruder = make_user(name="Intruder")
    assert client.get(f"/api/exams/review/{review['id']}", headers=headers_for(intruder)).status_code == 403

    answers = [{"questionId": q["questionId"], "selectedAnswer": q["correctAnswer"]} for q in review["questions"]]
    result = client.post(
        f"/api/exams/review/{review['id']}/submit",
        json={"answers": answers},
        headers=student_headers,
    ).json()["data"]
    assert result["percentage"] == 100.0
    assert result["attemptNumber"] == 1
    assert result["isBestScore"] is True


def test_teacher_repeat(client, db, student, student_headers, teacher_headers, make_exam, give_progress):
    exam = make_exam(answers="AB")
    give_progress(student, exam)
    client.post(f"/api/exams/{exam.id}/submit", json={"answers": [{"selectedAnswer": "C"}] * 2}, headers=student_headers)

    response = client.post(f"/api/exams/{exam.id}/repeat", json={"studentId": student.id}, headers=teacher_headers)

    assert response.status_code == 200
    assert response.json()["data"]["studentId"] == student.id
    assert client.get("/api/exams/review", headers=student_headers).json()["data"] == []
    retry = client.post(
        f"/api/exams/{exam.id}/submit",
        json={"answers": [{"selectedAnswer": a} for a in "AB"]},
        headers=student_headers,
    )
    assert retry.json()["data"]["percentage"] == 100.0


def test_start_exam(client, student, student_headers, make_exam, give_progress):
    exam = make_exam()
    give_progress(student, exam)
    response = client.post(f"/api/exams/{exam.id}/start", headers=student_headers)
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "in_progress"


def test_delete_exam(client, db, student, teacher_headers, student_headers, make_exam, give_progress):
    exam = make_exam()
    give_progress(student, exam)

    response = client.delete(f"/api/exams/{exam.id}", headers=teacher_headers)

    assert response.json()["data"]["removedProgress"] == 1
    assert client.get("/api/exams", headers=student_headers).json()["count"] == 0


# =============================================================================
# Student management
# =============================================================================

def test_student_management(client, db, make_exam, teacher_headers):
    first = make_exam(1, 1)
    second = make_exam(1, 2)
    queue = asyncio.run(teacher_notifier.connect())

    created = client.post(
        "/api/users/students",
        json={"name": "Sara", "email": "sara@example.com", "password": "secret123", "phoneNumber": "0111"},
        headers=teacher_headers,
    )
    assert created.status_code == 201
    student_id = created.json()["data"]["id"]
    assert created.json()["data"]["role"] == UserRole.STUDENT.value
    assert queue.get_nowait()["event"] == "student-added"

    detail = client.get(f"/api/users/students/{student_id}", headers=teacher_headers).json()["data"]
    assert [p["status"] for p in detail["progress"]] == ["unlocked", "locked"]

    unlocked = client.put(
        f"/api/users/students/{student_id}/unlock-exam",
        json={"examId": second.id},
        headers=teacher_headers,
    )
    assert unlocked.json()["data"]["status"] == "unlocked"

    toggled = client.put(
        f"/api/users/students/{student_id}/toggle-exams",
        json={"examIds": [first.id, second.id], "action": "lock"},
        headers=teacher_headers,
    ).json()
    assert toggled["data"]["updatedCount"] == 2
    assert toggled["message"] == "2 exams locked successfully"

    found = client.get("/api/users/students/search", params={"name": "sar"}, headers=teacher_headers).json()
    assert found["count"] == 1

    stats = client.get("/api/users/dashboard-stats", headers=teacher_headers).json()["data"]
    assert stats["totalStudents"] == 1
    assert stats["totalExams"] == 2

    deleted = client.delete(f"/api/users/students/{student_id}", headers=teacher_headers)
    assert deleted.status_code == 200
    assert queue.get_nowait()["data"]["studentId"] == student_id
    assert client.get(f"/api/users/students/{student_id}", headers=teacher_headers).status_code == 404


def test_assign_categories_endpoint(client, student, make_exam, teacher_headers):
    make_exam(2, 1)
    make_exam(2, 2)
    response = client.post(
        f"/api/users/students/{student.id}/assign-categories",
        json={"categories": [2, 7]},
        headers=teacher_headers,
    ).json()
    assert response["data"] == {"assignedCategories": [2], "totalAssignedExams": 2}
    assert response["message"] == "Successfully assigned 1 categories with 2 new exams"


def test_students_cannot_manage_students(client, student_headers):
    assert client.get("/api/users/students", headers=student_headers).status_code == 403


# =============================================================================
# Teacher event stream
# =============================================================================

def test_event_stream_requires_teacher_token(client, student):
    from examhub.security import create_access_token

    assert client.get("/api/events/teachers").status_code == 401
    response = client.get("/api/events/teachers", params={"token": create_access_token(student)})
    assert response.status_code == 403
