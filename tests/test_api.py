import re
from datetime import timedelta

from database.schemas import utcnow

ADMIN = {"email": "admin@portal.edu", "password": "admin123"}
STUDENT_PASSWORD = "student1"


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


def create_student(client, admin_headers, email="ana@school.edu", phone="5550001", name="Ana"):
    r = client.post(
        "/api/admin/students",
        json={"email": email, "phone": phone, "name": name, "password": STUDENT_PASSWORD},
        headers=admin_headers,
    )
    assert r.status_code == 201, r.text
    return r.json()


def student_token(client, identifier="ana@school.edu", password=STUDENT_PASSWORD):
    r = client.post("/api/student/login", json={"identifier": identifier, "password": password})
    assert r.status_code == 200, r.text
    return r.json()["token"]


def make_quiz_with_questions(client, admin_headers, answers=(1, 0)):
    quiz = client.post(
        "/api/admin/quizzes", json={"title": "Unit Test", "duration": 15, "isActive": True}, headers=admin_headers
    ).json()
    question_ids = []
    for n, correct in enumerate(answers):
        question = client.post(
            "/api/admin/questions",
            json={"questionText": f"Q{n}", "options": ["a", "b", "c"], "correctAnswer": correct},
            headers=admin_headers,
        ).json()
        r = client.post(f"/api/admin/quizzes/{quiz['id']}/questions", json={"questionId": question["id"]},
                        headers=admin_headers)
        assert r.json() == {"success": True, "created": True}
        question_ids.append(question["id"])
    return quiz, question_ids


# ─── Auth ──────────────────────────────────────────────────────────────────────

def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_admin_is_seeded_and_can_log_in(client):
    r = client.post("/api/auth/login", json=ADMIN)
    assert r.status_code == 200
    body = r.json()
    assert body["user"]["email"] == ADMIN["email"]
    assert "password" not in body["user"]
    assert "portal_session" in r.cookies

    me = client.get("/api/auth/me")
    assert me.status_code == 200
    assert me.json()["user"]["username"] == "admin"


def test_bad_login_and_missing_credentials(client):
    r = client.post("/api/auth/login", json={"email": ADMIN["email"], "password": "wrong-one"})
    assert r.status_code == 401
    assert r.json() == {"detail": "Invalid email or password", "code": "UNAUTHENTICATED"}

    r = client.get("/api/subjects")
    assert r.status_code == 401


def test_request_validation_is_a_400_with_first_message(client):
    r = client.post("/api/auth/login", json={"email": "not-an-email", "password": "admin123"})
    assert r.status_code == 400
    assert r.json()["code"] == "VALIDATION_ERROR"
    assert r.json()["detail"]


def test_login_elsewhere_invalidates_old_credential(client):
    first = client.post("/api/auth/login", json=ADMIN).json()["token"]
    second = client.post("/api/auth/login", json=ADMIN).json()["token"]

    r = client.get("/api/admin/stats", headers=bearer(first))
    assert r.status_code == 401
    assert r.json()["code"] == "SESSION_INVALIDATED"
    assert r.json()["detail"] == "Session expired. Logged in from another device."
    assert client.get("/api/admin/stats", headers=bearer(second)).status_code == 200


def test_logout_ends_session(client, admin_token):
    r = client.post("/api/auth/logout", headers=bearer(admin_token))
    assert r.json() == {"message": "Logged out"}
    assert client.get("/api/admin/stats", headers=bearer(admin_token)).status_code == 401
    # logging out twice is harmless
    assert client.post("/api/auth/logout").status_code == 200


def test_student_login_and_role_checks(client, admin_headers):
    created = create_student(client, admin_headers)
    assert created["status"] == "approved"
    assert created["enrollmentNumber"].startswith("ENR")

    token = student_token(client, "5550001")

    r = client.get("/api/admin/stats", headers=bearer(token))
    assert r.status_code == 403
    assert r.json()["detail"] == "Students cannot access admin routes"
    assert client.get("/api/subjects", headers=bearer(token)).status_code == 200

    me = client.get("/api/auth/me").json()["user"]
    assert (me["username"], me["displayName"], me["email"]) == ("Ana", "Ana", "ana@school.edu")


def test_duplicate_student_is_a_conflict(client, admin_headers):
    create_student(client, admin_headers)
    r = client.post(
        "/api/admin/students",
        json={"email": "ana@school.edu", "password": STUDENT_PASSWORD},
        headers=admin_headers,
    )
    assert r.status_code == 409
    r = client.post(
        "/api/admin/students",
        json={"email": "other@school.edu", "phone": "5550001", "password": STUDENT_PASSWORD},
        headers=admin_headers,
    )
    assert r.status_code == 409


def test_blocking_a_student_ends_their_session(client, admin_headers):
    student = create_student(client, admin_headers)
    token = student_token(client)

    r = client.put(f"/api/admin/students/{student['id']}/status", json={"status": "blocked"}, headers=admin_headers)
    assert r.status_code == 200

    assert client.get("/api/subjects", headers=bearer(token)).status_code == 401
    r = client.post("/api/student/login", json={"identifier": "ana@school.edu", "password": STUDENT_PASSWORD})
    assert r.status_code == 403


def test_student_admin_views(client, admin_headers):
    student = create_student(client, admin_headers)

    listed = client.get("/api/admin/students", headers=admin_headers).json()
    assert [s["email"] for s in listed] == ["ana@school.edu"]
    assert "password" not in listed[0]
    with_passwords = client.get("/api/admin/students/with-passwords", headers=admin_headers).json()
    assert with_passwords[0]["password"] == STUDENT_PASSWORD

    r = client.put(f"/api/admin/students/{student['id']}", json={"email": "ana.b@school.edu", "name": "Ana B"},
                   headers=admin_headers)
    assert r.json()["name"] == "Ana B"

    r = client.put(f"/api/admin/students/{student['id']}/reset-password", json={"newPassword": "fresh-pass"},
                   headers=admin_headers)
    assert r.status_code == 200
    assert student_token(client, "ana.b@school.edu", "fresh-pass")

    assert client.delete(f"/api/admin/students/{student['id']}", headers=admin_headers).status_code == 200
    assert client.delete(f"/api/admin/students/{student['id']}", headers=admin_headers).status_code == 404


def test_staff_user_management(client, admin_headers):
    payload = {"username": "teacher", "email": "teacher@school.edu", "password": "teach123"}
    r = client.post("/api/admin/users", json=payload, headers=admin_headers)
    assert r.status_code == 201
    user = r.json()["user"]
    assert user["displayName"] == "teacher"

    r = client.post("/api/admin/users", json=payload, headers=admin_headers)
    assert (r.status_code, r.json()["detail"]) == (400, "Email already registered")
    r = client.post("/api/admin/users", json={**payload, "email": "x@school.edu"}, headers=admin_headers)
    assert r.json()["detail"] == "Username already taken"

    r = client.put(f"/api/admin/users/{user['id']}/reset-password", json={"newPassword": "changed1"},
                   headers=admin_headers)
    assert r.status_code == 200
    assert client.post("/api/auth/login", json={"email": "teacher@school.edu", "password": "changed1"}).status_code == 200

    assert len(client.get("/api/admin/users", headers=admin_headers).json()) == 2
    assert client.delete(f"/api/admin/users/{user['id']}", headers=admin_headers).status_code == 200
    assert client.delete(f"/api/admin/users/{user['id']}", headers=admin_headers).status_code == 404


def test_profile_update(client, admin_headers):
    r = client.put("/api/auth/profile", json={"displayName": "Head Admin", "darkMode": True}, headers=admin_headers)
    assert r.status_code == 200
    assert (r.json()["user"]["displayName"], r.json()["user"]["darkMode"]) == ("Head Admin", True)


# ─── Password reset ────────────────────────────────────────────────────────────

def test_password_reset_flow(client, outbox):
    r = client.post("/api/auth/forgot-password", json={"email": ADMIN["email"]})
    assert r.json()["message"] == "If that email exists, a reset link has been sent."
    assert len(outbox.sent) == 1
    assert "http://localhost:5173/admin/reset-password?token=" in outbox.sent[0]["body"]
    token = re.search(r"token=([0-9a-f]{64})", outbox.sent[0]["body"]).group(1)

    r = client.post("/api/auth/reset-password", json={"token": token, "newPassword": "brand-new"})
    assert r.status_code == 200
    assert client.post("/api/auth/login", json={"email": ADMIN["email"], "password": "brand-new"}).status_code == 200

    r = client.post("/api/auth/reset-password", json={"token": token, "newPassword": "again123"})
    assert (r.status_code, r.json()["detail"]) == (400, "This reset link has already been used")
    r = client.post("/api/auth/reset-password", json={"token": "nope", "newPassword": "again123"})
    assert r.json()["detail"] == "Invalid or expired reset link"


def test_forgot_password_does_not_reveal_unknown_addresses(client, outbox):
    r = client.post("/api/auth/forgot-password", json={"email": "ghost@school.edu"})
    assert r.status_code == 200
    assert r.json()["message"] == "If that email exists, a reset link has been sent."
    assert outbox.sent == []


def test_expired_reset_link(client, services):
    async def plant():
        user = await services.identities.get_user_by_email(ADMIN["email"])
        await services.identities.create_password_reset_token(user.id, "stale", utcnow() - timedelta(minutes=1))

    client.portal.call(plant)
    r = client.post("/api/auth/reset-password", json={"token": "stale", "newPassword": "whatever1"})
    assert r.json()["detail"] == "This reset link has expired"


# ─── Content ───────────────────────────────────────────────────────────────────

def test_content_hierarchy_and_cascade(client, admin_headers):
    create_student(client, admin_headers)
    subject = client.post("/api/admin/subjects", json={"name": "Physics", "semesterNumber": 2},
                          headers=admin_headers).json()
    unit = client.post("/api/admin/units", json={"subjectId": subject["id"], "title": "Motion"},
                       headers=admin_headers).json()
    r = client.post(
        "/api/admin/study-materials",
        json={"unitId": unit["id"], "title": "Lecture 1", "type": "video", "url": "https://videos.example.com/1"},
        headers=admin_headers,
    )
    assert r.status_code == 201
    material = r.json()
    assert material["uploadedAt"]

    semesters = client.get("/api/semesters", headers=admin_headers).json()
    assert [s["number"] for s in semesters] == [1, 2, 3, 4]
    assert (semesters[1]["subjectCount"], semesters[1]["chapterCount"], semesters[1]["materialCount"]) == (1, 1, 1)

    assert [s["name"] for s in client.get("/api/semesters/2/subjects", headers=admin_headers).json()] == ["Physics"]
    r = client.get("/api/semesters/9/subjects", headers=admin_headers)
    assert (r.status_code, r.json()["detail"]) == (400, "Invalid semester number. Must be 1-4.")

    listed = client.get(f"/api/study-materials?unitId={unit['id']}", headers=admin_headers).json()
    assert [m["id"] for m in listed] == [material["id"]]
    assert client.get(f"/api/study-materials/{material['id']}", headers=admin_headers).json()["title"] == "Lecture 1"

    token = student_token(client)
    inbox = client.get("/api/notifications", headers=bearer(token)).json()
    assert [(n["title"], n["type"]) for n in inbox] == [("📚 New Study Material", "material")]
    assert inbox[0]["message"] == '"Lecture 1" has been added. Check it out!'
    assert client.get("/api/study-materials", headers=bearer(token)).json() == []

    assert client.delete(f"/api/admin/subjects/{subject['id']}", headers=admin_headers).status_code == 200
    assert client.get(f"/api/subjects/{subject['id']}/units", headers=admin_headers).json() == []
    assert client.get(f"/api/units/{unit['id']}/materials", headers=admin_headers).json() == []
    assert client.get(f"/api/subjects/{subject['id']}", headers=admin_headers).status_code == 404


def test_unit_for_missing_subject_is_404(client, admin_headers):
    r = client.post("/api/admin/units", json={"subjectId": "missing", "title": "Orphan"}, headers=admin_headers)
    assert (r.status_code, r.json()["code"]) == (404, "NOT_FOUND")


def test_material_url_must_be_http(client, admin_headers):
    r = client.post(
        "/api/admin/study-materials",
        json={"unitId": "u", "title": "Bad", "type": "link", "url": "ftp://files.example.com/x"},
        headers=admin_headers,
    )
    assert r.status_code == 400


def test_null_for_required_subject_field_is_rejected(client, admin_headers):
    subject = client.post("/api/admin/subjects", json={"name": "Physics", "semesterNumber": 2},
                          headers=admin_headers).json()

    r = client.put(f"/api/admin/subjects/{subject['id']}", json={"name": None}, headers=admin_headers)
    assert (r.status_code, r.json()["code"]) == (400, "VALIDATION_ERROR")
    assert "name cannot be null" in r.json()["detail"]

    r = client.get("/api/subjects", headers=admin_headers)
    assert r.status_code == 200
    assert [s["name"] for s in r.json()] == ["Physics"]


def test_null_clears_optional_subject_field(client, admin_headers):
    subject = client.post(
        "/api/admin/subjects",
        json={"name": "Physics", "semesterNumber": 2, "description": "Mechanics"},
        headers=admin_headers,
    ).json()

    r = client.put(f"/api/admin/subjects/{subject['id']}", json={"description": None}, headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["description"] is None
    assert r.json()["name"] == "Physics"


def test_units_listed_under_category_alias(client, admin_headers):
    subject = client.post("/api/admin/subjects", json={"name": "Physics", "semesterNumber": 2},
                          headers=admin_headers).json()
    unit = client.post("/api/admin/units", json={"subjectId": subject["id"], "title": "Motion"},
                       headers=admin_headers).json()

    r = client.get(f"/api/categories/{subject['id']}/units", headers=admin_headers)
    assert [u["id"] for u in r.json()] == [unit["id"]]


# ─── Quizzes ───────────────────────────────────────────────────────────────────

def test_null_for_quiz_active_flag_is_rejected(client, admin_headers):
    quiz, _ = make_quiz_with_questions(client, admin_headers)

    r = client.put(f"/api/admin/quizzes/{quiz['id']}", json={"isActive": None}, headers=admin_headers)
    assert (r.status_code, r.json()["code"]) == (400, "VALIDATION_ERROR")

    r = client.get("/api/admin/quizzes", headers=admin_headers)
    assert r.status_code == 200
    assert [q["isActive"] for q in r.json()] == [False]


def test_quiz_publication_and_submission(client, admin_headers):
    create_student(client, admin_headers)
    quiz, question_ids = make_quiz_with_questions(client, admin_headers)
    assert quiz["isActive"] is False

    token = student_token(client)
    assert client.get("/api/quizzes", headers=bearer(token)).json() == []
    assert client.get(f"/api/quizzes/{quiz['id']}", headers=bearer(token)).status_code == 404
    r = client.post(f"/api/quizzes/{quiz['id']}/submit", json={"answers": {}}, headers=bearer(token))
    assert (r.status_code, r.json()["code"]) == (404, "NOT_FOUND")

    r = client.put(f"/api/admin/quizzes/{quiz['id']}", json={"isActive": True}, headers=admin_headers)
    assert r.json()["isActive"] is True
    inbox = client.get("/api/notifications", headers=bearer(token)).json()
    assert inbox[0]["title"] == "📝 New Quiz Available"
    assert inbox[0]["message"] == '"Unit Test" is now available. Attempt it now!'

    assert [q["id"] for q in client.get("/api/quizzes", headers=bearer(token)).json()] == [quiz["id"]]
    questions = client.get(f"/api/quizzes/{quiz['id']}/questions", headers=bearer(token)).json()
    assert [q["id"] for q in questions] == question_ids
    assert all("correctAnswer" not in q for q in questions)

    assert client.get(f"/api/quizzes/{quiz['id']}/check-attempt", headers=bearer(token)).json() == {
        "attempted": False, "attempt": None,
    }

    answers = {question_ids[0]: 1, question_ids[1]: 2}
    r = client.post(f"/api/quizzes/{quiz['id']}/submit", json={"answers": answers, "timeTaken": 75},
                    headers=bearer(token))
    assert r.status_code == 200
    body = r.json()
    assert (body["attempt"]["score"], body["attempt"]["totalQuestions"]) == (1, 2)
    assert body["correctAnswers"] == {question_ids[0]: 1, question_ids[1]: 0}

    r = client.post(f"/api/quizzes/{quiz['id']}/submit", json={"answers": {}}, headers=bearer(token))
    assert r.status_code == 409
    assert r.json()["code"] == "ALREADY_ATTEMPTED"
    assert r.json()["attempt"]["id"] == body["attempt"]["id"]

    check = client.get(f"/api/quizzes/{quiz['id']}/check-attempt", headers=bearer(token)).json()
    assert check["attempted"] is True
    attempts = client.get("/api/attempts", headers=bearer(token)).json()
    assert [a["quiz"]["title"] for a in attempts] == ["Unit Test"]

    analytics = client.get(f"/api/admin/quizzes/{quiz['id']}/analytics", headers=admin_headers).json()
    assert analytics["totalAttempts"] == 1
    assert analytics["leaderboard"][0]["studentName"] == "Ana"
    assert analytics["leaderboard"][0]["percentage"] == 50


def test_republishing_does_not_announce_again(client, admin_headers):
    create_student(client, admin_headers)
    quiz, _ = make_quiz_with_questions(client, admin_headers)
    client.put(f"/api/admin/quizzes/{quiz['id']}", json={"isActive": True}, headers=admin_headers)
    client.put(f"/api/admin/quizzes/{quiz['id']}", json={"title": "Renamed"}, headers=admin_headers)

    token = student_token(client)
    assert len(client.get("/api/notifications", headers=bearer(token)).json()) == 1


def test_question_bank_admin(client, admin_headers):
    quiz, question_ids = make_quiz_with_questions(client, admin_headers)

    r = client.post(
        "/api/admin/questions",
        json={"questionText": "Bad", "options": ["a", "b"], "correctAnswer": 5},
        headers=admin_headers,
    )
    assert r.status_code == 400

    again = client.post(f"/api/admin/quizzes/{quiz['id']}/questions", json={"questionId": question_ids[0]},
                        headers=admin_headers)
    assert again.json() == {"success": True, "created": False}

    r = client.put(f"/api/admin/quizzes/{quiz['id']}/questions/reorder",
                   json={"orderedQuestionIds": list(reversed(question_ids))}, headers=admin_headers)
    assert r.status_code == 200
    ordered = client.get(f"/api/admin/questions?quizId={quiz['id']}", headers=admin_headers).json()
    assert [q["id"] for q in ordered] == list(reversed(question_ids))

    info = client.get("/api/admin/questions?withQuizInfo=true", headers=admin_headers).json()
    assert all(q["usedInQuizzes"][0]["quizTitle"] == "Unit Test" for q in info)

    extra = client.post(
        "/api/admin/questions",
        json={"questionText": "Extra", "options": ["x", "y"], "correctAnswer": 1},
        headers=admin_headers,
    ).json()
    status = client.get(f"/api/admin/quizzes/{quiz['id']}/sync-status", headers=admin_headers).json()
    assert status["unlinkedQuestionIds"] == [extra["id"]]
    result = client.post(f"/api/admin/quizzes/{quiz['id']}/sync-questions", headers=admin_headers).json()
    assert (result["linked"], result["skipped"], result["total"]) == (1, 2, 3)

    r = client.delete(f"/api/admin/quizzes/{quiz['id']}/questions/{extra['id']}", headers=admin_headers)
    assert r.status_code == 200
    assert client.delete(f"/api/admin/questions/{extra['id']}", headers=admin_headers).status_code == 200
    assert client.put(f"/api/admin/questions/{extra['id']}", json={"marks": 2},
                      headers=admin_headers).status_code == 404


def test_quiz_not_found_paths(client, admin_headers):
    r = client.get("/api/admin/quizzes/missing/analytics", headers=admin_headers)
    assert (r.status_code, r.json()["detail"]) == (404, "Quiz not found")
    assert client.delete("/api/admin/quizzes/missing", headers=admin_headers).status_code == 404
    r = client.post("/api/quizzes/missing/submit", json={"answers": {}}, headers=admin_headers)
    assert r.status_code == 404


def test_admin_stats(client, admin_headers):
    create_student(client, admin_headers)
    make_quiz_with_questions(client, admin_headers)
    stats = client.get("/api/admin/stats", headers=admin_headers).json()
    assert (stats["users"], stats["students"], stats["quizzes"], stats["questions"]) == (1, 1, 1, 2)
    assert (stats["activeQuizzes"], stats["totalQuizTime"]) == (0, 15)


# ─── Notices and notifications ─────────────────────────────────────────────────

def test_notices_and_notifications(client, admin_headers):
    create_student(client, admin_headers)
    create_student(client, admin_headers, email="ben@school.edu", phone="5550002", name="Ben")
    expires = (utcnow() + timedelta(days=2)).isoformat()
    r = client.post(
        "/api/admin/notices",
        json={"title": "Holiday", "message": "No class Friday", "priority": "important", "expiresAt": expires},
        headers=admin_headers,
    )
    assert r.status_code == 201
    notice = r.json()

    ana = student_token(client)
    ben = student_token(client, "ben@school.edu")
    assert [n["id"] for n in client.get("/api/notices", headers=bearer(ana)).json()] == [notice["id"]]

    inbox = client.get("/api/notifications", headers=bearer(ana)).json()
    assert inbox[0]["title"] == "📢 Notice: Holiday"
    assert client.put(f"/api/notifications/{inbox[0]['id']}/read", headers=bearer(ben)).status_code == 404
    assert client.put(f"/api/notifications/{inbox[0]['id']}/read", headers=bearer(ana)).status_code == 200
    assert client.get("/api/notifications", headers=bearer(ana)).json()[0]["read"] is True

    assert client.put("/api/notifications/read-all", headers=bearer(ben)).status_code == 200
    assert client.get("/api/notifications", headers=bearer(ben)).json()[0]["read"] is True
    assert client.delete("/api/notifications/clear-all", headers=bearer(ben)).status_code == 200
    assert client.get("/api/notifications", headers=bearer(ben)).json() == []

    r = client.put(f"/api/admin/notices/{notice['id']}", json={"priority": "urgent"}, headers=admin_headers)
    assert r.json()["priority"] == "urgent"
    assert client.delete(f"/api/admin/notices/{notice['id']}", headers=admin_headers).status_code == 200
    assert client.get("/api/notices", headers=bearer(ana)).json() == []
