from datetime import datetime, timezone

from tests.conftest import MB, PASSWORD, auth_header


def pdf(name="report.pdf", size=1024):
    return ("files", (name, b"%" + b"x" * (size - 1), "application/pdf"))


def submit(client, user, task_id, files=(), text=None):
    data = {"taskId": task_id}
    if text is not None:
        data["submissionText"] = text
    return client.post("/api/v1/submissions", headers=auth_header(user), data=data, files=list(files))


def test_submit_returns_201_with_lateness(client, make_task, users, dispatcher):
    task = make_task(due_date=datetime(2000, 1, 1, tzinfo=timezone.utc))

    r = submit(client, users.student, task.id, [pdf("a.pdf"), pdf("b.pdf")], "hello")

    assert r.status_code == 201, r.text
    body = r.json()
    assert body["isLate"] is True
    sub = body["submission"]
    assert sub["taskId"] == task.id
    assert sub["status"] == "submitted"
    assert sub["submissionText"] == "hello"
    assert [f["originalName"] for f in sub["files"]] == ["a.pdf", "b.pdf"]
    assert len(dispatcher.events) == 1


def test_resubmit_via_api_keeps_same_id(client, make_task, users):
    task = make_task()
    first = submit(client, users.student, task.id, [pdf("a.pdf")]).json()["submission"]
    second = submit(client, users.student, task.id, [pdf("b.pdf")]).json()["submission"]

    assert second["id"] == first["id"]
    assert len(second["files"]) == 2


def test_submit_error_statuses(client, make_task, users):
    task = make_task()

    assert submit(client, users.student, "missing", [pdf()]).status_code == 404
    assert submit(client, users.outsider, task.id, [pdf()]).status_code == 403
    assert submit(client, users.teacher, task.id, [pdf()]).status_code == 403

    r = submit(client, users.student, task.id, [pdf("big.pdf", size=2 * MB)])
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "INVALID_ARGUMENT"

    assert submit(client, users.student, task.id, [pdf(f"{i}.pdf") for i in range(6)]).status_code == 400
    assert submit(client, users.student, task.id, [], "   ").status_code == 400


def test_unauthenticated_requests_get_401(client):
    assert client.get("/api/v1/submissions/mine").status_code == 401
    r = client.get("/api/v1/submissions/mine", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401
    assert r.json()["success"] is False


def test_mine_and_teacher_listing(client, make_task, users):
    task = make_task(assignment_type="department", assignee_id=None, target_department="CSE")
    submit(client, users.student, task.id, [pdf()])
    submit(client, users.classmate, task.id, [pdf()])

    mine = client.get("/api/v1/submissions/mine", headers=auth_header(users.student)).json()
    assert mine["total"] == 1
    assert mine["data"][0]["studentId"] == users.student.id
    assert "isLate" in mine["data"][0]

    everything = client.get("/api/v1/submissions", params={"all": "true"},
                            headers=auth_header(users.teacher)).json()
    assert everything["total"] == 2

    r = client.get("/api/v1/submissions", params={"all": "true"}, headers=auth_header(users.student))
    assert r.status_code == 403

    by_task = client.get(f"/api/v1/submissions/task/{task.id}", headers=auth_header(users.teacher))
    assert by_task.status_code == 200
    assert by_task.json()["total"] == 2
    other = client.get(f"/api/v1/submissions/task/{task.id}", headers=auth_header(users.other_teacher))
    assert other.status_code == 403


def test_get_by_id_access(client, make_task, users):
    task = make_task()
    sub_id = submit(client, users.student, task.id, [pdf()]).json()["submission"]["id"]

    assert client.get(f"/api/v1/submissions/{sub_id}", headers=auth_header(users.student)).status_code == 200
    assert client.get(f"/api/v1/submissions/{sub_id}", headers=auth_header(users.teacher)).status_code == 200
    assert client.get(f"/api/v1/submissions/{sub_id}", headers=auth_header(users.outsider)).status_code == 403
    assert client.get("/api/v1/submissions/nope", headers=auth_header(users.teacher)).status_code == 404


def test_grade_validation_and_flow(client, make_task, users):
    task = make_task()
    sub_id = submit(client, users.student, task.id, [pdf()]).json()["submission"]["id"]
    url = f"/api/v1/submissions/{sub_id}/grade"
    teacher = auth_header(users.teacher)

    assert client.put(url, headers=teacher, json={"grade": 101}).status_code == 400
    assert client.put(url, headers=teacher, json={"grade": -5}).status_code == 400
    assert client.put(url, headers=teacher, json={"grade": "high"}).status_code == 422
    assert client.put(url, headers=teacher, json={"grade": 50, "score": 1}).status_code == 422
    assert client.put(url, headers=auth_header(users.other_teacher), json={"grade": 50}).status_code == 403
    assert client.put(url, headers=auth_header(users.student), json={"grade": 50}).status_code == 403

    r = client.put(url, headers=teacher, json={"grade": 85, "feedback": "Nice", "teacherComments": "Cite sources"})
    assert r.status_code == 200, r.text
    sub = r.json()["submission"]
    assert sub["grade"] == 85
    assert sub["status"] == "graded"
    assert sub["teacherComments"] == "Cite sources"


def test_boolean_grade_is_rejected(client, make_task, users):
    task = make_task()
    sub_id = submit(client, users.student, task.id, [pdf()]).json()["submission"]["id"]
    url = f"/api/v1/submissions/{sub_id}/grade"
    teacher = auth_header(users.teacher)

    for value in (True, False):
        r = client.put(url, headers=teacher, json={"grade": value})
        assert r.status_code == 422
        assert r.json()["error"]["code"] == "VALIDATION_ERROR"

    r = client.get(f"/api/v1/submissions/{sub_id}", headers=teacher)
    assert r.json()["submission"]["status"] == "submitted"
    assert r.json()["submission"]["grade"] is None

    # whole numbers are still accepted
    assert client.put(url, headers=teacher, json={"grade": 100}).status_code == 200


def test_graded_submission_delete_and_resubmit_rules(client, make_task, users):
    task = make_task()
    sub_id = submit(client, users.student, task.id, [pdf()]).json()["submission"]["id"]
    client.put(f"/api/v1/submissions/{sub_id}/grade", headers=auth_header(users.teacher), json={"grade": 85})

    r = client.delete(f"/api/v1/submissions/{sub_id}", headers=auth_header(users.student))
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "INVALID_OPERATION"
    assert submit(client, users.student, task.id, [pdf("v2.pdf")]).status_code == 400

    r = client.put(f"/api/v1/submissions/{sub_id}/reopen", headers=auth_header(users.teacher))
    assert r.status_code == 200
    assert r.json()["submission"]["status"] == "returned"
    assert submit(client, users.student, task.id, [pdf("v2.pdf")]).status_code == 201


def test_delete_submission(client, make_task, users, blob_store):
    task = make_task()
    sub = submit(client, users.student, task.id, [pdf()]).json()["submission"]
    file_id = sub["files"][0]["fileId"]

    assert client.delete(f"/api/v1/submissions/{sub['id']}", headers=auth_header(users.teacher)).status_code == 403
    r = client.delete(f"/api/v1/submissions/{sub['id']}", headers=auth_header(users.student))
    assert r.status_code == 200
    assert not blob_store.exists(file_id)
    assert client.get(f"/api/v1/submissions/{sub['id']}", headers=auth_header(users.student)).status_code == 404


def test_file_download(client, make_task, users, blob_store):
    task = make_task()
    sub = submit(client, users.student, task.id, [("files", ("lab report.pdf", b"%PDF-data", "application/pdf"))]).json()
    file_id = sub["submission"]["files"][0]["fileId"]
    url = f"/api/v1/submissions/files/{file_id}"

    r = client.get(url, headers=auth_header(users.teacher))
    assert r.status_code == 200
    assert r.content == b"%PDF-data"
    assert r.headers["content-type"] == "application/pdf"
    assert r.headers["content-disposition"].startswith('attachment; filename="lab report.pdf"')

    assert client.get(url, headers=auth_header(users.outsider)).status_code == 403
    assert client.get("/api/v1/submissions/files/0123abcd", headers=auth_header(users.teacher)).status_code == 404

    blob_store.delete(file_id)
    assert client.get(url, headers=auth_header(users.student)).status_code == 404


def test_login_then_submit(client, make_task, users):
    task = make_task()
    r = client.post("/api/v1/auth/login", json={"email": "student@example.com", "password": PASSWORD})
    assert r.status_code == 200, r.text
    token = r.json()["token"]["access_token"]

    r = client.post(
        "/api/v1/submissions",
        headers={"Authorization": f"Bearer {token}"},
        data={"taskId": task.id, "submissionText": "typed answer"},
    )
    assert r.status_code == 201, r.text
