from datetime import timedelta

import pytest
from sqlalchemy import func, select

from admin_tasks import review_submission
from conftest import login, login_admin
from errors import DuplicateSubmission, MalformedInput, NotFound
from extensions import db
from models_points import REASON_AI_REVIEW_BONUS, REASON_TASK_LATE, REASON_TASK_ON_TIME, PointTransaction
from models_tasks import SUBMISSION_APPROVED, SUBMISSION_REJECTED, Task
from tasks import submit_task


@pytest.fixture
def task(app, clock):
    t = Task(
        title="Weekly report",
        description="Summarize the week",
        scheduled_for=clock().replace(hour=9),
        due_at=clock().replace(hour=18),
    )
    db.session.add(t)
    db.session.commit()
    return t


def test_on_time_submission_earns_a_point(ledger, make_user, task, clock):
    user = make_user("a@example.com")
    sub = submit_task(ledger, user.id, task.id, "done", clock())
    assert sub.is_late is False
    assert ledger.balance(user.id) == 1
    assert ledger.history(user.id)[0].reason == REASON_TASK_ON_TIME


def test_late_submission_costs_a_point(ledger, make_user, task):
    user = make_user("a@example.com")
    ledger.adjust(user.id, 3, REASON_TASK_ON_TIME)
    sub = submit_task(ledger, user.id, task.id, "done", task.due_at + timedelta(seconds=1))
    assert sub.is_late is True
    assert ledger.balance(user.id) == 2
    assert ledger.history(user.id)[0].reason == REASON_TASK_LATE


def test_submission_exactly_at_deadline_is_on_time(ledger, make_user, task):
    user = make_user("a@example.com")
    assert submit_task(ledger, user.id, task.id, "done", task.due_at).is_late is False


def test_second_submission_is_rejected(ledger, make_user, task, clock):
    user = make_user("a@example.com")
    submit_task(ledger, user.id, task.id, "done", clock())
    with pytest.raises(DuplicateSubmission):
        submit_task(ledger, user.id, task.id, "again", clock())
    assert ledger.balance(user.id) == 1
    count = db.session.execute(
        select(func.count(PointTransaction.id)).where(PointTransaction.user_id == user.id)
    ).scalar_one()
    assert count == 1


def test_submission_preconditions(ledger, make_user, task, clock):
    user = make_user("a@example.com")
    with pytest.raises(MalformedInput):
        submit_task(ledger, user.id, task.id, "   ", clock())
    with pytest.raises(MalformedInput):
        submit_task(ledger, user.id, "abc", "done", clock())
    with pytest.raises(NotFound):
        submit_task(ledger, user.id, 12345, "done", clock())


def test_submit_route_requires_login(client, task):
    resp = client.post("/api/tasks/submit", json={"task_id": task.id, "content": "done"})
    assert resp.status_code == 401


def test_submit_route(client, make_user, task, ledger):
    user = make_user("a@example.com")
    login(client, user)

    resp = client.post("/api/tasks/submit", json={"task_id": task.id, "content": "done"})
    assert resp.status_code == 201
    assert resp.get_json()["submission"]["is_late"] is False

    resp = client.post("/api/tasks/submit", json={"task_id": task.id, "content": "again"})
    assert resp.status_code == 409
    assert resp.get_json()["error"] == "already_submitted"

    today = client.get("/api/tasks/today").get_json()["tasks"]
    assert [t["id"] for t in today] == [task.id]
    assert today[0]["submission"]["content"] == "done"


def test_approved_high_score_review_earns_bonus(ledger, make_user, task, clock, config):
    user = make_user("a@example.com")
    sub = submit_task(ledger, user.id, task.id, "done", clock())

    review_submission(ledger, sub.id, 85, SUBMISSION_APPROVED, "Great", config.review_bonus_threshold, clock())
    assert ledger.balance(user.id) == 2
    assert ledger.history(user.id)[0].reason == REASON_AI_REVIEW_BONUS

    with pytest.raises(DuplicateSubmission):
        review_submission(ledger, sub.id, 90, SUBMISSION_APPROVED, None, config.review_bonus_threshold, clock())
    assert ledger.balance(user.id) == 2


def test_rejected_or_low_score_review_earns_nothing(ledger, make_user, clock, config):
    a = make_user("a@example.com")
    b = make_user("b@example.com")
    t = Task(title="t", scheduled_for=clock(), due_at=clock() + timedelta(hours=1))
    db.session.add(t)
    db.session.commit()
    sa = submit_task(ledger, a.id, t.id, "done", clock())
    sb = submit_task(ledger, b.id, t.id, "done", clock())

    review_submission(ledger, sa.id, 95, SUBMISSION_REJECTED, None, config.review_bonus_threshold, clock())
    review_submission(ledger, sb.id, 79, SUBMISSION_APPROVED, None, config.review_bonus_threshold, clock())
    assert ledger.balance(a.id) == 1
    assert ledger.balance(b.id) == 1


def test_admin_routes_require_admin(client):
    assert client.get("/api/admin/tasks").status_code == 403
    assert client.post("/api/admin/login", json={"key": "wrong"}).status_code == 403
    assert client.post("/api/admin/login", json={"key": "test-admin-key"}).status_code == 200
    assert client.get("/api/admin/tasks").status_code == 200


def test_admin_creates_task_and_reviews(client, make_user, ledger):
    user = make_user("a@example.com")
    login_admin(client)
    resp = client.post("/api/admin/tasks", json={
        "title": "Standup notes",
        "scheduled_for": "2025-03-12T08:00:00Z",
        "due_at": "2025-03-12T17:00:00Z",
    })
    assert resp.status_code == 201
    task_id = resp.get_json()["task"]["id"]

    bad = client.post("/api/admin/tasks", json={
        "title": "Backwards",
        "scheduled_for": "2025-03-12T17:00:00",
        "due_at": "2025-03-12T08:00:00",
    })
    assert bad.status_code == 400

    login(client, user)
    client.post("/api/tasks/submit", json={"task_id": task_id, "content": "notes"})

    pending = client.get("/api/admin/submissions").get_json()["submissions"]
    assert len(pending) == 1
    resp = client.post(
        f"/api/admin/submissions/{pending[0]['id']}/review",
        json={"score": 80, "status": "approved"},
    )
    assert resp.status_code == 200
    assert resp.get_json()["submission"]["status"] == SUBMISSION_APPROVED
    assert ledger.balance(user.id) == 2
