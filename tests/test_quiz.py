import json
from datetime import timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from conftest import login
from errors import DuplicateQuizSession, MalformedInput
from extensions import db
from models_points import REASON_QUIZ_BONUS
from models_quiz import ExamQuestion, WrongAnswer
from quiz import percent_score


@pytest.fixture
def questions(app, clock):
    qs = []
    for i in range(5):
        q = ExamQuestion(
            prompt=f"Question {i}",
            options_json=json.dumps(["a", "b", "c", "d"]),
            correct_option_index=i % 4,
            explanation_text=f"Because {i}",
            explanation_video_url=f"https://videos.example.com/{i}",
            created_at=clock() - timedelta(days=1, minutes=-i),
        )
        db.session.add(q)
        qs.append(q)
    db.session.commit()
    return qs


def _answers(questions, wrong=0):
    out = []
    for i, q in enumerate(questions):
        option = q.correct_option_index
        if i < wrong:
            option = (option + 1) % 4
        out.append({"question_id": q.id, "selected_option": option})
    return out


def test_percent_score_rounds_half_up():
    assert percent_score(4, 5) == 80
    assert percent_score(1, 8) == 13
    assert percent_score(2, 3) == 67
    assert percent_score(0, 5) == 0
    assert percent_score(5, 5) == 100


def test_four_correct_earns_bonus(engine, make_user, questions, clock, config):
    user = make_user("a@example.com")
    result = engine.quiz.submit(user.id, _answers(questions, wrong=1), clock())

    assert result.correct_count == 4
    assert result.score == 80
    assert result.bonus_awarded is True
    assert engine.ledger.balance(user.id) == 1
    assert engine.ledger.history(user.id)[0].reason == REASON_QUIZ_BONUS

    wrongs = db.session.execute(select(WrongAnswer).where(WrongAnswer.user_id == user.id)).scalars().all()
    assert len(wrongs) == 1
    assert wrongs[0].question_id == questions[0].id
    assert wrongs[0].correction_deadline == clock() + timedelta(days=config.correction_window_days)
    assert wrongs[0].correction_text == "Because 0"
    assert wrongs[0].correction_video_url == "https://videos.example.com/0"


def test_three_correct_earns_nothing(engine, make_user, questions, clock):
    user = make_user("a@example.com")
    result = engine.quiz.submit(user.id, _answers(questions, wrong=2), clock())

    assert result.score == 60
    assert result.bonus_awarded is False
    assert engine.ledger.balance(user.id) == 0
    count = db.session.execute(
        select(func.count(WrongAnswer.id)).where(WrongAnswer.user_id == user.id)
    ).scalar_one()
    assert count == 2


def test_one_quiz_per_day(engine, make_user, questions, clock):
    user = make_user("a@example.com")
    engine.quiz.submit(user.id, _answers(questions), clock())
    with pytest.raises(DuplicateQuizSession):
        engine.quiz.submit(user.id, _answers(questions), clock() + timedelta(hours=2))
    assert engine.ledger.balance(user.id) == 1

    clock.advance(days=1)
    engine.quiz.submit(user.id, _answers(questions), clock())
    assert engine.ledger.balance(user.id) == 2


@pytest.mark.parametrize("mangle", [
    lambda answers: answers[:4],
    lambda answers: answers + answers[:1],
    lambda answers: answers[:4] + answers[:1],
    lambda answers: [dict(a, question_id=str(a["question_id"])) for a in answers],
    lambda answers: [dict(a, selected_option=True) for a in answers],
    lambda answers: answers[:4] + [{"question_id": 9999, "selected_option": 0}],
    lambda answers: "not a list",
])
def test_malformed_answers_write_nothing(engine, make_user, questions, clock, mangle):
    user = make_user("a@example.com")
    with pytest.raises(MalformedInput):
        engine.quiz.submit(user.id, mangle(_answers(questions)), clock())
    assert engine.ledger.balance(user.id) == 0
    # The day is still open after a rejected batch.
    assert engine.quiz.submit(user.id, _answers(questions), clock()).score == 100


def test_daily_routes(client, make_user, questions):
    user = make_user("a@example.com")
    login(client, user)

    daily = client.get("/api/quiz/daily").get_json()
    assert daily["completed"] is False
    assert len(daily["questions"]) == 5
    assert "correct_option_index" not in daily["questions"][0]

    resp = client.post("/api/quiz/submit", json={"answers": _answers(questions, wrong=1)})
    assert resp.status_code == 200
    assert resp.get_json()["score"] == 80

    again = client.post("/api/quiz/submit", json={"answers": _answers(questions)})
    assert again.status_code == 409
    assert again.get_json()["error"] == "quiz_already_taken"

    daily = client.get("/api/quiz/daily").get_json()
    assert daily["completed"] is True
    assert "correct_option_index" in daily["questions"][0]


def test_wrong_answers_can_be_resolved(client, make_user, engine, questions, clock):
    user = make_user("a@example.com")
    other = make_user("b@example.com")
    engine.quiz.submit(user.id, _answers(questions, wrong=1), clock())
    login(client, user)

    items = client.get("/api/wrong-answers").get_json()["wrong_answers"]
    assert len(items) == 1 and items[0]["is_resolved"] is False

    resp = client.post(f"/api/wrong-answers/{items[0]['id']}/resolve")
    assert resp.status_code == 200
    assert resp.get_json()["wrong_answer"]["is_resolved"] is True

    login(client, other)
    assert client.post(f"/api/wrong-answers/{items[0]['id']}/resolve").status_code == 404


def test_unrelated_integrity_error_is_not_reported_as_duplicate(engine, make_user, questions, clock, monkeypatch):
    user = make_user("a@example.com")

    def conflicting_apply(*args, **kwargs):
        raise IntegrityError("INSERT INTO points_accounts", {}, Exception("UNIQUE constraint failed"))

    monkeypatch.setattr(engine.ledger, "apply", conflicting_apply)
    with pytest.raises(IntegrityError):
        engine.quiz.submit(user.id, _answers(questions), clock())

    # Rolled back as a whole, so the day is still open.
    monkeypatch.undo()
    assert engine.quiz.submit(user.id, _answers(questions), clock()).bonus_awarded is True
