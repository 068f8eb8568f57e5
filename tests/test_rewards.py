from datetime import datetime

import pytest

from conftest import login
from errors import DuplicateSubmission, NotFound, RewardNotEligible
from models_points import REASON_TASK_ON_TIME
from rewards import request_reward


@pytest.fixture
def ranked(engine, make_user):
    users = [make_user(f"u{i}@example.com", display_name=f"User {i}") for i in range(4)]
    for points, user in zip((9, 7, 5, 3), users):
        engine.ledger.adjust(user.id, points, REASON_TASK_ON_TIME)
    engine.scheduler.run_weekly_summary(datetime(2025, 3, 16, 23, 0))
    return users


def test_no_summary_yet(engine, make_user, clock):
    user = make_user("a@example.com")
    with pytest.raises(NotFound):
        request_reward(engine.config, user.id, "Gift card", clock())


def test_top_ranked_user_can_request_once(engine, ranked, clock):
    req = request_reward(engine.config, ranked[0].id, "Gift card", clock())
    assert req.points_at_request == 9
    with pytest.raises(DuplicateSubmission):
        request_reward(engine.config, ranked[0].id, "Day off", clock())


def test_outside_top_slots_is_not_eligible(engine, ranked, clock):
    with pytest.raises(RewardNotEligible):
        request_reward(engine.config, ranked[3].id, "Gift card", clock())


def test_reward_routes(client, ranked):
    login(client, ranked[1])
    board = client.get("/api/rewards/leaderboard").get_json()["summaries"]
    assert [e["user_id"] for e in board[0]["leaderboard"]] == [u.id for u in ranked]

    resp = client.post("/api/rewards/request", json={"reward_option": "Lunch"})
    assert resp.status_code == 201
    assert resp.get_json()["request"]["points_at_request"] == 7

    login(client, ranked[3])
    resp = client.post("/api/rewards/request", json={"reward_option": "Lunch"})
    assert resp.status_code == 403
    assert resp.get_json()["error"] == "reward_not_eligible"


def test_points_route(client, engine, make_user):
    user = make_user("a@example.com")
    engine.ledger.adjust(user.id, 2, REASON_TASK_ON_TIME)
    login(client, user)
    body = client.get("/api/points").get_json()
    assert body["points"] == 2
    assert body["limit"] == 15
    assert body["transactions"][0]["reason"] == REASON_TASK_ON_TIME
