from datetime import timedelta

import pytest

from activity import minutes_for, record_heartbeat
from conftest import login
from errors import MalformedInput


def test_heartbeats_accumulate_per_day(make_user, clock):
    user = make_user("a@example.com")
    for _ in range(3):
        record_heartbeat(user.id, 1, clock())
    record_heartbeat(user.id, 5, clock())
    assert minutes_for(user.id, clock().date()) == 8

    tomorrow = clock() + timedelta(days=1)
    record_heartbeat(user.id, 2, tomorrow)
    assert minutes_for(user.id, tomorrow.date()) == 2
    assert minutes_for(user.id, clock().date()) == 8


def test_missing_day_reads_as_zero(make_user, clock):
    user = make_user("a@example.com")
    assert minutes_for(user.id, clock().date()) == 0


@pytest.mark.parametrize("minutes", [0, -1, 61, "5", True, None])
def test_invalid_minutes(make_user, clock, minutes):
    user = make_user("a@example.com")
    with pytest.raises(MalformedInput):
        record_heartbeat(user.id, minutes, clock())


def test_heartbeat_route(client, make_user):
    assert client.post("/api/activity/heartbeat", json={}).status_code == 401

    user = make_user("a@example.com")
    login(client, user)
    client.post("/api/activity/heartbeat", json={})
    resp = client.post("/api/activity/heartbeat", json={"minutes": 4})
    assert resp.status_code == 200
    assert resp.get_json()["minutes_today"] == 5

    assert client.post("/api/activity/heartbeat", json={"minutes": 600}).status_code == 400
