import pytest
from sqlalchemy import func, select

from errors import MalformedInput, UserNotFound
from extensions import db
from models_points import (
    REASON_MISSED_TASK_PENALTY,
    REASON_QUIZ_BONUS,
    REASON_TASK_ON_TIME,
    REASON_WEEKLY_RESET,
    PointsAccount,
    PointTransaction,
)


def _tx_count(user_id=None):
    q = select(func.count(PointTransaction.id))
    if user_id is not None:
        q = q.where(PointTransaction.user_id == user_id)
    return db.session.execute(q).scalar_one()


def test_adjust_creates_account_at_zero(ledger, make_user):
    user = make_user("a@example.com")
    account = ledger.adjust(user.id, 2, REASON_TASK_ON_TIME)
    assert account.current_points == 2
    assert ledger.balance(user.id) == 2


def test_balance_is_clamped_at_limit(ledger, make_user, config):
    user = make_user("a@example.com")
    ledger.adjust(user.id, config.point_limit - 1, REASON_TASK_ON_TIME)
    ledger.adjust(user.id, 1, REASON_QUIZ_BONUS)
    ledger.adjust(user.id, 1, REASON_QUIZ_BONUS)
    assert ledger.balance(user.id) == config.point_limit

    # The log keeps the requested change even when the balance did not move.
    last = ledger.history(user.id, limit=1)[0]
    assert last.change == 1
    assert last.reason == REASON_QUIZ_BONUS


def test_balance_is_clamped_at_zero(ledger, make_user):
    user = make_user("a@example.com")
    ledger.adjust(user.id, -1, REASON_MISSED_TASK_PENALTY)
    assert ledger.balance(user.id) == 0
    assert ledger.history(user.id)[0].change == -1


def test_clamping_is_lossy(ledger, make_user):
    user = make_user("a@example.com")
    ledger.adjust(user.id, 1000, REASON_TASK_ON_TIME)
    ledger.adjust(user.id, -1000, REASON_MISSED_TASK_PENALTY)
    ledger.adjust(user.id, 1, REASON_TASK_ON_TIME)
    assert ledger.balance(user.id) == 1
    assert sum(t.change for t in ledger.history(user.id)) == 1


def test_unknown_user_writes_nothing(ledger):
    with pytest.raises(UserNotFound):
        ledger.adjust(999, 1, REASON_TASK_ON_TIME)
    assert db.session.execute(select(func.count(PointsAccount.id))).scalar_one() == 0
    assert _tx_count() == 0


def test_unknown_reason_is_rejected(ledger, make_user):
    user = make_user("a@example.com")
    with pytest.raises(MalformedInput):
        ledger.adjust(user.id, 1, "BIRTHDAY")
    assert _tx_count(user.id) == 0


def test_zero_change_logs_nothing(ledger, make_user):
    user = make_user("a@example.com")
    ledger.adjust(user.id, 0, REASON_TASK_ON_TIME)
    assert ledger.balance(user.id) == 0
    assert _tx_count(user.id) == 0


def test_metadata_is_kept_on_the_transaction(ledger, make_user):
    user = make_user("a@example.com")
    ledger.adjust(user.id, 1, REASON_TASK_ON_TIME, note="On time", metadata={"task_id": 7})
    tx = ledger.history(user.id)[0].to_dict()
    assert tx["metadata"] == {"task_id": 7}
    assert tx["note"] == "On time"


def test_reset_all_zeroes_nonzero_accounts_only(ledger, make_user):
    a = make_user("a@example.com")
    b = make_user("b@example.com")
    c = make_user("c@example.com")
    ledger.adjust(a.id, 4, REASON_TASK_ON_TIME)
    ledger.adjust(b.id, 1, REASON_TASK_ON_TIME)
    ledger.adjust(c.id, 0, REASON_TASK_ON_TIME)

    assert ledger.reset_all() == 2
    assert [ledger.balance(u.id) for u in (a, b, c)] == [0, 0, 0]

    resets = db.session.execute(
        select(PointTransaction).where(PointTransaction.reason == REASON_WEEKLY_RESET)
    ).scalars().all()
    assert sorted((t.user_id, t.change) for t in resets) == [(a.id, -4), (b.id, -1)]
