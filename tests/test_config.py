import pytest

from incentive_config import IncentiveConfig


def test_defaults(monkeypatch):
    for name in ("POINT_LIMIT", "MONTHLY_TOKEN_QUOTA", "TOKEN_PREFIX", "INACTIVITY_DAYS"):
        monkeypatch.delenv(name, raising=False)
    config = IncentiveConfig.from_env()
    assert config.point_limit == 15
    assert config.monthly_token_quota == 3
    assert config.token_prefix == "GV"
    assert config.inactivity_days == 3


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("POINT_LIMIT", "20")
    monkeypatch.setenv("TOKEN_PREFIX", "ACME")
    config = IncentiveConfig.from_env()
    assert config.point_limit == 20
    assert config.token_prefix == "ACME"


def test_bad_integer_fails_fast(monkeypatch):
    monkeypatch.setenv("POINT_LIMIT", "lots")
    with pytest.raises(RuntimeError):
        IncentiveConfig.from_env()
