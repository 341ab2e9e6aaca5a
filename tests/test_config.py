import pytest

from carrental.config import Settings, env_bool, env_list, production_problems


def test_dev_defaults_are_flagged_for_production():
    problems = production_problems(Settings())
    assert any("JWT_SECRET" in p for p in problems)
    assert any("OTP_MODE" in p for p in problems)


def test_hardened_settings_pass():
    s = Settings()
    s.ALLOWED_ORIGINS = ["https://rent.example"]
    s.AUTO_CREATE_SCHEMA = False
    s.OTP_MODE = "sms"
    s.JWT_SECRET = "x" * 32
    s.ADMIN_TOKEN = "admin"
    s.RATE_LIMIT_BACKEND = "redis"
    s.REDIS_URL = "redis://cache:6379/0"
    assert production_problems(s) == []


def test_env_helpers(monkeypatch):
    monkeypatch.setenv("CR_FLAG", "Yes")
    monkeypatch.setenv("CR_LIST", "a, b,,c")
    assert env_bool("CR_FLAG") is True
    assert env_list("CR_LIST") == ["a", "b", "c"]
    monkeypatch.setenv("CR_FLAG", "maybe")
    with pytest.raises(ValueError):
        env_bool("CR_FLAG")
