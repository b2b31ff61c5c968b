"""
Tests for environment-driven settings.
"""

import os

import pytest

from browza_api.settings import Settings, load_env


def test_defaults(monkeypatch):
    for name in ("BROWZA_ALLOWLIST_SEED", "BROWZA_ALLOWLIST_BACKEND", "BROWZA_JOB_STORE_BACKEND", "PORT", "BROWZA_PORT"):
        monkeypatch.delenv(name, raising=False)

    settings = Settings()

    assert settings.port == 8080
    assert settings.allowlist_backend == "memory"
    assert settings.job_store_backend == "memory"
    assert settings.max_body_bytes == 256 * 1024
    assert settings.allowlist_seed == (
        "www.google.com",
        "www.google.co.in",
        "www.youtube.com",
        "www.flipkart.com",
        "www.amazon.in",
    )
    assert not settings.needs_postgres


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("PORT", "9000")
    monkeypatch.setenv("BROWZA_ALLOWLIST_SEED", " a.example , ,b.example ")
    monkeypatch.setenv("BROWZA_ALLOWLIST_BACKEND", "Redis")
    monkeypatch.setenv("BROWZA_JOB_STORE_BACKEND", "postgres")
    monkeypatch.setenv("BROWZA_LOG_JSON", "off")
    monkeypatch.setenv("BROWZA_STORE_TIMEOUT_MS", "250")

    settings = Settings()

    assert settings.port == 9000
    assert settings.allowlist_seed == ("a.example", "b.example")
    assert settings.allowlist_backend == "redis"
    assert settings.needs_postgres
    assert settings.log_json is False
    assert settings.store_timeout_ms == 250


@pytest.mark.parametrize(
    "name,value",
    [("BROWZA_ALLOWLIST_BACKEND", "mongo"), ("BROWZA_JOB_STORE_BACKEND", "redis")],
)
def test_unknown_backend_fails_fast(monkeypatch, name, value):
    monkeypatch.setenv(name, value)
    with pytest.raises(ValueError):
        Settings()


def test_load_env_file(tmp_path, monkeypatch):
    env_file = tmp_path / ".env"
    env_file.write_text("BROWZA_TEST_ONLY_FLAG=1\n")
    monkeypatch.delenv("BROWZA_TEST_ONLY_FLAG", raising=False)

    assert load_env(str(env_file))
    assert os.environ["BROWZA_TEST_ONLY_FLAG"] == "1"
    monkeypatch.delenv("BROWZA_TEST_ONLY_FLAG")
