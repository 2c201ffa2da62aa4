from __future__ import annotations

import logging

import pytest

from propcatalog.config import (
    InvalidConfigurationError,
    MissingConfigurationError,
    RetryPolicy,
    build_catalog_resilience,
    configure_logging,
    env_flag,
    get_catalog_api_config,
    optional_env_var,
    parsed_env_var,
    require_env_vars,
)


def test_require_env_vars_returns_stripped_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("EXAMPLE_VAR", " value ")

    result = require_env_vars(["EXAMPLE_VAR"])

    assert result == {"EXAMPLE_VAR": "value"}


def test_require_env_vars_lists_every_missing_name(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("MISSING_A", raising=False)
    monkeypatch.setenv("MISSING_B", "   ")

    with pytest.raises(MissingConfigurationError) as exc:
        require_env_vars(["MISSING_B", "MISSING_A"])

    assert exc.value.names == ("MISSING_A", "MISSING_B")
    assert "MISSING_A, MISSING_B" in str(exc.value)


def test_optional_env_var_treats_blank_as_unset(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("EXAMPLE_VAR", "  ")

    assert optional_env_var("EXAMPLE_VAR") is None


def test_parsed_env_var(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("EXAMPLE_NUMBER", raising=False)
    assert parsed_env_var("EXAMPLE_NUMBER", int, default=3) == 3

    monkeypatch.setenv("EXAMPLE_NUMBER", "7")
    assert parsed_env_var("EXAMPLE_NUMBER", int, default=3) == 7

    monkeypatch.setenv("EXAMPLE_NUMBER", "seven")
    with pytest.raises(InvalidConfigurationError, match="EXAMPLE_NUMBER"):
        parsed_env_var("EXAMPLE_NUMBER", int, default=3)


@pytest.mark.parametrize(("raw", "expected"), [("1", True), ("Yes", True), ("off", False)])
def test_env_flag(monkeypatch: pytest.MonkeyPatch, raw: str, expected: bool) -> None:
    monkeypatch.setenv("EXAMPLE_FLAG", raw)

    assert env_flag("EXAMPLE_FLAG") is expected


def test_catalog_config_reads_url_and_token(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CATALOG_API_URL", "https://catalog.example/api/")
    monkeypatch.setenv("CATALOG_API_TOKEN", "secret")
    monkeypatch.delenv("CATALOG_API_TIMEOUT", raising=False)

    config = get_catalog_api_config()

    assert config.base_url == "https://catalog.example/api"
    assert config.api_token == "secret"
    assert config.resilience.base_url == "https://catalog.example/api"
    assert config.resilience.headers["Authorization"] == "Bearer secret"
    assert config.resilience.timeout_seconds == 15.0


def test_catalog_config_tuning_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CATALOG_API_URL", "https://catalog.example")
    monkeypatch.setenv("CATALOG_API_TIMEOUT", "2.5")
    monkeypatch.setenv("CATALOG_API_RATE_LIMIT", "0")
    monkeypatch.setenv("CATALOG_API_RETRIES", "1")

    resilience = get_catalog_api_config().resilience

    assert resilience.timeout_seconds == 2.5
    assert resilience.ratelimit is None
    assert resilience.retry.total == 1


def test_catalog_config_requires_url(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("CATALOG_API_URL", raising=False)

    with pytest.raises(MissingConfigurationError, match="CATALOG_API_URL"):
        get_catalog_api_config()


def test_resilience_without_token_sends_no_authorization() -> None:
    resilience = build_catalog_resilience("https://catalog.example")

    assert "Authorization" not in resilience.headers
    assert resilience.ratelimit is not None
    assert resilience.ratelimit.max_calls == 10


def test_retry_policy_does_not_replay_creates() -> None:
    policy = RetryPolicy()

    assert not policy.allows("post")
    assert policy.allows("GET")
    assert policy.allows("patch")
    assert policy.allows("DELETE")


def test_configure_logging_reads_level_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PROPCATALOG_LOG_LEVEL", "warning")

    level = configure_logging(force=True)

    assert level == logging.WARNING
    assert logging.getLogger().level == logging.WARNING
    assert logging.getLogger("httpx").level == logging.WARNING


def test_configure_logging_rejects_unknown_level() -> None:
    with pytest.raises(InvalidConfigurationError):
        configure_logging(level="chatty", force=True)
