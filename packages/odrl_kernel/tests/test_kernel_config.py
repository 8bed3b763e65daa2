from __future__ import annotations

import pytest
from odrl_kernel import (
    DEFAULT_DEREFERENCE_TIMEOUT_MS,
    DEFAULT_MAX_CONSTRAINT_DEPTH,
    DEFAULT_MAX_FALLBACK_DEPTH,
    EngineConfig,
)

_ENV_NAMES = (
    "ODRL_MAX_FALLBACK_DEPTH",
    "ODRL_MAX_CONSTRAINT_DEPTH",
    "ODRL_DEREFERENCE_TIMEOUT_MS",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV_NAMES:
        monkeypatch.delenv(name, raising=False)


def test_defaults_without_environment() -> None:
    config = EngineConfig.from_env()

    assert config == EngineConfig()
    assert config.max_fallback_depth == DEFAULT_MAX_FALLBACK_DEPTH == 16
    assert config.max_constraint_depth == DEFAULT_MAX_CONSTRAINT_DEPTH
    assert config.dereference_timeout_ms == DEFAULT_DEREFERENCE_TIMEOUT_MS


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ODRL_MAX_FALLBACK_DEPTH", "4")
    monkeypatch.setenv("ODRL_MAX_CONSTRAINT_DEPTH", " 8 ")
    monkeypatch.setenv("ODRL_DEREFERENCE_TIMEOUT_MS", "250")

    config = EngineConfig.from_env()

    assert config.max_fallback_depth == 4
    assert config.max_constraint_depth == 8
    assert config.dereference_timeout_ms == 250


def test_non_integer_values_are_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ODRL_MAX_FALLBACK_DEPTH", "deep")

    with pytest.raises(RuntimeError, match="ODRL_MAX_FALLBACK_DEPTH must be an integer"):
        EngineConfig.from_env()


@pytest.mark.parametrize(
    ("name", "value", "message"),
    [
        ("ODRL_MAX_FALLBACK_DEPTH", "-1", ">= 0"),
        ("ODRL_MAX_FALLBACK_DEPTH", "2048", "<= 1024"),
        ("ODRL_MAX_CONSTRAINT_DEPTH", "0", ">= 1"),
        ("ODRL_DEREFERENCE_TIMEOUT_MS", "0", ">= 1"),
    ],
)
def test_out_of_range_values_are_rejected(
    monkeypatch: pytest.MonkeyPatch,
    name: str,
    value: str,
    message: str,
) -> None:
    monkeypatch.setenv(name, value)

    with pytest.raises(RuntimeError, match=message):
        EngineConfig.from_env()
