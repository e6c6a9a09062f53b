from __future__ import annotations

import pytest
from pydantic import ValidationError

from agent_governance.config import DEFAULT_CONTEXTS, GovernanceSettings


def test_defaults() -> None:
    settings = GovernanceSettings()
    assert settings.default_damping == pytest.approx(0.85)
    assert settings.iterations == 20
    assert settings.initial_score == pytest.approx(0.1)
    assert settings.contexts == DEFAULT_CONTEXTS


def test_environment_overrides(monkeypatch) -> None:
    monkeypatch.setenv("GOVERNANCE_DATABASE_PATH", "/tmp/other.db")
    monkeypatch.setenv("GOVERNANCE_ITERATIONS", "40")
    monkeypatch.setenv("GOVERNANCE_CONTEXTS", '["code", "ops"]')

    settings = GovernanceSettings()

    assert settings.database_path == "/tmp/other.db"
    assert settings.iterations == 40
    assert settings.contexts == ["code", "ops"]


@pytest.mark.parametrize("damping", ["0", "1", "1.2"])
def test_damping_must_be_open_unit_interval(monkeypatch, damping: str) -> None:
    monkeypatch.setenv("GOVERNANCE_DEFAULT_DAMPING", damping)
    with pytest.raises(ValidationError):
        GovernanceSettings()


def test_log_levels_are_normalized(monkeypatch) -> None:
    monkeypatch.setenv("GOVERNANCE_LOG_LEVEL", " debug ")
    monkeypatch.setenv("GOVERNANCE_STORAGE_LOG_LEVEL", "error")

    settings = GovernanceSettings()

    assert settings.log_level == "DEBUG"
    assert settings.storage_log_level == "ERROR"


@pytest.mark.parametrize("field", ["GOVERNANCE_LOG_LEVEL", "GOVERNANCE_STORAGE_LOG_LEVEL"])
def test_unknown_log_level_is_rejected(monkeypatch, field: str) -> None:
    monkeypatch.setenv(field, "loud")
    with pytest.raises(ValidationError):
        GovernanceSettings()
