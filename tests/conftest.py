"""Shared pytest configuration for the governance engine tests."""
from __future__ import annotations

import os

import pytest


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def isolate_governance_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep host `GOVERNANCE_*` variables from leaking into settings under test."""
    for name in list(os.environ):
        if name.startswith("GOVERNANCE_"):
            monkeypatch.delenv(name, raising=False)
