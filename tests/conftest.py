"""Shared fixtures for night-skip tests."""
from __future__ import annotations

import pytest

from nightskip import scheduler as scheduler_module

from fakes import FakeScheduler


@pytest.fixture
def fake_scheduler(monkeypatch):
    instances = []

    def factory():
        instance = FakeScheduler()
        instances.append(instance)
        return instance

    monkeypatch.setattr(scheduler_module, "BackgroundScheduler", factory)
    return instances
