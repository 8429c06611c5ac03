"""Pytest configuration for all tests."""

import pytest

from src.factory import interrupts


@pytest.fixture(autouse=True)
def _isolate_signal_handlers(monkeypatch):
    """Keep runs under test from replacing pytest's own SIGINT handler."""
    monkeypatch.setattr(interrupts, "_handlers_registered", True)
    yield
