from __future__ import annotations

import os

# Keep runs quiet and deterministic regardless of the caller's shell.
os.environ.setdefault("SG_LOG_LEVEL", "WARNING")
os.environ.setdefault("SG_PARALLEL_COMPARISONS", "4")

import pytest


@pytest.fixture(autouse=True)
def _restore_env():
    before = dict(os.environ)
    yield
    os.environ.clear()
    os.environ.update(before)


@pytest.fixture(autouse=True)
def _no_metrics(monkeypatch):
    monkeypatch.delenv("SG_METRICS_ENABLED", raising=False)
