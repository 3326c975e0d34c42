from __future__ import annotations

import logging

import pytest

from common.logging import setup_default_logging, stage_level


def test_stage_level() -> None:
    assert stage_level(True) == logging.INFO
    assert stage_level(False) == logging.DEBUG


def test_setup_is_noop_when_handlers_exist(monkeypatch: pytest.MonkeyPatch) -> None:
    root = logging.getLogger()
    sentinel = logging.NullHandler()
    monkeypatch.setattr(root, "handlers", [sentinel])
    monkeypatch.setattr(root, "level", root.level)
    setup_default_logging("DEBUG")
    assert root.handlers == [sentinel]


def test_setup_configures_once_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    root = logging.getLogger()
    monkeypatch.setattr(root, "handlers", [])
    monkeypatch.setattr(root, "level", root.level)
    monkeypatch.setenv("SHM_LOG_LEVEL", "warning")
    setup_default_logging()
    assert len(root.handlers) == 1
    assert root.level == logging.WARNING
    setup_default_logging("DEBUG")
    assert len(root.handlers) == 1
