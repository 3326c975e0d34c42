from __future__ import annotations

from common import settings as settings_mod
from common.env import env_bool, env_float, env_int, env_name

# What this tests
# - SHM_ プレフィックスと型別パース（不正値は既定、範囲外は丸め）
# - reload_from_env による設定の再読込


def test_env_name_prefix() -> None:
    assert env_name("MAX_MEMORIES") == "SHM_MAX_MEMORIES"
    assert env_name("SHM_DEBUG") == "SHM_DEBUG"


def test_env_parsers(env_reset) -> None:
    env_reset.setenv("SHM_X_INT", " 7 ")
    env_reset.setenv("SHM_X_BAD", "seven")
    env_reset.setenv("SHM_X_FLOAT", "inf")
    env_reset.setenv("SHM_X_BOOL", "yes")
    assert env_int("SHM_X_INT", 1) == 7
    assert env_int("SHM_X_INT", 1, min_value=10) == 10
    assert env_int("SHM_X_BAD", 1) == 1
    assert env_int("SHM_X_MISSING") is None
    assert env_float("SHM_X_FLOAT", 0.5) == 0.5
    assert env_float("SHM_X_INT", 0.5, max_value=2.0) == 2.0
    assert env_bool("SHM_X_BOOL") is True
    assert env_bool("SHM_X_BAD", True) is True


def test_reload_from_env(env_reset) -> None:
    env_reset.setenv("SHM_MAX_MEMORIES", "0")
    env_reset.setenv("SHM_TARGET_DIAMETER_RATIO", "5")
    env_reset.setenv("SHM_DEBUG", "1")
    env_reset.setenv("SHM_INTEGRITY_CHECK", "off")
    settings_mod.reload_from_env()
    s = settings_mod.get()
    assert s.MAX_MEMORIES == 1
    assert s.TARGET_DIAMETER_RATIO == 1.0
    assert s.DEBUG is True
    assert s.INTEGRITY_CHECK is False
