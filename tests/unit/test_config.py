"""
tests/unit/test_config.py — Config Tests

Covers:
  - Defaults load cleanly
  - Non-positive concurrency is accepted at parse time (it stalls dispatch)
  - Invalid log level / submit attempts / failure policy are rejected
  - validate_all() raises ConfigError with a numbered list
  - YAML sections are loaded, unknown sections ignored
  - TASKPOOL_CONFIG env var is respected by load_settings()
  - Explicit config_path argument takes priority over env var
  - Environment variables override YAML values
"""

from __future__ import annotations

import textwrap
from pathlib import Path

import pytest
from pydantic import ValidationError

from taskpool.config.settings import (
    ConfigError,
    LoggingConfig,
    PoolConfig,
    Settings,
    SubmitFailurePolicy,
    get_settings,
    load_settings,
)


def _write_yaml(tmp_path: Path, body: str, name: str = "config.yaml") -> Path:
    path = tmp_path / name
    path.write_text(textwrap.dedent(body), encoding="utf-8")
    return path


# ── PoolConfig ────────────────────────────────────────────────────────────────

class TestPoolConfig:
    def test_defaults(self):
        cfg = PoolConfig()
        assert cfg.concurrency == 3
        assert cfg.maintain_order is False
        assert cfg.immediately is False
        assert cfg.auto_submit is False
        assert cfg.auto_schedule is True
        assert cfg.submit_failure_policy is SubmitFailurePolicy.DISCARD

    def test_zero_concurrency_accepted(self):
        assert PoolConfig(concurrency=0).concurrency == 0

    def test_negative_concurrency_accepted(self):
        assert PoolConfig(concurrency=-2).concurrency == -2

    def test_policy_is_case_insensitive(self):
        assert PoolConfig(submit_failure_policy="RETAIN").submit_failure_policy is SubmitFailurePolicy.RETAIN

    def test_unknown_policy_rejected(self):
        with pytest.raises(ValidationError):
            PoolConfig(submit_failure_policy="requeue")

    def test_zero_submit_attempts_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            PoolConfig(submit_max_attempts=0)
        assert "submit_max_attempts" in str(exc_info.value)


# ── LoggingConfig ─────────────────────────────────────────────────────────────

class TestLoggingConfig:
    def test_level_normalised_to_upper(self):
        assert LoggingConfig(level="debug").level == "DEBUG"

    def test_invalid_level_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            LoggingConfig(level="LOUD")
        assert "not valid" in str(exc_info.value)


# ── validate_all ──────────────────────────────────────────────────────────────

class TestValidateAll:
    def test_defaults_pass(self):
        Settings().validate_all()

    def test_stalled_concurrency_reported(self):
        s = Settings(pool={"concurrency": 0})
        with pytest.raises(ConfigError) as exc_info:
            s.validate_all()
        assert "pool.concurrency" in str(exc_info.value)
        assert "1." in str(exc_info.value)

    def test_every_problem_listed(self):
        s = Settings(pool={"concurrency": -1}, logging={"log_dir": "  "})
        with pytest.raises(ConfigError) as exc_info:
            s.validate_all()
        msg = str(exc_info.value)
        assert "2 configuration problem(s)" in msg
        assert "logging.log_dir" in msg


# ── load_settings ─────────────────────────────────────────────────────────────

class TestLoadSettings:
    def test_yaml_sections_loaded(self, tmp_path):
        path = _write_yaml(tmp_path, """
            pool:
              concurrency: 7
              maintain_order: true
            logging:
              level: warning
            unrelated:
              key: value
        """)
        s = load_settings(path)
        assert s.pool.concurrency == 7
        assert s.pool.maintain_order is True
        assert s.logging.level == "WARNING"

    def test_missing_file_gives_defaults(self, tmp_path):
        s = load_settings(tmp_path / "absent.yaml")
        assert s.pool.concurrency == 3

    def test_env_var_config_path(self, tmp_path, monkeypatch):
        path = _write_yaml(tmp_path, "pool:\n  concurrency: 11\n")
        monkeypatch.setenv("TASKPOOL_CONFIG", str(path))
        assert load_settings().pool.concurrency == 11

    def test_explicit_path_beats_env_var(self, tmp_path, monkeypatch):
        env_path = _write_yaml(tmp_path, "pool:\n  concurrency: 11\n", name="env.yaml")
        arg_path = _write_yaml(tmp_path, "pool:\n  concurrency: 4\n", name="arg.yaml")
        monkeypatch.setenv("TASKPOOL_CONFIG", str(env_path))
        assert load_settings(arg_path).pool.concurrency == 4

    def test_environment_overrides_yaml(self, tmp_path, monkeypatch):
        path = _write_yaml(tmp_path, "pool:\n  concurrency: 2\n  immediately: true\n")
        monkeypatch.setenv("TASKPOOL_POOL__CONCURRENCY", "9")
        s = load_settings(path)
        assert s.pool.concurrency == 9
        assert s.pool.immediately is True


class TestGetSettings:
    def test_returns_last_loaded_instance(self, tmp_path):
        path = _write_yaml(tmp_path, "pool:\n  concurrency: 6\n")
        loaded = load_settings(path)
        assert get_settings() is loaded

    def test_lazily_loads_default_path(self, tmp_path, monkeypatch):
        (tmp_path / "config").mkdir()
        _write_yaml(tmp_path / "config", "pool:\n  maintain_order: true\n")
        monkeypatch.chdir(tmp_path)
        first = get_settings()
        assert first.pool.maintain_order is True
        assert get_settings() is first
