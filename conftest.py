"""
Test conftest — isolate TASKPOOL_* environment variables so that config
tests are not affected by values in the developer's or CI environment.
"""
import os

import pytest


@pytest.fixture(autouse=True)
def _clear_taskpool_env(monkeypatch):
    """Remove TASKPOOL_* env vars for every test so Settings() behaves as if
    nothing is set unless the test explicitly provides it.
    Also disables .env file loading so a local developer .env does not leak
    into tests, and drops any cached settings singleton."""
    for var in list(os.environ):
        if var.upper().startswith("TASKPOOL_"):
            monkeypatch.delenv(var, raising=False)

    # Disable .env file loading by patching Settings.model_config
    import taskpool.config.settings as settings_module
    from pydantic_settings import SettingsConfigDict
    patched_config = SettingsConfigDict(
        env_prefix="TASKPOOL_",
        env_file=None,
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
    )
    monkeypatch.setattr(settings_module.Settings, "model_config", patched_config)
    monkeypatch.setattr(settings_module, "_singleton", None)
