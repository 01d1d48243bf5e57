from __future__ import annotations

import pytest

from auto_proxy import config


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    # Never pick up a developer's .env or write proxy_error.log into the checkout.
    monkeypatch.setattr(config, "load_dotenv", lambda **_: None)
    monkeypatch.setenv("LOG_FILE", "")
    monkeypatch.setenv("PROXY_RECORDS_PATH", str(tmp_path / "proxy_records.json"))
    config._load_settings_cached.cache_clear()
    yield
    config._load_settings_cached.cache_clear()
