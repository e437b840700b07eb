"""Shared pytest fixtures for PlantVision tests."""
import sys
sys.dont_write_bytecode = True

import pytest  # noqa: E402


@pytest.fixture(autouse=True)
def _no_ambient_webhook_secrets(monkeypatch):
    """Keep host Meta/admin settings out of tests that read the environment."""
    for name in ("META_APP_SECRET", "META_VERIFY_TOKEN", "ADMIN_TOKEN"):
        monkeypatch.delenv(name, raising=False)
