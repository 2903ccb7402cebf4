import logging
import os
import tempfile

import pytest

from scopegate.observability.internal_metrics import reset


def pytest_configure(config):
    home = tempfile.mkdtemp(prefix="scopegate-test-home-")
    os.environ.setdefault("SCOPEGATE_HOME", home)
    os.environ.setdefault("SCOPEGATE_PROBE_TIMEOUT_SECONDS", "2")
    os.environ.setdefault("SCOPEGATE_JIRA_TIMEOUT_SECONDS", "1")
    os.environ.setdefault("SCOPEGATE_BATCH_MAX_WORKERS", "4")
    for name in ("SCOPEGATE_ORG", "SCOPEGATE_LOG_JSON", "JIRA_BASE_URL", "JIRA_EMAIL", "JIRA_API_TOKEN"):
        os.environ.pop(name, None)


@pytest.fixture(autouse=True)
def _reset_metrics():
    reset()
    yield
    reset()


@pytest.fixture
def scopegate_home(tmp_path, monkeypatch):
    monkeypatch.setenv("SCOPEGATE_HOME", str(tmp_path))
    monkeypatch.delenv("SCOPEGATE_SETTINGS_PATH", raising=False)
    monkeypatch.delenv("SCOPEGATE_CREDENTIALS_PATH", raising=False)
    return tmp_path


@pytest.fixture(autouse=True)
def _reset_cli_logging():
    yield
    root = logging.getLogger("scopegate")
    root.handlers[:] = []
    root.setLevel(logging.NOTSET)
