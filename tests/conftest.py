import os
import sys
# Ensure project root is importable for tests, regardless of runner CWD
ROOT_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

import threading
import types
from typing import Any, Dict, List, Optional

import pytest
import requests


class FakeResponse:
    def __init__(
        self,
        status_code: int = 200,
        json_data: Optional[Any] = None,
        text: str = "",
        headers: Optional[Dict[str, str]] = None,
        raise_for_status_exc: Optional[Exception] = None,
    ):
        self.status_code = status_code
        self._json_data = json_data
        self.text = text
        self.headers = headers or {}
        self._raise_exc = raise_for_status_exc

    def json(self):
        return self._json_data

    def raise_for_status(self):
        if self._raise_exc is not None:
            raise self._raise_exc
        if 400 <= self.status_code:
            err = requests.HTTPError(f"HTTP {self.status_code}")
            # attach minimal response info for code under test
            err.response = types.SimpleNamespace(status_code=self.status_code, text=self.text)
            raise err


class RecordingSession:
    """Fake session recording every POST; answers with the status mapped to the URL (default 201)."""

    def __init__(self, calls: List[Dict[str, Any]], statuses: Optional[Dict[str, int]] = None):
        self.calls = calls
        self.statuses = statuses or {}
        self._lock = threading.Lock()

    def post(self, url, json=None, timeout=None):
        with self._lock:
            self.calls.append({"url": url, "json": json, "timeout": timeout})
        return FakeResponse(status_code=self.statuses.get(url, 201), text="nope")


def make_http_error(status: int) -> requests.HTTPError:
    err = requests.HTTPError(f"HTTP {status}")
    err.response = types.SimpleNamespace(status_code=status, text=f"{status} error")
    return err


@pytest.fixture
def tmp_config_file(tmp_path):
    """Create a minimal valid config.ini and return its path."""
    p = tmp_path / "config.ini"
    p.write_text(
        "[jira]\n"
        "issue_url = https://example.atlassian.net/rest/api/2/issue/\n"
        "token = dXNlcjp0b2tlbg==\n"
        "verify_ssl = true\n",
        encoding="utf-8",
    )
    return p


@pytest.fixture
def export_csv(tmp_path):
    """Write a small DailyTimeApp export and return its path."""
    p = tmp_path / "export.csv"
    p.write_text(
        "# DailyTimeApp export\n"
        ",27/01/16\n"
        "XXX-123 fix bug,30\n"
        "XXX-456 review,45\n",
        encoding="utf-8",
    )
    return p


@pytest.fixture
def no_env(monkeypatch):
    """Remove Jira settings from the environment."""
    monkeypatch.delenv("JIRA_ISSUE", raising=False)
    monkeypatch.delenv("JIRA_TOKEN", raising=False)
    yield


# Expose utilities for tests
__all__ = ["FakeResponse", "RecordingSession", "make_http_error"]
