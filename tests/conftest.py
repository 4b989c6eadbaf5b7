# tests/conftest.py
import json
import logging
import sys
import threading
from datetime import datetime, timezone
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from backup_errors import ExportRequestFailed  # noqa: E402


class FakeDriveClient:
    """
    Stand-in for gdrive_auth.DriveClient.

    Records every export call and writes the configured bytes in small
    chunks, so callers see a streamed body rather than one write.
    """

    def __init__(self, contents=None, failures=None, chunk=4):
        self.contents = contents or {}
        self.failures = failures or {}
        self.chunk = chunk
        self.calls = []
        self._lock = threading.Lock()

    def export(self, file_id, mime_type, fd):
        with self._lock:
            self.calls.append((file_id, mime_type))
        if file_id in self.failures:
            raise self.failures[file_id]
        data = self.contents.get(file_id, b"")
        for i in range(0, len(data), self.chunk):
            fd.write(data[i:i + self.chunk])


@pytest.fixture
def network_error():
    def make(file_id):
        return ExportRequestFailed(f"Export of {file_id} failed: [Errno 104] Connection reset by peer")
    return make


@pytest.fixture
def fake_client():
    return FakeDriveClient


@pytest.fixture
def fixed_clock():
    return lambda: datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def logger():
    log = logging.getLogger("tests.drive_backup")
    log.setLevel(logging.DEBUG)
    log.propagate = True
    return log


@pytest.fixture
def home(tmp_path, monkeypatch):
    home_dir = tmp_path / "home"
    home_dir.mkdir()
    monkeypatch.setenv("HOME", str(home_dir))
    return home_dir


@pytest.fixture
def client_secret_file(tmp_path):
    path = tmp_path / "client_secret.json"
    path.write_text(json.dumps({
        "installed": {
            "client_id": "1234.apps.googleusercontent.com",
            "client_secret": "s3cret",
            "redirect_uris": ["urn:ietf:wg:oauth:2.0:oob", "http://localhost"],
        }
    }))
    return path


@pytest.fixture
def manifest_file(tmp_path):
    path = tmp_path / "backup_file_list.json"
    path.write_text(json.dumps([
        {"fileId": "abc123", "mimeType": "application/pdf", "extension": "pdf", "fileName": "ledger"},
        {"fileId": "sheet9", "mimeType": "text/csv", "extension": "csv", "fileName": "budget"},
    ]))
    return path


@pytest.fixture
def oauth2client_token():
    """Token file contents in the layout GoogleAuth.SaveCredentialsFile writes."""
    return json.dumps({
        "access_token": "ya29.test-token",
        "client_id": "1234.apps.googleusercontent.com",
        "client_secret": "s3cret",
        "refresh_token": "1//refresh",
        "token_expiry": "2099-01-01T00:00:00Z",
        "token_uri": "https://oauth2.googleapis.com/token",
        "user_agent": None,
        "revoke_uri": "https://oauth2.googleapis.com/revoke",
        "id_token": None,
        "token_response": None,
        "scopes": ["https://www.googleapis.com/auth/drive"],
        "token_info_uri": "https://oauth2.googleapis.com/tokeninfo",
        "invalid": False,
        "_class": "OAuth2Credentials",
        "_module": "oauth2client.client",
    })
