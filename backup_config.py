import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from backup_errors import ConfigError

SCOPES = ["https://www.googleapis.com/auth/drive"]

DEFAULT_TOKEN_DIRECTORY = ".credentials"
DEFAULT_TOKEN_FILENAME = "google-drive-backup.json"
DEFAULT_LOG_FILE = "google-drive-backup.log"
DEFAULT_MANIFEST_FILE = "backup_file_list.json"
DEFAULT_CLIENT_SECRET_FILE = "client_secret.json"


@dataclass(frozen=True)
class BackupJob:
    """One manifest entry: a Drive document and the format to export it in."""

    file_id: str
    mime_type: str
    extension: str
    file_name: str

    def __post_init__(self):
        if not self.file_id or not self.mime_type:
            raise ValueError("fileId and mimeType must be non-empty")

    @property
    def label(self):
        return f"{self.file_name}.{self.extension}"


@dataclass(frozen=True)
class AppCredentials:
    client_id: str
    client_secret: str
    redirect_uri: str


@dataclass(frozen=True)
class BackupConfig:
    backup_dir: Optional[Path]
    token_directory: str = DEFAULT_TOKEN_DIRECTORY
    token_filename: str = DEFAULT_TOKEN_FILENAME
    log_level: str = "debug"
    log_file: Path = Path(DEFAULT_LOG_FILE)
    manifest_file: Path = Path(DEFAULT_MANIFEST_FILE)
    client_secret_file: Path = Path(DEFAULT_CLIENT_SECRET_FILE)
    max_concurrent_exports: Optional[int] = None

    @property
    def token_dir(self) -> Path:
        return Path.home() / self.token_directory

    @property
    def token_path(self) -> Path:
        return self.token_dir / self.token_filename

    @classmethod
    def from_env(cls, environ=None, require_backup_dir=True) -> "BackupConfig":
        """Build the config from environment variables.

        Call ``load_dotenv()`` first if a ``.env`` file should be honoured.
        """
        env = os.environ if environ is None else environ

        backup_dir = env.get("BACKUP_DIR")
        if not backup_dir and require_backup_dir:
            raise ConfigError("BACKUP_DIR is not set")

        max_concurrent = env.get("MAX_CONCURRENT_EXPORTS")
        if max_concurrent:
            try:
                max_concurrent = int(max_concurrent)
            except ValueError:
                raise ConfigError(f"MAX_CONCURRENT_EXPORTS must be an integer, got {max_concurrent!r}")
            if max_concurrent < 1:
                raise ConfigError("MAX_CONCURRENT_EXPORTS must be at least 1")
        else:
            max_concurrent = None

        return cls(
            backup_dir=Path(backup_dir) if backup_dir else None,
            token_directory=env.get("TOKEN_DIRECTORY") or DEFAULT_TOKEN_DIRECTORY,
            token_filename=env.get("TOKEN_FILENAME") or DEFAULT_TOKEN_FILENAME,
            log_level=env.get("LOG_LEVEL") or "debug",
            log_file=Path(env.get("LOG_FILE") or DEFAULT_LOG_FILE),
            manifest_file=Path(env.get("BACKUP_LIST_FILE") or DEFAULT_MANIFEST_FILE),
            client_secret_file=Path(env.get("CLIENT_SECRET_FILE") or DEFAULT_CLIENT_SECRET_FILE),
            max_concurrent_exports=max_concurrent,
        )


def _read_json(path, what):
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except OSError as e:
        raise ConfigError(f"Cannot read {what} {path}: {e}") from e
    except ValueError as e:
        raise ConfigError(f"{what.capitalize()} {path} is not valid JSON: {e}") from e


def load_manifest(path) -> List[BackupJob]:
    """Read the backup list, keeping its order."""
    entries = _read_json(path, "backup list")
    if not isinstance(entries, list):
        raise ConfigError(f"Backup list {path} must be a JSON array")

    jobs = []
    for i, entry in enumerate(entries):
        try:
            jobs.append(BackupJob(
                file_id=entry["fileId"],
                mime_type=entry["mimeType"],
                extension=entry["extension"],
                file_name=entry["fileName"],
            ))
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigError(f"Backup list entry {i} is invalid: {e!r}") from e
    return jobs


def load_app_credentials(path) -> AppCredentials:
    """Read the ``installed`` client registration downloaded from the Google console."""
    data = _read_json(path, "client secret file")
    try:
        installed = data["installed"]
        return AppCredentials(
            client_id=installed["client_id"],
            client_secret=installed["client_secret"],
            redirect_uri=installed["redirect_uris"][0],
        )
    except (KeyError, IndexError, TypeError) as e:
        raise ConfigError(f"Client secret file {path} has no usable 'installed' entry: {e!r}") from e
