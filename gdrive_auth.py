import argparse
import os
import sys

from dotenv import load_dotenv
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import DEFAULT_CHUNK_SIZE, MediaIoBaseDownload
from httplib2 import HttpLib2Error
from pydrive2.auth import GoogleAuth, InvalidCredentialsError

from backup_config import SCOPES, BackupConfig, load_app_credentials
from backup_errors import BackupError, CredentialMalformed, CredentialMissing, ExportRequestFailed
from backup_logging import setup_logging

AUTH_URI = "https://accounts.google.com/o/oauth2/auth"
TOKEN_URI = "https://oauth2.googleapis.com/token"
REVOKE_URI = "https://oauth2.googleapis.com/revoke"


class DriveClient:
    """Authorized handle on the Drive v3 API.

    Every call builds its own authorized http object, so one client can be
    shared by export threads.
    """

    def __init__(self, gauth):
        self.gauth = gauth

    def _service(self):
        http = self.gauth.Get_Http_Object()
        return build("drive", "v3", http=http, cache_discovery=False)

    def export(self, file_id, mime_type, fd, chunksize=DEFAULT_CHUNK_SIZE):
        """Export a Google document as ``mime_type`` and stream it into ``fd``."""
        try:
            request = self._service().files().export_media(fileId=file_id, mimeType=mime_type)
            downloader = MediaIoBaseDownload(fd, request, chunksize=chunksize)
            done = False
            while not done:
                _, done = downloader.next_chunk()
        except (HttpError, HttpLib2Error, OSError) as e:
            raise ExportRequestFailed(f"Export of {file_id} as {mime_type} failed: {e}") from e

    def list_files(self, page_size=10):
        """Return ``(name, id)`` for the first ``page_size`` files in the drive."""
        try:
            response = self._service().files().list(
                pageSize=page_size,
                fields="nextPageToken, files(id, name)",
            ).execute()
        except (HttpError, HttpLib2Error, OSError) as e:
            raise ExportRequestFailed(f"Listing files failed: {e}") from e
        return [(f["name"], f["id"]) for f in response.get("files", [])]


def build_gauth(app_credentials):
    """GoogleAuth configured in memory from the app registration, nothing read from settings.yaml."""
    settings = {
        "client_config_backend": "settings",
        "client_config": {
            "client_id": app_credentials.client_id,
            "client_secret": app_credentials.client_secret,
            "redirect_uri": app_credentials.redirect_uri,
            "auth_uri": AUTH_URI,
            "token_uri": TOKEN_URI,
            "revoke_uri": REVOKE_URI,
        },
        "save_credentials": False,
        "get_refresh_token": True,
        "oauth_scope": SCOPES,
    }
    return GoogleAuth(settings=settings)


def load_drive_client(config, logger):
    """Bind the stored token to a Drive client.

    Never prompts: unattended runs stop here when the token is missing.
    Run ``drive-backup-auth authorize`` once to create it.
    """
    gauth = build_gauth(load_app_credentials(config.client_secret_file))
    token_path = config.token_path

    if not token_path.is_file() or not os.access(token_path, os.R_OK):
        logger.error(f"Token not on file: {token_path}")
        raise CredentialMissing(f"No readable token at {token_path}")

    try:
        gauth.LoadCredentialsFile(str(token_path))
    except (InvalidCredentialsError, ImportError, AttributeError, KeyError, TypeError, ValueError) as e:
        logger.error(f"Token at {token_path} could not be parsed: {e!r}")
        raise CredentialMalformed(f"Token at {token_path} could not be parsed") from e

    if not gauth.credentials:
        logger.error(f"Token at {token_path} could not be parsed")
        raise CredentialMalformed(f"Token at {token_path} could not be parsed")

    logger.debug(f"Loaded token from {token_path}")
    return DriveClient(gauth)


def authorize_new_token(config, logger, browser=True):
    """Run the interactive OAuth flow and store the resulting token."""
    gauth = build_gauth(load_app_credentials(config.client_secret_file))

    try:
        if browser:
            gauth.LocalWebserverAuth()
        else:
            gauth.CommandLineAuth()
    except Exception as e:
        logger.error("Error while trying to retrieve access token", exc_info=True)
        raise CredentialMissing(f"Authorization failed: {e}") from e

    config.token_dir.mkdir(parents=True, exist_ok=True)
    gauth.SaveCredentialsFile(str(config.token_path))
    logger.info(f"Token stored to {config.token_path}")
    return DriveClient(gauth)


def print_files(client, page_size=10):
    files = client.list_files(page_size=page_size)
    if not files:
        print("No files found.")
        return
    print("Files:")
    for name, file_id in files:
        print(f"{name} ({file_id})")


def main(argv=None):
    parser = argparse.ArgumentParser(description="Google Drive backup token setup")
    sub = parser.add_subparsers(dest="command", required=True)

    auth_cmd = sub.add_parser("authorize", help="Authorize this app and store the token")
    auth_cmd.add_argument("--no-browser", action="store_true",
                          help="Print the authorization URL and prompt for the code instead")

    list_cmd = sub.add_parser("list-files", help="List file names and ids, to fill in the backup list")
    list_cmd.add_argument("--page-size", type=int, default=10)

    args = parser.parse_args(argv)

    load_dotenv()
    try:
        config = BackupConfig.from_env(require_backup_dir=False)
        logger = setup_logging(config.log_level, config.log_file)
    except BackupError as e:
        print(f"[AUTH] {e}", file=sys.stderr)
        return 1

    try:
        if args.command == "authorize":
            authorize_new_token(config, logger, browser=not args.no_browser)
        else:
            print_files(load_drive_client(config, logger), page_size=args.page_size)
    except BackupError as e:
        logger.error(str(e))
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
