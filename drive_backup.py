import sys
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from pathlib import Path

from dotenv import load_dotenv

from backup_config import BackupConfig, load_manifest
from backup_errors import BackupError, ExportRequestFailed, StreamWriteFailed
from backup_logging import setup_logging
from gdrive_auth import load_drive_client

TIMESTAMP_FORMAT = "%Y%m%d-%H%M%S"


class _BackupFile:
    """Write end handed to the Drive download; disk errors surface as StreamWriteFailed."""

    def __init__(self, fd, path):
        self._fd = fd
        self.path = path

    def write(self, data):
        try:
            return self._fd.write(data)
        except OSError as e:
            raise StreamWriteFailed(f"Writing {self.path} failed: {e}") from e


def backup_filename(job, now=datetime.now):
    return f"{now().strftime(TIMESTAMP_FORMAT)}-{job.file_name}.{job.extension}"


def export_file(client, job, backup_dir, logger, now=datetime.now):
    """Export one Drive document into a timestamped file under ``backup_dir``.

    Failures are logged and swallowed so sibling jobs keep going. Partial
    files are left where they are.
    """
    filename = backup_filename(job, now)
    dest = Path(backup_dir) / filename

    try:
        try:
            fd = open(dest, "wb")
        except OSError as e:
            raise StreamWriteFailed(f"Cannot open {dest}: {e}") from e

        with fd:
            logger.debug(f"Exporting {job.file_id} as {job.mime_type} to {dest}")
            client.export(job.file_id, job.mime_type, _BackupFile(fd, dest))
    except (ExportRequestFailed, StreamWriteFailed) as e:
        logger.error(f"Error during download of {filename}: {e}")
        return None
    except Exception:
        logger.error(f"Unexpected error during download of {filename}", exc_info=True)
        return None

    logger.info(f"Done: {filename}")
    return dest


def run_backup(client, jobs, backup_dir, logger, max_workers=None, now=datetime.now):
    """Start one export per job without waiting on the others, then join them all.

    With ``max_workers`` unset every job gets its own thread.
    """
    jobs = list(jobs)
    if not jobs:
        logger.info("Backup list is empty, nothing to export")
        return

    workers = min(max_workers, len(jobs)) if max_workers else len(jobs)
    logger.info(f"=== Exporting {len(jobs)} file(s) to {backup_dir} ===")

    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="export") as pool:
        futures = [pool.submit(export_file, client, job, backup_dir, logger, now) for job in jobs]

    done = sum(1 for f in futures if f.result() is not None)
    logger.info(f"=== Backup finished: {done}/{len(jobs)} exported ===")


def main():
    load_dotenv()

    try:
        config = BackupConfig.from_env()
        logger = setup_logging(config.log_level, config.log_file)
    except BackupError as e:
        print(f"[BACKUP] {e}", file=sys.stderr)
        return 1

    logger.info("=== Backup started ===")
    try:
        jobs = load_manifest(config.manifest_file)
        client = load_drive_client(config, logger)
    except BackupError as e:
        logger.error(f"Backup aborted: {e}")
        return 1

    run_backup(client, jobs, config.backup_dir, logger, max_workers=config.max_concurrent_exports)
    return 0


if __name__ == "__main__":
    sys.exit(main())
