class BackupError(Exception):
    """Base class for every error the backup tool raises on purpose."""


class ConfigError(BackupError):
    pass


class CredentialMissing(BackupError):
    """Token file is absent or unreadable."""


class CredentialMalformed(BackupError):
    """Token file exists but does not hold a usable credential."""


class ExportRequestFailed(BackupError):
    pass


class StreamWriteFailed(BackupError):
    pass
