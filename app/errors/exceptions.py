"""Custom exception classes for the audit service."""


class AuditError(Exception):
    """Base exception for audit failures."""

    pass


class BackendAuditError(AuditError):
    """Raised when Lighthouse or PageSpeed Insights fails for a single URL."""

    def __init__(self, url: str, message: str):
        super().__init__(message)
        self.url = url
        self.message = message


class BatchAuditError(AuditError):
    """Raised when a batch run is aborted by the failure of one of its URLs."""

    def __init__(self, url: str, message: str):
        super().__init__(f"{message} on {url}")
        self.url = url


class ValidationError(AuditError):
    """Exception for input validation failures."""

    pass


class ConfigurationError(AuditError):
    """Raised when the process configuration is unusable."""

    pass


class QueueError(AuditError):
    """Exception for Cloud Tasks create/list failures."""

    pass


class StorageWriteError(AuditError):
    """Exception for BigQuery insert failures. Logged, never returned to callers."""

    pass


class LighthouseNotFoundError(AuditError):
    """Raised when Lighthouse CLI is not found in PATH."""

    pass


class PlaywrightBrowsersNotInstalledError(AuditError):
    """Raised when Playwright browser binaries are not installed."""

    pass
