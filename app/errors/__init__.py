"""Audit service exceptions."""

from app.errors.exceptions import (
    AuditError,
    BackendAuditError,
    BatchAuditError,
    ConfigurationError,
    LighthouseNotFoundError,
    PlaywrightBrowsersNotInstalledError,
    QueueError,
    StorageWriteError,
    ValidationError,
)

__all__ = [
    "AuditError",
    "BackendAuditError",
    "BatchAuditError",
    "ConfigurationError",
    "QueueError",
    "StorageWriteError",
    "ValidationError",
    "LighthouseNotFoundError",
    "PlaywrightBrowsersNotInstalledError",
]
