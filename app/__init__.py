"""Lighthouse Audit - batch web performance audits with Cloud Tasks fan-out."""

from app.core.audit import BatchAudit, run_batch_audit
from app.core.formatter import DEFAULT_FIELD_MAPPING, format_results
from app.core.tasks import TaskScheduler, chunk_urls, list_active_tasks
from app.schemas.common import AuditBackend, AuditMode
from app.services.validators import validate_url

__all__ = [
    "BatchAudit",
    "run_batch_audit",
    "format_results",
    "DEFAULT_FIELD_MAPPING",
    "TaskScheduler",
    "chunk_urls",
    "list_active_tasks",
    "validate_url",
    "AuditMode",
    "AuditBackend",
]
