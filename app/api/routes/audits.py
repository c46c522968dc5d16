"""Synchronous and fan-out audit endpoints."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends
from google.cloud import tasks_v2

from app.api.deps import (
    WriterOpener,
    get_audit_runner,
    get_result_writer_opener,
    get_settings,
    get_tasks_client,
)
from app.config.settings import Config
from app.core.audit import run_batch_audit
from app.core.runner import AuditRunner
from app.core.tasks import TaskScheduler
from app.errors.exceptions import AuditError
from app.schemas.audit import (
    AsyncAuditRequest,
    AsyncAuditResponse,
    AuditRequest,
    ScheduledTaskResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/audit")
async def perform_audit(
    request: AuditRequest,
    config: Config = Depends(get_settings),  # noqa: B008
    runner: AuditRunner = Depends(get_audit_runner),  # noqa: B008
    open_writer: WriterOpener = Depends(get_result_writer_opener),  # noqa: B008
) -> list[dict[str, Any]]:
    """
    Audit every URL in the request, one after another, and return the records.

    Mode "all" returns a desktop and a mobile record per URL. The whole request
    fails if any single audit fails. With storeData the records are also
    written to BigQuery; a failed write is logged and does not fail the request.
    """
    try:
        results = await run_batch_audit(
            runner,
            request.urls,
            request.blocked_requests,
            request.mode,
            config.field_mapping,
        )
    except AuditError:
        raise
    except Exception as e:
        logger.exception(f"Unexpected error auditing {len(request.urls)} URL(s): {e}")
        raise AuditError(f"Unexpected error: {e}") from e

    if request.store_data:
        with open_writer(config) as writer:
            if writer is None:
                logger.warning("storeData requested but BigQuery storage is unavailable; skipping")
            else:
                await writer.write(results)

    return results


@router.post("/audit-async", response_model=AsyncAuditResponse)
async def schedule_audits(
    request: AsyncAuditRequest,
    config: Config = Depends(get_settings),  # noqa: B008
    client: tasks_v2.CloudTasksAsyncClient = Depends(get_tasks_client),  # noqa: B008
) -> AsyncAuditResponse:
    """
    Split the URLs into chunks and schedule one Cloud Task per chunk.

    Each task calls back POST /audit with its chunk, staggered in time.
    """
    scheduler = TaskScheduler(
        client,
        project_id=config.project_id,
        location=config.tasks_queue_location,
        queue=config.tasks_queue,
        service_url=config.service_url,
        step_seconds=config.task_schedule_step_seconds,
    )
    tasks = await scheduler.schedule(request.urls, request.blocked_requests, config.task_chunk_size)
    return AsyncAuditResponse(
        tasks=[ScheduledTaskResponse(name=task.name, urls=task.urls) for task in tasks]
    )
