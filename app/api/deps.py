"""API dependencies for dependency injection."""

from collections.abc import AsyncIterator, Callable
from contextlib import AbstractContextManager

from fastapi import Depends
from google.auth.exceptions import DefaultCredentialsError
from google.cloud import tasks_v2

from app.config.settings import Config, get_config
from app.core.runner import AuditRunner, build_runner
from app.errors.exceptions import QueueError
from app.services.storage import ResultWriter, open_result_writer

WriterOpener = Callable[[Config], AbstractContextManager[ResultWriter | None]]


def get_settings() -> Config:
    """Get application settings dependency."""
    return get_config()


def get_audit_runner(config: Config = Depends(get_settings)) -> AuditRunner:  # noqa: B008
    """Get a runner for the configured audit backend."""
    return build_runner(config)


async def get_tasks_client(
    config: Config = Depends(get_settings),  # noqa: B008
) -> AsyncIterator[tasks_v2.CloudTasksAsyncClient]:
    """
    Get a Cloud Tasks client for one request, failing early when the queue is
    not configured. The client's channel is closed once the response is sent.
    """
    if not config.queue_configured:
        raise QueueError(
            "Cloud Tasks is not configured: set GOOGLE_CLOUD_PROJECT, CLOUD_TASKS_QUEUE, "
            "CLOUD_TASKS_QUEUE_LOCATION and SERVICE_URL"
        )
    try:
        client = tasks_v2.CloudTasksAsyncClient()
    except DefaultCredentialsError as e:
        raise QueueError(f"Cloud Tasks credentials unavailable: {e}") from e

    try:
        yield client
    finally:
        await client.transport.close()


def get_result_writer_opener() -> WriterOpener:
    """Get the factory that opens a BigQuery writer only when a request stores data."""
    return open_result_writer
