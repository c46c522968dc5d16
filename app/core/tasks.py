"""Fan large batches out as delayed Cloud Tasks and report on the ones still queued."""

from __future__ import annotations

import base64
import json
import logging
import time
from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass
from typing import Any

from google.api_core.exceptions import GoogleAPIError
from google.cloud import tasks_v2
from google.protobuf import timestamp_pb2

from app.errors.exceptions import QueueError

logger = logging.getLogger(__name__)


def chunk_urls(urls: Sequence[str], size: int) -> Iterator[list[str]]:
    """Split urls into contiguous chunks of at most size elements, keeping order."""
    if size < 1:
        raise ValueError(f"Chunk size must be at least 1, got {size}")
    for start in range(0, len(urls), size):
        yield list(urls[start : start + size])


def encode_payload(urls: Sequence[str], blocked_requests: Sequence[str]) -> bytes:
    """JSON body the /audit endpoint receives for one chunk."""
    return json.dumps({"urls": list(urls), "blockedRequests": list(blocked_requests)}).encode()


def _timestamp(epoch_seconds: float) -> timestamp_pb2.Timestamp:
    seconds = int(epoch_seconds)
    return timestamp_pb2.Timestamp(seconds=seconds, nanos=int((epoch_seconds - seconds) * 1e9))


@dataclass
class ChunkJob:
    """One chunk of a batch, ready to be submitted as a Cloud Task."""

    urls: list[str]
    blocked_requests: list[str]
    payload: bytes
    schedule_time: float  # epoch seconds

    @property
    def body(self) -> str:
        """Base64 form of the payload, as it travels on the wire."""
        return base64.b64encode(self.payload).decode()

    def to_task(self, target_url: str) -> dict[str, Any]:
        return {
            "http_request": {
                "http_method": tasks_v2.HttpMethod.POST,
                "url": target_url,
                "headers": {"Content-Type": "application/json"},
                # The client library base64-encodes bytes fields for transport
                "body": self.payload,
            },
            "schedule_time": _timestamp(self.schedule_time),
        }


@dataclass
class ScheduledTask:
    name: str
    urls: list[str]


class TaskScheduler:
    """
    Submits one delayed Cloud Task per chunk of URLs.

    Each task POSTs its chunk back to the service's /audit endpoint. Chunk i
    runs no earlier than step_seconds * (i + 1) after scheduling, so chunks
    reach the synchronous endpoint spread out rather than all at once.
    """

    def __init__(
        self,
        client: tasks_v2.CloudTasksAsyncClient,
        project_id: str,
        location: str,
        queue: str,
        service_url: str,
        step_seconds: int = 10,
        clock: Callable[[], float] = time.time,
    ):
        self.client = client
        self.project_id = project_id
        self.location = location
        self.queue = queue
        self.target_url = f"{service_url.rstrip('/')}/audit"
        self.step_seconds = step_seconds
        self.clock = clock

    def build_jobs(
        self, urls: Sequence[str], blocked_requests: Sequence[str], chunk_size: int = 1
    ) -> list[ChunkJob]:
        """Plan the chunk jobs for a batch without submitting anything."""
        start = self.clock()
        jobs: list[ChunkJob] = []
        for index, chunk in enumerate(chunk_urls(urls, chunk_size)):
            jobs.append(
                ChunkJob(
                    urls=chunk,
                    blocked_requests=list(blocked_requests),
                    payload=encode_payload(chunk, blocked_requests),
                    schedule_time=start + self.step_seconds * (index + 1),
                )
            )
        return jobs

    async def schedule(
        self, urls: Sequence[str], blocked_requests: Sequence[str] = (), chunk_size: int = 1
    ) -> list[ScheduledTask]:
        """
        Create one task per chunk, sequentially.

        Raises:
            QueueError: On the first failed creation; later chunks are not submitted.
        """
        parent = self.client.queue_path(self.project_id, self.location, self.queue)
        jobs = self.build_jobs(urls, blocked_requests, chunk_size)
        logger.info(f"Scheduling {len(urls)} URL(s) as {len(jobs)} task(s) on {parent}")

        created: list[ScheduledTask] = []
        for index, job in enumerate(jobs):
            try:
                response = await self.client.create_task(
                    request={"parent": parent, "task": job.to_task(self.target_url)}
                )
            except GoogleAPIError as e:
                raise QueueError(
                    f"Failed to create task {index + 1} of {len(jobs)} "
                    f"({len(created)} created): {e}"
                ) from e

            created.append(ScheduledTask(name=response.name, urls=job.urls))
            logger.info(f"Created task {response.name} for {len(job.urls)} URL(s)")

        return created


def _iso(value: Any) -> str | None:
    return value.isoformat() if value else None


def _task_urls(task: Any) -> list[str]:
    """URLs a task will audit, when the queue returned its body."""
    http_request = getattr(task, "http_request", None)
    body = getattr(http_request, "body", b"") if http_request is not None else b""
    if not body:
        return []
    try:
        payload = json.loads(body)
    except ValueError:
        return []
    urls = payload.get("urls") if isinstance(payload, dict) else None
    return list(urls) if isinstance(urls, list) else []


def _reshape_task(task: Any) -> dict[str, Any]:
    last_attempt = getattr(task, "last_attempt", None)
    response_status = getattr(last_attempt, "response_status", None) if last_attempt else None
    status_message = getattr(response_status, "message", None) if response_status else None

    return {
        "name": task.name,
        "id": task.name.rsplit("/", 1)[-1],
        "scheduleTime": _iso(getattr(task, "schedule_time", None)),
        "createTime": _iso(getattr(task, "create_time", None)),
        "dispatchCount": getattr(task, "dispatch_count", 0),
        "responseCount": getattr(task, "response_count", 0),
        "lastAttemptStatus": status_message or None,
        "urls": _task_urls(task),
    }


async def list_active_tasks(
    client: tasks_v2.CloudTasksAsyncClient,
    project_id: str,
    location: str,
    queue: str,
    page_size: int | None = None,
    page_token: str | None = None,
) -> dict[str, Any]:
    """
    List one page of the tasks still queued and reshape them for callers.

    Raises:
        QueueError: If the queue cannot be listed.
    """
    request: dict[str, Any] = {
        "parent": client.queue_path(project_id, location, queue),
        "response_view": tasks_v2.Task.View.FULL,
    }
    if page_size:
        request["page_size"] = page_size
    if page_token:
        request["page_token"] = page_token

    try:
        pager = await client.list_tasks(request=request)
    except GoogleAPIError as e:
        raise QueueError(f"Failed to list tasks: {e}") from e

    # The pager exposes the first response page's fields directly
    return {
        "tasks": [_reshape_task(task) for task in pager.tasks],
        "nextPageToken": pager.next_page_token or None,
    }
