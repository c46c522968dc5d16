"""Cloud Tasks status endpoint."""

from fastapi import APIRouter, Depends, Query
from google.cloud import tasks_v2

from app.api.deps import get_settings, get_tasks_client
from app.config.settings import Config
from app.core.tasks import list_active_tasks
from app.schemas.audit import ActiveTasksResponse

router = APIRouter()


@router.get("/active-tasks", response_model=ActiveTasksResponse)
async def get_active_tasks(
    page_size: int | None = Query(None, alias="pageSize", ge=1, le=1000),
    page_token: str | None = Query(None, alias="pageToken"),
    config: Config = Depends(get_settings),  # noqa: B008
    client: tasks_v2.CloudTasksAsyncClient = Depends(get_tasks_client),  # noqa: B008
) -> ActiveTasksResponse:
    """List the audit tasks still waiting in the queue, one page at a time."""
    result = await list_active_tasks(
        client,
        config.project_id,
        config.tasks_queue_location,
        config.tasks_queue,
        page_size=page_size,
        page_token=page_token,
    )
    return ActiveTasksResponse.model_validate(result)
