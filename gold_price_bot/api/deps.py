"""FastAPI dependencies."""

from fastapi import HTTPException, Request, status

from gold_price_bot.config import settings
from gold_price_bot.worker.tasks import TaskRunner


async def get_task_runner(request: Request) -> TaskRunner:
    """Task runner built by the application lifespan."""
    task_runner = getattr(request.app.state, "task_runner", None)
    if task_runner is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service is still starting",
        )
    return task_runner


def get_history_limit_cap() -> int:
    return settings.api_history_max_limit
