"""Service status endpoint."""

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from gold_price_bot.api.deps import get_task_runner
from gold_price_bot.worker.scheduler import SCRAPE_JOB_ID
from gold_price_bot.worker.tasks import TaskRunner

router = APIRouter(prefix="/api", tags=["status"])


class LastRunResponse(BaseModel):
    mode: str
    status: str
    error: Optional[str]
    duration_seconds: float


class ServiceStatus(BaseModel):
    database: str
    record_count: int
    last_update: Optional[datetime]
    scraper_mode: str
    scrape_running: bool
    last_run: Optional[LastRunResponse]
    next_scheduled_run: Optional[datetime]
    uptime_seconds: float


class StatusResponse(BaseModel):
    success: bool = True
    status: ServiceStatus
    timestamp: datetime


def _next_scheduled_run(request: Request) -> Optional[datetime]:
    scrape_scheduler = getattr(request.app.state, "scheduler", None)
    if scrape_scheduler is None:
        return None
    job = scrape_scheduler.scheduler.get_job(SCRAPE_JOB_ID)
    return job.next_run_time if job else None


@router.get("/status", response_model=StatusResponse)
async def get_status(request: Request, task_runner: TaskRunner = Depends(get_task_runner)):
    """Store reachability, last run and schedule."""
    connected = await task_runner.store_reachable()
    latest = await task_runner.latest_observation()
    last = task_runner.last_outcome

    return StatusResponse(
        status=ServiceStatus(
            database="connected" if connected else "disconnected",
            record_count=await task_runner.gateway.count(),
            last_update=latest.created_at if latest else None,
            scraper_mode=task_runner.default_mode,
            scrape_running=task_runner.is_running,
            last_run=(
                LastRunResponse(
                    mode=last.mode,
                    status=last.status,
                    error=last.error,
                    duration_seconds=round(last.duration_seconds, 3),
                )
                if last
                else None
            ),
            next_scheduled_run=_next_scheduled_run(request),
            uptime_seconds=round((datetime.now() - task_runner.started_at).total_seconds(), 1),
        ),
        timestamp=datetime.now(timezone.utc),
    )
