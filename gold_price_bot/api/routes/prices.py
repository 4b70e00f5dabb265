"""Gold price API endpoints."""

import logging
from datetime import datetime, timezone
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from gold_price_bot.api.deps import get_history_limit_cap, get_task_runner
from gold_price_bot.ingest.base import MultiSourceObservation
from gold_price_bot.worker.tasks import STATUS_SAVED, ScrapeOutcome, TaskRunner

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/gold", tags=["gold"])


# Response models
class GoldPriceResponse(BaseModel):
    """Response model for a stored price row."""
    id: int
    price: float
    created_at: datetime
    source: Optional[str]
    currency: str
    time_period: Optional[str]
    ny_price: Optional[float] = None
    xau_price: Optional[float] = None
    sh_price: Optional[float] = None

    class Config:
        from_attributes = True


class LatestPriceResponse(BaseModel):
    success: bool = True
    data: GoldPriceResponse
    timestamp: datetime


class PriceListResponse(BaseModel):
    success: bool = True
    data: List[GoldPriceResponse]
    count: int
    timestamp: datetime


class ScrapeRequest(BaseModel):
    """Optional body for a manual scrape."""
    mode: Optional[Literal["single", "multi"]] = None


class ScrapeResponse(BaseModel):
    success: bool
    status: str
    mode: str
    price: Optional[float] = None
    currency: Optional[str] = None
    prices: dict[str, float] = {}
    error: Optional[str] = None
    duration_seconds: float
    timestamp: datetime


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _scrape_response(outcome: ScrapeOutcome) -> ScrapeResponse:
    observation = outcome.observation
    prices: dict[str, float] = {}
    if isinstance(observation, MultiSourceObservation):
        prices = {name: float(quote.price) for name, quote in observation.prices.items()}

    return ScrapeResponse(
        success=outcome.status == STATUS_SAVED,
        status=outcome.status,
        mode=outcome.mode,
        price=float(observation.price) if observation else None,
        currency=(
            observation.primary.currency
            if isinstance(observation, MultiSourceObservation)
            else getattr(observation, "currency", None)
        ),
        prices=prices,
        error=outcome.error,
        duration_seconds=round(outcome.duration_seconds, 3),
        timestamp=_now(),
    )


@router.get("/latest", response_model=LatestPriceResponse)
async def get_latest_price(task_runner: TaskRunner = Depends(get_task_runner)):
    """Most recent stored price."""
    row = await task_runner.latest_observation()
    if row is None:
        raise HTTPException(status_code=404, detail="No data found")
    return LatestPriceResponse(data=GoldPriceResponse.model_validate(row), timestamp=_now())


@router.get("/history", response_model=PriceListResponse)
async def get_price_history(
    limit: int = Query(100, ge=1),
    max_limit: int = Depends(get_history_limit_cap),
    task_runner: TaskRunner = Depends(get_task_runner),
):
    """Newest rows first, capped at the configured maximum."""
    rows = await task_runner.history(min(limit, max_limit))
    data = [GoldPriceResponse.model_validate(row) for row in rows]
    return PriceListResponse(data=data, count=len(data), timestamp=_now())


@router.get("/range", response_model=PriceListResponse)
async def get_price_range(
    start: datetime,
    end: datetime,
    limit: int = Query(1000, ge=1),
    max_limit: int = Depends(get_history_limit_cap),
    task_runner: TaskRunner = Depends(get_task_runner),
):
    """Rows created between ``start`` and ``end`` inclusive, oldest first."""
    if start > end:
        raise HTTPException(status_code=400, detail="start must not be after end")

    rows = await task_runner.history_range(start, end, min(limit, max_limit))
    data = [GoldPriceResponse.model_validate(row) for row in rows]
    return PriceListResponse(data=data, count=len(data), timestamp=_now())


@router.post("/scrape", response_model=ScrapeResponse)
async def trigger_scrape(
    payload: Optional[ScrapeRequest] = None,
    task_runner: TaskRunner = Depends(get_task_runner),
):
    """Run one scrape-and-save now and report its outcome."""
    mode = payload.mode if payload else None
    logger.info(f"Manual scrape requested (mode={mode or task_runner.default_mode})")

    outcome = await task_runner.scrape_and_save(mode)
    response = _scrape_response(outcome)
    if not response.success:
        raise HTTPException(status_code=500, detail=response.model_dump(mode="json"))
    return response
