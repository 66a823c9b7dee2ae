import logging
import time
from contextlib import asynccontextmanager
from datetime import date, datetime

from fastapi import Depends, FastAPI, HTTPException, Query
from pydantic import BaseModel

from spacedrep.application.service import ReviewService, TopicNotFoundError
from spacedrep.application.utils.dates import parse_instant, utc
from spacedrep.consts import VERSION
from spacedrep.domain.models import ErrorKind, HistoryEdit, TransitionResult
from spacedrep.infrastructure.adapters.snapshot_file import SnapshotFormatError
from spacedrep.interface.serializers import to_jsonable

# Setup logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("spacedrep.server")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info(f"spacedrep server v{VERSION} starting up...")
    yield
    # Shutdown
    logger.info("spacedrep server shutting down...")


app = FastAPI(
    title="spacedrep server",
    description="Review scheduling and retention modeling over a topic snapshot.",
    version=VERSION,
    lifespan=lifespan,
)


class HealthResponse(BaseModel):
    status: str
    version: str
    uptime_seconds: float


start_time = time.time()


def get_service() -> ReviewService:
    """Build the service from the resolved configuration on every request."""
    from spacedrep.application.config import resolve_config
    from spacedrep.application.factory import get_review_service

    return get_review_service(resolve_config())


def _instant(value: str | None) -> datetime:
    if value is None:
        return datetime.now(utc)
    try:
        return parse_instant(value)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e


def _call(action):
    try:
        return action()
    except TopicNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except SnapshotFormatError as e:
        logger.error(f"Snapshot could not be read: {e}")
        raise HTTPException(status_code=500, detail=str(e)) from e


def _transition_response(result: TransitionResult) -> dict:
    if result.error is not None:
        status = 409 if result.error.kind == ErrorKind.DUPLICATE_ACTION else 422
        raise HTTPException(status_code=status, detail=result.error.message)
    return to_jsonable(result)


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """
    Simple health check to verify server is reachable.
    """
    return HealthResponse(status="ok", version=VERSION, uptime_seconds=time.time() - start_time)


@app.get("/version")
async def get_version():
    return {"version": VERSION}


@app.get("/topics/rank")
def rank_topics(
    now: str | None = None,
    limit: int | None = None,
    service: ReviewService = Depends(get_service),
):
    ranked = _call(lambda: service.rank(_instant(now)))[:limit]
    return [{"topic": to_jsonable(item.topic), "risk": to_jsonable(item.risk)} for item in ranked]


class ReviewRequest(BaseModel):
    at: str | None = None  # defaults to now
    quality: float | None = None
    adjust_future: bool | None = None
    quick: bool = False


@app.post("/topics/{topic_id}/review")
def review_topic(topic_id: str, req: ReviewRequest, service: ReviewService = Depends(get_service)):
    """
    Log a review. 409 when today's quick revision was already used.
    """
    at = _instant(req.at)
    result = _call(
        lambda: service.review(
            topic_id,
            at,
            quality=req.quality,
            adjust_future=req.adjust_future,
            quick=req.quick,
        )
    )
    return _transition_response(result)


class SkipRequest(BaseModel):
    at: str | None = None


@app.post("/topics/{topic_id}/skip")
def skip_topic(topic_id: str, req: SkipRequest, service: ReviewService = Depends(get_service)):
    at = _instant(req.at)
    return _transition_response(_call(lambda: service.skip(topic_id, at)))


class HistoryEntry(BaseModel):
    at: str
    quality: float | None = None
    id: str | None = None


class HistoryRequest(BaseModel):
    entries: list[HistoryEntry]


@app.post("/topics/{topic_id}/history")
def edit_history(topic_id: str, req: HistoryRequest, service: ReviewService = Depends(get_service)):
    """
    Replace the review history; same-day entries are merged.
    """
    edits = [HistoryEdit(at=_instant(e.at), quality=e.quality, id=e.id) for e in req.entries]
    return _transition_response(_call(lambda: service.edit_history(topic_id, edits)))


@app.get("/topics/{topic_id}/schedule")
def topic_schedule(topic_id: str, lapses: int = 0, service: ReviewService = Depends(get_service)):
    return to_jsonable(_call(lambda: service.preview_schedule(topic_id, lapses=lapses)))


@app.get("/topics/{topic_id}/curve")
def topic_curve(
    topic_id: str,
    now: str | None = None,
    points: int = 160,
    service: ReviewService = Depends(get_service),
):
    at = _instant(now)
    return to_jsonable(_call(lambda: service.curve(topic_id, at, points)))


@app.get("/calendar")
def calendar_month(
    month: str | None = None,
    subject: list[str] | None = Query(default=None),
    no_subjects: bool = False,
    now: str | None = None,
    week_starts_on: int = 0,
    service: ReviewService = Depends(get_service),
):
    """
    Month grid of due topics. Without ``subject`` every subject is shown;
    ``no_subjects`` hides them all.
    """
    month_date = None
    if month:
        try:
            month_date = date.fromisoformat(f"{month}-01")
        except ValueError as e:
            raise HTTPException(status_code=422, detail=f"Invalid month: {month}") from e
    at = _instant(now)
    subject_ids = set() if no_subjects else (set(subject) if subject is not None else None)
    view = _call(
        lambda: service.calendar(
            at,
            month=month_date,
            subject_ids=subject_ids,
            week_starts_on=week_starts_on,
        )
    )
    return to_jsonable(view)
