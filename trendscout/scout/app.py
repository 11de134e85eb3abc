"""TrendScout FastAPI application."""

import os
import secrets
from datetime import datetime
from typing import Optional, Dict, Any, List, Union

import uvicorn
from fastapi import FastAPI, HTTPException, Depends, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from pydantic import BaseModel, Field, confloat, field_validator

from trendscout.core.errors import InsufficientData
from trendscout.core.logging import setup_logging, get_logger
from trendscout.core.settings import get_settings
from trendscout.core.time import ensure_utc, utc_now
from trendscout.scout.lifecycle import predict_lifecycle
from trendscout.scout.monitor import TrendMonitor, build_monitor
from trendscout.scout.niches import MAX_RELATED_TOPICS, find_related_topics
from trendscout.scout.pipeline import DEFAULT_COMPETITOR_LIMIT
from trendscout.scout.types import VolumeSample

# Setup logging
setup_logging("scout")
logger = get_logger(__name__)

SERVICE_VERSION = "0.1.0"

app = FastAPI(title="TrendScout", version=SERVICE_VERSION, description="Trend discovery and lifecycle scoring API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

security = HTTPBasic(auto_error=False)


class HistoryPoint(BaseModel):
    """One volume observation."""
    volume: float = Field(..., ge=0)
    observed_at: Optional[datetime] = None


class LifecycleRequest(BaseModel):
    """Request model for a lifecycle prediction."""
    topic: str = Field(..., min_length=1)
    history: Optional[List[Union[confloat(ge=0), HistoryPoint]]] = Field(
        default=None,
        description="Volumes oldest first; omit to use the recorded history"
    )

    @field_validator("history")
    @classmethod
    def timestamps_in_order(cls, v):
        if v is None:
            return v
        stamps = [
            ensure_utc(p.observed_at) for p in v
            if isinstance(p, HistoryPoint) and p.observed_at is not None
        ]
        if any(later < earlier for earlier, later in zip(stamps, stamps[1:])):
            raise ValueError("history points must be ordered oldest first by observed_at")
        return v


class KeywordsRequest(BaseModel):
    """Request model for search volume analysis."""
    keywords: List[str] = Field(..., min_length=1, max_length=50)


class ScanRunResponse(BaseModel):
    """Response model for a manual scan."""
    status: str
    message: str
    counts: Dict[str, int]
    hot_trends: List[Dict[str, Any]]
    niches: List[Dict[str, Any]]


def _auth_enabled() -> bool:
    return os.getenv("TRENDSCOUT_AUTH_ENABLED", "false").lower() == "true"


def get_current_username(credentials: Optional[HTTPBasicCredentials] = Depends(security)):
    """Verify basic auth credentials if auth is enabled."""
    if not _auth_enabled():
        return None

    correct_username = os.getenv("TRENDSCOUT_USERNAME", "admin")
    correct_password = os.getenv("TRENDSCOUT_PASSWORD", "secret")

    if credentials is None or not (
        secrets.compare_digest(credentials.username, correct_username)
        and secrets.compare_digest(credentials.password, correct_password)
    ):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Basic"},
        )
    return credentials.username


def check_manual_run_enabled():
    """Check if manual runs are enabled via ALLOW_MANUAL_RUN."""
    if not get_settings().allow_manual_run:
        raise HTTPException(
            status_code=403,
            detail="Manual runs are disabled. Set ALLOW_MANUAL_RUN=true to enable."
        )
    return True


def get_monitor(request: Request) -> TrendMonitor:
    monitor = getattr(request.app.state, "monitor", None)
    if monitor is None:
        raise HTTPException(status_code=503, detail="Monitor not initialised")
    return monitor


def _to_samples(topic: str, history: List[Union[float, HistoryPoint]]) -> List[VolumeSample]:
    now = utc_now()
    samples = []
    for point in history:
        if isinstance(point, HistoryPoint):
            observed = ensure_utc(point.observed_at) if point.observed_at else now
            samples.append(VolumeSample(keyword=topic, volume=point.volume, observed_at=observed))
        else:
            samples.append(VolumeSample(keyword=topic, volume=float(point), observed_at=now))
    return samples


@app.get("/healthz")
async def health_check():
    """Health check endpoint."""
    return {"status": "ok", "service": "trendscout"}


@app.get("/")
async def root():
    """Root endpoint."""
    settings = get_settings()
    return {
        "service": "trendscout",
        "version": SERVICE_VERSION,
        "status": "running",
        "platforms": settings.platform_list,
        "scan_interval_minutes": settings.scan_interval_minutes,
        "manual_runs_enabled": settings.allow_manual_run,
        "auth_enabled": _auth_enabled(),
        "endpoints": {
            "health": "GET /healthz",
            "monitor_status": "GET /monitor/status",
            "monitor_start": "POST /monitor/start",
            "monitor_stop": "POST /monitor/stop",
            "scan_run": "POST /scan/run",
            "lifecycle": "POST /lifecycle/predict",
            "related": "GET /trends/related?seed=",
            "niches": "GET /niches",
            "keywords": "POST /keywords/analyze",
            "competitors": "GET /competitors?niche=",
        }
    }


@app.get("/monitor/status")
async def monitor_status(
    monitor: TrendMonitor = Depends(get_monitor),
    username: str = Depends(get_current_username)
):
    return monitor.status()


@app.post("/monitor/start")
async def monitor_start(
    monitor: TrendMonitor = Depends(get_monitor),
    username: str = Depends(get_current_username)
):
    started = await monitor.start()
    logger.info("Monitor start requested", extra={"user": username, "changed": started})
    return {"status": monitor.state.value, "changed": started}


@app.post("/monitor/stop")
async def monitor_stop(
    monitor: TrendMonitor = Depends(get_monitor),
    username: str = Depends(get_current_username)
):
    stopped = await monitor.stop()
    logger.info("Monitor stop requested", extra={"user": username, "changed": stopped})
    return {"status": monitor.state.value, "changed": stopped}


@app.post("/scan/run", response_model=ScanRunResponse)
async def run_scan(
    monitor: TrendMonitor = Depends(get_monitor),
    username: str = Depends(get_current_username),
    _: bool = Depends(check_manual_run_enabled)
):
    """Run one scan cycle now; waits for any cycle already in progress."""
    logger.info("Manual scan requested", extra={"user": username})

    result = await monitor.run_once()
    if result is None:
        raise HTTPException(status_code=500, detail=f"Scan failed: {monitor.last_error}")

    stats = result.stats
    return ScanRunResponse(
        status=stats.status,
        message=f"Scan {stats.scan_id} found {stats.trends_count} trends",
        counts={
            "raw": stats.raw_count,
            "trends": stats.trends_count,
            "hot": stats.hot_count,
            "niches": stats.niches_count,
            "platforms_failed": len(stats.platforms_failed),
        },
        hot_trends=[t.to_dict() for t in result.hot_trends],
        niches=[n.to_dict() for n in result.niches],
    )


@app.post("/lifecycle/predict")
async def lifecycle_predict(
    request: LifecycleRequest,
    monitor: TrendMonitor = Depends(get_monitor),
    username: str = Depends(get_current_username)
):
    """Predict a topic's lifecycle from the given history, or from the recorded one."""
    try:
        if request.history is None:
            prediction = await monitor.pipeline.predict_trend_lifecycle(request.topic)
        else:
            prediction = predict_lifecycle(request.topic, _to_samples(request.topic, request.history))
    except InsufficientData as e:
        raise HTTPException(status_code=422, detail=str(e))
    return prediction.to_dict()


@app.get("/trends/related")
async def related_trends(
    seed: str = Query(..., min_length=1),
    limit: int = Query(default=MAX_RELATED_TOPICS, ge=1, le=100),
    monitor: TrendMonitor = Depends(get_monitor),
    username: str = Depends(get_current_username)
):
    """Topics from the most recent scan related to the seed."""
    trends = monitor.last_result.trends if monitor.last_result else []
    return {"seed": seed, "topics": find_related_topics(seed, trends, limit)}


@app.get("/niches")
async def latest_niches(
    monitor: TrendMonitor = Depends(get_monitor),
    username: str = Depends(get_current_username)
):
    """Niches promoted by the most recent scan."""
    niches = monitor.last_result.niches if monitor.last_result else []
    return {"count": len(niches), "niches": [n.to_dict() for n in niches]}


@app.post("/keywords/analyze")
async def analyze_keywords(
    request: KeywordsRequest,
    monitor: TrendMonitor = Depends(get_monitor),
    username: str = Depends(get_current_username)
):
    metrics = await monitor.pipeline.analyze_search_volume(request.keywords)
    return {
        "metrics": [
            {
                "keyword": m.keyword,
                "search_volume": m.search_volume,
                "trend": m.trend.value,
                "competition": m.competition,
            }
            for m in metrics
        ]
    }


@app.get("/competitors")
async def competitors(
    niche: str = Query(..., min_length=1),
    limit: int = Query(default=DEFAULT_COMPETITOR_LIMIT, ge=1, le=50),
    monitor: TrendMonitor = Depends(get_monitor),
    username: str = Depends(get_current_username)
):
    """Leading creators in a niche across the configured platforms."""
    found = await monitor.pipeline.track_competitors(niche, limit=limit)
    return {"niche": niche, "count": len(found), "competitors": [c.to_dict() for c in found]}


@app.on_event("startup")
async def startup_event():
    """Build the monitor unless one was supplied, and autostart it if configured."""
    settings = get_settings()
    if getattr(app.state, "monitor", None) is None:
        app.state.monitor = build_monitor(settings)

    logger.info(
        "Starting trendscout service",
        extra={
            "service": "trendscout",
            "version": SERVICE_VERSION,
            "platforms": settings.platform_list,
            "auth_enabled": _auth_enabled(),
            "manual_runs_enabled": settings.allow_manual_run,
        }
    )

    if settings.monitor_autostart:
        await app.state.monitor.start()


@app.on_event("shutdown")
async def shutdown_event():
    """Stop the monitor and release its clients."""
    logger.info("Shutting down trendscout service")
    monitor = getattr(app.state, "monitor", None)
    if monitor is not None:
        await monitor.stop()
        await monitor.pipeline.aclose()


if __name__ == "__main__":
    settings = get_settings()
    logger.info("Starting trendscout service via uvicorn")
    uvicorn.run(
        "trendscout.scout.app:app",
        host=settings.service_host,
        port=settings.service_port or 8010,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
