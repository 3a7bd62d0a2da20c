"""FastAPI read API over the stored stats document"""

from fastapi import BackgroundTasks, Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from typing import Any, Dict
import logging

from civstats.config.settings import settings
from civstats.crawlers.contracts import FetchState
from civstats.errors import CollectorError
from civstats.models.document import StatsDocument
from civstats.models.snapshot import Counters, Snapshot, TotalCounters, counter_fields, format_timestamp
from civstats.orchestrator import CollectorOrchestrator
from civstats.services.history.display import (
    SORT_KEYS,
    TimeRange,
    compute_gains,
    current_counters,
    current_totals,
    is_gain_range,
    resolve_for_display,
    sort_images,
    total_reactions,
)
from civstats.storage.gist_store import GistDocumentStore

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.APP_NAME,
    description="Read API for hourly Civitai reaction history",
    version=settings.APP_VERSION,
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # The browser extension reads from its own origin
    allow_credentials=False,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

# Global orchestrator instance
orchestrator = CollectorOrchestrator()

# Store last run stats (in-memory, for simple deployment)
last_stats: Dict[str, Any] = {}

HISTORY_MODES = ("auto", "cumulative", "gains")


async def get_document() -> StatsDocument:
    """Load the current document from the gist store"""
    try:
        async with GistDocumentStore() as store:
            loaded = await store.load_document()
    except CollectorError as e:
        raise HTTPException(status_code=503, detail=str(e))

    if loaded.state == FetchState.EMPTY:
        return StatsDocument.empty(settings.CIVITAI_USERNAME or "")
    if loaded.state != FetchState.OK or loaded.data is None:
        raise HTTPException(status_code=502, detail=f"Failed to load stats document: {loaded.error}")
    return loaded.data


def _counters_payload(counters: Counters) -> Dict[str, int]:
    return {name: getattr(counters, name) for name in counter_fields(type(counters))}


def _series_payload(snapshots: list[Snapshot]) -> list[Dict[str, Any]]:
    return [
        {"timestamp": format_timestamp(item.timestamp), **_counters_payload(item.counters)}
        for item in snapshots
    ]


def _history_response(history, time_range: str, mode: str, counters_type: type[Counters]) -> Dict[str, Any]:
    if mode not in HISTORY_MODES:
        raise HTTPException(status_code=422, detail=f"Unknown mode: {mode}")
    try:
        resolved = resolve_for_display(history, time_range, counters_type=counters_type)
        gains = mode == "gains" or (mode == "auto" and is_gain_range(time_range))
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    series = compute_gains(resolved) if gains else resolved
    return {
        "range": time_range,
        "mode": "gains" if gains else "cumulative",
        "chart_type": "bar" if gains else "line",
        "points": _series_payload(series),
    }


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running",
        "endpoints": {
            "health": "/api/health",
            "stats": "/api/stats",
            "total_history": "/api/history/total?range=7d",
            "images": "/api/images?sort=newest",
            "image_history": "/api/images/{image_id}/history?range=all",
            "collect": "POST /api/collect",
        }
    }


@app.get("/api/health")
async def health_check():
    """Health check endpoint for serverless platforms"""
    return {
        "status": "healthy",
        "service": "civstats",
        "version": settings.APP_VERSION
    }


@app.get("/api/stats")
async def get_stats(document: StatsDocument = Depends(get_document)):
    """Current aggregate totals and the last collection run"""
    totals = current_totals(document)
    return {
        "collector_id": document.collector_id,
        "last_updated": format_timestamp(document.last_updated) if document.last_updated else None,
        "totals": _counters_payload(totals),
        "total_reactions": total_reactions(totals),
        "tracked_images": len(document.images),
        "last_run": last_stats.get("collect"),
    }


@app.get("/api/history/total")
async def get_total_history(
    time_range: str = Query(TimeRange.ALL.value, alias="range"),
    mode: str = Query("auto"),
    document: StatsDocument = Depends(get_document),
):
    """Aggregate history for charts"""
    return _history_response(document.total_history, time_range, mode, TotalCounters)


@app.get("/api/images")
async def list_images(sort: str = Query("newest"), document: StatsDocument = Depends(get_document)):
    """Tracked images with their current counters"""
    if sort not in SORT_KEYS and sort not in counter_fields(Counters):
        raise HTTPException(status_code=422, detail=f"Unknown sort key: {sort}")

    images = []
    for image in sort_images(document.images, sort):
        counters = current_counters(image)
        images.append({
            "id": image.id,
            "display_name": image.display_name,
            "url": image.url,
            "thumbnail_ref": image.thumbnail_ref,
            "created_at": format_timestamp(image.created_at) if image.created_at else None,
            "counters": _counters_payload(counters),
            "total_reactions": total_reactions(counters),
            "history_points": len(image.history),
        })
    return {"count": len(images), "images": images}


@app.get("/api/images/{image_id}/history")
async def get_image_history(
    image_id: str,
    time_range: str = Query(TimeRange.ALL.value, alias="range"),
    mode: str = Query("auto"),
    document: StatsDocument = Depends(get_document),
):
    """Single image history for charts"""
    image = document.image_by_id().get(image_id)
    if image is None:
        raise HTTPException(status_code=404, detail=f"Unknown image: {image_id}")
    return {"image_id": image_id, **_history_response(image.history, time_range, mode, Counters)}


@app.post("/api/collect")
async def collect(background_tasks: BackgroundTasks):
    """Trigger a collection run"""
    logger.info("Collection triggered via API")

    async def run_collection():
        try:
            last_stats["collect"] = await orchestrator.run_collection()
        except CollectorError as e:
            logger.error(f"Collection aborted: {e}")
            last_stats["collect"] = {"success": False, "error": str(e), "error_type": type(e).__name__}
        except Exception as e:
            logger.error(f"Collection failed: {e}", exc_info=True)
            last_stats["collect"] = {"success": False, "error": str(e), "error_type": type(e).__name__}

    background_tasks.add_task(run_collection)
    return {
        "status": "started",
        "message": "Collection started in background"
    }
