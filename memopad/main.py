"""
Diagnostics HTTP surface for the process-wide memoizer.
"""
import logging

from fastapi import FastAPI, HTTPException

from memopad import __version__
from memopad.cache import get_memoizer
from config.settings import settings

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger("memopad.main")

APP_NAME = "memopad"

app = FastAPI(title=APP_NAME, version=__version__)


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "ok", "service": APP_NAME}


@app.get("/version")
def version_info():
    """Version information endpoint."""
    return {"name": APP_NAME, "version": __version__}


@app.get("/cache/stats")
def cache_stats():
    """Get memoizer statistics."""
    return get_memoizer().get_stats()


@app.delete("/cache/{key}")
def invalidate_key(key: str):
    """Drop the stored value for one key."""
    if not get_memoizer().invalidate(key):
        raise HTTPException(status_code=404, detail=f"No cached value for {key!r}")
    return {"invalidated": key}


@app.post("/cache/clear")
def clear_cache():
    """Drop every stored value."""
    count = get_memoizer().clear()
    logger.info(f"Cache cleared via API ({count} entries)")
    return {"cleared": count}
