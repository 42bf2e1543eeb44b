"""Health check endpoint."""

import platform
import sys
from datetime import datetime

from fastapi import APIRouter

from viba.config import settings

router = APIRouter()

# Set by main.py during lifespan
_dispatcher = None
_store = None


def set_dispatcher(dispatcher):
    global _dispatcher
    _dispatcher = dispatcher


def set_store(store):
    global _store
    _store = store


@router.get("/health")
async def health_check():
    """Service health, upstream configuration and queue depth."""
    queue = None
    if _dispatcher is not None:
        queue = {
            "pending": _dispatcher.pending_count(),
            "processing": _dispatcher.processing_count(),
        }

    return {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat(),
        "gemini_configured": settings.gemini_configured(),
        "storage_configured": bool(_store is not None and _store.is_configured()),
        "history_persistent": settings.supabase_configured(),
        "queue": queue,
        "python_version": sys.version,
        "platform": platform.platform(),
    }
