"""Aggregate all v1 API routers."""

from fastapi import APIRouter
from viba.api.v1.health import router as health_router
from viba.api.v1.generations import router as generations_router
from viba.api.v1.history import router as history_router
from viba.api.v1.jobs import router as jobs_router
from viba.api.v1.models_api import router as models_router

v1_router = APIRouter(prefix="/api/v1")
v1_router.include_router(health_router, tags=["health"])
v1_router.include_router(generations_router, tags=["generation"])
v1_router.include_router(history_router, tags=["history"])
v1_router.include_router(jobs_router, tags=["jobs"])
v1_router.include_router(models_router, tags=["models"])
