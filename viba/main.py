"""Viba generation backend - FastAPI application."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from viba.config import settings
from viba.api.v1.router import v1_router
from viba.api.v1.health import router as health_root_router
from viba.api.v1 import generations as generations_api
from viba.api.v1 import health as health_api
from viba.api.v1 import history as history_api
from viba.api.v1 import jobs as jobs_api
from viba.api.v1 import models_api
from viba.db.supabase_client import get_supabase_if_configured
from viba.errors import VibaError
from viba.generation.client import GeminiClient, GenerationNotConfigured
from viba.generation.model_config import ModelConfigStore
from viba.generation.orchestrator import GenerationOrchestrator, InvocationPolicies
from viba.history.recorder import HistoryRecorder
from viba.history.repository import InMemoryHistoryRepository, SupabaseHistoryRepository
from viba.jobs.dispatcher import JobStateError
from viba.jobs.in_process_queue import InProcessQueue
from viba.jobs.worker import GenerationWorker
from viba.storage.artifact_store import ArtifactStore
from viba.storage.backends import SupabaseStorageBackend

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def build_artifact_store(client) -> ArtifactStore:
    backend = None
    if client is not None and settings.storage_configured():
        backend = SupabaseStorageBackend(client, settings.storage_bucket)
    return ArtifactStore(
        backend=backend,
        public_base_url=settings.storage_public_base_url,
        signed_url_ttl=settings.signed_url_ttl_seconds,
    )


def build_recorder(client, store: ArtifactStore) -> HistoryRecorder:
    if client is not None:
        repository = SupabaseHistoryRepository(client, settings.supabase_history_table)
    else:
        logger.warning("Supabase not configured, history is kept in memory only")
        repository = InMemoryHistoryRepository()
    return HistoryRecorder(repository, store)


# Global dispatcher reference
_dispatcher = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown logic."""
    global _dispatcher

    logger.info("Starting Viba backend on port %d", settings.compute_port)
    if not settings.gemini_configured():
        logger.warning("GEMINI_API_KEY is not set, generation requests will fail with 503")

    config_store = ModelConfigStore(settings.model_selection_path)
    logger.info("Model config: %s", config_store.current.model_dump())

    client = get_supabase_if_configured()
    store = build_artifact_store(client)
    if not store.is_configured():
        logger.warning("Artifact storage not configured, history keeps inline payloads")
    recorder = build_recorder(client, store)

    orchestrator = GenerationOrchestrator(
        GeminiClient(settings.gemini_api_key),
        config_store,
        InvocationPolicies.from_settings(settings),
        variant_count=settings.variant_count,
        min_description_length=settings.min_description_length,
    )

    # Start job dispatcher
    _dispatcher = InProcessQueue(worker_fn=GenerationWorker(orchestrator, recorder))
    await _dispatcher.start()
    logger.info("Job dispatcher started")

    # Wire services into API endpoints
    generations_api.set_orchestrator(orchestrator)
    generations_api.set_recorder(recorder)
    history_api.set_recorder(recorder)
    jobs_api.set_dispatcher(_dispatcher)
    models_api.set_config_store(config_store)
    health_api.set_dispatcher(_dispatcher)
    health_api.set_store(store)

    yield

    # Shutdown
    logger.info("Shutting down Viba backend")
    await _dispatcher.stop()


app = FastAPI(
    title="Viba Generation Service",
    description="Image derivation, avatar, try-on and scene swap backed by Gemini",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS: allow frontend dev server and any configured origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:3000", "*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def limit_request_size(request: Request, call_next):
    length = request.headers.get("content-length")
    if length and length.isdigit() and int(length) > settings.max_request_bytes:
        return JSONResponse(
            status_code=413,
            content={"detail": "Request body too large", "error": "payload_too_large"},
        )
    return await call_next(request)


@app.exception_handler(VibaError)
async def viba_error_handler(request: Request, exc: VibaError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "error": exc.code})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = "; ".join(
        f"{'.'.join(str(p) for p in e.get('loc', ()) if p != 'body')}: {e.get('msg')}" for e in errors
    )
    return JSONResponse(status_code=400, content={"detail": message or "Invalid request", "error": "validation_error"})


@app.exception_handler(GenerationNotConfigured)
async def not_configured_handler(request: Request, exc: GenerationNotConfigured):
    return JSONResponse(status_code=503, content={"detail": str(exc), "error": "not_configured"})


@app.exception_handler(JobStateError)
async def job_state_handler(request: Request, exc: JobStateError):
    return JSONResponse(status_code=409, content={"detail": str(exc), "error": "invalid_job_state"})


# Mount routers
app.include_router(health_root_router, tags=["health"])  # GET /health at root
app.include_router(v1_router)  # All /api/v1/* endpoints


def main():
    uvicorn.run("viba.main:app", host="0.0.0.0", port=settings.compute_port)


if __name__ == "__main__":
    main()
