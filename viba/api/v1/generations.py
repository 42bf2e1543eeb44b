"""Synchronous generation endpoints.

Each request runs its recipe to completion and, unless ``saveToHistory``
is false, stores inputs and outputs and creates a history record before
responding.
"""

import logging
from typing import List, Optional, Tuple

from fastapi import APIRouter, Depends, HTTPException

from viba.api.v1.schemas import (
    AvatarRequest,
    DerivationRequest,
    DerivationResponse,
    GenerationRequest,
    ImageResponse,
    SwapRequest,
    TryOnRequest,
)
from viba.auth.supabase_auth import CurrentUser, verify_jwt
from viba.generation.runner import GenerationOutcome, record_outcome, run_generation

logger = logging.getLogger(__name__)

router = APIRouter()

# Set by main.py during lifespan
_orchestrator = None
_recorder = None


def set_orchestrator(orchestrator):
    global _orchestrator
    _orchestrator = orchestrator


def set_recorder(recorder):
    global _recorder
    _recorder = recorder


async def _generate(
    request: GenerationRequest, user: CurrentUser
) -> Tuple[GenerationOutcome, List[str], Optional[str]]:
    """Run the request; returns (outcome, images to return, generation id)."""
    if _orchestrator is None:
        raise HTTPException(status_code=503, detail="Generation service not initialized")

    # Validation happens here, before any upstream call.
    images, params = request.to_inputs()
    outcome = await run_generation(_orchestrator, request.kind, images, params)

    if not request.save_to_history or _recorder is None:
        return outcome, outcome.images, None

    try:
        record = await record_outcome(_recorder, user.id, request.kind, images, outcome)
        resolved = await _recorder.resolve(record)
    except Exception:
        logger.exception("Saving %s generation to history failed", request.kind.value)
        return outcome, outcome.images, None
    return outcome, resolved.output_files, record.id


@router.post("/generate-derivations", response_model=DerivationResponse)
async def generate_derivations(request: DerivationRequest, user: CurrentUser = Depends(verify_jwt)):
    """Describe the image, then render up to ``variant_count`` variants of it."""
    outcome, images, generation_id = await _generate(request, user)
    return DerivationResponse(
        images=images,
        description=outcome.description or "",
        failed_variants=outcome.failed_variants,
        generation_id=generation_id,
    )


@router.post("/train-avatar", response_model=ImageResponse)
async def train_avatar(request: AvatarRequest, user: CurrentUser = Depends(verify_jwt)):
    outcome, images, generation_id = await _generate(request, user)
    return ImageResponse(image=images[0], generation_id=generation_id)


@router.post("/try-on", response_model=ImageResponse)
async def try_on(request: TryOnRequest, user: CurrentUser = Depends(verify_jwt)):
    outcome, images, generation_id = await _generate(request, user)
    return ImageResponse(image=images[0], generation_id=generation_id)


@router.post("/swap", response_model=ImageResponse)
async def swap(request: SwapRequest, user: CurrentUser = Depends(verify_jwt)):
    outcome, images, generation_id = await _generate(request, user)
    return ImageResponse(image=images[0], generation_id=generation_id)
