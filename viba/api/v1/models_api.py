"""Models API: per-feature model selection and the prompt catalog."""

from fastapi import APIRouter, Depends, HTTPException

from viba.api.v1.schemas import ModelConfigUpdate
from viba.auth.supabase_auth import CurrentUser, verify_jwt
from viba.generation.model_config import AVAILABLE_MODELS, ModelConfig
from viba.generation.prompts import catalog

router = APIRouter()

# Set by main.py during lifespan
_config_store = None


def set_config_store(store):
    global _config_store
    _config_store = store


def _require_store():
    if _config_store is None:
        raise HTTPException(status_code=503, detail="Model config not initialized")
    return _config_store


def _config_view(config: ModelConfig) -> dict:
    return {
        "config": config.model_dump(),
        "features": ModelConfig.feature_keys(),
        "available_models": AVAILABLE_MODELS,
    }


@router.get("/model-config")
async def get_model_config():
    """Current model per feature, plus the models the UI offers."""
    return _config_view(_require_store().current)


@router.put("/model-config")
async def update_model_config(request: ModelConfigUpdate, user: CurrentUser = Depends(verify_jwt)):
    """Change one or more features; unknown features are rejected."""
    return _config_view(_require_store().update(request.models))


@router.delete("/model-config")
async def reset_model_config(user: CurrentUser = Depends(verify_jwt)):
    return _config_view(_require_store().reset())


@router.get("/prompts")
async def list_prompts():
    return {"prompts": catalog()}
