"""Per-feature model selection, persisted across restarts.

The stored file is versioned. Every identifier goes through
:func:`normalize_model_id` on load, on update and for per-request
overrides, so retired model names never reach the API.
"""

import json
import logging
import os
import threading
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict

from viba.errors import ValidationError

logger = logging.getLogger(__name__)

CONFIG_VERSION = 2

DEFAULT_TEXT_MODEL = "gemini-3-pro-preview"
DEFAULT_IMAGE_MODEL = "gemini-3-pro-image-preview"

AVAILABLE_MODELS: List[str] = [
    "gemini-3-pro-preview",
    "gemini-3-pro-image-preview",
    "gemini-2.5-flash",
    "gemini-2.5-flash-image",
    "gemini-2.5-pro",
]

LEGACY_MODEL_IDS: Dict[str, str] = {
    "gemini-2.0-flash-exp": "gemini-2.5-flash-image",
    "gemini-2.0-flash-preview-image-generation": "gemini-2.5-flash-image",
    "gemini-2.5-flash-image-preview": "gemini-2.5-flash-image",
    "gemini-pro-vision": "gemini-2.5-flash",
    "gemini-1.5-pro": "gemini-2.5-pro",
    "gemini-1.5-flash": "gemini-2.5-flash",
}

# Version 1 files used the browser's camelCase feature keys
LEGACY_FEATURE_KEYS: Dict[str, str] = {"tryOn": "try_on"}


def normalize_model_id(model_id: str) -> str:
    """Map a legacy or prefixed identifier onto its current name."""
    value = model_id.strip()
    if value.startswith("models/"):
        value = value[len("models/"):]
    return LEGACY_MODEL_IDS.get(value, value)


class ModelConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    version: int = CONFIG_VERSION
    derivation_text: str = DEFAULT_TEXT_MODEL
    derivation_image: str = DEFAULT_IMAGE_MODEL
    avatar: str = DEFAULT_IMAGE_MODEL
    try_on: str = DEFAULT_IMAGE_MODEL
    swap: str = DEFAULT_IMAGE_MODEL

    @classmethod
    def feature_keys(cls) -> List[str]:
        return [name for name in cls.model_fields if name != "version"]

    def normalized(self) -> "ModelConfig":
        return self.model_copy(
            update={key: normalize_model_id(getattr(self, key)) for key in self.feature_keys()}
        )

    def with_updates(self, updates: Dict[str, str]) -> "ModelConfig":
        unknown = sorted(set(updates) - set(self.feature_keys()))
        if unknown:
            raise ValidationError(f"Unknown model feature(s): {', '.join(unknown)}")
        cleaned = {}
        for key, value in updates.items():
            if not isinstance(value, str) or not value.strip():
                raise ValidationError(f"Model for '{key}' must be a non-empty string")
            cleaned[key] = normalize_model_id(value)
        return self.model_copy(update={**cleaned, "version": CONFIG_VERSION})

    def model_for(self, feature: str, override: Optional[str] = None) -> str:
        if override:
            return normalize_model_id(override)
        return getattr(self, feature)


def migrate(raw: Dict) -> ModelConfig:
    """Build a current config from any stored version."""
    data = {LEGACY_FEATURE_KEYS.get(k, k): v for k, v in raw.items()}
    data.pop("version", None)
    known = {k: v for k, v in data.items() if k in ModelConfig.feature_keys() and isinstance(v, str)}
    return ModelConfig(**known).normalized()


class ModelConfigStore:
    """Holds the current :class:`ModelConfig` and its JSON file."""

    def __init__(self, path: Optional[str] = None):
        self._path = path
        self._lock = threading.Lock()
        self._config = self._load()

    def _load(self) -> ModelConfig:
        if not self._path or not os.path.exists(self._path):
            return ModelConfig()
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                raw = json.load(f)
            if not isinstance(raw, dict):
                raise ValueError("model config file must hold a JSON object")
            return migrate(raw)
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable model config %s: %s", self._path, exc)
            return ModelConfig()

    def _save(self, config: ModelConfig) -> None:
        if not self._path:
            return
        tmp_path = f"{self._path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(config.model_dump(), f, indent=2)
        os.replace(tmp_path, self._path)

    @property
    def current(self) -> ModelConfig:
        return self._config

    def update(self, updates: Dict[str, str]) -> ModelConfig:
        with self._lock:
            config = self._config.with_updates(updates)
            self._save(config)
            self._config = config
        logger.info("Model config updated: %s", updates)
        return config

    def reset(self) -> ModelConfig:
        with self._lock:
            config = ModelConfig()
            self._save(config)
            self._config = config
        return config
