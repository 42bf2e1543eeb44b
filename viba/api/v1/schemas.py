"""Request and response bodies for the generation, history and job APIs.

Request bodies use the browser's camelCase names and reject unknown
fields. Image fields are optional at the schema level so a missing image
is reported as a validation error (400) rather than a schema error.
"""

from datetime import datetime
from typing import Any, ClassVar, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from viba.errors import ValidationError
from viba.generation.client import ImageInput
from viba.generation.prompts import SkinTone
from viba.history.models import GenerationRecord, GenerationStatus, GenerationType
from viba.storage.artifact_store import KEY_PREFIX
from viba.storage.inline import is_data_url


class RequestModel(BaseModel):
    model_config = ConfigDict(
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
        protected_namespaces=(),
    )


def _image(payload: Optional[str], field: str, media_type: Optional[str] = None) -> ImageInput:
    if not payload:
        raise ValidationError(f"{field} is required")
    return ImageInput.from_payload(payload, media_type)


class GenerationRequest(RequestModel):
    kind: ClassVar[GenerationType]

    save_to_history: bool = True

    def to_inputs(self) -> Tuple[List[ImageInput], Dict[str, Any]]:
        """Validated images and orchestrator parameters."""
        raise NotImplementedError


class DerivationModels(RequestModel):
    text_model: Optional[str] = None
    image_model: Optional[str] = None


class DerivationRequest(GenerationRequest):
    kind: ClassVar[GenerationType] = GenerationType.DERIVATION

    image: Optional[str] = None
    media_type: Optional[str] = None
    intensity: int = Field(..., ge=1, le=10)
    skin_tone: Optional[SkinTone] = None
    models: Optional[DerivationModels] = Field(None, alias="modelConfig")

    def to_inputs(self):
        params: Dict[str, Any] = {
            "intensity": self.intensity,
            "skin_tone": self.skin_tone.value if self.skin_tone else None,
        }
        if self.models:
            params["text_model"] = self.models.text_model
            params["image_model"] = self.models.image_model
        return [_image(self.image, "image", self.media_type)], params


class AvatarFile(RequestModel):
    image: Optional[str] = None
    media_type: Optional[str] = None


class AvatarRequest(GenerationRequest):
    kind: ClassVar[GenerationType] = GenerationType.AVATAR

    files: List[AvatarFile] = Field(default_factory=list)
    model: Optional[str] = None

    def to_inputs(self):
        if not 1 <= len(self.files) <= 3:
            raise ValidationError("files must contain 1 to 3 reference images")
        images = [_image(f.image, f"files[{i}].image", f.media_type) for i, f in enumerate(self.files)]
        return images, {"model": self.model}


class TryOnRequest(GenerationRequest):
    kind: ClassVar[GenerationType] = GenerationType.TRY_ON

    model_image: Optional[str] = None
    garment_image: Optional[str] = None
    model: Optional[str] = None

    def to_inputs(self):
        images = [
            _image(self.model_image, "modelImage"),
            _image(self.garment_image, "garmentImage"),
        ]
        return images, {"model": self.model}


class SwapRequest(GenerationRequest):
    kind: ClassVar[GenerationType] = GenerationType.SWAP

    source_image: Optional[str] = None
    scene_image: Optional[str] = None
    model: Optional[str] = None

    def to_inputs(self):
        images = [
            _image(self.source_image, "sourceImage"),
            _image(self.scene_image, "sceneImage"),
        ]
        return images, {"model": self.model}


class ResponseModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DerivationResponse(ResponseModel):
    images: List[str]
    description: str
    failed_variants: int = 0
    generation_id: Optional[str] = None


class ImageResponse(ResponseModel):
    image: str
    generation_id: Optional[str] = None


UUID_PATTERN = r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"


class HistoryCreateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: Optional[str] = Field(None, pattern=UUID_PATTERN)
    type: GenerationType
    input_files: List[str] = Field(default_factory=list)
    output_files: List[str] = Field(default_factory=list)
    parameters: Dict[str, Any] = Field(default_factory=dict)
    status: GenerationStatus = GenerationStatus.COMPLETED
    error_message: Optional[str] = None

    def check_files(self, owner: str) -> None:
        """Every file must be a data URL or a key already under ``owner``'s prefix."""
        own_prefix = f"{KEY_PREFIX}{owner}/"
        for field, values in (("input_files", self.input_files), ("output_files", self.output_files)):
            for index, value in enumerate(values):
                if is_data_url(value) or (value.startswith(own_prefix) and ".." not in value.split("/")):
                    continue
                raise ValidationError(f"{field}[{index}] must be a data URL or one of your storage keys")


class HistoryRecordOut(BaseModel):
    id: str
    type: GenerationType
    status: GenerationStatus
    input_files: List[str]
    output_files: List[str]
    parameters: Dict[str, Any]
    error_message: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, record: GenerationRecord) -> "HistoryRecordOut":
        return cls(**record.model_dump(exclude={"user_id"}))


class ModelConfigUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    models: Dict[str, str]


class JobSubmitResponse(ResponseModel):
    job_id: str
    status: str
    message: str
