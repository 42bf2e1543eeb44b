"""Dispatch a generation by type and persist its outcome.

Shared by the synchronous generation endpoints and the job worker so both
paths run and record generations identically.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from viba.errors import ValidationError
from viba.generation.client import ImageInput
from viba.generation.orchestrator import GenerationOrchestrator, StatusCallback
from viba.generation.prompts import SkinTone
from viba.history.models import GenerationRecord, GenerationType
from viba.history.recorder import HistoryRecorder


@dataclass
class GenerationOutcome:
    images: List[str]
    description: Optional[str] = None
    failed_variants: int = 0
    parameters: Dict[str, Any] = field(default_factory=dict)


def _expect(inputs: List[ImageInput], count: int, kind: GenerationType) -> None:
    if len(inputs) != count:
        raise ValidationError(f"{kind.value} needs exactly {count} image(s), got {len(inputs)}")


async def run_generation(
    orchestrator: GenerationOrchestrator,
    kind: GenerationType,
    inputs: List[ImageInput],
    params: Dict[str, Any],
    on_status: Optional[StatusCallback] = None,
) -> GenerationOutcome:
    if kind is GenerationType.DERIVATION:
        _expect(inputs, 1, kind)
        skin_tone = params.get("skin_tone")
        result = await orchestrator.derive_variants(
            inputs[0],
            int(params.get("intensity", 5)),
            skin_tone=SkinTone(skin_tone) if skin_tone else None,
            text_model=params.get("text_model"),
            image_model=params.get("image_model"),
            on_status=on_status,
        )
        return GenerationOutcome(
            images=result.images,
            description=result.description,
            failed_variants=result.failed_variants,
            parameters={
                "description": result.description,
                "creativity": int(params.get("intensity", 5)),
                "skinTone": skin_tone,
                "failedVariants": result.failed_variants,
            },
        )

    model = params.get("model")
    if kind is GenerationType.AVATAR:
        image = await orchestrator.synthesize_avatar(inputs, model, on_status)
    elif kind is GenerationType.TRY_ON:
        _expect(inputs, 2, kind)
        image = await orchestrator.try_on(inputs[0], inputs[1], model, on_status)
    elif kind is GenerationType.SWAP:
        _expect(inputs, 2, kind)
        image = await orchestrator.swap(inputs[0], inputs[1], model, on_status)
    else:
        raise ValidationError(f"Unknown generation type '{kind}'")

    return GenerationOutcome(
        images=[image],
        parameters={"model": orchestrator.models.model_for(kind.value, model)},
    )


async def record_outcome(
    recorder: HistoryRecorder,
    owner: str,
    kind: GenerationType,
    inputs: List[ImageInput],
    outcome: GenerationOutcome,
) -> GenerationRecord:
    """Upload inputs and outputs and create the history record."""
    return await recorder.create(
        owner,
        kind,
        input_files=[img.as_data_url() for img in inputs],
        output_files=list(outcome.images),
        parameters=outcome.parameters,
    )
