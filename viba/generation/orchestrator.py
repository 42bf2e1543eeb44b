"""Generation recipes: derive variants, avatar, try-on and scene swap.

Every upstream call goes through :class:`RetryingInvoker`. Deriving
variants is a two-stage pipeline: one "describe" call, then
``variant_count`` independent "render" calls issued concurrently. The
fan-out succeeds when at least one variant comes back; the others are
logged and dropped. Successful variants are returned in index order.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Protocol

from viba.config import Settings
from viba.errors import ContentPolicyError, ValidationError
from viba.generation.client import ImageInput
from viba.generation.invoker import RetryingInvoker, RetryPolicy
from viba.generation.model_config import ModelConfig, ModelConfigStore
from viba.generation.prompts import (
    AVATAR_PROMPT,
    DESCRIBE_PROMPT,
    SWAP_PROMPT,
    TRY_ON_PROMPT,
    SkinTone,
    derivation_prompt,
)

logger = logging.getLogger(__name__)

# Progress narration: "analyzing", "generating", "retrying"
StatusCallback = Callable[[str], None]

MAX_AVATAR_REFERENCES = 3


class ImageGenerator(Protocol):
    def ensure_ready(self) -> None: ...

    async def describe(self, model: str, images: List[ImageInput], instruction: str) -> str: ...

    async def render(
        self, model: str, images: List[ImageInput], instruction: str, image_size: str = "1K"
    ) -> str: ...


@dataclass(frozen=True)
class InvocationPolicies:
    describe: RetryPolicy
    variant: RetryPolicy
    composite: RetryPolicy

    @classmethod
    def from_settings(cls, s: Settings) -> "InvocationPolicies":
        def policy(timeout: float, retries: int) -> RetryPolicy:
            return RetryPolicy(
                timeout=timeout,
                max_retries=retries,
                backoff_cap=s.retry_backoff_cap_seconds,
                jitter=s.retry_jitter,
            )

        return cls(
            describe=policy(s.describe_timeout_seconds, s.describe_max_retries),
            variant=policy(s.variant_timeout_seconds, s.variant_max_retries),
            composite=policy(s.composite_timeout_seconds, s.composite_max_retries),
        )


@dataclass
class DerivationResult:
    images: List[str]
    description: str
    failed_variants: int = 0


class GenerationOrchestrator:
    def __init__(
        self,
        generator: ImageGenerator,
        model_configs: ModelConfigStore,
        policies: InvocationPolicies,
        invoker: Optional[RetryingInvoker] = None,
        variant_count: int = 4,
        min_description_length: int = 20,
    ):
        if variant_count < 1:
            raise ValueError("variant_count must be at least 1")
        self._generator = generator
        self._model_configs = model_configs
        self._policies = policies
        self._invoker = invoker or RetryingInvoker()
        self._variant_count = variant_count
        self._min_description_length = min_description_length

    @property
    def variant_count(self) -> int:
        return self._variant_count

    @property
    def models(self) -> ModelConfig:
        return self._model_configs.current

    def _retry_notifier(self, on_status: Optional[StatusCallback]):
        if on_status is None:
            return None

        def notify(attempt, delay, error):
            on_status("retrying")

        return notify

    async def _invoke(
        self,
        operation: Callable[[], Awaitable],
        policy: RetryPolicy,
        on_status: Optional[StatusCallback],
        label: str,
    ):
        return await self._invoker.invoke(
            operation,
            policy,
            on_retry=self._retry_notifier(on_status),
            label=label,
        )

    # ------------------------------------------------------------------
    # Derive variants
    # ------------------------------------------------------------------

    async def describe(
        self,
        image: ImageInput,
        model: Optional[str] = None,
        on_status: Optional[StatusCallback] = None,
    ) -> str:
        text_model = self.models.model_for("derivation_text", model)

        async def attempt() -> str:
            text = (await self._generator.describe(text_model, [image], DESCRIBE_PROMPT)).strip()
            if len(text) < self._min_description_length:
                raise ContentPolicyError(
                    f"Description too short ({len(text)} chars, need {self._min_description_length})"
                )
            return text

        return await self._invoke(attempt, self._policies.describe, on_status, "describe")

    async def derive_variants(
        self,
        image: ImageInput,
        intensity: int,
        skin_tone: Optional[SkinTone] = None,
        text_model: Optional[str] = None,
        image_model: Optional[str] = None,
        on_status: Optional[StatusCallback] = None,
    ) -> DerivationResult:
        if not 1 <= intensity <= 10:
            raise ValidationError("intensity must be between 1 and 10")
        self._generator.ensure_ready()

        if on_status:
            on_status("analyzing")
        description = await self.describe(image, text_model, on_status)

        prompt = derivation_prompt(description, intensity, skin_tone)
        render_model = self.models.model_for("derivation_image", image_model)
        if on_status:
            on_status("generating")

        total = self._variant_count

        def variant(index: int):
            return self._invoke(
                lambda: self._generator.render(render_model, [image], prompt, "1K"),
                self._policies.variant,
                on_status,
                f"variant {index + 1}/{total}",
            )

        outcomes = await asyncio.gather(*(variant(i) for i in range(total)), return_exceptions=True)

        images: List[str] = []
        errors: List[BaseException] = []
        for outcome in outcomes:
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, BaseException):
                errors.append(outcome)
            else:
                images.append(outcome)

        if not images:
            logger.error("All %d variants failed", total)
            raise errors[0]
        if errors:
            logger.warning(
                "%d of %d variants failed, returning %d image(s): %s",
                len(errors),
                total,
                len(images),
                "; ".join(str(e) for e in errors),
            )
        return DerivationResult(images=images, description=description, failed_variants=len(errors))

    # ------------------------------------------------------------------
    # Single-image composites
    # ------------------------------------------------------------------

    async def _composite(
        self,
        feature: str,
        images: List[ImageInput],
        prompt: str,
        image_size: str,
        model: Optional[str],
        on_status: Optional[StatusCallback],
    ) -> str:
        self._generator.ensure_ready()
        render_model = self.models.model_for(feature, model)
        if on_status:
            on_status("generating")
        return await self._invoke(
            lambda: self._generator.render(render_model, images, prompt, image_size),
            self._policies.composite,
            on_status,
            feature,
        )

    async def synthesize_avatar(
        self,
        references: List[ImageInput],
        model: Optional[str] = None,
        on_status: Optional[StatusCallback] = None,
    ) -> str:
        if not 1 <= len(references) <= MAX_AVATAR_REFERENCES:
            raise ValidationError(f"Avatar needs 1 to {MAX_AVATAR_REFERENCES} reference images")
        return await self._composite("avatar", list(references), AVATAR_PROMPT, "4K", model, on_status)

    async def try_on(
        self,
        person: ImageInput,
        garment: ImageInput,
        model: Optional[str] = None,
        on_status: Optional[StatusCallback] = None,
    ) -> str:
        return await self._composite("try_on", [person, garment], TRY_ON_PROMPT, "2K", model, on_status)

    async def swap(
        self,
        subject: ImageInput,
        scene: ImageInput,
        model: Optional[str] = None,
        on_status: Optional[StatusCallback] = None,
    ) -> str:
        return await self._composite("swap", [subject, scene], SWAP_PROMPT, "2K", model, on_status)
