"""Request validation for text-to-image generation.

Validation runs in two groups:

1. **Structural** rules need nothing but the request itself: required
   fields, global numeric ranges, enumerated string values, the known
   scheduler list and the total canvas area.
2. **Semantic** rules need the target model's capabilities from the
   registry (see :meth:`ImageModel.check_request`).

Within a group every violation is collected and reported together in a
single :class:`~imagegate.core.errors.ValidationError`.  If the structural
group fails, the semantic group is not evaluated, since the request may not
even name a model.

Usage
-----
    >>> validator = RequestValidator(registry)
    >>> request = validator.validate({"model_id": "flux", "prompt": "a cat", ...})
    >>> request.width
    512
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from imagegate.core.errors import ValidationError
from imagegate.core.models import GenerationRequest
from imagegate.core.registry import ModelRegistry

logger = logging.getLogger(__name__)

MIN_DIMENSION = 64
MAX_DIMENSION = 1024
MIN_SAMPLES = 1
MAX_SAMPLES = 4
MIN_INFERENCE_STEPS = 1
MAX_INFERENCE_STEPS = 20
MIN_GUIDANCE_SCALE = 1.0
MAX_GUIDANCE_SCALE = 20.0
MAX_AREA = 1024 * 1024
MAX_PROMPT_LENGTH = 1000

TOGGLE_FIELDS = (
    "safety_checker",
    "enhance_prompt",
    "panorama",
    "self_attention",
    "tomesd",
    "use_karras_sigmas",
)
TOGGLE_VALUES = ("yes", "no", "")
UPSCALE_VALUES = ("no", "1", "2", "3", "")

PASSTHROUGH_FIELDS = (
    "embeddings_model",
    "lora_model",
    "lora_strength",
    "clip_skip",
    "vae",
    "webhook",
    "track_id",
)

KNOWN_SCHEDULERS = frozenset(
    {
        "DDPMScheduler",
        "DDIMScheduler",
        "PNDMScheduler",
        "LMSDiscreteScheduler",
        "EulerDiscreteScheduler",
        "EulerAncestralDiscreteScheduler",
        "DPMSolverMultistepScheduler",
        "HeunDiscreteScheduler",
        "KDPM2DiscreteScheduler",
        "DPMSolverSinglestepScheduler",
        "KDPM2AncestralDiscreteScheduler",
        "UniPCMultistepScheduler",
        "DDIMInverseScheduler",
        "DEISMultistepScheduler",
        "IPNDMScheduler",
        "KarrasVeScheduler",
        "ScoreSdeVeScheduler",
        "LCMScheduler",
    }
)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _text(payload: Mapping[str, Any], name: str) -> str:
    value = payload.get(name)
    if value is None:
        return ""
    if _is_int(value):
        return str(value)
    return value if isinstance(value, str) else str(value)


def _check_int_range(
    payload: Mapping[str, Any], name: str, low: int, high: int, reasons: list[str]
) -> None:
    value = payload.get(name)
    if value is None:
        reasons.append(f"{name} is required")
    elif not _is_int(value):
        reasons.append(f"{name} must be an integer")
    elif value < low:
        reasons.append(f"{name} must be greater than or equal to {low}")
    elif value > high:
        reasons.append(f"{name} must be less than or equal to {high}")


def structural_errors(payload: Mapping[str, Any]) -> list[str]:
    """Return every structural rule the payload violates."""
    reasons: list[str] = []

    if not _text(payload, "model_id").strip():
        reasons.append("model_id is required")

    prompt = _text(payload, "prompt")
    if not prompt.strip():
        reasons.append("prompt is required")
    elif len(prompt) > MAX_PROMPT_LENGTH:
        reasons.append(f"prompt must be at most {MAX_PROMPT_LENGTH} characters")

    if len(_text(payload, "negative_prompt")) > MAX_PROMPT_LENGTH:
        reasons.append(f"negative_prompt must be at most {MAX_PROMPT_LENGTH} characters")

    _check_int_range(payload, "width", MIN_DIMENSION, MAX_DIMENSION, reasons)
    _check_int_range(payload, "height", MIN_DIMENSION, MAX_DIMENSION, reasons)
    _check_int_range(payload, "samples", MIN_SAMPLES, MAX_SAMPLES, reasons)
    _check_int_range(
        payload, "num_inference_steps", MIN_INFERENCE_STEPS, MAX_INFERENCE_STEPS, reasons
    )

    guidance = payload.get("guidance_scale")
    if guidance is not None:
        if not _is_number(guidance):
            reasons.append("guidance_scale must be a number")
        elif guidance < MIN_GUIDANCE_SCALE:
            reasons.append(
                f"guidance_scale must be greater than or equal to {MIN_GUIDANCE_SCALE:g}"
            )
        elif guidance > MAX_GUIDANCE_SCALE:
            reasons.append(f"guidance_scale must be less than or equal to {MAX_GUIDANCE_SCALE:g}")

    seed = payload.get("seed")
    if seed is not None and not _is_int(seed):
        reasons.append("seed must be an integer")

    for name in TOGGLE_FIELDS:
        if _text(payload, name) not in TOGGLE_VALUES:
            reasons.append(f"{name} must be one of [yes no]")

    if _text(payload, "upscale") not in UPSCALE_VALUES:
        reasons.append("upscale must be one of [no 1 2 3]")

    scheduler = _text(payload, "scheduler")
    if scheduler and scheduler not in KNOWN_SCHEDULERS:
        reasons.append(f"Invalid scheduler: {scheduler}")

    width, height = payload.get("width"), payload.get("height")
    if _is_int(width) and _is_int(height) and width * height > MAX_AREA:
        reasons.append("Image dimensions exceed maximum allowed size")

    return reasons


def _toggle(value: str) -> bool | None:
    if value == "yes":
        return True
    if value == "no":
        return False
    return None


def build_request(payload: Mapping[str, Any]) -> GenerationRequest:
    """Convert a structurally valid payload into a :class:`GenerationRequest`.

    Tri-state strings become ``bool | None``; ``upscale`` becomes an integer
    factor or ``None``; empty optional strings become ``None``.
    """
    upscale = _text(payload, "upscale")
    guidance = payload.get("guidance_scale")

    return GenerationRequest(
        model_id=_text(payload, "model_id").strip(),
        prompt=_text(payload, "prompt"),
        negative_prompt=_text(payload, "negative_prompt") or None,
        width=payload["width"],
        height=payload["height"],
        samples=payload["samples"],
        num_inference_steps=payload["num_inference_steps"],
        guidance_scale=float(guidance) if guidance is not None else None,
        seed=payload.get("seed"),
        scheduler=_text(payload, "scheduler") or None,
        upscale=int(upscale) if upscale not in ("", "no") else None,
        **{name: _toggle(_text(payload, name)) for name in TOGGLE_FIELDS},
        **{name: _text(payload, name) or None for name in PASSTHROUGH_FIELDS},
    )


class RequestValidator:
    """Validates inbound requests against global rules and model capabilities.

    Args:
        registry: Registry used to resolve the target model
    """

    def __init__(self, registry: ModelRegistry) -> None:
        self._registry = registry

    def validate(self, payload: Mapping[str, Any]) -> GenerationRequest:
        """Validate a decoded request body.

        Args:
            payload: The request body as a mapping of wire field names

        Returns:
            GenerationRequest
                The validated request in internal form

        Raises
        ------
        ValidationError
            If any structural rule fails, or (once those pass) any rule of
            the target model fails
        UnknownModelError
            If the request names a model that is not registered
        """
        reasons = structural_errors(payload)
        if reasons:
            logger.info(f"Structural validation failed: {reasons}")
            raise ValidationError(reasons)

        request = build_request(payload)
        model = self._registry.get(request.model_id)

        reasons = model.check_request(request)
        if reasons:
            logger.info(f"Request rejected by model {model.id}: {reasons}")
            raise ValidationError(reasons)

        return request
