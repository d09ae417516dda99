"""Pydantic request and response models for the ImageGate API.

These models define the JSON schema for every API endpoint.  FastAPI uses
them for request parsing, serialisation, and OpenAPI documentation.

Request fields are deliberately permissive (mostly optional, enumerations
typed as plain strings): range checks, enumerated values and model limits
are enforced by :class:`~imagegate.core.validation.RequestValidator`, which
reports every violation together instead of stopping at the first one.

Models
------
Text2ImgRequest
    Payload for ``POST /api/v6/images/text2img``.
GenerationResponse
    Successful generation result.
ErrorResponse
    Uniform error envelope returned for every failure.
HealthResponse
    Payload for ``GET /health``.
ModelsResponse
    Payload for ``GET /models``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from imagegate.core.capabilities import ImageModel
from imagegate.core.models import GenerationResult


class Text2ImgRequest(BaseModel):
    """Request body for the ``POST /api/v6/images/text2img`` endpoint.

    Feature toggles use the remote API's tri-state strings: ``"yes"``,
    ``"no"`` or empty.  A ``key`` field is accepted for compatibility with
    the remote API's own schema but ignored; the gateway always uses its
    configured credential.

    Attributes:
        model_id: Registered model identifier (``flux`` or ``midjourney``).
        prompt: Text describing the image.
        negative_prompt: Text describing what to avoid.
        width: Image width in pixels (64-1024).
        height: Image height in pixels (64-1024).
        samples: Number of images to generate (1-4).
        num_inference_steps: Diffusion steps (1-20).
        guidance_scale: Classifier-free guidance (1.0-20.0), optional.
        seed: Random seed; ``None`` lets the remote pick one.
        scheduler: Diffusers scheduler class name.
        upscale: ``"no"``, ``"1"``, ``"2"`` or ``"3"``.
    """

    model_config = ConfigDict(extra="ignore", protected_namespaces=())

    model_id: str = Field(default="", description="Model identifier, e.g. 'flux'.")
    prompt: str = Field(default="", description="Text prompt.")
    negative_prompt: str | None = Field(default=None, description="Negative prompt.")
    width: int | None = Field(default=None, description="Image width in pixels.")
    height: int | None = Field(default=None, description="Image height in pixels.")
    samples: int | None = Field(default=None, description="Number of images (1-4).")
    num_inference_steps: int | None = Field(default=None, description="Diffusion steps.")
    guidance_scale: float | None = Field(default=None, description="Guidance scale.")
    seed: int | None = Field(default=None, description="Random seed.")
    scheduler: str | None = Field(default=None, description="Scheduler class name.")

    safety_checker: str | None = Field(default=None, description="'yes', 'no' or empty.")
    enhance_prompt: str | None = Field(default=None, description="'yes', 'no' or empty.")
    panorama: str | None = Field(default=None, description="'yes', 'no' or empty.")
    self_attention: str | None = Field(default=None, description="'yes', 'no' or empty.")
    upscale: str | int | None = Field(default=None, description="'no', '1', '2' or '3'.")
    tomesd: str | None = Field(default=None, description="'yes', 'no' or empty.")
    use_karras_sigmas: str | None = Field(default=None, description="'yes', 'no' or empty.")

    embeddings_model: str | None = None
    lora_model: str | None = None
    lora_strength: str | None = None
    clip_skip: str | None = None
    vae: str | None = None
    webhook: str | None = None
    track_id: str | None = None


class GenerationResponse(BaseModel):
    """Body returned by a completed generation."""

    status: str
    output: list[str] = Field(default_factory=list)
    id: str | None = Field(default=None, description="Remote job id, when there was one.")
    generation_time: float | None = None
    progress: float | None = None
    eta: float | None = None
    meta: dict[str, Any] | None = None

    @classmethod
    def from_result(cls, result: GenerationResult) -> GenerationResponse:
        return cls(**result.to_dict())


class ErrorResponse(BaseModel):
    """Uniform error envelope."""

    status: str = "error"
    message: str
    code: str
    errors: list[str] | None = Field(
        default=None,
        description="Individual validation failures, when there were several.",
    )


class HealthResponse(BaseModel):
    """Liveness probe payload."""

    status: str
    timestamp: datetime
    version: str


class CapabilitiesResponse(BaseModel):
    """Model capabilities, serialised with camelCase keys."""

    model_config = ConfigDict(populate_by_name=True)

    max_width: int = Field(alias="maxWidth")
    max_height: int = Field(alias="maxHeight")
    max_samples: int = Field(alias="maxSamples")
    min_inference_steps: int = Field(alias="minInferenceSteps")
    max_inference_steps: int = Field(alias="maxInferenceSteps")
    supported_schedulers: list[str] = Field(alias="supportedSchedulers")
    min_guidance_scale: float = Field(alias="minGuidanceScale")
    max_guidance_scale: float = Field(alias="maxGuidanceScale")
    supports_upscale: bool = Field(alias="supportsUpscale")
    supports_tomesd: bool = Field(alias="supportsTomeSD")
    supports_karras: bool = Field(alias="supportsKarras")


class ModelInfo(BaseModel):
    """One entry of the ``GET /models`` listing."""

    id: str
    name: str
    capabilities: CapabilitiesResponse

    @classmethod
    def from_model(cls, model: ImageModel) -> ModelInfo:
        return cls.model_validate(model.to_dict())


class ModelsResponse(BaseModel):
    """Payload for ``GET /models``."""

    models: list[ModelInfo]
