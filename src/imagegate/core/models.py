"""Internal data models for generation requests and results."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class ResultStatus(str, Enum):
    """Status tags the remote API reports for a generation job."""

    SUCCESS = "success"
    PROCESSING = "processing"
    ERROR = "error"


@dataclass(frozen=True)
class GenerationRequest:
    """A structurally valid text-to-image request.

    Feature toggles are tri-state: ``True``/``False`` when the client chose
    explicitly, ``None`` when the field was omitted or empty.  ``upscale`` is
    the upscale factor (1-3) or ``None`` for no upscaling.
    """

    model_id: str
    prompt: str
    width: int
    height: int
    samples: int
    num_inference_steps: int
    negative_prompt: str | None = None
    guidance_scale: float | None = None
    seed: int | None = None
    scheduler: str | None = None

    safety_checker: bool | None = None
    enhance_prompt: bool | None = None
    panorama: bool | None = None
    self_attention: bool | None = None
    tomesd: bool | None = None
    use_karras_sigmas: bool | None = None
    upscale: int | None = None

    embeddings_model: str | None = None
    lora_model: str | None = None
    lora_strength: str | None = None
    clip_skip: str | None = None
    vae: str | None = None
    webhook: str | None = None
    track_id: str | None = None

    def to_remote_payload(self) -> dict[str, Any]:
        """Render the body for ``POST /images/text2img`` on the remote API.

        Toggles are sent as JSON booleans.  Optional fields that were not
        set are omitted so the remote applies its own defaults.  The API key
        is added by the remote client, not here.

        Returns:
            JSON-serialisable request body
        """
        payload: dict[str, Any] = {
            "model_id": self.model_id,
            "prompt": self.prompt,
            "width": self.width,
            "height": self.height,
            "samples": self.samples,
            "num_inference_steps": self.num_inference_steps,
        }

        optional = {
            "negative_prompt": self.negative_prompt,
            "guidance_scale": self.guidance_scale,
            "seed": self.seed,
            "scheduler": self.scheduler,
            "safety_checker": self.safety_checker,
            "enhance_prompt": self.enhance_prompt,
            "panorama": self.panorama,
            "self_attention": self.self_attention,
            "tomesd": self.tomesd,
            "use_karras_sigmas": self.use_karras_sigmas,
            "upscale": str(self.upscale) if self.upscale is not None else None,
            "embeddings_model": self.embeddings_model,
            "lora_model": self.lora_model,
            "lora_strength": self.lora_strength,
            "clip_skip": self.clip_skip,
            "vae": self.vae,
            "webhook": self.webhook,
            "track_id": self.track_id,
        }
        payload.update({key: value for key, value in optional.items() if value is not None})
        return payload


def _job_id_from(data: dict[str, Any]) -> str | None:
    # v6 responses carry a numeric "id"; older ones a "task_id" string.
    for key in ("id", "task_id"):
        value = data.get(key)
        if value is None or value == "" or value == 0:
            continue
        return str(value)
    return None


def _as_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


@dataclass
class GenerationResult:
    """Outcome of a submission or of a single poll.

    ``status`` keeps the raw remote tag so an unexpected value can still be
    reported; compare against :class:`ResultStatus` through the helper
    properties.
    """

    status: str
    output: list[str] = field(default_factory=list)
    job_id: str | None = None
    progress: float | None = None
    generation_time: float | None = None
    eta: float | None = None
    message: str | None = None
    meta: dict[str, Any] | None = None

    @property
    def is_success(self) -> bool:
        return self.status == ResultStatus.SUCCESS.value

    @property
    def is_processing(self) -> bool:
        return self.status == ResultStatus.PROCESSING.value

    @property
    def is_error(self) -> bool:
        return self.status == ResultStatus.ERROR.value

    @classmethod
    def from_response(cls, data: dict[str, Any]) -> GenerationResult:
        """Build a result from a decoded remote response body.

        ``output`` falls back to ``images`` when the remote uses that key.
        A non-string ``message`` (some error bodies nest a dict of field
        errors) is stringified.
        """
        output = data.get("output") or data.get("images") or []
        if not isinstance(output, list):
            output = [output]

        message = data.get("message")
        if message is not None and not isinstance(message, str):
            message = str(message)

        meta = data.get("meta")
        return cls(
            status=str(data.get("status", "")),
            output=[str(url) for url in output],
            job_id=_job_id_from(data),
            progress=_as_float(data.get("progress")),
            generation_time=_as_float(data.get("generation_time", data.get("generationTime"))),
            eta=_as_float(data.get("eta")),
            message=message,
            meta=meta if isinstance(meta, dict) else None,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialise for the API response body."""
        return {
            "status": self.status,
            "output": list(self.output),
            "id": self.job_id,
            "generation_time": self.generation_time,
            "progress": self.progress,
            "eta": self.eta,
            "meta": self.meta,
        }
