"""Model capability descriptors and the built-in model catalogue.

Each model the gateway can forward to is an :class:`ImageModel`: an
identifier plus an immutable :class:`ModelCapabilities` record describing
its operational limits.  The set of model kinds is closed
(:class:`ModelKind`), with one subclass per kind.  All kinds share the
baseline capability checks in :meth:`ImageModel.check_request`; a kind that
needs something beyond the baseline overrides :meth:`ImageModel.extra_checks`.

Built-in Models
---------------
- **flux**: up to 768x768, two schedulers, no upscaling
- **midjourney**: up to 1024x1024, four schedulers, upscaling supported

Usage Example
-------------
    >>> from imagegate.core.capabilities import FluxModel
    >>> model = FluxModel()
    >>> model.capabilities.max_width
    768
    >>> model.check_request(request)   # list of violated rules, empty if ok
    []
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from imagegate.core.models import GenerationRequest

logger = logging.getLogger(__name__)


class ModelKind(str, Enum):
    """The closed set of model kinds the gateway knows how to validate."""

    FLUX = "flux"
    MIDJOURNEY = "midjourney"


@dataclass(frozen=True)
class ModelCapabilities:
    """Operational limits of a single model.

    Instances are frozen so a descriptor handed out by the registry can be
    shared across concurrent requests.
    """

    max_width: int
    max_height: int
    max_samples: int
    min_inference_steps: int
    max_inference_steps: int
    supported_schedulers: tuple[str, ...]
    min_guidance_scale: float
    max_guidance_scale: float
    supports_upscale: bool
    supports_tomesd: bool
    supports_karras: bool

    def to_dict(self) -> dict[str, Any]:
        """Serialise with camelCase keys, the shape API consumers expect."""
        return {
            "maxWidth": self.max_width,
            "maxHeight": self.max_height,
            "maxSamples": self.max_samples,
            "minInferenceSteps": self.min_inference_steps,
            "maxInferenceSteps": self.max_inference_steps,
            "supportedSchedulers": list(self.supported_schedulers),
            "minGuidanceScale": self.min_guidance_scale,
            "maxGuidanceScale": self.max_guidance_scale,
            "supportsUpscale": self.supports_upscale,
            "supportsTomeSD": self.supports_tomesd,
            "supportsKarras": self.supports_karras,
        }


class ImageModel:
    """A registered model: identifier, kind and capabilities.

    Subclasses set the class attributes and may override
    :meth:`extra_checks`.  Instances are treated as immutable once created.

    Attributes
    ----------
    id : str
        Identifier clients send as ``model_id``
    name : str
        Display name
    kind : ModelKind
        Which member of the closed model set this is
    capabilities : ModelCapabilities
        Operational limits
    """

    id: str = ""
    name: str = ""
    kind: ModelKind
    capabilities: ModelCapabilities

    def check_request(self, request: GenerationRequest) -> list[str]:
        """Check a structurally valid request against this model.

        Args:
            request: Request that already passed structural validation

        Returns:
            list[str]
                Every violated rule; empty when the request fits the model
        """
        caps = self.capabilities
        reasons: list[str] = []

        if request.width > caps.max_width:
            reasons.append(f"width exceeds model maximum ({caps.max_width})")
        if request.height > caps.max_height:
            reasons.append(f"height exceeds model maximum ({caps.max_height})")
        if request.samples > caps.max_samples:
            reasons.append(f"samples exceeds model maximum ({caps.max_samples})")

        if not caps.min_inference_steps <= request.num_inference_steps <= caps.max_inference_steps:
            reasons.append(
                "num_inference_steps outside model bounds "
                f"[{caps.min_inference_steps}, {caps.max_inference_steps}]"
            )

        if request.guidance_scale is not None and not (
            caps.min_guidance_scale <= request.guidance_scale <= caps.max_guidance_scale
        ):
            reasons.append(
                "guidance_scale outside model bounds "
                f"[{caps.min_guidance_scale}, {caps.max_guidance_scale}]"
            )

        if request.scheduler and request.scheduler not in caps.supported_schedulers:
            reasons.append(f"scheduler {request.scheduler} is not supported by {self.id}")

        if request.upscale is not None and not caps.supports_upscale:
            reasons.append(f"model {self.id} does not support upscaling")
        if request.tomesd and not caps.supports_tomesd:
            reasons.append(f"model {self.id} does not support TomeSD")
        if request.use_karras_sigmas and not caps.supports_karras:
            reasons.append(f"model {self.id} does not support Karras sigmas")

        reasons.extend(self.extra_checks(request))
        return reasons

    def extra_checks(self, request: GenerationRequest) -> list[str]:
        """Model-specific rules beyond the shared baseline."""
        return []

    def to_dict(self) -> dict[str, Any]:
        """Serialise for the ``GET /models`` listing."""
        return {
            "id": self.id,
            "name": self.name,
            "capabilities": self.capabilities.to_dict(),
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r}, capabilities={asdict(self.capabilities)!r})"


class FluxModel(ImageModel):
    """Flux: fast generation, capped at 768x768 and without upscaling."""

    id = "flux"
    name = "Flux"
    kind = ModelKind.FLUX
    capabilities = ModelCapabilities(
        max_width=768,
        max_height=768,
        max_samples=4,
        min_inference_steps=1,
        max_inference_steps=20,
        supported_schedulers=(
            "UniPCMultistepScheduler",
            "EulerAncestralDiscreteScheduler",
        ),
        min_guidance_scale=1.0,
        max_guidance_scale=20.0,
        supports_upscale=False,
        supports_tomesd=True,
        supports_karras=True,
    )


class MidjourneyModel(ImageModel):
    """Midjourney: full 1024x1024 canvas, wider scheduler choice, upscaling."""

    id = "midjourney"
    name = "Midjourney"
    kind = ModelKind.MIDJOURNEY
    capabilities = ModelCapabilities(
        max_width=1024,
        max_height=1024,
        max_samples=4,
        min_inference_steps=1,
        max_inference_steps=20,
        supported_schedulers=(
            "UniPCMultistepScheduler",
            "DDIMScheduler",
            "DPMSolverMultistepScheduler",
            "EulerAncestralDiscreteScheduler",
        ),
        min_guidance_scale=1.0,
        max_guidance_scale=20.0,
        supports_upscale=True,
        supports_tomesd=True,
        supports_karras=True,
    )


MODEL_CLASSES: dict[ModelKind, type[ImageModel]] = {
    ModelKind.FLUX: FluxModel,
    ModelKind.MIDJOURNEY: MidjourneyModel,
}


def builtin_models() -> list[ImageModel]:
    """Instantiate one model per known kind."""
    return [model_class() for model_class in MODEL_CLASSES.values()]
