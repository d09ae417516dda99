"""ImageGate - text-to-image gateway with model validation and job polling."""

__version__ = "1.0.0"

from imagegate.core.capabilities import FluxModel, ImageModel, MidjourneyModel, ModelCapabilities
from imagegate.core.orchestrator import GenerationOrchestrator
from imagegate.core.registry import ModelRegistry, create_default_registry

__all__ = [
    "FluxModel",
    "GenerationOrchestrator",
    "ImageModel",
    "MidjourneyModel",
    "ModelCapabilities",
    "ModelRegistry",
    "create_default_registry",
]
