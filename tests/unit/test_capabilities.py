"""Tests for model capability descriptors."""

from __future__ import annotations

from dataclasses import FrozenInstanceError

import pytest

from imagegate.core.capabilities import (
    FluxModel,
    ImageModel,
    MidjourneyModel,
    ModelKind,
    builtin_models,
)
from imagegate.core.models import GenerationRequest


def make_request(**overrides) -> GenerationRequest:
    fields = {
        "model_id": "flux",
        "prompt": "a cat",
        "width": 512,
        "height": 512,
        "samples": 1,
        "num_inference_steps": 10,
    }
    fields.update(overrides)
    return GenerationRequest(**fields)


class TestBuiltinModels:
    """The fixed flux / midjourney catalogue."""

    def test_one_model_per_kind(self):
        models = builtin_models()
        assert {m.kind for m in models} == set(ModelKind)

    def test_flux_capabilities(self):
        caps = FluxModel().capabilities

        assert (caps.max_width, caps.max_height) == (768, 768)
        assert caps.supported_schedulers == (
            "UniPCMultistepScheduler",
            "EulerAncestralDiscreteScheduler",
        )
        assert caps.supports_upscale is False

    def test_midjourney_capabilities(self):
        caps = MidjourneyModel().capabilities

        assert (caps.max_width, caps.max_height) == (1024, 1024)
        assert len(caps.supported_schedulers) == 4
        assert caps.supports_upscale is True

    def test_capabilities_are_frozen(self):
        with pytest.raises(FrozenInstanceError):
            FluxModel().capabilities.max_width = 2048

    def test_camel_case_serialisation(self):
        data = FluxModel().to_dict()

        assert data["id"] == "flux"
        assert data["capabilities"]["maxWidth"] == 768
        assert data["capabilities"]["supportsTomeSD"] is True
        assert data["capabilities"]["supportedSchedulers"][0] == "UniPCMultistepScheduler"


class TestCheckRequest:
    """Per-model capability checks."""

    def test_fitting_request(self):
        assert FluxModel().check_request(make_request()) == []

    def test_samples_limit(self):
        reasons = MidjourneyModel().check_request(make_request(samples=5))
        assert reasons == ["samples exceeds model maximum (4)"]

    def test_unset_toggles_are_not_checked(self):
        request = make_request(upscale=None, tomesd=None, use_karras_sigmas=False)
        assert FluxModel().check_request(request) == []

    def test_extra_checks_hook(self):
        class SquareOnly(ImageModel):
            id = "square"
            kind = ModelKind.FLUX
            capabilities = FluxModel.capabilities

            def extra_checks(self, request):
                return [] if request.width == request.height else ["image must be square"]

        assert SquareOnly().check_request(make_request(height=256)) == ["image must be square"]
