"""Shared pytest fixtures for ImageGate tests."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import httpx
import pytest

from imagegate.core.config import GatewayConfig
from imagegate.core.orchestrator import GenerationOrchestrator
from imagegate.core.registry import ModelRegistry, create_default_registry
from imagegate.core.remote_client import RemoteClient
from imagegate.core.validation import RequestValidator

BASE_URL = "http://remote.test/api/v6"


class RemoteStub:
    """Scripted stand-in for the remote generation API.

    Each entry in ``responses`` is either an :class:`httpx.Response`, an
    exception instance to raise, or a ``(status, json)`` tuple.  The last
    entry repeats once the script runs out.  Every request is recorded.
    """

    def __init__(self, responses: list[Any]) -> None:
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        index = min(len(self.requests) - 1, len(self.responses) - 1)
        item = self.responses[index]
        if isinstance(item, Exception):
            raise item
        if isinstance(item, httpx.Response):
            return item
        status, body = item
        return httpx.Response(status, json=body)

    @property
    def calls(self) -> int:
        return len(self.requests)

    def methods(self) -> list[str]:
        return [r.method for r in self.requests]


class SleepRecorder:
    """Async sleep replacement that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)

    @property
    def total(self) -> float:
        return sum(self.delays)


@pytest.fixture
def valid_payload() -> dict[str, Any]:
    """A request every built-in model accepts.

    Returns:
        Wire-format request body
    """
    return {
        "model_id": "flux",
        "prompt": "a cat",
        "width": 512,
        "height": 512,
        "samples": 1,
        "num_inference_steps": 10,
        "guidance_scale": 7.5,
    }


@pytest.fixture
def registry() -> ModelRegistry:
    """Registry holding the built-in models."""
    return create_default_registry()


@pytest.fixture
def validator(registry: ModelRegistry) -> RequestValidator:
    return RequestValidator(registry)


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def make_client(sleep_recorder: SleepRecorder) -> Callable[..., tuple[RemoteClient, RemoteStub]]:
    """Factory for a RemoteClient wired to a scripted stub.

    Returns:
        Callable taking the stub script (and RemoteClient keyword
        overrides) and returning ``(client, stub)``
    """

    def _make(responses: list[Any], **kwargs: Any) -> tuple[RemoteClient, RemoteStub]:
        stub = RemoteStub(responses)
        kwargs.setdefault("max_retries", 3)
        client = RemoteClient(
            BASE_URL,
            "test-key",
            transport=httpx.MockTransport(stub),
            sleep=sleep_recorder,
            **kwargs,
        )
        return client, stub

    return _make


@pytest.fixture
def make_orchestrator(
    registry: ModelRegistry, make_client
) -> Callable[..., tuple[GenerationOrchestrator, RemoteStub]]:
    """Factory for an orchestrator over a scripted remote with zero poll delay."""

    def _make(
        responses: list[Any], *, max_poll_attempts: int = 30, poll_interval: float = 0.0
    ) -> tuple[GenerationOrchestrator, RemoteStub]:
        client, stub = make_client(responses)
        orchestrator = GenerationOrchestrator(
            registry,
            client,
            poll_interval=poll_interval,
            max_poll_attempts=max_poll_attempts,
        )
        return orchestrator, stub

    return _make


@pytest.fixture
def test_config(monkeypatch) -> GatewayConfig:
    """Configuration with a dummy key and no .env file.

    Returns:
        GatewayConfig for testing
    """
    for name in ("SERVER_PORT", "MODELSLAB_MAX_RETRIES", "POLL_INTERVAL", "POLL_MAX_ATTEMPTS"):
        monkeypatch.delenv(name, raising=False)
    return GatewayConfig(
        _env_file=None,
        modelslab_api_key="test-key",
        modelslab_base_url=BASE_URL,
        poll_interval=0.0,
        poll_max_attempts=5,
    )
