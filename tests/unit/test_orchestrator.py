"""Tests for imagegate.core.orchestrator — the generation state machine."""

from __future__ import annotations

import asyncio
import json
import time

import pytest

from imagegate.core.errors import (
    ExternalAPIError,
    GatewayTimeoutError,
    UnauthorizedError,
    UnknownModelError,
    ValidationError,
)
from imagegate.core.models import GenerationResult
from imagegate.core.orchestrator import (
    GenerationRun,
    GenerationState,
    classify_poll_result,
    classify_submit_result,
)

S = GenerationState

SUCCESS = (200, {"status": "success", "output": ["http://x/1.png"], "generationTime": 1.2})
PROCESSING = (200, {"status": "processing", "id": 123, "eta": 5})


class TestClassification:
    """Pure transition decisions."""

    @pytest.mark.parametrize(
        "body, expected",
        [
            ({"status": "success", "output": ["u"]}, S.COMPLETED),
            ({"status": "success", "output": []}, S.FAILED),
            ({"status": "processing", "id": 9}, S.POLLING),
            ({"status": "processing"}, S.FAILED),
            ({"status": "error", "message": "nope"}, S.FAILED),
            ({"status": "queued"}, S.FAILED),
        ],
    )
    def test_submit(self, body, expected):
        assert classify_submit_result(GenerationResult.from_response(body)) is expected

    @pytest.mark.parametrize(
        "status, expected",
        [("success", S.COMPLETED), ("processing", S.POLLING), ("failed", S.FAILED)],
    )
    def test_poll(self, status, expected):
        assert classify_poll_result(GenerationResult(status=status)) is expected

    def test_terminal_states(self):
        assert {s for s in S if s.is_terminal} == {S.COMPLETED, S.REJECTED, S.FAILED}

    def test_finished_run_rejects_transition(self):
        run = GenerationRun()
        run.transition(S.REJECTED)

        with pytest.raises(RuntimeError):
            run.transition(S.SUBMITTING)


class TestImmediateSuccess:
    """Submission that completes synchronously."""

    @pytest.mark.asyncio
    async def test_flux_request_completes_with_one_call(self, make_orchestrator, valid_payload):
        orchestrator, stub = make_orchestrator([SUCCESS])
        run = GenerationRun()

        result = await orchestrator.generate(valid_payload, run=run)

        assert result.is_success
        assert result.output == ["http://x/1.png"]
        assert result.generation_time == 1.2
        assert stub.calls == 1
        assert run.history == [S.VALIDATING, S.SUBMITTING, S.COMPLETED]

    @pytest.mark.asyncio
    async def test_remote_body_carries_booleans_and_key(self, make_orchestrator, valid_payload):
        orchestrator, stub = make_orchestrator([SUCCESS])
        payload = {**valid_payload, "tomesd": "yes", "safety_checker": "no", "panorama": ""}

        await orchestrator.generate(payload)

        sent = json.loads(stub.requests[0].content)
        assert sent["model_id"] == "flux"
        assert sent["key"] == "test-key"
        assert sent["tomesd"] is True
        assert sent["safety_checker"] is False
        assert "panorama" not in sent

    @pytest.mark.asyncio
    async def test_success_without_output_fails(self, make_orchestrator, valid_payload):
        orchestrator, _ = make_orchestrator([(200, {"status": "success", "output": []})])
        run = GenerationRun()

        with pytest.raises(ExternalAPIError, match="No images"):
            await orchestrator.generate(valid_payload, run=run)
        assert run.state is S.FAILED

    @pytest.mark.asyncio
    async def test_remote_error_status(self, make_orchestrator, valid_payload):
        orchestrator, _ = make_orchestrator([(200, {"status": "error", "message": "NSFW"})])

        with pytest.raises(ExternalAPIError, match="API returned error: NSFW"):
            await orchestrator.generate(valid_payload)

    @pytest.mark.asyncio
    async def test_unknown_status(self, make_orchestrator, valid_payload):
        orchestrator, _ = make_orchestrator([(200, {"status": "queued"})])

        with pytest.raises(ExternalAPIError, match="unexpected status: queued"):
            await orchestrator.generate(valid_payload)

    @pytest.mark.asyncio
    async def test_submit_error_propagates(self, make_orchestrator, valid_payload):
        orchestrator, _ = make_orchestrator([(401, {"status": "error"})])
        run = GenerationRun()

        with pytest.raises(UnauthorizedError):
            await orchestrator.generate(valid_payload, run=run)
        assert run.history == [S.VALIDATING, S.SUBMITTING, S.FAILED]
        assert isinstance(run.error, UnauthorizedError)


class TestRejection:
    """Requests that never reach the remote."""

    @pytest.mark.asyncio
    async def test_unknown_model_makes_no_remote_call(self, make_orchestrator, valid_payload):
        orchestrator, stub = make_orchestrator([SUCCESS])
        run = GenerationRun()

        with pytest.raises(UnknownModelError):
            await orchestrator.generate({**valid_payload, "model_id": "nonexistent"}, run=run)

        assert stub.calls == 0
        assert run.history == [S.VALIDATING, S.REJECTED]

    @pytest.mark.asyncio
    async def test_model_limit_makes_no_remote_call(self, make_orchestrator, valid_payload):
        orchestrator, stub = make_orchestrator([SUCCESS])

        with pytest.raises(ValidationError) as exc_info:
            await orchestrator.generate({**valid_payload, "width": 1024, "upscale": "2"})

        assert stub.calls == 0
        assert "width exceeds model maximum (768)" in exc_info.value.reasons
        assert "model flux does not support upscaling" in exc_info.value.reasons


class TestPolling:
    """Asynchronous remote jobs."""

    @pytest.mark.asyncio
    async def test_completes_after_five_processing_responses(
        self, make_orchestrator, valid_payload
    ):
        """Five processing answers then success: one submit plus five polls."""
        done = (200, {"status": "success", "output": ["http://x/a.png", "http://x/b.png"]})
        orchestrator, stub = make_orchestrator([PROCESSING] * 5 + [done])
        run = GenerationRun()

        result = await orchestrator.generate(valid_payload, run=run)

        assert stub.calls == 6
        assert stub.methods() == ["POST"] + ["GET"] * 5
        assert result.output == ["http://x/a.png", "http://x/b.png"]
        assert result.job_id == "123"
        assert run.poll_attempts == 5
        assert run.history == [S.VALIDATING, S.SUBMITTING, S.POLLING, S.COMPLETED]

    @pytest.mark.asyncio
    async def test_polls_job_url(self, make_orchestrator, valid_payload):
        orchestrator, stub = make_orchestrator([PROCESSING, SUCCESS])

        await orchestrator.generate(valid_payload)

        assert stub.requests[1].url.path == "/api/v6/images/text2img/123"

    @pytest.mark.asyncio
    async def test_always_processing_times_out_at_ceiling(
        self, make_orchestrator, valid_payload
    ):
        orchestrator, stub = make_orchestrator([PROCESSING], max_poll_attempts=4)
        run = GenerationRun()

        with pytest.raises(GatewayTimeoutError, match="timed out"):
            await orchestrator.generate(valid_payload, run=run)

        assert run.poll_attempts == 4
        assert stub.calls == 1 + 4
        assert run.state is S.FAILED

    @pytest.mark.asyncio
    async def test_processing_without_id_is_not_polled(self, make_orchestrator, valid_payload):
        orchestrator, stub = make_orchestrator([(200, {"status": "processing"})])

        with pytest.raises(ExternalAPIError, match="missing ID"):
            await orchestrator.generate(valid_payload)
        assert stub.calls == 1

    @pytest.mark.asyncio
    async def test_unexpected_poll_status_fails(self, make_orchestrator, valid_payload):
        orchestrator, stub = make_orchestrator([PROCESSING, (200, {"status": "failed"})])

        with pytest.raises(ExternalAPIError, match="Unexpected status during polling"):
            await orchestrator.generate(valid_payload)
        assert stub.calls == 2

    @pytest.mark.asyncio
    async def test_poll_transport_failure_fails_run(self, make_orchestrator, valid_payload):
        orchestrator, _ = make_orchestrator([PROCESSING, (500, {"status": "error"})])
        run = GenerationRun()

        with pytest.raises(ExternalAPIError):
            await orchestrator.generate(valid_payload, run=run)
        assert run.poll_attempts == 1
        assert run.state is S.FAILED

    @pytest.mark.asyncio
    async def test_runs_are_independent(self, make_orchestrator, valid_payload):
        orchestrator, _ = make_orchestrator([PROCESSING, SUCCESS, SUCCESS])
        first, second = GenerationRun(), GenerationRun()

        await orchestrator.generate(valid_payload, run=first)
        await orchestrator.generate(valid_payload, run=second)

        assert first.poll_attempts == 1
        assert second.poll_attempts == 0


class TestCancellation:
    """Client disconnects abort polling at the next wait."""

    @pytest.mark.asyncio
    async def test_already_cancelled_stops_before_polling(self, make_orchestrator, valid_payload):
        orchestrator, stub = make_orchestrator([PROCESSING])
        cancelled = asyncio.Event()
        cancelled.set()

        with pytest.raises(GatewayTimeoutError, match="Request cancelled"):
            await orchestrator.generate(valid_payload, cancelled=cancelled)
        assert stub.calls == 1

    @pytest.mark.asyncio
    async def test_cancel_interrupts_long_wait(self, make_orchestrator, valid_payload):
        """Setting the event ends a 30-second wait almost immediately."""
        orchestrator, stub = make_orchestrator([PROCESSING], poll_interval=30.0)
        cancelled = asyncio.Event()
        asyncio.get_running_loop().call_later(0.05, cancelled.set)

        start = time.monotonic()
        with pytest.raises(GatewayTimeoutError, match="Request cancelled"):
            await orchestrator.generate(valid_payload, cancelled=cancelled)

        assert time.monotonic() - start < 5.0
        assert stub.calls == 1

    @pytest.mark.asyncio
    async def test_unset_event_does_not_cancel(self, make_orchestrator, valid_payload):
        orchestrator, _ = make_orchestrator([PROCESSING, SUCCESS], poll_interval=0.01)

        result = await orchestrator.generate(valid_payload, cancelled=asyncio.Event())

        assert result.is_success
