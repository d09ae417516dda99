"""Generation orchestration: validate, submit, and poll to completion.

:class:`GenerationOrchestrator` runs one explicit state machine per request::

    VALIDATING --fail--> REJECTED
        |
        v
    SUBMITTING --fail--> FAILED
        |      \\--success--> COMPLETED
        v
     POLLING ---success--> COMPLETED
        |  ^
        |  '--processing (next tick)
        '-----cancelled / ceiling / other status--> FAILED

Polling waits ``poll_interval`` seconds per tick.  The wait is interrupted
as soon as the optional ``cancelled`` event is set, so a client disconnect
aborts the loop at the next wait boundary instead of after the full budget.
The number of polls is capped at ``max_poll_attempts``; the next tick after
the cap raises :class:`GatewayTimeoutError`.

Every run is recorded in a :class:`GenerationRun`, which keeps the state
history and poll count so each termination condition can be asserted on
directly.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from imagegate.core.errors import ExternalAPIError, GatewayError, GatewayTimeoutError
from imagegate.core.models import GenerationResult
from imagegate.core.registry import ModelRegistry
from imagegate.core.remote_client import RemoteClient
from imagegate.core.validation import RequestValidator

logger = logging.getLogger(__name__)

TEXT2IMG_PATH = "/images/text2img"


class GenerationState(str, Enum):
    """States of a single generation run."""

    VALIDATING = "validating"
    SUBMITTING = "submitting"
    POLLING = "polling"
    COMPLETED = "completed"
    REJECTED = "rejected"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (GenerationState.COMPLETED, GenerationState.REJECTED, GenerationState.FAILED)


@dataclass
class GenerationRun:
    """Per-request record of the state machine."""

    state: GenerationState = GenerationState.VALIDATING
    history: list[GenerationState] = field(default_factory=lambda: [GenerationState.VALIDATING])
    poll_attempts: int = 0
    job_id: str | None = None
    error: GatewayError | None = None

    def transition(self, state: GenerationState) -> None:
        if self.state.is_terminal:
            raise RuntimeError(f"Run already finished in state {self.state.value}")
        self.state = state
        self.history.append(state)

    def fail(self, error: GatewayError) -> GatewayError:
        self.error = error
        self.transition(GenerationState.FAILED)
        return error


def classify_submit_result(result: GenerationResult) -> GenerationState:
    """Decide where a submission response leads.

    ``success`` needs at least one output URL and ``processing`` needs a job
    id; anything else fails the run.
    """
    if result.is_success and result.output:
        return GenerationState.COMPLETED
    if result.is_processing and result.job_id:
        return GenerationState.POLLING
    return GenerationState.FAILED


def classify_poll_result(result: GenerationResult) -> GenerationState:
    """Decide where a single poll response leads."""
    if result.is_success:
        return GenerationState.COMPLETED
    if result.is_processing:
        return GenerationState.POLLING
    return GenerationState.FAILED


def _submit_failure(result: GenerationResult) -> ExternalAPIError:
    if result.is_success:
        return ExternalAPIError("No images in successful response")
    if result.is_processing:
        return ExternalAPIError("Processing response missing ID")
    if result.is_error:
        return ExternalAPIError(f"API returned error: {result.message or 'unknown error'}")
    return ExternalAPIError(f"API returned unexpected status: {result.status or 'empty'}")


class GenerationOrchestrator:
    """Bridges a synchronous request to an asynchronous remote job.

    Args:
        registry: Model registry used for validation
        client: Remote API client
        validator: Optional validator; defaults to one over ``registry``
        poll_interval: Seconds between polls
        max_poll_attempts: Poll ceiling before timing out
    """

    def __init__(
        self,
        registry: ModelRegistry,
        client: RemoteClient,
        *,
        validator: RequestValidator | None = None,
        poll_interval: float = 2.0,
        max_poll_attempts: int = 30,
    ) -> None:
        self.registry = registry
        self.client = client
        self.validator = validator or RequestValidator(registry)
        self.poll_interval = poll_interval
        self.max_poll_attempts = max_poll_attempts

    async def generate(
        self,
        payload: Mapping[str, Any],
        *,
        cancelled: asyncio.Event | None = None,
        run: GenerationRun | None = None,
    ) -> GenerationResult:
        """Run a request through validation, submission and polling.

        Args:
            payload: Inbound request body (wire field names)
            cancelled: Optional event; setting it aborts polling at the
                next wait boundary
            run: Optional record to track the state machine in; a fresh
                one is used when omitted

        Returns:
            GenerationResult
                A ``success`` result with at least one output URL

        Raises
        ------
        InvalidRequestError
            Validation failed or the model is unknown (no remote call made)
        UnauthorizedError, ExternalAPIError, InternalServerError
            Submission or polling failed
        GatewayTimeoutError
            Polling ceiling exceeded or the request was cancelled
        """
        if run is None:
            run = GenerationRun()

        # --- Validating ------------------------------------------------------
        try:
            request = self.validator.validate(payload)
        except GatewayError as exc:
            run.error = exc
            run.transition(GenerationState.REJECTED)
            raise

        logger.info(
            f"Processing text-to-image request: model_id={request.model_id}, "
            f"width={request.width}, height={request.height}, samples={request.samples}"
        )

        # --- Submitting ------------------------------------------------------
        run.transition(GenerationState.SUBMITTING)
        try:
            body = await self.client.submit(TEXT2IMG_PATH, request.to_remote_payload())
        except GatewayError as exc:
            logger.error(f"Failed to generate image for model {request.model_id}: {exc}")
            run.fail(exc)
            raise

        result = GenerationResult.from_response(body)
        next_state = classify_submit_result(result)
        if next_state is GenerationState.FAILED:
            error = _submit_failure(result)
            logger.error(f"Invalid response from API: {error}")
            raise run.fail(error)

        if next_state is GenerationState.POLLING:
            run.job_id = result.job_id
            run.transition(GenerationState.POLLING)
            logger.info(f"Request is processing, polling for completion: id={run.job_id}")
            result = await self._poll_until_complete(run, cancelled)

        run.transition(GenerationState.COMPLETED)
        logger.info(
            f"Successfully generated image: generation_time={result.generation_time}, "
            f"image_count={len(result.output)}"
        )
        return result

    async def _wait_tick(self, cancelled: asyncio.Event | None) -> bool:
        """Wait one poll interval; return True if cancellation fired."""
        if cancelled is None:
            await asyncio.sleep(self.poll_interval)
            return False
        if cancelled.is_set():
            return True
        try:
            await asyncio.wait_for(cancelled.wait(), timeout=self.poll_interval)
        except asyncio.TimeoutError:
            return False
        return True

    async def _poll_until_complete(
        self, run: GenerationRun, cancelled: asyncio.Event | None
    ) -> GenerationResult:
        path = f"{TEXT2IMG_PATH}/{run.job_id}"

        while True:
            if await self._wait_tick(cancelled):
                logger.warning(f"Polling cancelled: id={run.job_id}")
                raise run.fail(GatewayTimeoutError("Request cancelled"))

            if run.poll_attempts >= self.max_poll_attempts:
                logger.error(
                    f"Polling exceeded {self.max_poll_attempts} attempts: id={run.job_id}"
                )
                raise run.fail(
                    GatewayTimeoutError(
                        "Image generation timed out",
                        cause=RuntimeError(
                            f"exceeded maximum polling attempts ({self.max_poll_attempts})"
                        ),
                    )
                )
            run.poll_attempts += 1

            try:
                body = await self.client.poll(path)
            except GatewayError as exc:
                logger.error(f"Failed to poll status: id={run.job_id}: {exc}")
                run.fail(exc)
                raise

            result = GenerationResult.from_response(body)
            logger.debug(
                f"Polling status: attempt={run.poll_attempts}, "
                f"status={result.status}, progress={result.progress}"
            )

            state = classify_poll_result(result)
            if state is GenerationState.COMPLETED:
                if not result.job_id:
                    result.job_id = run.job_id
                return result
            if state is GenerationState.FAILED:
                raise run.fail(
                    ExternalAPIError(
                        "Unexpected status during polling",
                        cause=RuntimeError(f"status: {result.status}"),
                    )
                )
