"""Core request-validation and job-completion machinery.

Architecture Overview
---------------------
The core module follows a layered architecture, leaf-first:

1. **Errors** (errors.py):
   - Error taxonomy mapped to HTTP status codes

2. **Configuration** (config.py):
   - Environment-based configuration using Pydantic Settings

3. **Model catalogue and registry** (capabilities.py, registry.py):
   - Immutable capability descriptors for the closed set of model kinds
   - Reader/writer-locked registry owned by the application

4. **Validation** (validation.py):
   - Structural rules, then per-model capability rules

5. **Remote client** (remote_client.py):
   - httpx-based client with bounded, linearly backed-off retries

6. **Orchestration** (orchestrator.py):
   - Validate, submit, and poll asynchronous jobs to a terminal state
"""

from imagegate.core.config import GatewayConfig, load_config
from imagegate.core.errors import (
    DuplicateModelError,
    ExternalAPIError,
    GatewayError,
    GatewayTimeoutError,
    InternalServerError,
    InvalidRequestError,
    UnauthorizedError,
    UnknownModelError,
    ValidationError,
)

__all__ = [
    "GatewayConfig",
    "load_config",
    "GatewayError",
    "InvalidRequestError",
    "ValidationError",
    "UnknownModelError",
    "DuplicateModelError",
    "UnauthorizedError",
    "InternalServerError",
    "ExternalAPIError",
    "GatewayTimeoutError",
]
