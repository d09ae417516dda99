"""Registry of models the gateway accepts requests for.

The registry maps model ids to :class:`~imagegate.core.capabilities.ImageModel`
instances.  It is populated once at startup and read on every request, so it
is guarded by a reader/writer lock: any number of readers proceed in
parallel, and a writer waits for them to drain.  Registered models are
immutable, so a reader can never observe a half-built descriptor.

Unlike a process-wide global, a registry is an ordinary instance owned by
the application and handed to the services that need it.

Usage
-----
    >>> from imagegate.core.registry import create_default_registry
    >>> registry = create_default_registry()
    >>> registry.get("flux").capabilities.max_width
    768
    >>> [m.id for m in registry.list()]
    ['flux', 'midjourney']
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager

from imagegate.core.capabilities import ImageModel, builtin_models
from imagegate.core.errors import DuplicateModelError, InvalidRequestError, UnknownModelError

logger = logging.getLogger(__name__)


class ReadWriteLock:
    """Shared-read / exclusive-write lock.

    Readers only block while a writer holds the lock; a writer blocks until
    all active readers release.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writing = False

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writing:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            while self._writing or self._readers:
                self._cond.wait()
            self._writing = True
        try:
            yield
        finally:
            with self._cond:
                self._writing = False
                self._cond.notify_all()


class ModelRegistry:
    """Thread-safe registry of :class:`ImageModel` instances.

    Notes
    -----
    - Registration is write-once per id: a second registration with the
      same id raises :class:`DuplicateModelError` and keeps the first
    - Lookups of unknown ids raise :class:`UnknownModelError`
    """

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._models: dict[str, ImageModel] = {}
        self._lock = ReadWriteLock()

    def register(self, model: ImageModel) -> None:
        """Register a model.

        Args:
            model: Model instance to register

        Raises
        ------
        InvalidRequestError
            If ``model`` is None
        DuplicateModelError
            If a model with the same id is already registered
        """
        if model is None:
            raise InvalidRequestError("Model cannot be nil")

        with self._lock.write():
            if model.id in self._models:
                raise DuplicateModelError(model.id)
            self._models[model.id] = model

        logger.info(f"Registered model: {model.id}")

    def get(self, model_id: str) -> ImageModel:
        """Look up a model by id.

        Raises
        ------
        UnknownModelError
            If no model with that id is registered
        """
        with self._lock.read():
            model = self._models.get(model_id)
        if model is None:
            raise UnknownModelError(model_id)
        return model

    def list(self) -> list[ImageModel]:
        """Return every registered model, sorted by id."""
        with self._lock.read():
            models = list(self._models.values())
        return sorted(models, key=lambda m: m.id)

    def validate(self, model_id: str) -> None:
        """Raise :class:`UnknownModelError` unless ``model_id`` is registered."""
        if model_id not in self:
            raise UnknownModelError(model_id)

    def __contains__(self, model_id: object) -> bool:
        with self._lock.read():
            return model_id in self._models

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._models)


def create_default_registry() -> ModelRegistry:
    """Create a registry holding the built-in models."""
    registry = ModelRegistry()
    for model in builtin_models():
        registry.register(model)
    return registry
