"""ImageGate — FastAPI REST API layer.

This package contains the FastAPI application factory and the Pydantic
request/response models.

Modules
-------
main
    Application factory, route handlers, error envelope handlers and the
    ``main()`` CLI entry point.
models
    Pydantic models for API request and response validation.
"""
