"""Photo Restorer — FastAPI REST API layer.

This package contains the FastAPI application and the Pydantic
request/response models.  All restoration logic lives in
:mod:`photorestorer.core`; the routes only translate HTTP to session calls.

Modules
-------
main
    FastAPI application with all route handlers and the ``main()`` CLI
    entry point.
models
    Pydantic models for API request and response validation.
"""
