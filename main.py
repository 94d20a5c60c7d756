"""ASGI entry point: ``uvicorn main:app``."""

from creatorlogic.main import app  # noqa: F401
