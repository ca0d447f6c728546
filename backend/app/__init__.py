"""FastAPI application package for water billing."""

from __future__ import annotations


def get_app():
    """Return the FastAPI application without importing it eagerly.

    Alembic and the CLI scripts import this package without needing the
    routers, so ``main`` is only loaded on demand.
    """

    from .main import app as fastapi_app

    return fastapi_app


__all__ = ["get_app"]
