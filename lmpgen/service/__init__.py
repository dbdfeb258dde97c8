"""HTTP service mode for embedding the engine in a long-lived process."""

from .app import create_app, run_service

__all__ = ["create_app", "run_service"]
