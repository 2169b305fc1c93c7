"""Inspection HTTP API for the kubediag agent.

Exposes:
    create_app -- FastAPI application factory.
"""

from kubediag.api.app import create_app

__all__ = ["create_app"]
