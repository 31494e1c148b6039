"""
API Dependencies
Common dependencies for FastAPI routes (the per-process component container).
"""

from fastapi import Request

from pixelqueue.core.container import Container


def get_container(request: Request) -> Container:
    """Get the container built at application startup."""
    return request.app.state.container
