"""HTTP surface — FastAPI app, SSE framing, and API key auth."""

from conduit.http.app import create_app

__all__ = ["create_app"]
