"""Conduit: an OpenAI-compatible gateway that drives the local Claude CLI."""

__version__ = "0.1.0"
