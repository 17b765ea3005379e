"""Shared-secret authentication for the HTTP API."""

from __future__ import annotations

import hmac

from fastapi import Request

from conduit.errors import AuthError


def check_api_key(request: Request, expected: str | None) -> None:
    """Accept ``Authorization: Bearer <key>`` or ``x-api-key: <key>``.

    Does nothing when no key is configured.
    """
    if not expected:
        return
    supplied = request.headers.get("x-api-key")
    if supplied is None:
        header = request.headers.get("authorization", "")
        scheme, _, token = header.partition(" ")
        if scheme.lower() == "bearer" and token:
            supplied = token.strip()
    if supplied is None:
        msg = "Missing API key"
        raise AuthError(msg)
    if not hmac.compare_digest(supplied.encode(), expected.encode()):
        msg = "Invalid API key"
        raise AuthError(msg)
