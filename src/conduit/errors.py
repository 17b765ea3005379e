"""Exception hierarchy shared by the process layer, adapters and HTTP surface.

Every error carries a ``details`` mapping with diagnostic breadcrumbs and
knows the HTTP status and OpenAI-style error ``type`` it maps to.  Adapters
raise these at their public boundary; the HTTP layer only translates them.
"""

from __future__ import annotations

from typing import Any, ClassVar


class ConduitError(Exception):
    """Base class for every error raised by conduit."""

    status_code: ClassVar[int] = 500
    error_type: ClassVar[str] = "internal_error"
    retryable: ClassVar[bool] = False

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details: dict[str, Any] = details

    def to_dict(self) -> dict[str, Any]:
        """OpenAI-style error body."""
        body: dict[str, Any] = {"message": self.message, "type": self.error_type}
        if self.details:
            body["details"] = self.details
        return {"error": body}


class InvalidInputError(ConduitError):
    """The request shape is unusable (messages, roles, content)."""

    status_code = 400
    error_type = "invalid_request_error"


class AuthError(ConduitError):
    """Missing or wrong shared secret."""

    status_code = 401
    error_type = "authentication_error"


class SessionNotFoundError(ConduitError):
    status_code = 404
    error_type = "not_found_error"


class ResourceExhaustedError(ConduitError):
    """The process pool is at capacity.  Callers may retry."""

    status_code = 503
    error_type = "resource_exhausted"
    retryable = True


class SpawnFailedError(ConduitError):
    """The CLI binary could not be executed."""

    status_code = 502
    error_type = "spawn_failed"


class PromptTimeoutError(ConduitError):
    """The interactive CLI never showed its input prompt."""

    status_code = 504
    error_type = "timeout_error"


class ParseFailedError(ConduitError):
    """CLI output could not be turned into a reply."""

    status_code = 502
    error_type = "parse_error"


class AdapterError(ConduitError):
    """Any other unrecovered failure while talking to a CLI child."""

    status_code = 500
    error_type = "claude_cli_error"
