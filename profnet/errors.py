"""
Error taxonomy for the core.

Every failure is reported as one of these distinct exceptions; callers
inspect ``code`` to decide whether to retry, re-prompt, or abort.
"""


class ProfNetError(Exception):
    """Base class for all core errors."""

    code = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidRequest(ProfNetError):
    """Malformed or self-referential input."""

    code = "invalid_request"


class NotFound(ProfNetError):
    """Referenced entity is absent or in the wrong state."""

    code = "not_found"


class Unauthorized(ProfNetError):
    """Actor lacks rights over the target entity."""

    code = "unauthorized"


class Forbidden(ProfNetError):
    """Policy denial (network distance / new-account gate)."""

    code = "forbidden"


class Conflict(ProfNetError):
    """Concurrent update the store could not resolve; safe to retry."""

    code = "conflict"
