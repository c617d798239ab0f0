"""updatebot exception classes.

Three layers live here:

- ``ApiError`` and its subclasses: a single failed HTTP or GraphQL call,
  parsed by the transport.
- ``RepositoryUnavailable`` and its subclasses: fatal for the current
  repository pass; callers abort processing of that repository.
- ``HostError`` and ``RepositoryChanged``: recoverable signals, so that the
  caller can back off or recompute on the next pass.
"""

from typing import Any


class UpdateBotError(Exception):
    """Base exception for all updatebot errors."""

    def __init__(
        self, code: str, message: str, request_id: str | None = None
    ) -> None:
        self.code = code
        self.message = message
        self.request_id = request_id
        super().__init__(f"[{code}] {message}")


class ConfigurationError(UpdateBotError):
    """Raised when platform configuration is invalid or missing."""

    def __init__(self, message: str) -> None:
        super().__init__("CONFIGURATION_ERROR", message)


# ============================================================================
# Remote API errors
# ============================================================================


class ApiError(UpdateBotError):
    """Raised when GitHub answers with an error status."""

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int,
        body: Any = None,
        request_id: str | None = None,
    ) -> None:
        super().__init__(code, message, request_id)
        self.status_code = status_code
        self.body = body


class AuthenticationError(ApiError):
    """Raised when the token is rejected (401)."""

    pass


class AuthorizationError(ApiError):
    """Raised when access is denied (403)."""

    pass


class NotFoundError(ApiError):
    """Raised when a resource is not found (404)."""

    pass


class ConflictError(ApiError):
    """Raised on conflicts (409)."""

    pass


class RateLimitedError(ApiError):
    """Raised when rate limited (429)."""

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int,
        retry_after: int,
        body: Any = None,
        request_id: str | None = None,
    ) -> None:
        super().__init__(code, message, status_code, body, request_id)
        self.retry_after = retry_after


class ValidationError(ApiError):
    """Raised on any other client error (405, 422, 451, ...)."""

    pass


class ServerError(ApiError):
    """Raised on server errors (5xx) and connection failures."""

    pass


class GraphqlError(ApiError):
    """Raised when a GraphQL response carries errors and no data."""

    def __init__(self, errors: list[dict[str, Any]]) -> None:
        message = "; ".join(str(e.get("message", e)) for e in errors) or "GraphQL error"
        super().__init__("GRAPHQL_ERROR", message, 200, {"errors": errors})
        self.errors = errors


# ============================================================================
# Repository pass errors
# ============================================================================


class RepositoryUnavailable(UpdateBotError):
    """Fatal for the current repository pass."""

    code = "REPOSITORY_UNAVAILABLE"

    def __init__(self, repository: str, message: str | None = None) -> None:
        super().__init__(self.code, message or f"{repository}: {self.code}")
        self.repository = repository


class EmptyRepository(RepositoryUnavailable):
    code = "REPOSITORY_EMPTY"


class RepositoryRenamed(RepositoryUnavailable):
    code = "REPOSITORY_RENAMED"


class RepositoryArchived(RepositoryUnavailable):
    code = "REPOSITORY_ARCHIVED"


class AccessForbidden(RepositoryUnavailable):
    code = "REPOSITORY_ACCESS_FORBIDDEN"


class RepositoryNotFound(RepositoryUnavailable):
    code = "REPOSITORY_NOT_FOUND"


class RepositoryBlocked(RepositoryUnavailable):
    code = "REPOSITORY_BLOCKED"


class RepositoryCannotFork(RepositoryUnavailable):
    code = "REPOSITORY_CANNOT_FORK"


class HostError(UpdateBotError):
    """The remote service itself looks unhealthy; retry the repository later."""

    def __init__(self, cause: Exception, host: str = "github") -> None:
        super().__init__(
            "EXTERNAL_HOST_ERROR",
            f"{host}: {cause}",
            getattr(cause, "request_id", None),
        )
        self.cause = cause
        self.host = host


class RepositoryChanged(UpdateBotError):
    """A branch moved or disappeared underneath the bot."""

    def __init__(self, message: str = "Repository has changed during the run") -> None:
        super().__init__("REPOSITORY_CHANGED", message)
