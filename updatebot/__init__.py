"""updatebot - GitHub platform adapter for a dependency-update bot."""

from updatebot.exceptions import (
    AccessForbidden,
    ApiError,
    AuthenticationError,
    AuthorizationError,
    ConfigurationError,
    ConflictError,
    EmptyRepository,
    GraphqlError,
    HostError,
    NotFoundError,
    RateLimitedError,
    RepositoryArchived,
    RepositoryBlocked,
    RepositoryCannotFork,
    RepositoryChanged,
    RepositoryNotFound,
    RepositoryRenamed,
    RepositoryUnavailable,
    ServerError,
    UpdateBotError,
    ValidationError,
)
from updatebot.logging import configure_logging, get_logger
from updatebot.platform import GitHubPlatform, RepositoryClient
from updatebot.session import RepositorySession
from updatebot.transport import AsyncGitHubTransport, RetryConfig

__version__ = "0.1.0"

__all__ = [
    "__version__",
    # Main Clients
    "GitHubPlatform",
    "RepositoryClient",
    "RepositorySession",
    # Exceptions
    "UpdateBotError",
    "ConfigurationError",
    "ApiError",
    "AuthenticationError",
    "AuthorizationError",
    "NotFoundError",
    "ConflictError",
    "RateLimitedError",
    "ValidationError",
    "ServerError",
    "GraphqlError",
    "RepositoryUnavailable",
    "EmptyRepository",
    "RepositoryRenamed",
    "RepositoryArchived",
    "AccessForbidden",
    "RepositoryNotFound",
    "RepositoryBlocked",
    "RepositoryCannotFork",
    "HostError",
    "RepositoryChanged",
    # Transport
    "AsyncGitHubTransport",
    "RetryConfig",
    # Logging
    "configure_logging",
    "get_logger",
]
