"""
updatebot logging utilities.

Package loggers live under ``updatebot``; HTTP traffic is logged on
``updatebot.http`` at DEBUG. Tokens are masked in every record that passes
a handler installed by ``configure_logging``, and ``sanitize`` strips the
configured tokens from text posted to GitHub.
"""

import logging
import re
from collections.abc import Iterable
from typing import Any

_root_logger = logging.getLogger("updatebot")
_http_logger = logging.getLogger("updatebot.http")

_DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_TOKEN_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    # Authorization header values
    (re.compile(r"(token|bearer|basic)\s+[A-Za-z0-9_\-\.=:]{8,}", re.IGNORECASE), r"\1 [REDACTED]"),
    # Classic, OAuth, app, refresh and fine-grained GitHub tokens
    (re.compile(r"\bgh[pousr]_[A-Za-z0-9]{20,}\b"), "[TOKEN_REDACTED]"),
    (re.compile(r"\bgithub_pat_[A-Za-z0-9_]{20,}\b"), "[TOKEN_REDACTED]"),
    # Installation tokens embedded in clone URLs
    (re.compile(r"x-access-token:[^@\s\"']+"), "x-access-token:[REDACTED]"),
    # key=value or "key": "value" assignments
    (re.compile(r"(secret|token|password|api_key)['\"]?\s*[:=]\s*['\"][^'\"]+['\"]", re.IGNORECASE), r"\1: [REDACTED]"),
]

_SENSITIVE_KEYS = frozenset({"authorization", "token", "secret", "password", "api_key"})

_REDACTED = "[REDACTED]"
_REDACTED_BODY = "**redacted**"


class RedactingFilter(logging.Filter):
    """Mask GitHub tokens in the rendered message of every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        masked = mask_sensitive_data(message)
        if masked != message:
            record.msg = masked
            record.args = None
        return True


def configure_logging(
    level: int = logging.INFO,
    http_level: int | None = None,
    handler: logging.Handler | None = None,
    format_string: str | None = None,
) -> None:
    """
    Configure updatebot logging.

    Args:
        level: Level of the package logger (default: INFO)
        http_level: Level of ``updatebot.http`` (default: same as level)
        handler: Handler to attach (default: StreamHandler to stderr)
        format_string: Record format (default: timestamp, logger, level, message)

    Example:
        ```python
        import logging
        from updatebot.logging import configure_logging

        # Trace every request while keeping the clients at INFO
        configure_logging(level=logging.INFO, http_level=logging.DEBUG)
        ```
    """
    handler = handler or logging.StreamHandler()
    handler.setFormatter(logging.Formatter(format_string or _DEFAULT_FORMAT))
    if not any(isinstance(f, RedactingFilter) for f in handler.filters):
        handler.addFilter(RedactingFilter())

    _root_logger.setLevel(level)
    _root_logger.addHandler(handler)
    _http_logger.setLevel(level if http_level is None else http_level)


def get_logger(name: str | None = None) -> logging.Logger:
    """
    Get an updatebot logger.

    Args:
        name: Suffix under ``updatebot`` (e.g., "http", "pulls"); None for
            the package logger
    """
    return _root_logger if name is None else logging.getLogger(f"updatebot.{name}")


def mask_sensitive_data(text: str) -> str:
    """Replace authorization values and GitHub tokens with placeholders."""
    for pattern, replacement in _TOKEN_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


def sanitize(text: str | None, secrets: Iterable[str]) -> str | None:
    """
    Remove known secret values from text that is about to be posted.

    PR bodies, issue bodies and comments can embed command output; any
    token the platform was configured with is replaced before it leaves
    the process.
    """
    if not text:
        return text
    # Longest first so a token that contains another one is fully replaced
    for secret in sorted({s for s in secrets if s}, key=len, reverse=True):
        text = text.replace(secret, _REDACTED_BODY)
    return text


def _is_sensitive(key: str, sensitive_keys: Iterable[str]) -> bool:
    key = key.lower()
    return any(sk in key for sk in sensitive_keys)


def _redact_value(value: Any, sensitive_keys: Iterable[str]) -> Any:
    if isinstance(value, dict):
        return safe_log_dict(value, sensitive_keys)
    if isinstance(value, list):
        return [_redact_value(item, sensitive_keys) for item in value]
    return value


def safe_log_dict(
    data: dict[str, Any], sensitive_keys: Iterable[str] | None = None
) -> dict[str, Any]:
    """
    Copy a payload for logging with sensitive values replaced.

    A key is sensitive when it contains one of ``sensitive_keys``
    (default: authorization, token, secret, password, api_key), so
    ``fork_token`` is masked as well.
    """
    keys = _SENSITIVE_KEYS if sensitive_keys is None else frozenset(sensitive_keys)
    return {
        key: _REDACTED if _is_sensitive(key, keys) else _redact_value(value, keys)
        for key, value in data.items()
    }


def log_http_request(
    method: str,
    url: str,
    headers: dict[str, str] | None = None,
    body: Any = None,
) -> None:
    """Log an outgoing request on ``updatebot.http`` at DEBUG."""
    if not _http_logger.isEnabledFor(logging.DEBUG):
        return
    parts = [f"{method} {mask_sensitive_data(url)}"]
    if headers:
        parts.append(f"headers={safe_log_dict(headers)}")
    if isinstance(body, dict):
        parts.append(f"body={safe_log_dict(body)}")
    elif body is not None:
        parts.append(f"body={mask_sensitive_data(str(body))}")
    _http_logger.debug(" | ".join(parts))


def log_http_response(
    status_code: int,
    url: str,
    elapsed_ms: float | None = None,
    from_cache: bool = False,
) -> None:
    """Log a response (or cache hit) on ``updatebot.http`` at DEBUG."""
    if not _http_logger.isEnabledFor(logging.DEBUG):
        return
    parts = [f"Response {status_code} from {mask_sensitive_data(url)}"]
    if elapsed_ms is not None:
        parts.append(f"elapsed={elapsed_ms:.2f}ms")
    if from_cache:
        parts.append("cached")
    _http_logger.debug(" | ".join(parts))


__all__ = [
    "RedactingFilter",
    "configure_logging",
    "get_logger",
    "mask_sensitive_data",
    "sanitize",
    "safe_log_dict",
    "log_http_request",
    "log_http_response",
]
