"""
Async HTTP transport for the GitHub REST and GraphQL APIs.

Handles authentication headers, pagination, an in-memory GET cache,
automatic retry of idempotent reads and parsing of error responses into
typed exceptions, using an httpx async client.
"""

import asyncio
import copy
import random
import time
from collections.abc import Callable, Coroutine
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urljoin, urlparse

import httpx

from updatebot.exceptions import (
    ApiError,
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    GraphqlError,
    NotFoundError,
    RateLimitedError,
    ServerError,
    ValidationError,
)
from updatebot.logging import log_http_request, log_http_response

DEFAULT_ENDPOINT = "https://api.github.com/"


@dataclass
class RetryConfig:
    """Retry policy for idempotent reads."""

    max_retries: int = 3
    backoff_factor: float = 2.0
    retry_on: list[int] = field(default_factory=lambda: [429, 500, 502, 503])
    respect_retry_after: bool = True
    max_backoff: float = 60.0  # seconds
    jitter: float = 0.1  # fraction of the base wait


_ERRORS_BY_STATUS: dict[int, type[ApiError]] = {
    401: AuthenticationError,
    403: AuthorizationError,
    404: NotFoundError,
    409: ConflictError,
}


def ensure_trailing_slash(url: str) -> str:
    return url if url.endswith("/") else url + "/"


def escape_hash(branch_name: str) -> str:
    """Branch names may contain '#', which would start a URL fragment."""
    return branch_name.replace("#", "%23")


class AsyncGitHubTransport:
    """
    Async HTTP transport for GitHub.

    Handles:
    - Token authentication, with a per-request token override
    - Link-header pagination for REST and cursor pagination for GraphQL
    - An in-memory GET cache, reset with ``clear_cache()``
    - Exponential backoff with jitter for reads; mutations are sent once
    - Error response parsing into typed exceptions
    """

    def __init__(
        self,
        endpoint: str = DEFAULT_ENDPOINT,
        token: str | None = None,
        timeout: float = 30.0,
        retry_config: RetryConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Initialize the transport.

        Args:
            endpoint: REST API root (e.g., "https://api.github.com/")
            token: Token used for every request unless overridden
            timeout: Request timeout in seconds
            retry_config: Configuration for retry behavior
            client: Preconfigured httpx client (tests inject a MockTransport here)
        """
        self.endpoint = ensure_trailing_slash(endpoint)
        self.token = token
        self.timeout = timeout
        self.retry_config = retry_config or RetryConfig()
        self._cache: dict[str, Any] = {}

        self._client = client or httpx.AsyncClient(
            timeout=timeout,
            headers={
                "Accept": "application/vnd.github.v3+json",
                "User-Agent": "updatebot",
            },
        )

    async def close(self) -> None:
        """Close the underlying httpx client."""
        await self._client.aclose()

    async def __aenter__(self) -> "AsyncGitHubTransport":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    def set_endpoint(self, endpoint: str) -> None:
        self.endpoint = ensure_trailing_slash(endpoint)

    @property
    def graphql_url(self) -> str:
        """GraphQL endpoint; GHE serves it at /api/graphql next to /api/v3."""
        parsed = urlparse(self.endpoint)
        path = parsed.path.rstrip("/")
        if path.endswith("/api/v3"):
            return parsed._replace(path=path[: -len("/v3")] + "/graphql").geturl()
        return self.endpoint + "graphql"

    def clear_cache(self) -> None:
        """Drop every cached GET payload."""
        self._cache.clear()

    # ------------------------------------------------------------------
    # REST
    # ------------------------------------------------------------------

    async def get_json(
        self,
        path: str,
        *,
        use_cache: bool = False,
        paginate: bool = False,
        pagination_field: str | None = None,
        page_limit: int | None = None,
        headers: dict[str, str] | None = None,
        token: str | None = None,
    ) -> Any:
        """
        GET a JSON document.

        Args:
            path: Path relative to the endpoint, or an absolute URL
            use_cache: Return the stored payload of an earlier GET of this URL
            paginate: Follow ``Link: rel="next"`` and concatenate all pages
            pagination_field: For object bodies, the list field to concatenate
            page_limit: Stop after this many pages
            headers: Extra request headers
            token: Token overriding the transport's default

        Returns:
            Parsed JSON body

        Raises:
            ApiError: On API errors
        """
        url = self._resolve(path)
        if use_cache and url in self._cache:
            log_http_response(200, url, from_cache=True)
            return copy.deepcopy(self._cache[url])

        response = await self._request(
            "GET", url, headers=headers, token=token, retryable=True
        )
        body = self._decode(response)
        if paginate:
            pages = 1
            next_url = self._next_link(response)
            while next_url and (page_limit is None or pages < page_limit):
                response = await self._request(
                    "GET", next_url, headers=headers, token=token, retryable=True
                )
                body = self._concat_pages(body, self._decode(response), pagination_field)
                pages += 1
                next_url = self._next_link(response)

        self._cache[url] = copy.deepcopy(body)
        return body

    async def head_json(
        self, path: str, *, token: str | None = None
    ) -> dict[str, str]:
        """HEAD a resource and return its response headers."""
        response = await self._request(
            "HEAD", self._resolve(path), token=token, retryable=True
        )
        return dict(response.headers)

    async def post_json(
        self, path: str, *, body: Any = None, token: str | None = None
    ) -> Any:
        return await self._mutate("POST", path, body, token)

    async def patch_json(
        self, path: str, *, body: Any = None, token: str | None = None
    ) -> Any:
        return await self._mutate("PATCH", path, body, token)

    async def put_json(
        self, path: str, *, body: Any = None, token: str | None = None
    ) -> Any:
        return await self._mutate("PUT", path, body, token)

    async def delete_json(
        self, path: str, *, body: Any = None, token: str | None = None
    ) -> Any:
        return await self._mutate("DELETE", path, body, token)

    # ------------------------------------------------------------------
    # GraphQL
    # ------------------------------------------------------------------

    async def query(
        self,
        document: str,
        variables: dict[str, Any] | None = None,
        *,
        headers: dict[str, str] | None = None,
        token: str | None = None,
    ) -> dict[str, Any]:
        """
        Run a GraphQL document.

        Queries are retried like any other read; mutations are sent once.

        Returns:
            ``{"data": ..., "errors": ...}``; errors are not raised here
        """
        retryable = not document.lstrip().startswith("mutation")
        response = await self._request(
            "POST",
            self.graphql_url,
            json_body={"query": document, "variables": variables or {}},
            headers=headers,
            token=token,
            retryable=retryable,
        )
        payload = self._decode(response) or {}
        return {"data": payload.get("data"), "errors": payload.get("errors")}

    async def query_repo_field(
        self,
        document: str,
        field_name: str,
        *,
        variables: dict[str, Any] | None = None,
        paginate: bool = True,
        count: int = 100,
        headers: dict[str, str] | None = None,
    ) -> list[Any]:
        """
        Collect ``repository.<field_name>`` nodes (or edges) across pages.

        Paginated documents must declare ``$count`` and ``$cursor`` and
        select ``pageInfo { endCursor hasNextPage }`` on the field.

        Raises:
            GraphqlError: When a page has errors and no data
        """
        results: list[Any] = []
        cursor: str | None = None
        while True:
            page_variables = dict(variables or {})
            if paginate:
                page_variables.update({"count": count, "cursor": cursor})
            result = await self.query(document, page_variables, headers=headers)
            if result["errors"] and not result["data"]:
                raise GraphqlError(result["errors"])
            repository = (result["data"] or {}).get("repository")
            if not repository:
                break
            field_data = repository.get(field_name) or {}
            results.extend(field_data.get("nodes") or field_data.get("edges") or [])
            page_info = field_data.get("pageInfo") or {}
            if not paginate or not page_info.get("hasNextPage"):
                break
            cursor = page_info.get("endCursor")
        return results

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _resolve(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return urljoin(self.endpoint, path.lstrip("/"))

    def _headers(
        self, headers: dict[str, str] | None, token: str | None
    ) -> dict[str, str]:
        result = dict(headers or {})
        auth_token = token or self.token
        if auth_token:
            result["Authorization"] = f"token {auth_token}"
        return result

    async def _mutate(
        self, method: str, path: str, body: Any, token: str | None
    ) -> Any:
        response = await self._request(
            method, self._resolve(path), json_body=body, token=token, retryable=False
        )
        return self._decode(response)

    async def _request(
        self,
        method: str,
        url: str,
        *,
        json_body: Any = None,
        headers: dict[str, str] | None = None,
        token: str | None = None,
        retryable: bool = False,
    ) -> httpx.Response:
        request_headers = self._headers(headers, token)
        log_http_request(method, url, request_headers, json_body)

        async def make_request() -> httpx.Response:
            return await self._client.request(
                method, url, json=json_body, headers=request_headers
            )

        started = time.monotonic()
        response = await self._execute_with_retry(make_request, retryable)
        log_http_response(
            response.status_code, url, (time.monotonic() - started) * 1000
        )
        return response

    async def _execute_with_retry(
        self,
        request_fn: Callable[[], Coroutine[Any, Any, httpx.Response]],
        retryable: bool,
    ) -> httpx.Response:
        """
        Send a request, resending reads that fail with a retryable status.

        Mutations pass ``retryable=False`` and get exactly one attempt.
        Connection failures surface as ``ServerError("CONNECTION_ERROR")``.
        """
        attempts = self.retry_config.max_retries + 1 if retryable else 1

        for attempt in range(attempts):
            last_attempt = attempt == attempts - 1
            try:
                response = await request_fn()
            except httpx.RequestError as e:
                if last_attempt:
                    raise ServerError("CONNECTION_ERROR", str(e), 0) from e
                await asyncio.sleep(self._get_backoff_time(attempt, None))
                continue

            if response.status_code < 400:
                return response

            error = self._parse_error_response(response)
            if not retryable or not self._should_retry(response.status_code, attempt):
                raise error
            await asyncio.sleep(
                self._get_backoff_time(attempt, response.headers.get("Retry-After"))
            )

        raise error

    def _should_retry(self, status_code: int, attempt: int) -> bool:
        return (
            attempt < self.retry_config.max_retries
            and status_code in self.retry_config.retry_on
        )

    def _get_backoff_time(self, attempt: int, retry_after: str | None) -> float:
        """Seconds to wait before the next attempt; Retry-After wins when numeric."""
        config = self.retry_config
        if retry_after and config.respect_retry_after:
            try:
                return float(retry_after)
            except ValueError:
                pass

        wait = config.backoff_factor ** attempt
        wait += random.uniform(-1.0, 1.0) * wait * config.jitter
        return min(wait, config.max_backoff)

    def _parse_error_response(self, response: httpx.Response) -> ApiError:
        try:
            data = response.json()
        except ValueError:
            data = None
        if not isinstance(data, dict):
            data = {}

        status = response.status_code
        args = (
            f"HTTP_{status}",
            data.get("message") or f"HTTP {status}",
            status,
        )
        request_id = response.headers.get("X-GitHub-Request-Id")

        if status == 429:
            try:
                retry_after = int(response.headers.get("Retry-After", "60"))
            except ValueError:
                retry_after = 60
            return RateLimitedError(*args, retry_after, data, request_id)

        error_class = _ERRORS_BY_STATUS.get(status)
        if error_class is None:
            error_class = ServerError if status >= 500 else ValidationError
        return error_class(*args, data, request_id)

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    @staticmethod
    def _next_link(response: httpx.Response) -> str | None:
        return response.links.get("next", {}).get("url")

    @staticmethod
    def _concat_pages(body: Any, page: Any, pagination_field: str | None) -> Any:
        if pagination_field and isinstance(body, dict) and isinstance(page, dict):
            body[pagination_field] = list(body.get(pagination_field) or []) + list(
                page.get(pagination_field) or []
            )
            return body
        if isinstance(body, list) and isinstance(page, list):
            return body + page
        return body
