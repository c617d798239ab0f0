"""
updatebot GitHub platform client.

``GitHubPlatform`` is created once per process. It owns the transport, the
bot identity and the fork listing, and hands out one ``RepositoryClient``
per repository pass.
"""

import os
import re
from typing import Any
from urllib.parse import urlparse

from updatebot.clients import (
    CommentsClient,
    ForkListingCache,
    ForksClient,
    IssuesClient,
    MergeClient,
    PullsClient,
    ReposClient,
    StatusesClient,
)
from updatebot.exceptions import ApiError, ConfigurationError
from updatebot.logging import get_logger
from updatebot.markdown import massage_markdown
from updatebot.session import RepositorySession
from updatebot.transport import DEFAULT_ENDPOINT, AsyncGitHubTransport, RetryConfig
from updatebot.types.repos import PlatformResult, RepoResult

logger = get_logger("platform")

_GHE_VERSION_HEADER = "x-github-enterprise-version"
_VERSION_RE = re.compile(r"^\d+\.\d+\.\d+$")


class RepositoryClient:
    """
    Resource clients for one repository pass.

    All clients share one ``RepositorySession``, so a mutation made through
    one of them is visible to the others' cached reads.
    """

    def __init__(
        self,
        transport: AsyncGitHubTransport,
        session: RepositorySession,
        fork_cache: ForkListingCache | None = None,
        fork_settle_seconds: float = 30.0,
    ) -> None:
        self.session = session
        self.result: RepoResult | None = None

        self.repos = ReposClient(transport, session)
        self.issues = IssuesClient(transport, session)
        self.pulls = PullsClient(transport, session, self.issues)
        self.comments = CommentsClient(transport, session, self.pulls)
        self.statuses = StatusesClient(transport, session)
        self.merge = MergeClient(transport, session)
        self.forks = ForksClient(
            transport, session, fork_cache or ForkListingCache(), fork_settle_seconds
        )

    @property
    def repository(self) -> str:
        return self.session.repository

    async def initialize(self) -> RepoResult:
        """
        Discover the repository, set up the fork in fork mode and read
        branch protection.

        Raises:
            RepositoryUnavailable: When the repository cannot be processed
        """
        info = await self.repos.discover()
        if self.session.fork_mode:
            logger.debug("Bot is in fork mode")
            await self.forks.ensure_fork()
        await self.repos.get_repo_force_rebase()
        self.result = RepoResult(default_branch=info.default_branch, is_fork=info.is_fork)
        return self.result


class GitHubPlatform:
    """
    Client for the GitHub platform.

    Example:
        ```python
        import asyncio
        from updatebot import GitHubPlatform

        async def main():
            async with GitHubPlatform.from_env() as platform:
                await platform.init_platform()
                repo = await platform.init_repo("octo/widgets")
                pr = await repo.pulls.get_branch_pr("updatebot/lodash-4.x")
                if pr and pr.can_merge:
                    await repo.merge.merge_pr(pr.number, pr.source_branch)

        asyncio.run(main())
        ```
    """

    DEFAULT_TIMEOUT = 30.0
    DEFAULT_FORK_SETTLE_SECONDS = 30.0

    def __init__(
        self,
        token: str | None = None,
        endpoint: str = DEFAULT_ENDPOINT,
        username: str | None = None,
        git_author: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        retry_config: RetryConfig | None = None,
        fork_settle_seconds: float = DEFAULT_FORK_SETTLE_SECONDS,
        transport: AsyncGitHubTransport | None = None,
    ) -> None:
        """
        Initialize the platform client.

        Args:
            token: Token of the bot account
            endpoint: REST API root; anything but api.github.com is GHE
            username: Bot username (discovered when not given)
            git_author: Commit author "Name <email>" (discovered when not given)
            timeout: Request timeout in seconds
            retry_config: Configuration for retry behavior of reads
            fork_settle_seconds: Wait after creating a new fork
            transport: Transport to use instead of creating one
        """
        self.token = token
        self.username = username
        self.git_author = git_author
        self.fork_settle_seconds = fork_settle_seconds
        self.is_ghe = False
        self.ghe_version: str | None = None
        self._transport = transport or AsyncGitHubTransport(
            endpoint=endpoint,
            token=token,
            timeout=timeout,
            retry_config=retry_config,
        )
        self._fork_cache = ForkListingCache()

    @classmethod
    def from_env(
        cls,
        timeout: float = DEFAULT_TIMEOUT,
        retry_config: RetryConfig | None = None,
    ) -> "GitHubPlatform":
        """
        Create a platform client from environment variables.

        Environment variables:
            UPDATEBOT_TOKEN: Token of the bot account (required)
            UPDATEBOT_ENDPOINT: REST API root (optional, default: https://api.github.com/)
            UPDATEBOT_USERNAME: Bot username (optional)
            UPDATEBOT_GIT_AUTHOR: Commit author "Name <email>" (optional)

        Raises:
            ConfigurationError: If required environment variables are missing
        """
        token = os.environ.get("UPDATEBOT_TOKEN")
        if not token:
            raise ConfigurationError("UPDATEBOT_TOKEN environment variable not set")
        return cls(
            token=token,
            endpoint=os.environ.get("UPDATEBOT_ENDPOINT") or DEFAULT_ENDPOINT,
            username=os.environ.get("UPDATEBOT_USERNAME") or None,
            git_author=os.environ.get("UPDATEBOT_GIT_AUTHOR") or None,
            timeout=timeout,
            retry_config=retry_config,
        )

    @property
    def transport(self) -> AsyncGitHubTransport:
        """Get the underlying transport (for advanced use cases)."""
        return self._transport

    @property
    def endpoint(self) -> str:
        return self._transport.endpoint

    async def close(self) -> None:
        """Close the client and release resources."""
        await self._transport.close()

    async def __aenter__(self) -> "GitHubPlatform":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def init_platform(
        self, username: str | None = None, git_author: str | None = None
    ) -> PlatformResult:
        """
        Validate the token, detect GitHub Enterprise and discover the bot identity.

        Raises:
            ConfigurationError: When no token is configured
        """
        if not self.token:
            raise ConfigurationError("You must configure a GitHub token")
        if username:
            self.username = username
        if git_author:
            self.git_author = git_author

        await self._detect_ghe()

        user: dict[str, Any] | None = None
        if not self.username:
            user = await self._transport.get_json("user", use_cache=True)
            self.username = user["login"]
        if not self.git_author:
            user = user or await self._transport.get_json("user", use_cache=True)
            email = await self._get_user_email()
            if email:
                self.git_author = f"{user.get('name') or user['login']} <{email}>"

        logger.debug(
            "Platform config: endpoint=%s ghe=%s username=%s",
            self.endpoint,
            self.is_ghe,
            self.username,
        )
        return PlatformResult(
            endpoint=self.endpoint, username=self.username, git_author=self.git_author
        )

    async def _detect_ghe(self) -> None:
        self.is_ghe = urlparse(self.endpoint).hostname != "api.github.com"
        if not self.is_ghe:
            return
        headers = await self._transport.head_json("")
        for key, value in headers.items():
            if key.lower() == _GHE_VERSION_HEADER:
                self.ghe_version = value if _VERSION_RE.match(value) else None
                break
        logger.debug("GitHub Enterprise Server %s", self.ghe_version)

    async def _get_user_email(self) -> str | None:
        try:
            emails = await self._transport.get_json("user/emails")
        except ApiError as err:
            logger.debug("Cannot read user/emails to discover the git author: %s", err)
            return None
        if not emails:
            return None
        primary = next((e for e in emails if e.get("primary")), emails[0])
        return primary.get("email")

    async def get_repos(self) -> list[str]:
        """Full names of every repository the token can access."""
        logger.debug("Autodiscovering GitHub repositories")
        try:
            repos = await self._transport.get_json("user/repos?per_page=100", paginate=True)
        except ApiError as err:
            logger.error("GitHub get_repos error: %s", err)
            raise
        return [repo["full_name"] for repo in repos]

    async def init_repo(
        self,
        repository: str,
        fork_mode: bool = False,
        fork_token: str | None = None,
        ignore_pr_author: bool = False,
        endpoint: str | None = None,
    ) -> RepositoryClient:
        """
        Start a repository pass.

        Args:
            repository: "owner/name"
            fork_mode: Push to the bot's fork and open PRs upstream
            fork_token: Token owning the fork
            ignore_pr_author: Treat every PR as the bot's
            endpoint: Override the REST API root for this and later passes

        Returns:
            RepositoryClient with fresh caches

        Raises:
            RepositoryUnavailable: When the repository cannot be processed
        """
        logger.debug("init_repo(%s)", repository)
        if endpoint:
            logger.debug("Overriding default GitHub endpoint: %s", endpoint)
            self._transport.set_endpoint(endpoint)
        self._transport.clear_cache()

        session = RepositorySession(
            repository,
            username=self.username,
            git_author=self.git_author,
            fork_mode=fork_mode,
            fork_token=fork_token,
            ignore_pr_author=ignore_pr_author,
            is_ghe=self.is_ghe,
            secrets=(self.token, fork_token),
        )
        client = RepositoryClient(
            self._transport, session, self._fork_cache, self.fork_settle_seconds
        )
        await client.initialize()
        return client

    def massage_markdown(self, text: str) -> str:
        """Rewrite GitHub links and truncate a body for posting."""
        return massage_markdown(text, is_ghe=self.is_ghe)

    def reset_fork_cache(self) -> None:
        """Forget the listing of the fork token's repositories."""
        self._fork_cache.reset()
