"""Fork management for fork mode.

In fork mode the bot pushes branches to its own fork and opens pull requests
against the upstream repository. The list of repositories the fork token
owns is fetched once per platform and shared by every repository pass.
"""

import asyncio
from typing import TYPE_CHECKING

from updatebot.exceptions import ApiError, HostError, RepositoryCannotFork
from updatebot.logging import get_logger

if TYPE_CHECKING:
    from updatebot.session import RepositorySession
    from updatebot.transport import AsyncGitHubTransport

logger = get_logger("forks")


class ForkListingCache:
    """Names of the repositories owned by the fork token's user."""

    def __init__(self) -> None:
        self._repos: list[str] | None = None

    async def get(
        self, transport: "AsyncGitHubTransport", token: str | None = None
    ) -> list[str]:
        """Fetch the listing on first use and return it."""
        if self._repos is None:
            repos = await transport.get_json(
                "user/repos?per_page=100", paginate=True, page_limit=100, token=token
            )
            self._repos = [repo["full_name"] for repo in repos]
            logger.debug("Found %d existing repos for fork token", len(self._repos))
        return self._repos

    def add(self, repository: str) -> None:
        if self._repos is not None and repository not in self._repos:
            self._repos.append(repository)

    def reset(self) -> None:
        self._repos = None


class ForksClient:
    """Client that creates and synchronizes the bot's fork."""

    def __init__(
        self,
        transport: "AsyncGitHubTransport",
        session: "RepositorySession",
        fork_cache: ForkListingCache,
        settle_seconds: float = 30.0,
    ) -> None:
        """
        Initialize the forks client.

        Args:
            transport: GitHub transport for making requests
            session: Session state of the repository being processed
            fork_cache: Listing of repositories owned by the fork token
            settle_seconds: Wait after creating a new fork, since GitHub
                populates it asynchronously
        """
        self.transport = transport
        self.session = session
        self.fork_cache = fork_cache
        self.settle_seconds = settle_seconds

    async def ensure_fork(self) -> str:
        """
        Create or reuse the fork of the session's repository.

        The fork's default branch is brought in line with the parent's, and
        a pre-existing fork has its default branch force-reset to the
        parent's head commit.

        Returns:
            Full name of the fork

        Raises:
            RepositoryCannotFork: When GitHub refuses to fork
            HostError: When an existing fork cannot be synchronized
        """
        session = self.session
        repository = session.repository
        token = session.fork_token
        existing_repos = await self.fork_cache.get(self.transport, token=token)

        try:
            forked = await self.transport.post_json(
                f"repos/{repository}/forks", token=token
            )
        except ApiError as err:
            logger.debug("Error forking repository %s: %s", repository, err)
            raise RepositoryCannotFork(repository) from err

        fork_name = forked["full_name"]
        session.set_fork(fork_name)
        logger.debug("Using fork %s of %s", fork_name, repository)

        if forked.get("default_branch") != session.default_branch:
            await self._align_default_branch(fork_name)

        if fork_name in existing_repos:
            await self._sync_default_branch(fork_name)
        else:
            self.fork_cache.add(fork_name)
            logger.info("Created new fork %s, waiting for it to settle", fork_name)
            await asyncio.sleep(self.settle_seconds)
        return fork_name

    async def _align_default_branch(self, fork_name: str) -> None:
        """Create the parent's default branch in the fork and make it the default."""
        session = self.session
        token = session.fork_token
        default_branch = session.default_branch
        try:
            await self.transport.post_json(
                f"repos/{fork_name}/git/refs",
                body={
                    "ref": f"refs/heads/{default_branch}",
                    "sha": session.default_branch_sha,
                },
                token=token,
            )
        except ApiError as err:
            if err.message == "Reference already exists":
                logger.debug("Branch %s already exists in the fork", default_branch)
            else:
                logger.warning("Could not create parent default branch in fork: %s", err)
        try:
            await self.transport.patch_json(
                f"repos/{fork_name}",
                body={"name": fork_name.split("/")[1], "default_branch": default_branch},
                token=token,
            )
            logger.debug("Successfully changed default branch for fork")
        except ApiError as err:
            logger.warning("Could not set default branch of fork %s: %s", fork_name, err)

    async def _sync_default_branch(self, fork_name: str) -> None:
        """Force the fork's default branch to the parent's head commit."""
        session = self.session
        logger.debug("Updating forked repository default sha to match parent")
        try:
            await self.transport.patch_json(
                f"repos/{fork_name}/git/refs/heads/{session.default_branch}",
                body={"sha": session.default_branch_sha, "force": True},
                token=session.fork_token,
            )
        except ApiError as err:
            logger.warning("Could not update forked repository: %s", err)
            raise HostError(err) from err
