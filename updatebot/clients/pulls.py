"""Pull requests resource client.

Reads go through three session caches: open PRs (GraphQL, rich), closed PRs
(GraphQL, with their comments) and the REST list of every PR. Mutations
invalidate the caches they could make stale.
"""

from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from updatebot.exceptions import ApiError, HostError, NotFoundError, ServerError
from updatebot.graphql import CLOSED_PRS_QUERY, ENABLE_AUTO_MERGE_MUTATION, OPEN_PRS_QUERY
from updatebot.logging import get_logger
from updatebot.types.pulls import (
    PR_STATE_ALL,
    PR_STATE_CLOSED,
    PR_STATE_OPEN,
    PullRequest,
    decode_pull_request,
    matches_state,
)

if TYPE_CHECKING:
    from updatebot.clients.issues import IssuesClient
    from updatebot.session import RepositorySession
    from updatebot.transport import AsyncGitHubTransport

logger = get_logger("pulls")

# An autoclosed PR younger than this is reopened instead of recreated
REOPEN_THRESHOLD = timedelta(days=7)
AUTOCLOSED_SUFFIX = " - autoclosed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PullsClient:
    """Client for pull requests."""

    def __init__(
        self,
        transport: "AsyncGitHubTransport",
        session: "RepositorySession",
        issues: "IssuesClient",
    ) -> None:
        """
        Initialize the pulls client.

        Args:
            transport: GitHub transport for making requests
            session: Session state of the repository being processed
            issues: Issues client, used for pull request labels
        """
        self.transport = transport
        self.session = session
        self.issues = issues

    def _pulls_path(self, number: int | None = None) -> str:
        path = f"repos/{self.session.target_repo}/pulls"
        return path if number is None else f"{path}/{number}"

    async def get_open_prs(self) -> dict[int, PullRequest]:
        """
        Open PRs by number.

        A failed query is logged and leaves the cache empty for this session.
        """
        session = self.session
        if session.open_prs is None:
            session.open_prs = {}
            try:
                nodes = await self.transport.query_repo_field(
                    OPEN_PRS_QUERY,
                    "pullRequests",
                    variables={"owner": session.owner, "name": session.name},
                    headers={"Accept": "application/vnd.github.merge-info-preview+json"},
                )
            except ApiError as err:
                logger.warning("Error fetching open PRs: %s", err)
                return session.open_prs
            for node in nodes:
                pr = decode_pull_request("graphql-open", node, fork_mode=session.fork_mode)
                session.open_prs[pr.number] = pr
            logger.debug("Retrieved open PRs: %s", sorted(session.open_prs))
        return session.open_prs

    async def get_closed_prs(self) -> dict[int, PullRequest]:
        """Closed or merged PRs by number, each with its comments."""
        session = self.session
        if session.closed_prs is None:
            session.closed_prs = {}
            try:
                nodes = await self.transport.query_repo_field(
                    CLOSED_PRS_QUERY,
                    "pullRequests",
                    variables={"owner": session.owner, "name": session.name},
                )
            except ApiError as err:
                logger.warning("Error fetching closed PRs: %s", err)
                return session.closed_prs
            for node in nodes:
                pr = decode_pull_request("graphql-closed", node)
                session.closed_prs[pr.number] = pr
            logger.debug("Retrieved closed PRs: %s", sorted(session.closed_prs))
        return session.closed_prs

    async def get_pr(self, number: int | None) -> PullRequest | None:
        """
        Get one pull request.

        Open and closed PRs come from the session caches; anything else is
        fetched over REST. Returns None when there is no such PR.
        """
        if not number:
            return None
        open_prs = await self.get_open_prs()
        if number in open_prs:
            logger.debug("Returning from graphql open PR list")
            return open_prs[number]
        closed_prs = await self.get_closed_prs()
        if number in closed_prs:
            logger.debug("Returning from graphql closed PR list")
            return closed_prs[number]
        try:
            data = await self.transport.get_json(self._pulls_path(number))
        except NotFoundError:
            logger.debug("PR #%d not found", number)
            return None
        return decode_pull_request("rest", data, fork_mode=self.session.fork_mode)

    async def get_pr_list(self) -> list[PullRequest]:
        """
        Every PR of any state, newest first.

        Filtered to the bot's PRs unless the author is ignored or the session
        is in fork mode.

        Raises:
            HostError: When the list cannot be fetched
        """
        session = self.session
        if session.pr_list is None:
            try:
                data = await self.transport.get_json(
                    f"{self._pulls_path()}?per_page=100&state=all",
                    paginate=True,
                )
            except ApiError as err:
                logger.debug("Error fetching PR list: %s", err)
                raise HostError(err) from err
            session.pr_list = [
                decode_pull_request("rest-list", pr, fork_mode=session.fork_mode)
                for pr in data
                if self._listed_for_bot(pr)
            ]
            logger.debug("Retrieved %d pull requests", len(session.pr_list))
        return session.pr_list

    def _listed_for_bot(self, pr: dict) -> bool:
        session = self.session
        if session.fork_mode or session.ignore_pr_author:
            return True
        login = (pr.get("user") or {}).get("login")
        if login and session.username:
            return login == session.username
        return True

    async def find_pr(
        self,
        branch_name: str,
        pr_title: str | None = None,
        state: str = PR_STATE_ALL,
    ) -> PullRequest | None:
        """
        Find the first listed PR for a branch.

        Args:
            branch_name: Source branch
            pr_title: Exact title to require
            state: "open", "closed", "merged", "all" or "!<state>"
        """
        logger.debug("find_pr(%s, %s, %s)", branch_name, pr_title, state)
        session = self.session
        for pr in await self.get_pr_list():
            if (
                pr.source_branch == branch_name
                and (pr_title is None or pr.title == pr_title)
                and matches_state(pr.state, state)
                and (session.fork_mode or pr.source_repo == session.working_repo)
            ):
                logger.debug("Found PR #%d", pr.number)
                return pr
        logger.debug("PR not found")
        return None

    async def get_branch_pr(self, branch_name: str) -> PullRequest | None:
        """
        The open PR for a branch, reopening a recently autoclosed one.

        An autoclosed PR is reopened when it was closed within
        ``REOPEN_THRESHOLD``: its branch ref is recreated at the PR's last
        head commit and the " - autoclosed" title suffix is dropped.
        """
        session = self.session
        if branch_name in session.branch_prs:
            return session.branch_prs[branch_name]

        open_pr = await self.find_pr(branch_name, state=PR_STATE_OPEN)
        if open_pr is not None:
            pr = await self.get_pr(open_pr.number)
            if pr is not None:
                session.branch_prs[branch_name] = pr
            return pr

        autoclosed = await self.find_pr(branch_name, state=PR_STATE_CLOSED)
        if (
            autoclosed is None
            or not autoclosed.title.endswith(AUTOCLOSED_SUFFIX)
            or autoclosed.closed_at is None
        ):
            return None
        closed_ago = _utcnow() - autoclosed.closed_at
        if closed_ago > REOPEN_THRESHOLD:
            logger.debug("Found autoclosed PR for branch - but too old to reopen")
            return None

        logger.debug("Found autoclosed PR #%d for branch", autoclosed.number)
        token = session.fork_token
        try:
            await self.transport.post_json(
                f"repos/{session.working_repo}/git/refs",
                body={"ref": f"refs/heads/{branch_name}", "sha": autoclosed.sha},
                token=token,
            )
            logger.debug("Recreated autoclosed branch %s", branch_name)
        except ApiError as err:
            logger.debug("Could not recreate autoclosed branch - skipping reopen: %s", err)
            return None

        title = autoclosed.title[: -len(AUTOCLOSED_SUFFIX)]
        try:
            await self.transport.patch_json(
                self._pulls_path(autoclosed.number),
                body={"state": PR_STATE_OPEN, "title": title},
                token=token,
            )
        except ApiError as err:
            logger.debug("Could not reopen autoclosed PR: %s", err)
            return None
        logger.info("Successfully reopened autoclosed PR #%d", autoclosed.number)
        session.invalidate_prs(autoclosed.number)

        pr = await self.get_pr(autoclosed.number)
        if pr is not None:
            session.branch_prs[branch_name] = pr
        return pr

    async def create_pr(
        self,
        source_branch: str,
        target_branch: str,
        title: str,
        body: str,
        labels: list[str] | None = None,
        draft: bool = False,
        use_platform_automerge: bool = False,
    ) -> PullRequest:
        """
        Open a pull request from the working repository's branch.

        Args:
            source_branch: Branch with the changes
            target_branch: Branch to merge into
            title: PR title
            body: PR body; known secrets are redacted
            labels: Labels to add after creation
            draft: Open as a draft
            use_platform_automerge: Enable GitHub's auto-merge on the new PR

        Returns:
            The created PullRequest

        Raises:
            ApiError: When GitHub rejects the PR
        """
        session = self.session
        head_owner = session.working_repo.split("/")[0]
        payload: dict = {
            "title": title,
            "head": f"{head_owner}:{source_branch}",
            "base": target_branch,
            "body": session.sanitize(body),
            "draft": draft,
        }
        if session.fork_token:
            payload["maintainer_can_modify"] = True
        logger.debug("Creating PR for branch %s", source_branch)
        data = await self.transport.post_json(
            self._pulls_path(), body=payload, token=session.fork_token
        )
        pr = decode_pull_request("rest", data, fork_mode=session.fork_mode)
        pr.source_branch = source_branch
        if session.pr_list is not None:
            session.pr_list.append(pr)
        session.open_prs = None
        logger.info("PR created: %s (%s)", pr.display_number, source_branch)

        await self.issues.add_labels(pr.number, labels)
        await self._try_platform_automerge(pr, use_platform_automerge)
        return pr

    async def _try_platform_automerge(self, pr: PullRequest, requested: bool) -> None:
        session = self.session
        if not requested:
            return
        if session.is_ghe:
            logger.debug("Platform-native automerge is not supported on GitHub Enterprise")
            return
        if not session.auto_merge_allowed:
            logger.debug("Platform-native automerge is not enabled in the repository settings")
            return
        merge_method = (session.merge_method or "merge").upper()
        try:
            result = await self.transport.query(
                ENABLE_AUTO_MERGE_MUTATION,
                {"pullRequestId": pr.node_id, "mergeMethod": merge_method},
            )
        except ApiError as err:
            logger.warning("Failed to enable auto-merge for %s: %s", pr.display_number, err)
            return
        if result["errors"]:
            logger.warning(
                "Failed to enable auto-merge for %s: %s", pr.display_number, result["errors"]
            )
            return
        logger.debug("Enabled auto-merge for %s", pr.display_number)

    async def update_pr(
        self,
        number: int,
        title: str,
        body: str | None = None,
        state: str | None = None,
    ) -> None:
        """
        Update a PR's title, body and optionally its open/closed state.

        Host failures raise HostError; other failures are logged.
        """
        logger.debug("update_pr(%d, %s)", number, title)
        session = self.session
        payload: dict = {"title": title}
        if body:
            payload["body"] = session.sanitize(body)
        if state:
            payload["state"] = state
        try:
            await self.transport.patch_json(
                self._pulls_path(number), body=payload, token=session.fork_token
            )
            logger.debug("PR updated: #%d", number)
        except ServerError as err:
            raise HostError(err) from err
        except ApiError as err:
            logger.warning("Error updating PR #%d: %s", number, err)
            return
        if state:
            session.invalidate_prs(number)

    async def add_reviewers(self, number: int, reviewers: list[str]) -> None:
        """
        Request reviews. ``team:<slug>`` entries request a team review.

        Failures are logged, not raised.
        """
        logger.debug("Adding reviewers %s to #%d", reviewers, number)
        user_reviewers = [r for r in reviewers if not r.startswith("team:")]
        team_reviewers = [r[len("team:"):] for r in reviewers if r.startswith("team:")]
        try:
            await self.transport.post_json(
                f"{self._pulls_path(number)}/requested_reviewers",
                body={"reviewers": user_reviewers, "team_reviewers": team_reviewers},
            )
        except ApiError as err:
            logger.warning("Failed to assign reviewers to #%d: %s", number, err)
