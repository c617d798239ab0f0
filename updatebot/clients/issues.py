"""Issues resource client."""

from typing import TYPE_CHECKING

from updatebot.exceptions import ApiError
from updatebot.graphql import ISSUES_QUERY
from updatebot.logging import get_logger
from updatebot.types.issues import EnsureIssueResult, Issue

if TYPE_CHECKING:
    from updatebot.session import RepositorySession
    from updatebot.transport import AsyncGitHubTransport

logger = get_logger("issues")

# First matching row wins; None matches either value.
# An "open" match whose title and body are already current is left alone.
#   (match,    once,  should_reopen, action)
_ENSURE_ISSUE_DECISIONS: list[tuple[str, bool | None, bool | None, str]] = [
    ("none", None, None, "create"),
    ("open", None, None, "update"),
    ("closed", True, None, "skip"),
    ("closed", False, True, "update"),
    ("closed", False, False, "create"),
]


def decide_issue_action(match: str, once: bool, should_reopen: bool) -> str:
    """
    Pick what ensure_issue does for an existing-issue match.

    Args:
        match: "none", "open" or "closed"
        once: Never touch an issue that was closed already
        should_reopen: Reopen a closed match instead of creating a new issue

    Returns:
        "create", "update" or "skip"
    """
    for row_match, row_once, row_reopen, action in _ENSURE_ISSUE_DECISIONS:
        if row_match != match:
            continue
        if row_once is not None and row_once != once:
            continue
        if row_reopen is not None and row_reopen != should_reopen:
            continue
        return action
    raise ValueError(f"Unknown issue match: {match!r}")


class IssuesClient:
    """Client for the bot's issues, assignees and labels."""

    def __init__(
        self, transport: "AsyncGitHubTransport", session: "RepositorySession"
    ) -> None:
        """
        Initialize the issues client.

        Args:
            transport: GitHub transport for making requests
            session: Session state of the repository being processed
        """
        self.transport = transport
        self.session = session

    def _issues_path(self, number: int | None = None) -> str:
        path = f"repos/{self.session.target_repo}/issues"
        return path if number is None else f"{path}/{number}"

    async def get_issue_list(self) -> list[Issue]:
        """
        List the issues created by the bot user, oldest first.

        Cached on the session. Empty when issues are disabled.
        """
        session = self.session
        if session.has_issues_enabled is False:
            session.issue_list = []
            logger.debug("Issues are disabled - cannot list issues")
            return session.issue_list
        if session.issue_list is None:
            nodes = await self.transport.query_repo_field(
                ISSUES_QUERY,
                "issues",
                variables={
                    "owner": session.owner,
                    "name": session.name,
                    "user": session.username,
                },
            )
            session.issue_list = [
                Issue(
                    number=node["number"],
                    title=node["title"],
                    state=(node.get("state") or "").lower(),
                )
                for node in nodes
            ]
            logger.debug("Retrieved %d issues", len(session.issue_list))
        return session.issue_list

    async def get_issue(self, number: int, use_cache: bool = True) -> Issue | None:
        """Get one issue with its body, or None if it cannot be read."""
        if self.session.has_issues_enabled is False:
            return None
        try:
            data = await self.transport.get_json(
                self._issues_path(number), use_cache=use_cache
            )
        except ApiError as err:
            logger.debug("Error getting issue #%d: %s", number, err)
            return None
        return Issue(
            number=data["number"],
            title=data.get("title"),
            state=data.get("state"),
            body=data.get("body"),
        )

    async def find_issue(self, title: str) -> Issue | None:
        """Find the bot's open issue with this title, including its body."""
        logger.debug("find_issue(%s)", title)
        issue_list = await self.get_issue_list()
        for issue in issue_list:
            if issue.state == "open" and issue.title == title:
                return await self.get_issue(issue.number)
        logger.debug("Issue not found")
        return None

    async def _close_issue(self, number: int) -> None:
        logger.debug("close_issue(%d)", number)
        await self.transport.patch_json(
            self._issues_path(number), body={"state": "closed"}
        )
        self.session.invalidate_issues()

    async def ensure_issue(
        self,
        title: str,
        body: str,
        reuse_title: str | None = None,
        labels: list[str] | None = None,
        once: bool = False,
        should_reopen: bool = True,
    ) -> EnsureIssueResult | None:
        """
        Make sure exactly one open bot issue carries this title and body.

        Args:
            title: Issue title
            body: Issue body; known secrets are redacted
            reuse_title: Older title to adopt when no issue has ``title``
            labels: Labels for created or updated issues
            once: Do nothing if the matching issue was closed
            should_reopen: Reopen a closed match instead of creating a new one

        Returns:
            "created", "updated", or None when nothing changed or the
            request failed
        """
        logger.debug("ensure_issue(%s)", title)
        session = self.session
        if session.has_issues_enabled is False:
            logger.info("Cannot ensure issue because issues are disabled in this repository")
            return None
        body = session.sanitize(body) or ""
        try:
            issue_list = await self.get_issue_list()
            issues = [i for i in issue_list if i.title == title]
            if not issues and reuse_title:
                issues = [i for i in issue_list if i.title == reuse_title]

            open_issues = [i for i in issues if i.state == "open"]
            candidate: Issue | None = None
            if open_issues:
                match = "open"
                candidate = open_issues[0]
            elif issues:
                match = "closed"
                candidate = max(issues, key=lambda i: i.number)
            else:
                match = "none"

            for duplicate in open_issues[1:]:
                logger.warning("Closing duplicate issue #%d", duplicate.number)
                await self._close_issue(duplicate.number)

            action = decide_issue_action(match, once, should_reopen)
            if action == "skip":
                logger.debug("Issue already closed - skipping recreation")
                return None

            if action == "update" and candidate is not None:
                if match == "open":
                    current = await self.get_issue(candidate.number, use_cache=False)
                    if (
                        current is not None
                        and current.title == title
                        and current.body == body
                    ):
                        logger.debug("Issue #%d is open and up to date", candidate.number)
                        return None
                else:
                    logger.debug("Reopening previously closed issue #%d", candidate.number)
                payload: dict = {"body": body, "state": "open", "title": title}
                if labels:
                    payload["labels"] = labels
                await self.transport.patch_json(
                    self._issues_path(candidate.number), body=payload
                )
                session.invalidate_issues()
                logger.info("Issue updated: #%d", candidate.number)
                return "updated"

            payload = {"title": title, "body": body}
            if labels:
                payload["labels"] = labels
            created = await self.transport.post_json(self._issues_path(), body=payload)
            session.invalidate_issues()
            logger.info("Issue created: #%s", (created or {}).get("number"))
            return "created"
        except ApiError as err:
            if err.message.startswith("Issues are disabled for this repo"):
                logger.debug("Issues are disabled, so could not create issue: %s", title)
            else:
                logger.warning("Could not ensure issue %s: %s", title, err)
        return None

    async def ensure_issue_closing(self, title: str) -> None:
        """Close every open bot issue with this title."""
        logger.debug("ensure_issue_closing(%s)", title)
        issue_list = await self.get_issue_list()
        for issue in list(issue_list):
            if issue.state == "open" and issue.title == title:
                await self._close_issue(issue.number)
                logger.info("Issue closed: #%d", issue.number)

    async def add_assignees(self, number: int, assignees: list[str]) -> None:
        logger.debug("Adding assignees %s to #%d", assignees, number)
        await self.transport.post_json(
            f"{self._issues_path(number)}/assignees", body={"assignees": assignees}
        )

    async def add_labels(self, number: int, labels: list[str] | None) -> None:
        """Add labels to an issue or pull request; no call when empty."""
        logger.debug("Adding labels %s to #%d", labels, number)
        if labels:
            await self.transport.post_json(
                f"{self._issues_path(number)}/labels", body=labels
            )

    async def delete_label(self, number: int, label: str) -> None:
        """Remove a label; failures are logged, not raised."""
        logger.debug("Deleting label %s from #%d", label, number)
        try:
            await self.transport.delete_json(
                f"{self._issues_path(number)}/labels/{label}"
            )
        except ApiError as err:
            logger.warning("Failed to delete label %s from #%d: %s", label, number, err)
