"""Pull request merge orchestration."""

from typing import TYPE_CHECKING, Any

from updatebot.exceptions import ApiError
from updatebot.logging import get_logger
from updatebot.types.repos import MergeMethod

if TYPE_CHECKING:
    from updatebot.session import RepositorySession
    from updatebot.transport import AsyncGitHubTransport

logger = get_logger("merge")

# Tried in order when the repository's merge method is unknown or refused
FALLBACK_MERGE_METHODS: tuple[MergeMethod, ...] = ("rebase", "squash", "merge")

# GitHub answers these while a merge is blocked; the next method may still work
_BLOCKED_MERGE_STATUSES = frozenset({404, 405})


class MergeClient:
    """Client that merges pull requests."""

    def __init__(
        self, transport: "AsyncGitHubTransport", session: "RepositorySession"
    ) -> None:
        """
        Initialize the merge client.

        Args:
            transport: GitHub transport for making requests
            session: Session state of the repository being processed
        """
        self.transport = transport
        self.session = session

    def merge_plan(self) -> list[tuple[MergeMethod, bool]]:
        """
        Merge methods to attempt, in order.

        Each entry is ``(method, abort_on_error)``. The detected method comes
        first and aborts the merge on errors other than 404/405; fallback
        methods never abort, a failure just moves on to the next one.
        Fallbacks run rebase, squash, merge and skip the detected method, so
        a rebase rejected with 405 is followed by squash rather than by a
        second rebase attempt.
        """
        detected = self.session.merge_method
        plan: list[tuple[MergeMethod, bool]] = []
        if detected:
            plan.append((detected, True))
        plan.extend((method, False) for method in FALLBACK_MERGE_METHODS if method != detected)
        return plan

    async def merge_pr(self, number: int, branch_name: str | None = None) -> bool:
        """
        Merge a pull request.

        When branch protection requires reviews, an approving review must
        exist first.

        Args:
            number: Pull request number
            branch_name: Source branch, for logging

        Returns:
            True when merged, False when every attempt failed
        """
        logger.debug("merge_pr(%d, %s)", number, branch_name)
        if self.session.pr_reviews_required and not await self._is_approved(number):
            logger.debug(
                "Branch protection: Cannot automerge PR #%d until there is an approving review",
                number,
            )
            return False

        for method, abort_on_error in self.merge_plan():
            try:
                result = await self._attempt(number, method)
            except ApiError as err:
                if abort_on_error and err.status_code not in _BLOCKED_MERGE_STATUSES:
                    logger.warning("Failed to %s merge PR #%d: %s", method, number, err)
                    return False
                logger.debug("Failed to %s merge PR #%d: %s", method, number, err)
                continue
            logger.debug("PR #%d merged with %s: %s", number, method, result)
            return True

        logger.info("All merge attempts failed for PR #%d", number)
        return False

    async def _attempt(self, number: int, method: MergeMethod) -> Any:
        session = self.session
        return await self.transport.put_json(
            f"repos/{session.target_repo}/pulls/{number}/merge",
            body={"merge_method": method},
            token=session.fork_token,
        )

    async def _is_approved(self, number: int) -> bool:
        reviews = await self.transport.get_json(
            f"repos/{self.session.target_repo}/pulls/{number}/reviews"
        )
        return any(review.get("state") == "APPROVED" for review in reviews or [])
