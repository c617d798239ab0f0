"""Commit statuses and check runs of branches."""

from typing import TYPE_CHECKING, Any

from updatebot.exceptions import (
    ApiError,
    AuthorizationError,
    HostError,
    NotFoundError,
    RepositoryChanged,
    ServerError,
    UpdateBotError,
)
from updatebot.logging import get_logger
from updatebot.transport import escape_hash
from updatebot.types.repos import BranchStatus

if TYPE_CHECKING:
    from updatebot.session import RepositorySession
    from updatebot.transport import AsyncGitHubTransport

logger = get_logger("statuses")

_GITHUB_TO_BRANCH_STATUS: dict[str, BranchStatus] = {
    "success": "green",
    "error": "red",
    "failure": "red",
    "pending": "yellow",
}

_BRANCH_STATUS_TO_GITHUB: dict[str, str] = {
    "green": "success",
    "yellow": "pending",
    "red": "failure",
}

_PASSED_CHECK_CONCLUSIONS = {"success", "neutral", "skipped"}


def aggregate_branch_status(
    commit_state: str, status_count: int, check_runs: list[dict[str, Any]]
) -> BranchStatus:
    """
    Combine the legacy combined status with check runs.

    Args:
        commit_state: Combined commit status state ("success", "pending", ...)
        status_count: Number of legacy statuses behind ``commit_state``
        check_runs: Check runs as dicts with a ``conclusion``
    """
    if not check_runs:
        if commit_state == "success":
            return "green"
        if commit_state == "failure":
            return "red"
        return "yellow"
    if commit_state == "failure" or any(
        run.get("conclusion") == "failure" for run in check_runs
    ):
        return "red"
    # With no legacy statuses GitHub reports "pending"
    if (commit_state == "success" or status_count == 0) and all(
        run.get("conclusion") in _PASSED_CHECK_CONCLUSIONS for run in check_runs
    ):
        return "green"
    return "yellow"


class StatusesClient:
    """Client for branch statuses."""

    def __init__(
        self, transport: "AsyncGitHubTransport", session: "RepositorySession"
    ) -> None:
        """
        Initialize the statuses client.

        Args:
            transport: GitHub transport for making requests
            session: Session state of the repository being processed
        """
        self.transport = transport
        self.session = session

    def _commit_path(self, branch_name: str) -> str:
        return f"repos/{self.session.working_repo}/commits/{escape_hash(branch_name)}"

    async def _get_combined_status(
        self, branch_name: str, use_cache: bool = True
    ) -> dict[str, Any]:
        return await self.transport.get_json(
            f"{self._commit_path(branch_name)}/status", use_cache=use_cache
        )

    async def _get_statuses(
        self, branch_name: str, use_cache: bool = True
    ) -> list[dict[str, Any]]:
        return await self.transport.get_json(
            f"{self._commit_path(branch_name)}/statuses", use_cache=use_cache
        )

    async def _get_check_runs(self, branch_name: str) -> list[dict[str, Any]]:
        try:
            data = await self.transport.get_json(
                f"{self._commit_path(branch_name)}/check-runs?per_page=100",
                paginate=True,
                pagination_field="check_runs",
                headers={"Accept": "application/vnd.github.antiope-preview+json"},
            )
        except AuthorizationError:
            logger.debug("No permission to view check runs")
            return []
        except ServerError as err:
            raise HostError(err) from err
        except ApiError as err:
            logger.warning("Error retrieving check runs for %s: %s", branch_name, err)
            return []
        check_runs = [
            {
                "name": run.get("name"),
                "status": run.get("status"),
                "conclusion": run.get("conclusion"),
            }
            for run in (data or {}).get("check_runs") or []
        ]
        logger.debug("Check runs for %s: %s", branch_name, check_runs)
        return check_runs

    async def get_branch_status(self, branch_name: str) -> BranchStatus:
        """
        Overall CI status of a branch.

        Raises:
            RepositoryChanged: When the branch no longer exists
            HostError: When check runs fail with a server error
        """
        logger.debug("get_branch_status(%s)", branch_name)
        try:
            commit_status = await self._get_combined_status(branch_name)
        except NotFoundError as err:
            logger.debug("Received 404 when checking branch status, assuming branch deletion")
            raise RepositoryChanged(f"Branch {branch_name} no longer exists") from err
        logger.debug(
            "Branch status %s: %s", branch_name, commit_status.get("state")
        )
        check_runs = await self._get_check_runs(branch_name)
        return aggregate_branch_status(
            commit_status.get("state") or "",
            len(commit_status.get("statuses") or []),
            check_runs,
        )

    async def get_branch_status_check(
        self, branch_name: str, context: str
    ) -> BranchStatus | None:
        """
        State of one status context on a branch, or None if it was never set.

        Raises:
            RepositoryChanged: When the branch no longer exists
        """
        try:
            statuses = await self._get_statuses(branch_name)
        except NotFoundError as err:
            logger.debug("Commit not found when checking statuses")
            raise RepositoryChanged(f"Branch {branch_name} no longer exists") from err
        # Newest first
        for status in statuses or []:
            if status.get("context") == context:
                return _GITHUB_TO_BRANCH_STATUS.get(status.get("state", ""), "yellow")
        return None

    async def _get_branch_commit(self, branch_name: str) -> str:
        data = await self.transport.get_json(
            f"repos/{self.session.working_repo}/git/ref/heads/{escape_hash(branch_name)}"
        )
        return data["object"]["sha"]

    async def set_branch_status(
        self,
        branch_name: str,
        context: str,
        description: str,
        state: BranchStatus,
        url: str | None = None,
    ) -> None:
        """
        Set a status context on the branch head, unless already in that state.

        Skipped in fork mode, where the fork token cannot write statuses
        upstream.

        Raises:
            RepositoryChanged: When the status cannot be written
        """
        if self.session.fork_mode:
            logger.debug("Cannot set branch status when in forking mode")
            return
        existing = await self.get_branch_status_check(branch_name, context)
        if existing == state:
            return
        logger.debug("Setting branch status %s=%s on %s", context, state, branch_name)
        try:
            sha = await self._get_branch_commit(branch_name)
            payload = {
                "state": _BRANCH_STATUS_TO_GITHUB[state],
                "description": description,
                "context": context,
            }
            if url:
                payload["target_url"] = url
            await self.transport.post_json(
                f"repos/{self.session.working_repo}/statuses/{sha}", body=payload
            )
            # Refresh the cached reads so later checks see the new status
            await self._get_combined_status(branch_name, use_cache=False)
            await self._get_statuses(branch_name, use_cache=False)
        except UpdateBotError as err:
            logger.debug("Caught error setting branch status - aborting: %s", err)
            raise RepositoryChanged(f"Could not set status on {branch_name}") from err
