"""Repository metadata client: discovery, branch protection, file contents
and vulnerability alerts."""

import base64
import json
from typing import TYPE_CHECKING, Any

from updatebot.exceptions import (
    AccessForbidden,
    ApiError,
    AuthorizationError,
    EmptyRepository,
    GraphqlError,
    NotFoundError,
    RepositoryArchived,
    RepositoryBlocked,
    RepositoryNotFound,
    RepositoryRenamed,
    RepositoryUnavailable,
)
from updatebot.graphql import VULNERABILITY_ALERTS_QUERY, repo_info_query
from updatebot.logging import get_logger
from updatebot.transport import escape_hash
from updatebot.types.repos import MergeMethod, RepoInfo, VulnerabilityAlert

if TYPE_CHECKING:
    from updatebot.session import RepositorySession
    from updatebot.transport import AsyncGitHubTransport

logger = get_logger("repos")


def detect_merge_method(repo: dict[str, Any]) -> MergeMethod | None:
    """Preferred merge method among those the repository allows."""
    if repo.get("rebaseMergeAllowed"):
        return "rebase"
    if repo.get("squashMergeAllowed"):
        return "squash"
    if repo.get("mergeCommitAllowed"):
        return "merge"
    # Needs admin read access to see, so its absence is not an error
    return None


class ReposClient:
    """Client for repository-level metadata."""

    def __init__(
        self, transport: "AsyncGitHubTransport", session: "RepositorySession"
    ) -> None:
        """
        Initialize the repos client.

        Args:
            transport: GitHub transport for making requests
            session: Session state of the repository being processed
        """
        self.transport = transport
        self.session = session

    async def discover(self) -> RepoInfo:
        """
        Read repository metadata and record it on the session.

        Returns:
            RepoInfo with default branch, merge settings and flags

        Raises:
            RepositoryUnavailable: When the repository cannot be processed
        """
        session = self.session
        repository = session.repository
        try:
            result = await self.transport.query(
                repo_info_query(session.is_ghe),
                {"owner": session.owner, "name": session.name},
            )
            if result["errors"] and not result["data"]:
                raise GraphqlError(result["errors"])
            repo = (result["data"] or {}).get("repository")
            if not repo:
                raise RepositoryNotFound(repository)
            default_ref = repo.get("defaultBranchRef") or {}
            if not default_ref.get("name"):
                raise EmptyRepository(repository)
            name_with_owner = repo.get("nameWithOwner")
            if name_with_owner and name_with_owner != repository:
                logger.debug(
                    "Repository has been renamed: %s -> %s", repository, name_with_owner
                )
                raise RepositoryRenamed(repository)
            if repo.get("isArchived"):
                logger.debug("Repository is archived - aborting")
                raise RepositoryArchived(repository)
        except RepositoryUnavailable:
            raise
        except ApiError as err:
            logger.debug("Caught discovery error for %s: %s", repository, err)
            if err.status_code in (403, 451):
                raise AccessForbidden(repository) from err
            if err.status_code == 404:
                raise RepositoryNotFound(repository) from err
            if err.message.startswith("Repository access blocked"):
                raise RepositoryBlocked(repository) from err
            raise

        info = RepoInfo(
            name_with_owner=name_with_owner,
            default_branch=default_ref["name"],
            default_branch_sha=(default_ref.get("target") or {}).get("oid"),
            is_archived=False,
            is_fork=repo.get("isFork") is True,
            merge_method=detect_merge_method(repo),
            auto_merge_allowed=bool(repo.get("autoMergeAllowed")),
            has_issues_enabled=repo.get("hasIssuesEnabled"),
        )
        if info.merge_method is None:
            logger.debug("Could not find allowed merge methods for %s", repository)

        session.default_branch = info.default_branch
        session.default_branch_sha = info.default_branch_sha
        session.merge_method = info.merge_method
        session.auto_merge_allowed = info.auto_merge_allowed
        session.has_issues_enabled = info.has_issues_enabled
        session.is_fork = info.is_fork
        logger.debug("%s default branch = %s", repository, info.default_branch)
        return info

    async def get_repo_force_rebase(self) -> bool:
        """
        Whether branch protection requires PRs to be up to date before merging.

        Also records reviews-required and push-protection on the session.
        Missing protection (404) and missing permission (403) both leave the
        defaults in place.
        """
        session = self.session
        if session.repo_force_rebase is None:
            session.repo_force_rebase = False
            try:
                protection = await self._get_branch_protection(session.default_branch or "")
            except NotFoundError:
                logger.debug("No branch protection found")
                return session.repo_force_rebase
            except AuthorizationError:
                logger.debug(
                    "Branch protection: Do not have permissions to detect branch protection"
                )
                return session.repo_force_rebase

            if protection.get("required_pull_request_reviews"):
                logger.debug("Branch protection: PR Reviews are required before merging")
                session.pr_reviews_required = True
            if (protection.get("required_status_checks") or {}).get("strict"):
                logger.debug("Branch protection: PRs must be up-to-date before merging")
                session.repo_force_rebase = True
            if protection.get("restrictions"):
                logger.debug("Branch protection: Pushing to branch is restricted")
                session.push_protection = True
        return session.repo_force_rebase

    async def _get_branch_protection(self, branch_name: str) -> dict[str, Any]:
        # The fork token cannot read the parent's protection
        if self.session.fork_mode:
            return {}
        return await self.transport.get_json(
            f"repos/{self.session.working_repo}/branches/{escape_hash(branch_name)}/protection"
        )

    async def get_raw_file(self, file_name: str, repo: str | None = None) -> str | None:
        """
        Get a file's contents from the default branch.

        Args:
            file_name: Path of the file in the repository
            repo: Repository to read from (default: the working repository)
        """
        data = await self.transport.get_json(
            f"repos/{repo or self.session.working_repo}/contents/{file_name}"
        )
        content = (data or {}).get("content")
        if content is None:
            return None
        return base64.b64decode(content).decode("utf-8")

    async def get_json_file(self, file_name: str, repo: str | None = None) -> Any:
        """Get a JSON file's parsed contents, or None if it has no content."""
        raw = await self.get_raw_file(file_name, repo)
        if raw is None:
            return None
        return json.loads(raw)

    async def get_vulnerability_alerts(self) -> list[VulnerabilityAlert]:
        """
        List the repository's vulnerability alerts.

        Missing access is logged and yields an empty list.
        """
        session = self.session
        try:
            edges = await self.transport.query_repo_field(
                VULNERABILITY_ALERTS_QUERY,
                "vulnerabilityAlerts",
                variables={"owner": session.owner, "name": session.name},
                paginate=False,
                headers={"Accept": "application/vnd.github.vixen-preview+json"},
            )
        except ApiError as err:
            logger.debug("Error retrieving vulnerability alerts: %s", err)
            logger.warning(
                "Cannot access vulnerability alerts. Please ensure permissions have been granted."
            )
            return []

        alerts = [self._parse_alert(edge["node"]) for edge in edges]
        if not alerts:
            logger.debug("No vulnerability alerts found")
            return alerts

        short_alerts: dict[str, dict[str, str | None]] = {}
        for alert in alerts:
            key = f"{alert.ecosystem.lower()}/{alert.package_name}"
            short_alerts.setdefault(key, {})[alert.vulnerable_version_range] = (
                alert.first_patched_version
            )
        logger.debug("GitHub vulnerability details: %s", short_alerts)
        return alerts

    def _parse_alert(self, node: dict[str, Any]) -> VulnerabilityAlert:
        """Parse a vulnerabilityAlerts node."""
        vulnerability = node.get("securityVulnerability") or {}
        package = vulnerability.get("package") or {}
        advisory = node.get("securityAdvisory") or {}
        return VulnerabilityAlert(
            package_name=package.get("name", ""),
            ecosystem=package.get("ecosystem", ""),
            vulnerable_version_range=vulnerability.get("vulnerableVersionRange", ""),
            first_patched_version=(vulnerability.get("firstPatchedVersion") or {}).get(
                "identifier"
            ),
            severity=advisory.get("severity"),
            description=advisory.get("description"),
            manifest_filename=node.get("vulnerableManifestFilename"),
            manifest_path=node.get("vulnerableManifestPath"),
            dismiss_reason=node.get("dismissReason"),
        )
