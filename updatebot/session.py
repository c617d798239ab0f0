"""Per-repository session state.

A ``RepositorySession`` lives for one repository-processing pass. It holds
what discovery learned about the repository and the lazily populated PR and
issue caches. Caches never expire on their own: they are filled on first
read and dropped by the mutations that could make them stale.
"""

from collections.abc import Iterable

from updatebot.logging import sanitize
from updatebot.types.issues import Issue
from updatebot.types.pulls import PullRequest
from updatebot.types.repos import MergeMethod


class RepositorySession:
    """Cached view of one repository's collaboration surface."""

    def __init__(
        self,
        repository: str,
        *,
        username: str | None = None,
        git_author: str | None = None,
        fork_mode: bool = False,
        fork_token: str | None = None,
        ignore_pr_author: bool = False,
        is_ghe: bool = False,
        secrets: Iterable[str | None] = (),
    ) -> None:
        owner, _, name = repository.partition("/")
        if not owner or not name:
            raise ValueError(f"Repository must be 'owner/name', got {repository!r}")
        self._repository = repository
        self._parent_repo: str | None = None
        self._fork_repo: str | None = None

        self.username = username
        self.git_author = git_author
        self.fork_mode = fork_mode
        self.fork_token = fork_token
        self.ignore_pr_author = ignore_pr_author
        self.is_ghe = is_ghe
        self.secrets = tuple(s for s in secrets if s)

        # Discovery
        self.default_branch: str | None = None
        self.default_branch_sha: str | None = None
        self.merge_method: MergeMethod | None = None
        self.auto_merge_allowed = False
        self.has_issues_enabled: bool | None = None
        self.is_fork = False

        # Branch protection, filled by get_repo_force_rebase()
        self.repo_force_rebase: bool | None = None
        self.pr_reviews_required = False
        self.push_protection = False

        # Caches
        self.open_prs: dict[int, PullRequest] | None = None
        self.closed_prs: dict[int, PullRequest] | None = None
        self.pr_list: list[PullRequest] | None = None
        self.issue_list: list[Issue] | None = None
        self.branch_prs: dict[str, PullRequest] = {}

    @property
    def repository(self) -> str:
        """The repository this session was created for."""
        return self._repository

    @property
    def owner(self) -> str:
        return self._repository.split("/")[0]

    @property
    def name(self) -> str:
        return self._repository.split("/")[1]

    @property
    def parent_repo(self) -> str | None:
        """Upstream repository, set only once a fork is in place."""
        return self._parent_repo

    @property
    def fork_repo(self) -> str | None:
        return self._fork_repo

    @property
    def working_repo(self) -> str:
        """Where branches, refs and statuses live: the fork in fork mode."""
        return self._fork_repo or self._repository

    @property
    def target_repo(self) -> str:
        """Where issues, pull requests and comments are addressed."""
        return self._parent_repo or self._repository

    def set_fork(self, fork_repository: str) -> None:
        """Switch the working repository to the bot's fork. Allowed once."""
        if not self.fork_mode:
            raise RuntimeError("set_fork() requires fork mode")
        if self._parent_repo is not None:
            raise RuntimeError(
                f"Fork already set for {self._repository}: {self._fork_repo}"
            )
        self._parent_repo = self._repository
        self._fork_repo = fork_repository

    def sanitize(self, text: str | None) -> str | None:
        return sanitize(text, self.secrets)

    def invalidate_prs(self, number: int | None = None) -> None:
        """Forget PR caches after a PR was opened, closed or reopened."""
        self.open_prs = None
        self.pr_list = None
        if number is not None:
            if self.closed_prs is not None:
                self.closed_prs.pop(number, None)
            for branch_name, pr in list(self.branch_prs.items()):
                if pr.number == number:
                    del self.branch_prs[branch_name]

    def invalidate_issues(self) -> None:
        self.issue_list = None
