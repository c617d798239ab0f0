"""Repository and platform data models."""

from dataclasses import dataclass
from typing import Literal

BranchStatus = Literal["green", "yellow", "red"]
MergeMethod = Literal["rebase", "squash", "merge"]


@dataclass
class PlatformResult:
    """Result of platform initialization."""

    endpoint: str
    username: str | None
    git_author: str | None


@dataclass
class RepoResult:
    """Result of repository initialization."""

    default_branch: str
    is_fork: bool


@dataclass
class RepoInfo:
    """Repository metadata from the combined info query."""

    name_with_owner: str | None
    default_branch: str
    default_branch_sha: str | None
    is_archived: bool
    is_fork: bool
    merge_method: MergeMethod | None
    auto_merge_allowed: bool
    has_issues_enabled: bool | None


@dataclass
class VulnerabilityAlert:
    """A Dependabot vulnerability alert."""

    package_name: str
    ecosystem: str
    vulnerable_version_range: str
    first_patched_version: str | None
    severity: str | None
    description: str | None
    manifest_filename: str | None
    manifest_path: str | None
    dismiss_reason: str | None
