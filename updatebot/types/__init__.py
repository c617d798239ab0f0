"""updatebot type definitions.

This module exports all data model types used by the platform clients.
"""

from updatebot.types.issues import Comment, EnsureIssueResult, Issue
from updatebot.types.pulls import (
    PR_STATE_ALL,
    PR_STATE_CLOSED,
    PR_STATE_MERGED,
    PR_STATE_NOT_OPEN,
    PR_STATE_OPEN,
    PrSource,
    PullRequest,
    decode_pull_request,
    matches_state,
)
from updatebot.types.repos import (
    BranchStatus,
    MergeMethod,
    PlatformResult,
    RepoInfo,
    RepoResult,
    VulnerabilityAlert,
)

__all__ = [
    # Issue types
    "Issue",
    "Comment",
    "EnsureIssueResult",
    # Pull request types
    "PullRequest",
    "PrSource",
    "decode_pull_request",
    "matches_state",
    "PR_STATE_OPEN",
    "PR_STATE_CLOSED",
    "PR_STATE_MERGED",
    "PR_STATE_ALL",
    "PR_STATE_NOT_OPEN",
    # Repository types
    "BranchStatus",
    "MergeMethod",
    "PlatformResult",
    "RepoInfo",
    "RepoResult",
    "VulnerabilityAlert",
]
