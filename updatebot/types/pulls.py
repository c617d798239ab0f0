"""Pull request data models and their decoders.

GitHub describes a pull request in two shapes: GraphQL nodes (camelCase,
nested connections) and REST objects (snake_case, nested head/base). Both
are decoded here into the same ``PullRequest`` record; nothing downstream
looks at the source shape.
"""

import json
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

from updatebot.types.issues import Comment

PrSource = Literal["graphql-open", "graphql-closed", "rest", "rest-list"]

PR_STATE_OPEN = "open"
PR_STATE_CLOSED = "closed"
PR_STATE_MERGED = "merged"
PR_STATE_ALL = "all"
PR_STATE_NOT_OPEN = "!open"

# https://docs.github.com/en/graphql/reference/enums#mergestatestatus
_CAN_MERGE_STATES = {"BEHIND", "CLEAN", "HAS_HOOKS", "UNSTABLE"}


@dataclass
class PullRequest:
    """Pull request information."""

    number: int
    source_branch: str
    title: str
    state: str  # "open", "closed", "merged"
    display_number: str = ""
    target_branch: str | None = None
    sha: str | None = None
    body: str | None = None
    can_merge: bool | None = None
    can_merge_reason: str | None = None
    is_conflicted: bool = False
    labels: list[str] = field(default_factory=list)
    has_assignees: bool = False
    has_reviewers: bool = False
    created_at: datetime | None = None
    closed_at: datetime | None = None
    source_repo: str | None = None
    is_draft: bool = False
    node_id: str | None = None
    comments: list[Comment] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.display_number:
            self.display_number = f"Pull Request #{self.number}"


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse a GitHub ISO 8601 timestamp into an aware datetime."""
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def matches_state(state: str, desired_state: str) -> bool:
    """
    Match a PR state against a filter.

    The filter is an exact state, ``"all"``, or a state prefixed with ``!``
    to match anything but that state.
    """
    if desired_state == PR_STATE_ALL:
        return True
    if desired_state.startswith("!"):
        return state != desired_state[1:]
    return state == desired_state


def decode_pull_request(
    source: PrSource, data: dict[str, Any], *, fork_mode: bool = False
) -> PullRequest:
    """
    Decode a remote pull request payload into a ``PullRequest``.

    Args:
        source: Which query produced ``data``
        data: The GraphQL node or REST object
        fork_mode: Whether the session runs in fork mode; a BLOCKED open PR
            is then still considered mergeable, since the fork token may
            hold the rights the main token lacks
    """
    return _DECODERS[source](data, fork_mode)


def _decode_graphql_open(node: dict[str, Any], fork_mode: bool) -> PullRequest:
    merge_state = node.get("mergeStateStatus")
    reason = None
    if (node.get("reviews") or {}).get("nodes"):
        can_merge = False
        reason = "hasNegativeReview"
    elif merge_state in _CAN_MERGE_STATES:
        can_merge = True
    elif fork_mode and merge_state == "BLOCKED":
        can_merge = True
    else:
        can_merge = False
        reason = f"mergeStateStatus = {merge_state}"

    return PullRequest(
        number=node["number"],
        source_branch=node["headRefName"],
        target_branch=node.get("baseRefName"),
        title=node["title"],
        state=PR_STATE_OPEN,
        sha=node.get("headRefOid"),
        can_merge=can_merge,
        can_merge_reason=reason,
        is_conflicted=merge_state == "DIRTY",
        labels=[label["name"] for label in (node.get("labels") or {}).get("nodes", [])],
        has_assignees=(node.get("assignees") or {}).get("totalCount", 0) > 0,
        has_reviewers=(node.get("reviewRequests") or {}).get("totalCount", 0) > 0,
        created_at=parse_timestamp(node.get("createdAt")),
        is_draft=bool(node.get("isDraft")),
        node_id=node.get("id"),
    )


def _decode_graphql_closed(node: dict[str, Any], fork_mode: bool) -> PullRequest:
    # The closed query cannot tell closed from merged
    return PullRequest(
        number=node["number"],
        source_branch=node["headRefName"],
        title=node["title"],
        state=PR_STATE_CLOSED,
        sha=node.get("headRefOid"),
        created_at=parse_timestamp(node.get("createdAt")),
        closed_at=parse_timestamp(node.get("closedAt")),
        comments=[
            Comment(id=comment["databaseId"], body=comment["body"])
            for comment in (node.get("comments") or {}).get("nodes", [])
        ],
    )


def _rest_state(data: dict[str, Any]) -> str:
    if data.get("state") == PR_STATE_CLOSED and data.get("merged_at"):
        return PR_STATE_MERGED
    return data["state"]


def _decode_rest_list(data: dict[str, Any], fork_mode: bool) -> PullRequest:
    head = data.get("head") or {}
    base = data.get("base") or {}
    return PullRequest(
        number=data["number"],
        source_branch=head.get("ref", ""),
        target_branch=base.get("ref"),
        title=data["title"],
        state=_rest_state(data),
        sha=head.get("sha"),
        labels=[label["name"] for label in data.get("labels") or []],
        has_assignees=bool(data.get("assignees")),
        has_reviewers=bool(data.get("requested_reviewers")),
        created_at=parse_timestamp(data.get("created_at")),
        closed_at=parse_timestamp(data.get("closed_at")),
        source_repo=(head.get("repo") or {}).get("full_name"),
        is_draft=bool(data.get("draft")),
        node_id=data.get("node_id"),
    )


def _decode_rest(data: dict[str, Any], fork_mode: bool) -> PullRequest:
    pr = _decode_rest_list(data, fork_mode)
    pr.body = data.get("body")
    if pr.state == PR_STATE_OPEN:
        # mergeable is null while GitHub is still computing it
        mergeable = data.get("mergeable")
        pr.can_merge = mergeable is True
        if not pr.can_merge:
            pr.can_merge_reason = f"mergeable = {json.dumps(mergeable)}"
        pr.is_conflicted = data.get("mergeable_state") == "dirty"
    return pr


_DECODERS: dict[str, Callable[[dict[str, Any], bool], PullRequest]] = {
    "graphql-open": _decode_graphql_open,
    "graphql-closed": _decode_graphql_closed,
    "rest": _decode_rest,
    "rest-list": _decode_rest_list,
}
