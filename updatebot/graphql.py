"""GraphQL documents used by the platform clients.

Paginated documents declare ``$count`` and ``$cursor`` and select
``pageInfo`` so that ``AsyncGitHubTransport.query_repo_field`` can walk them.
"""

import re

REPO_INFO_QUERY = """
query($owner: String!, $name: String!) {
  repository(owner: $owner, name: $name) {
    isFork
    isArchived
    nameWithOwner
    hasIssuesEnabled
    autoMergeAllowed
    mergeCommitAllowed
    rebaseMergeAllowed
    squashMergeAllowed
    defaultBranchRef {
      name
      target {
        oid
      }
    }
  }
}
"""

OPEN_PRS_QUERY = """
query($owner: String!, $name: String!, $count: Int, $cursor: String) {
  repository(owner: $owner, name: $name) {
    pullRequests(
      states: [OPEN]
      orderBy: {field: UPDATED_AT, direction: DESC}
      first: $count
      after: $cursor
    ) {
      pageInfo {
        endCursor
        hasNextPage
      }
      nodes {
        id
        number
        headRefName
        headRefOid
        baseRefName
        title
        isDraft
        createdAt
        mergeable
        mergeStateStatus
        labels(last: 100) {
          nodes {
            name
          }
        }
        assignees {
          totalCount
        }
        reviewRequests {
          totalCount
        }
        reviews(first: 1, states: [CHANGES_REQUESTED]) {
          nodes {
            state
          }
        }
      }
    }
  }
}
"""

CLOSED_PRS_QUERY = """
query($owner: String!, $name: String!, $count: Int, $cursor: String) {
  repository(owner: $owner, name: $name) {
    pullRequests(
      states: [CLOSED]
      orderBy: {field: UPDATED_AT, direction: DESC}
      first: $count
      after: $cursor
    ) {
      pageInfo {
        endCursor
        hasNextPage
      }
      nodes {
        number
        headRefName
        headRefOid
        title
        state
        createdAt
        closedAt
        comments(last: 100) {
          nodes {
            databaseId
            body
          }
        }
      }
    }
  }
}
"""

ISSUES_QUERY = """
query($owner: String!, $name: String!, $user: String!, $count: Int, $cursor: String) {
  repository(owner: $owner, name: $name) {
    issues(
      orderBy: {field: CREATED_AT, direction: ASC}
      filterBy: {createdBy: $user}
      first: $count
      after: $cursor
    ) {
      pageInfo {
        endCursor
        hasNextPage
      }
      nodes {
        number
        state
        title
      }
    }
  }
}
"""

VULNERABILITY_ALERTS_QUERY = """
query($owner: String!, $name: String!) {
  repository(owner: $owner, name: $name) {
    vulnerabilityAlerts(last: 100) {
      edges {
        node {
          dismissReason
          vulnerableManifestFilename
          vulnerableManifestPath
          securityAdvisory {
            description
            severity
          }
          securityVulnerability {
            package {
              name
              ecosystem
            }
            firstPatchedVersion {
              identifier
            }
            vulnerableVersionRange
          }
        }
      }
    }
  }
}
"""

ENABLE_AUTO_MERGE_MUTATION = """
mutation EnableAutoMerge($pullRequestId: ID!, $mergeMethod: PullRequestMergeMethod!) {
  enablePullRequestAutoMerge(
    input: {pullRequestId: $pullRequestId, mergeMethod: $mergeMethod}
  ) {
    pullRequest {
      number
    }
  }
}
"""

# Fields GitHub Enterprise Server may not know about
_GHE_UNSUPPORTED_REPO_FIELDS = ("autoMergeAllowed", "hasIssuesEnabled")


def repo_info_query(is_ghe: bool = False) -> str:
    """Repository info query, trimmed for GitHub Enterprise Server."""
    if not is_ghe:
        return REPO_INFO_QUERY
    query = REPO_INFO_QUERY
    for field_name in _GHE_UNSUPPORTED_REPO_FIELDS:
        query = re.sub(rf"\n\s*{field_name}\s*\n", "\n", query)
    return query
