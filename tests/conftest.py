"""Shared fixtures for the updatebot test suite."""

from updatebot.testing.conftest import (  # noqa: F401
    mock_transport,
    repo_client,
    sample_open_pr_node,
    sample_repo_info,
    sample_rest_pr,
    session,
)
