"""
Pytest plugin for updatebot testing fixtures.

This module re-exports all fixtures from fixtures.py so they can be
automatically discovered by pytest.

To use these fixtures in your tests, add this to your conftest.py:

    pytest_plugins = ["updatebot.testing.conftest"]

Or import the fixtures directly:

    from updatebot.testing.fixtures import mock_transport, repo_client
"""

# Re-export all fixtures for pytest auto-discovery
from updatebot.testing.fixtures import (
    mock_transport,
    repo_client,
    sample_open_pr_node,
    sample_repo_info,
    sample_rest_pr,
    session,
)

__all__ = [
    "mock_transport",
    "session",
    "repo_client",
    "sample_repo_info",
    "sample_open_pr_node",
    "sample_rest_pr",
]
