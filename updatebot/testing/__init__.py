"""updatebot testing utilities.

Provides a mock transport, payload factories and fixtures for testing code
built on the platform clients.
"""

from updatebot.testing.fixtures import (
    create_closed_pr_node,
    create_issue_node,
    create_mock_session,
    create_open_pr_node,
    create_repo_info,
    create_rest_pr,
)
from updatebot.testing.mock import MockCall, MockResponse, MockTransport

__all__ = [
    # Mock transport
    "MockTransport",
    "MockCall",
    "MockResponse",
    # Helper functions
    "create_repo_info",
    "create_open_pr_node",
    "create_closed_pr_node",
    "create_rest_pr",
    "create_issue_node",
    "create_mock_session",
]
