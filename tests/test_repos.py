"""
Tests for repository discovery, branch protection, file contents and
vulnerability alerts.
"""

import asyncio
import base64
from typing import Any

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from updatebot.clients.repos import ReposClient, detect_merge_method
from updatebot.exceptions import (
    AccessForbidden,
    AuthorizationError,
    EmptyRepository,
    GraphqlError,
    NotFoundError,
    RepositoryArchived,
    RepositoryBlocked,
    RepositoryNotFound,
    RepositoryRenamed,
    ServerError,
    ValidationError,
)
from updatebot.graphql import VULNERABILITY_ALERTS_QUERY, repo_info_query
from updatebot.platform import RepositoryClient
from updatebot.session import RepositorySession
from updatebot.testing import MockTransport, create_repo_info

PROTECTION_PATH = "repos/octo/widgets/branches/main/protection"


def _alert_edge(name: str, ecosystem: str = "NPM", patched: str | None = "4.17.21") -> dict[str, Any]:
    return {
        "node": {
            "dismissReason": None,
            "vulnerableManifestFilename": "package.json",
            "vulnerableManifestPath": "package.json",
            "securityAdvisory": {"description": "Prototype pollution", "severity": "HIGH"},
            "securityVulnerability": {
                "package": {"name": name, "ecosystem": ecosystem},
                "firstPatchedVersion": {"identifier": patched} if patched else None,
                "vulnerableVersionRange": "< 4.17.21",
            },
        }
    }


@given(
    rebase=st.booleans(),
    squash=st.booleans(),
    merge=st.booleans(),
)
@settings(max_examples=100)
def test_property_merge_method_priority(rebase: bool, squash: bool, merge: bool) -> None:
    """
    Property: Merge method detection

    The detected method is the first allowed one in the order rebase,
    squash, merge; nothing allowed means no method.
    """
    repo = {
        "rebaseMergeAllowed": rebase,
        "squashMergeAllowed": squash,
        "mergeCommitAllowed": merge,
    }

    expected = "rebase" if rebase else "squash" if squash else "merge" if merge else None
    assert detect_merge_method(repo) == expected


class TestDiscover:
    """Tests for ReposClient.discover()."""

    def test_records_discovery_on_session(
        self, mock_transport: MockTransport, repo_client: RepositoryClient
    ) -> None:
        mock_transport.configure_query(
            repo_info_query(),
            data=create_repo_info(
                default_branch="develop",
                sha="f" * 40,
                rebaseMergeAllowed=False,
                autoMergeAllowed=True,
                isFork=True,
            ),
        )

        info = asyncio.run(repo_client.repos.discover())

        assert info.default_branch == "develop"
        assert info.default_branch_sha == "f" * 40
        assert info.merge_method == "squash"
        assert info.is_fork is True
        session = repo_client.session
        assert session.default_branch == "develop"
        assert session.merge_method == "squash"
        assert session.auto_merge_allowed is True
        assert session.has_issues_enabled is True
        assert session.is_fork is True

        call = mock_transport.get_calls("GRAPHQL", repo_info_query())[0]
        assert call.kwargs["variables"] == {"owner": "octo", "name": "widgets"}

    def test_ghe_uses_trimmed_query(self, mock_transport: MockTransport) -> None:
        session = RepositorySession("octo/widgets", is_ghe=True)
        mock_transport.configure_query(repo_info_query(is_ghe=True), data=create_repo_info())

        info = asyncio.run(ReposClient(mock_transport, session).discover())

        assert "autoMergeAllowed" not in repo_info_query(is_ghe=True)
        assert "hasIssuesEnabled" not in repo_info_query(is_ghe=True)
        assert info.default_branch == "main"

    @pytest.mark.parametrize(
        "data, expected",
        [
            ({"repository": None}, RepositoryNotFound),
            (create_repo_info(default_branch=None), EmptyRepository),
            (create_repo_info(name_with_owner="octo/gadgets"), RepositoryRenamed),
            (create_repo_info(isArchived=True), RepositoryArchived),
        ],
    )
    def test_unavailable_repository(
        self,
        mock_transport: MockTransport,
        repo_client: RepositoryClient,
        data: dict[str, Any],
        expected: type[Exception],
    ) -> None:
        mock_transport.configure_query(repo_info_query(), data=data)

        with pytest.raises(expected) as exc_info:
            asyncio.run(repo_client.repos.discover())

        assert exc_info.value.repository == "octo/widgets"

    @pytest.mark.parametrize(
        "error, expected",
        [
            (AuthorizationError("HTTP_403", "Forbidden", 403), AccessForbidden),
            (ValidationError("HTTP_451", "Unavailable For Legal Reasons", 451), AccessForbidden),
            (NotFoundError("HTTP_404", "Not Found", 404), RepositoryNotFound),
            (
                ValidationError("HTTP_422", "Repository access blocked", 422),
                RepositoryBlocked,
            ),
        ],
    )
    def test_transport_error_classification(
        self,
        mock_transport: MockTransport,
        repo_client: RepositoryClient,
        error: Exception,
        expected: type[Exception],
    ) -> None:
        mock_transport.configure_query(repo_info_query(), error=error)

        with pytest.raises(expected):
            asyncio.run(repo_client.repos.discover())

    def test_unclassified_error_propagates(
        self, mock_transport: MockTransport, repo_client: RepositoryClient
    ) -> None:
        mock_transport.configure_query(
            repo_info_query(), error=ServerError("HTTP_502", "Bad Gateway", 502)
        )

        with pytest.raises(ServerError):
            asyncio.run(repo_client.repos.discover())

    def test_graphql_errors_without_data(
        self, mock_transport: MockTransport, repo_client: RepositoryClient
    ) -> None:
        mock_transport.configure_query(
            repo_info_query(), data=None, errors=[{"message": "Something went wrong"}]
        )

        with pytest.raises(GraphqlError, match="Something went wrong"):
            asyncio.run(repo_client.repos.discover())


class TestBranchProtection:
    """Tests for ReposClient.get_repo_force_rebase()."""

    def test_strict_checks_force_rebase(
        self, mock_transport: MockTransport, repo_client: RepositoryClient
    ) -> None:
        mock_transport.configure(
            "GET",
            PROTECTION_PATH,
            response={
                "required_pull_request_reviews": {"required_approving_review_count": 1},
                "required_status_checks": {"strict": True, "contexts": []},
                "restrictions": {"users": [], "teams": []},
            },
        )

        assert asyncio.run(repo_client.repos.get_repo_force_rebase()) is True

        session = repo_client.session
        assert session.pr_reviews_required is True
        assert session.push_protection is True

    def test_result_is_cached(
        self, mock_transport: MockTransport, repo_client: RepositoryClient
    ) -> None:
        mock_transport.configure(
            "GET", PROTECTION_PATH, response={"required_status_checks": {"strict": False}}
        )

        assert asyncio.run(repo_client.repos.get_repo_force_rebase()) is False
        assert asyncio.run(repo_client.repos.get_repo_force_rebase()) is False

        assert mock_transport.call_count("GET", PROTECTION_PATH) == 1
        assert repo_client.session.pr_reviews_required is False

    @pytest.mark.parametrize(
        "error",
        [
            NotFoundError("HTTP_404", "Branch not protected", 404),
            AuthorizationError("HTTP_403", "Resource not accessible by integration", 403),
        ],
    )
    def test_unreadable_protection_defaults_to_false(
        self,
        mock_transport: MockTransport,
        repo_client: RepositoryClient,
        error: Exception,
    ) -> None:
        mock_transport.configure("GET", PROTECTION_PATH, error=error)

        assert asyncio.run(repo_client.repos.get_repo_force_rebase()) is False
        assert repo_client.session.pr_reviews_required is False

    def test_other_errors_propagate(
        self, mock_transport: MockTransport, repo_client: RepositoryClient
    ) -> None:
        mock_transport.configure(
            "GET", PROTECTION_PATH, error=ServerError("HTTP_500", "Internal Server Error", 500)
        )

        with pytest.raises(ServerError):
            asyncio.run(repo_client.repos.get_repo_force_rebase())

    def test_fork_mode_skips_protection(self, mock_transport: MockTransport) -> None:
        session = RepositorySession("octo/widgets", fork_mode=True)
        session.default_branch = "main"

        assert asyncio.run(ReposClient(mock_transport, session).get_repo_force_rebase()) is False
        assert not mock_transport.was_called("GET")


class TestFileContents:
    """Tests for get_raw_file() and get_json_file()."""

    def test_raw_file_from_working_repo(
        self, mock_transport: MockTransport, repo_client: RepositoryClient
    ) -> None:
        content = base64.b64encode(b"# widgets\n").decode()
        mock_transport.configure(
            "GET", "repos/octo/widgets/contents/README.md", response={"content": content}
        )

        assert asyncio.run(repo_client.repos.get_raw_file("README.md")) == "# widgets\n"

    def test_raw_file_from_other_repo(
        self, mock_transport: MockTransport, repo_client: RepositoryClient
    ) -> None:
        content = base64.b64encode(b"{}").decode()
        mock_transport.configure(
            "GET", "repos/octo/presets/contents/default.json", response={"content": content}
        )

        raw = asyncio.run(repo_client.repos.get_raw_file("default.json", repo="octo/presets"))

        assert raw == "{}"

    def test_json_file(
        self, mock_transport: MockTransport, repo_client: RepositoryClient
    ) -> None:
        encoded = base64.encodebytes(b'{"extends": ["config:base"]}').decode()
        mock_transport.configure(
            "GET", "repos/octo/widgets/contents/updatebot.json", response={"content": encoded}
        )

        data = asyncio.run(repo_client.repos.get_json_file("updatebot.json"))

        assert data == {"extends": ["config:base"]}

    def test_missing_content(
        self, mock_transport: MockTransport, repo_client: RepositoryClient
    ) -> None:
        mock_transport.configure("GET", "repos/octo/widgets/contents/dir", response={})

        assert asyncio.run(repo_client.repos.get_json_file("dir")) is None

    def test_missing_file_raises(self, repo_client: RepositoryClient) -> None:
        with pytest.raises(NotFoundError):
            asyncio.run(repo_client.repos.get_raw_file("absent.json"))


class TestVulnerabilityAlerts:
    """Tests for get_vulnerability_alerts()."""

    def test_parses_alerts(
        self, mock_transport: MockTransport, repo_client: RepositoryClient
    ) -> None:
        mock_transport.configure_repo_field(
            VULNERABILITY_ALERTS_QUERY,
            nodes=[_alert_edge("lodash"), _alert_edge("minimist", patched=None)],
        )

        alerts = asyncio.run(repo_client.repos.get_vulnerability_alerts())

        assert [a.package_name for a in alerts] == ["lodash", "minimist"]
        assert alerts[0].ecosystem == "NPM"
        assert alerts[0].first_patched_version == "4.17.21"
        assert alerts[0].severity == "HIGH"
        assert alerts[0].manifest_filename == "package.json"
        assert alerts[1].first_patched_version is None

        call = mock_transport.get_calls("GRAPHQL", VULNERABILITY_ALERTS_QUERY)[0]
        assert call.kwargs["paginate"] is False
        assert "vixen-preview" in call.kwargs["headers"]["Accept"]

    def test_no_alerts(self, repo_client: RepositoryClient) -> None:
        assert asyncio.run(repo_client.repos.get_vulnerability_alerts()) == []

    def test_access_error_yields_empty_list(
        self, mock_transport: MockTransport, repo_client: RepositoryClient
    ) -> None:
        mock_transport.configure_repo_field(
            VULNERABILITY_ALERTS_QUERY,
            error=AuthorizationError("HTTP_403", "Resource not accessible", 403),
        )

        assert asyncio.run(repo_client.repos.get_vulnerability_alerts()) == []
