#!/usr/bin/env python3
"""
Basic updatebot usage example.

Walks one repository pass: platform init, discovery, PR and status reads,
and the dashboard issue reconciliation.
Run with: UPDATEBOT_TOKEN=... python examples/basic_usage.py owner/name
"""

import asyncio
import logging
import sys

from updatebot import GitHubPlatform, RepositoryUnavailable, UpdateBotError
from updatebot.logging import configure_logging

DASHBOARD_TITLE = "Dependency Dashboard"


async def main(repository: str) -> None:
    print("=== updatebot Basic Usage Example ===\n")

    async with GitHubPlatform.from_env() as platform:
        # 1. Validate the token and discover the bot identity
        print("1. Initializing platform...")
        result = await platform.init_platform()
        print(f"   Endpoint: {result.endpoint}")
        print(f"   Username: {result.username}")
        print(f"   Git author: {result.git_author}\n")

        # 2. Start a repository pass
        print(f"2. Initializing {repository}...")
        try:
            repo = await platform.init_repo(repository)
        except RepositoryUnavailable as e:
            print(f"   Skipping repository: {e.code}")
            return
        session = repo.session
        print(f"   Default branch: {session.default_branch}")
        print(f"   Merge method: {session.merge_method}")
        print(f"   Force rebase: {session.repo_force_rebase}\n")

        # 3. Read the bot's pull requests and their CI status
        print("3. Listing bot pull requests...")
        for pr in await repo.pulls.get_pr_list():
            if pr.state != "open":
                continue
            status = await repo.statuses.get_branch_status(pr.source_branch)
            print(f"   {pr.display_number}: {pr.title} [{status}]")
        print()

        # 4. Reconcile the dashboard issue
        print("4. Ensuring dashboard issue...")
        body = platform.massage_markdown("This issue lists the pending dependency updates.")
        outcome = await repo.issues.ensure_issue(DASHBOARD_TITLE, body)
        print(f"   Result: {outcome or 'unchanged'}\n")

    print("=== Done ===")


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print("usage: basic_usage.py owner/name")
        sys.exit(2)
    configure_logging(level=logging.INFO)
    try:
        asyncio.run(main(sys.argv[1]))
    except UpdateBotError as e:
        print(f"Error: {e.code}: {e.message}")
        sys.exit(1)
