"""updatebot resource clients.

Each client works on one repository session through the shared transport.
"""

from updatebot.clients.comments import CommentsClient
from updatebot.clients.forks import ForkListingCache, ForksClient
from updatebot.clients.issues import IssuesClient
from updatebot.clients.merge import MergeClient
from updatebot.clients.pulls import PullsClient
from updatebot.clients.repos import ReposClient
from updatebot.clients.statuses import StatusesClient

__all__ = [
    "CommentsClient",
    "ForkListingCache",
    "ForksClient",
    "IssuesClient",
    "MergeClient",
    "PullsClient",
    "ReposClient",
    "StatusesClient",
]
