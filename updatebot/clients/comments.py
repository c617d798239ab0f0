"""Comments resource client.

Comments are addressed either by topic (a ``### <topic>`` heading that the
bot owns and rewrites) or by exact content.
"""

from typing import TYPE_CHECKING

from updatebot.exceptions import ApiError, HostError, NotFoundError
from updatebot.logging import get_logger
from updatebot.types.issues import Comment

if TYPE_CHECKING:
    from updatebot.clients.pulls import PullsClient
    from updatebot.session import RepositorySession
    from updatebot.transport import AsyncGitHubTransport

logger = get_logger("comments")


def topic_header(topic: str) -> str:
    return f"### {topic}\n\n"


class CommentsClient:
    """Client for issue and pull request comments."""

    def __init__(
        self,
        transport: "AsyncGitHubTransport",
        session: "RepositorySession",
        pulls: "PullsClient",
    ) -> None:
        """
        Initialize the comments client.

        Args:
            transport: GitHub transport for making requests
            session: Session state of the repository being processed
            pulls: Pulls client, whose closed-PR cache already holds comments
        """
        self.transport = transport
        self.session = session
        self.pulls = pulls

    def _comments_path(self, number: int) -> str:
        return f"repos/{self.session.target_repo}/issues/{number}/comments"

    def _comment_path(self, comment_id: int) -> str:
        return f"repos/{self.session.target_repo}/issues/comments/{comment_id}"

    async def _cached_comments(self, number: int) -> list[Comment] | None:
        closed_pr = (await self.pulls.get_closed_prs()).get(number)
        return None if closed_pr is None else closed_pr.comments

    async def get_comments(self, number: int) -> list[Comment]:
        """
        List the comments of an issue or pull request.

        Closed PRs answer from the session cache, which the mutations below
        keep current; everything else is read fresh so repeated
        reconciliation sees its own writes.

        Raises:
            HostError: When the issue is not found
        """
        cached = await self._cached_comments(number)
        if cached is not None:
            logger.debug("Returning closed PR list comments")
            return cached
        try:
            data = await self.transport.get_json(
                f"{self._comments_path(number)}?per_page=100", paginate=True
            )
        except NotFoundError as err:
            logger.debug("Error getting comments for #%d: %s", number, err)
            raise HostError(err) from err
        comments = [Comment(id=c["id"], body=c["body"]) for c in data or []]
        logger.debug("Found %d comments on #%d", len(comments), number)
        return comments

    async def add_comment(self, number: int, body: str) -> Comment:
        data = await self.transport.post_json(self._comments_path(number), body={"body": body})
        data = data or {}
        comment = Comment(id=data.get("id", 0), body=data.get("body", body))
        cached = await self._cached_comments(number)
        if cached is not None:
            cached.append(comment)
        return comment

    async def edit_comment(self, number: int, comment_id: int, body: str) -> None:
        await self.transport.patch_json(self._comment_path(comment_id), body={"body": body})
        for comment in await self._cached_comments(number) or []:
            if comment.id == comment_id:
                comment.body = body

    async def delete_comment(self, number: int, comment_id: int) -> None:
        await self.transport.delete_json(self._comment_path(comment_id))
        cached = await self._cached_comments(number)
        if cached is not None:
            cached[:] = [c for c in cached if c.id != comment_id]

    async def ensure_comment(
        self, number: int, content: str, topic: str | None = None
    ) -> bool:
        """
        Make sure a comment exists, creating or rewriting it as needed.

        With a topic, the comment is ``### <topic>`` followed by the content
        and an outdated topic comment is edited in place. Without one, a
        comment with exactly this content is created unless present.

        Returns:
            True when the comment is in place, False on a swallowed failure

        Raises:
            HostError: When the comments cannot be listed
        """
        body = self.session.sanitize(content) or ""
        try:
            comments = await self.get_comments(number)
            comment_id: int | None = None
            needs_update = False
            if topic:
                header = topic_header(topic)
                body = header + body
                for comment in comments:
                    if comment.body.startswith(header):
                        comment_id = comment.id
                        needs_update = comment.body != body
            else:
                for comment in comments:
                    if comment.body == body:
                        comment_id = comment.id
                        needs_update = False

            if comment_id is None:
                await self.add_comment(number, body)
                logger.info("Comment added to #%d (topic=%s)", number, topic)
            elif needs_update:
                await self.edit_comment(number, comment_id, body)
                logger.debug("Comment updated on #%d (topic=%s)", number, topic)
            else:
                logger.debug("Comment is already up to date on #%d", number)
            return True
        except ApiError as err:
            if "is locked" in err.message:
                logger.debug("Issue #%d is locked - cannot add comment", number)
            else:
                logger.warning("Error ensuring comment on #%d: %s", number, err)
            return False

    async def ensure_comment_removal(
        self,
        number: int,
        topic: str | None = None,
        content: str | None = None,
    ) -> None:
        """
        Delete the first comment addressed by topic, or else by content.

        A content match compares against the comment body with surrounding
        whitespace trimmed. Deletion failures are logged, not raised.
        """
        logger.debug("ensure_comment_removal(#%d, topic=%s)", number, topic)
        comments = await self.get_comments(number)
        if topic:
            header = topic_header(topic)
            match = next((c for c in comments if c.body.startswith(header)), None)
        elif content is not None:
            match = next((c for c in comments if c.body.strip() == content), None)
        else:
            match = None
        if match is None:
            return
        try:
            await self.delete_comment(number, match.id)
            logger.debug("Removed comment %d from #%d", match.id, number)
        except ApiError as err:
            logger.warning("Error deleting comment %d: %s", match.id, err)
