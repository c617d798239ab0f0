"""Issue and comment data models."""

from dataclasses import dataclass
from typing import Literal

EnsureIssueResult = Literal["created", "updated"]


@dataclass
class Issue:
    """Issue information. List views leave ``body`` unset."""

    number: int
    title: str | None = None
    state: str | None = None  # "open" or "closed"
    body: str | None = None


@dataclass
class Comment:
    """Issue or pull request comment."""

    id: int
    body: str
