from dataclasses import dataclass
from typing import Protocol

from owners_check.ownership.reviewers import Review


@dataclass(frozen=True)
class PullRequest:
    """
    Snapshot of the pull request data the owners check works on.
    """

    number: int
    author: str
    head_sha: str
    is_open: bool
    changed_files: tuple[str, ...] = ()
    reviews: tuple[Review, ...] = ()
    pending_reviewers: tuple[str, ...] = ()
    pending_teams: tuple[str, ...] = ()

    def __str__(self) -> str:
        return f"PR #{self.number}"


class PullRequestProvider(Protocol):
    def get_pull_request(self, number: int) -> PullRequest:
        ...
