import operator
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from owners_check.ownership.identity import normalize_handle


class ReviewState(Enum):
    APPROVED = "APPROVED"
    CHANGES_REQUESTED = "CHANGES_REQUESTED"
    COMMENTED = "COMMENTED"
    DISMISSED = "DISMISSED"


@dataclass(frozen=True)
class Review:
    reviewer: str
    submitted_at: datetime
    state: ReviewState

    @property
    def is_approved(self) -> bool:
        return self.state == ReviewState.APPROVED

    @property
    def is_comment(self) -> bool:
        return self.state == ReviewState.COMMENTED


def get_reviewer_approvals(
    reviews: Iterable[Review],
    pending_reviewers: Iterable[str],
    author: str,
) -> dict[str, bool]:
    """
    Maps every reviewer to whether their latest review is an approval.

    A comment-only review counts only when the reviewer has no earlier
    approval or rejection. Reviewers with an outstanding review request
    are not approving. The author of the pull request implicitly approves
    the files they own, whatever reviews they left themselves.
    """
    approvals: dict[str, bool] = {}
    for review in sorted(reviews, key=operator.attrgetter("submitted_at")):
        reviewer = normalize_handle(review.reviewer)
        if reviewer not in approvals or not review.is_comment:
            approvals[reviewer] = review.is_approved

    for reviewer in pending_reviewers:
        approvals[normalize_handle(reviewer)] = False

    # TODO: revisit when the author is a bot filing on behalf of someone else
    approvals[normalize_handle(author)] = True
    return approvals
