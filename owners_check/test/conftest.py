from datetime import (
    datetime,
    timedelta,
)
from unittest.mock import MagicMock

import pytest

from owners_check.ownership.reviewers import (
    Review,
    ReviewState,
)
from owners_check.pull_request import PullRequest


@pytest.fixture
def sleep() -> MagicMock:
    return MagicMock()


@pytest.fixture
def review_factory():
    start = datetime(2024, 1, 1, 12, 0, 0)

    def _review(reviewer: str, state: ReviewState, minutes: int = 0) -> Review:
        return Review(
            reviewer=reviewer,
            submitted_at=start + timedelta(minutes=minutes),
            state=state,
        )

    return _review


@pytest.fixture
def pull_request() -> PullRequest:
    return PullRequest(
        number=42,
        author="carol",
        head_sha="abc123",
        is_open=True,
        changed_files=("lib/x.js", "README.md"),
    )
