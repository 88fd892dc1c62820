import logging
from collections.abc import Sequence
from typing import Protocol

from owners_check.ownership.approval import ReviewerApprovalMap
from owners_check.ownership.identity import normalize_handle
from owners_check.ownership.tree import OwnersTree
from owners_check.pull_request import PullRequest

COMMENT_PREFIX = "[OWNERS]"

_LOG = logging.getLogger(__name__)


class NotifierApi(Protocol):
    def request_reviewers(self, pr_number: int, reviewers: Sequence[str]) -> None:
        ...

    def get_bot_comments(self, pr_number: int) -> list[dict]:
        ...

    def create_comment(self, pr_number: int, body: str) -> None:
        ...

    def update_comment(self, pr_number: int, comment_id: int, body: str) -> None:
        ...


class OwnersNotifier:
    """
    Requests reviews from suggested owners and keeps a single comment on
    the pull request mentioning everyone who asked to be notified about
    changes to the files it touches.
    """

    def __init__(self, github: NotifierApi):
        self.github = github

    def notify(
        self,
        pr: PullRequest,
        reviewer_approvals: ReviewerApprovalMap,
        tree: OwnersTree,
        changed_files: Sequence[str],
        suggested_reviewers: Sequence[str],
    ) -> None:
        skipped = {normalize_handle(pr.author)}
        skipped.update(
            normalize_handle(reviewer)
            for reviewer, approved in reviewer_approvals.items()
            if approved
        )
        reviewers = [
            r for r in suggested_reviewers if normalize_handle(r) not in skipped
        ]
        if reviewers:
            _LOG.info(f"{pr}: requesting reviews from {', '.join(reviewers)}")
            self.github.request_reviewers(pr.number, reviewers)

        watchers = self.get_watchers(tree, changed_files, pr.author)
        self.update_watcher_comment(pr, watchers)

    @staticmethod
    def get_watchers(
        tree: OwnersTree, changed_files: Sequence[str], author: str
    ) -> dict[str, list[str]]:
        watchers: dict[str, list[str]] = {}
        for changed_file in changed_files:
            for rule in tree.rules_for(changed_file):
                for identity in rule.reviewers:
                    if identity.name == normalize_handle(author):
                        continue
                    files = watchers.setdefault(identity.name, [])
                    if changed_file not in files:
                        files.append(changed_file)
        return watchers

    @staticmethod
    def format_comment(watchers: dict[str, list[str]]) -> str:
        if not watchers:
            return ""
        lines = [f"{COMMENT_PREFIX} Hey, these files were changed:", ""]
        for watcher in sorted(watchers):
            lines.append(f"* @{watcher}")
            lines.extend(f"  * {f}" for f in watchers[watcher])
        return "\n".join(lines)

    def update_watcher_comment(
        self, pr: PullRequest, watchers: dict[str, list[str]]
    ) -> None:
        body = self.format_comment(watchers)
        if not body:
            return

        for comment in self.github.get_bot_comments(pr.number):
            if not comment["body"].startswith(COMMENT_PREFIX):
                continue
            if comment["body"] == body:
                _LOG.debug(f"{pr}: notification comment is up to date")
                return
            _LOG.info(f"{pr}: updating notification comment")
            self.github.update_comment(pr.number, comment["id"], body)
            return

        _LOG.info(f"{pr}: creating notification comment")
        self.github.create_comment(pr.number, body)
