import logging
import threading
import time
from collections.abc import (
    Callable,
    Iterator,
    Sequence,
)
from contextlib import contextmanager
from typing import Protocol

from owners_check.ownership.approval import (
    CoverageResult,
    ReviewerApprovalMap,
    evaluate,
)
from owners_check.ownership.membership import (
    MembershipSnapshot,
    TeamDirectory,
    sync_membership,
)
from owners_check.ownership.parser import (
    ParseResult,
    build,
)
from owners_check.ownership.report import (
    OWNERS_CHECKRUN_NAME,
    CheckRunOutput,
    format_coverage,
)
from owners_check.ownership.reviewers import get_reviewer_approvals
from owners_check.ownership.sources import RuleSource
from owners_check.ownership.tree import OwnersTree
from owners_check.pull_request import (
    PullRequest,
    PullRequestProvider,
)

GITHUB_CHECKRUN_DELAY = 2.0
GITHUB_GET_MEMBERS_DELAY = 1.0

_LOG = logging.getLogger(__name__)


class RefreshInProgressError(Exception):
    pass


class CheckRunSink(Protocol):
    def get_check_run_id(self, head_sha: str, name: str) -> int | None:
        ...

    def create_check_run(self, head_sha: str, output: CheckRunOutput) -> None:
        ...

    def update_check_run(self, check_run_id: int, output: CheckRunOutput) -> None:
        ...


class NotificationSink(Protocol):
    def notify(
        self,
        pr: PullRequest,
        reviewer_approvals: ReviewerApprovalMap,
        tree: OwnersTree,
        changed_files: Sequence[str],
        suggested_reviewers: Sequence[str],
    ) -> None:
        ...


class OwnersBot:
    """
    Keeps the published owners tree up to date and runs the owners check
    on pull requests, creating or updating the check-run.

    Refreshes are serialized: a new tree is only published once it has
    been built completely, so a failed or interrupted refresh leaves the
    previous tree in force. Checks read whichever tree is published when
    they start and never modify it.
    """

    def __init__(
        self,
        rule_source: RuleSource,
        team_directory: TeamDirectory,
        pull_requests: PullRequestProvider,
        check_runs: CheckRunSink,
        notifier: NotificationSink,
        ownerless_blocks: bool = False,
        checkrun_delay: float = GITHUB_CHECKRUN_DELAY,
        members_delay: float = GITHUB_GET_MEMBERS_DELAY,
        sleep: Callable[[float], None] = time.sleep,
        dry_run: bool = False,
    ):
        self.rule_source = rule_source
        self.team_directory = team_directory
        self.pull_requests = pull_requests
        self.check_runs = check_runs
        self.notifier = notifier
        self.ownerless_blocks = ownerless_blocks
        self.checkrun_delay = checkrun_delay
        self.members_delay = members_delay
        self.sleep = sleep
        self.dry_run = dry_run

        self.membership = MembershipSnapshot.empty()
        self.tree_parse = ParseResult.empty()
        self._refresh_lock = threading.Lock()

    @property
    def tree(self) -> OwnersTree:
        return self.tree_parse.tree

    @contextmanager
    def _exclusive(self) -> Iterator[None]:
        if not self._refresh_lock.acquire(blocking=False):
            raise RefreshInProgressError("an owners tree refresh is already running")
        try:
            yield
        finally:
            self._refresh_lock.release()

    def sync_teams(self) -> MembershipSnapshot:
        """
        Fetches the member list of every team, spaced out to avoid hitting
        rate limits, and substitutes the membership snapshot.
        """
        with self._exclusive():
            _LOG.info("Syncing team memberships")
            self.membership = sync_membership(
                self.team_directory, self.sleep, self.members_delay
            )
            return self.membership

    def sync_team(self, group: str) -> MembershipSnapshot:
        with self._exclusive():
            members = self.team_directory.members_of(group)
            self.membership = self.membership.with_group(group, members)
            return self.membership

    def refresh_tree(self, sync_teams: bool = False) -> ParseResult:
        with self._exclusive():
            _LOG.info("Refreshing owners tree")
            membership = self.membership
            if sync_teams:
                _LOG.info("Syncing team memberships")
                membership = sync_membership(
                    self.team_directory, self.sleep, self.members_delay
                )
            declarations = self.rule_source.list_raw_declarations()
            tree_parse = build(declarations, membership)
            for error in tree_parse.errors:
                _LOG.warning(str(error))
            self.membership = membership
            self.tree_parse = tree_parse
            return tree_parse

    def _requested_reviewers(self, pr: PullRequest, tree: OwnersTree) -> set[str]:
        requested = set(pr.pending_reviewers)
        for team in pr.pending_teams:
            if team in tree.membership:
                requested.update(tree.membership.members_of(team))
        return requested

    def run_owners_check(
        self, pr: PullRequest, request_owners: bool = False
    ) -> CoverageResult | None:
        if not pr.is_open:
            _LOG.info(f"{pr} is not open, skipping owners check")
            return None

        tree_parse = self.tree_parse
        tree = tree_parse.tree
        reviewers = get_reviewer_approvals(pr.reviews, pr.pending_reviewers, pr.author)
        coverage = evaluate(
            tree,
            pr.changed_files,
            reviewers,
            requested_reviewers=self._requested_reviewers(pr, tree),
            ownerless_blocks=self.ownerless_blocks,
        )
        for f in coverage.ownerless_files:
            _LOG.warning(f"{pr}: {f.path} has no owners")
        output = format_coverage(coverage, tree_parse.errors)

        check_run_id = self.check_runs.get_check_run_id(
            pr.head_sha, OWNERS_CHECKRUN_NAME
        )
        if check_run_id:
            _LOG.info(
                f"{pr}: updating check-run {check_run_id} ({output.conclusion.value})"
            )
            if not self.dry_run:
                self.check_runs.update_check_run(check_run_id, output)
        else:
            _LOG.info(f"{pr}: creating check-run ({output.conclusion.value})")
            if not self.dry_run:
                # the check-run is rejected when created right after the
                # pull request was opened or pushed to
                self.sleep(self.checkrun_delay)
                self.check_runs.create_check_run(pr.head_sha, output)

        suggested_reviewers = coverage.reviewers_to_request if request_owners else []
        if self.dry_run:
            _LOG.info(f"{pr}: would notify, suggested reviewers {suggested_reviewers}")
        else:
            self.notifier.notify(
                pr, reviewers, tree, pr.changed_files, suggested_reviewers
            )
        return coverage

    def run_owners_check_on_pr_number(
        self, pr_number: int, request_owners: bool = False
    ) -> CoverageResult | None:
        pr = self.pull_requests.get_pull_request(pr_number)
        return self.run_owners_check(pr, request_owners=request_owners)
