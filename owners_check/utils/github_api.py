import base64
import logging
import os
from collections.abc import Sequence
from pathlib import (
    Path,
    PurePosixPath,
)
from types import TracebackType
from urllib.parse import urlparse

from github import (
    Github,
    GithubException,
    UnknownObjectException,
)
from github.PullRequestReview import PullRequestReview
from github.Repository import Repository

from owners_check.ownership.membership import (
    MembershipResolutionError,
    UnknownGroupError,
)
from owners_check.ownership.report import CheckRunOutput
from owners_check.ownership.reviewers import (
    Review,
    ReviewState,
)
from owners_check.ownership.sources import (
    OWNERS_FILE_NAME,
    RawDeclaration,
    RuleSourceError,
)
from owners_check.pull_request import PullRequest

GH_BASE_URL = os.environ.get("GITHUB_API", "https://api.github.com")

MAX_FILE_CONTENT_SIZE = 1024**2  # 1MB

_LOG = logging.getLogger(__name__)


class UnsupportedDirectoryError(Exception):
    pass


class GithubOwnersApi:
    """
    Github client implementing the collaborators of the owners bot: the
    OWNERS rule source, the team directory, the pull request provider,
    the check-run sink and the calls used by the notifier.

    :param repo_url: the Github repository URL
    :param token: auth token for Github
    :param ref: the branch OWNERS files are read from
    :type repo_url: str
    :type token: str
    :type ref: str
    """

    def __init__(
        self,
        repo_url: str,
        token: str,
        ref: str = "main",
        owners_file: str = OWNERS_FILE_NAME,
        timeout: int = 30,
        github: Github | None = None,
    ):
        parsed_repo_url = urlparse(repo_url)
        repo = parsed_repo_url.path.strip("/")

        git_cli = github
        if not git_cli:
            git_cli = Github(token, base_url=GH_BASE_URL, timeout=timeout)
        self._github = git_cli
        self._repo = git_cli.get_repo(repo)
        self._org_name = repo.split("/")[0]
        self._ref = ref
        self._owners_file = owners_file
        self._bot_login: str | None = None

    def __enter__(self) -> "GithubOwnersApi":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.cleanup()

    def __str__(self) -> str:
        return self._repo.html_url

    def cleanup(self) -> None:
        """
        Nothing to release, PyGithub opens a session per request
        """

    # OWNERS files

    def get_repository_tree(
        self,
        *,
        ref: str = "main",
        recursive: bool = False,
    ) -> list[dict[str, str]]:
        tree_items = []
        for item in self._repo.get_git_tree(sha=ref, recursive=recursive).tree:
            tree_item = {"path": item.path, "name": Path(item.path).name}
            tree_items.append(tree_item)
        return tree_items

    @staticmethod
    def get_raw_file(
        repo: Repository,
        path: str,
        ref: str,
    ) -> bytes:
        content = repo.get_contents(path=path, ref=ref)
        if isinstance(content, list):
            raise UnsupportedDirectoryError(
                f"Path {path} of ref {ref} in repo {repo.full_name} is a directory!"
            )
        if content.size < MAX_FILE_CONTENT_SIZE:
            return content.decoded_content
        blob = repo.get_git_blob(content.sha)
        return base64.b64decode(blob.content)

    def get_file(
        self,
        path: str,
        ref: str = "main",
    ) -> bytes | None:
        try:
            return self.get_raw_file(
                repo=self._repo,
                path=path,
                ref=ref,
            )
        except UnsupportedDirectoryError:
            return None
        except UnknownObjectException:
            return None

    def list_raw_declarations(self) -> list[RawDeclaration]:
        declarations = []
        try:
            repo_tree = self.get_repository_tree(ref=self._ref, recursive=True)
            owner_files = [
                item for item in repo_tree if item["name"] == self._owners_file
            ]
            for owner_file in owner_files:
                raw_owners = self.get_file(path=owner_file["path"], ref=self._ref)
                if raw_owners is None:
                    _LOG.warning(f"{self!s}:{owner_file['path']} not found")
                    continue
                declarations.append(
                    RawDeclaration(
                        path=str(PurePosixPath(owner_file["path"]).parent),
                        text=raw_owners.decode("utf-8"),
                    )
                )
        except (GithubException, UnicodeDecodeError) as e:
            raise RuleSourceError(
                f"unable to read {self._owners_file} files from {self!s}: {e}"
            ) from e
        return declarations

    # teams

    def list_groups(self) -> list[str]:
        try:
            org = self._github.get_organization(self._org_name)
            return sorted(f"{org.login}/{team.slug}" for team in org.get_teams())
        except GithubException as e:
            raise MembershipResolutionError(
                f"unable to list teams of {self._org_name}: {e}"
            ) from e

    def members_of(self, group: str) -> set[str]:
        org_name, _, slug = group.partition("/")
        try:
            team = self._github.get_organization(org_name).get_team_by_slug(slug)
            return {member.login for member in team.get_members()}
        except UnknownObjectException as e:
            raise UnknownGroupError(f"unknown group {group}") from e
        except GithubException as e:
            raise MembershipResolutionError(
                f"unable to fetch members of {group}: {e}"
            ) from e

    # pull requests

    @staticmethod
    def _review(review: PullRequestReview) -> Review | None:
        try:
            state = ReviewState(review.state)
        except ValueError:
            # pending reviews have not been submitted yet
            return None
        if review.user is None or review.submitted_at is None:
            return None
        return Review(
            reviewer=review.user.login,
            submitted_at=review.submitted_at,
            state=state,
        )

    def get_pull_request(self, number: int) -> PullRequest:
        pull = self._repo.get_pull(number)
        users, teams = pull.get_review_requests()
        reviews = [self._review(r) for r in pull.get_reviews()]
        return PullRequest(
            number=pull.number,
            author=pull.user.login,
            head_sha=pull.head.sha,
            is_open=pull.state == "open",
            changed_files=tuple(f.filename for f in pull.get_files()),
            reviews=tuple(r for r in reviews if r is not None),
            pending_reviewers=tuple(user.login for user in users),
            pending_teams=tuple(f"{self._org_name}/{team.slug}" for team in teams),
        )

    # check-runs

    def get_check_run_id(self, head_sha: str, name: str) -> int | None:
        commit = self._repo.get_commit(sha=head_sha)
        for check_run in commit.get_check_runs(check_name=name):
            return check_run.id
        return None

    def create_check_run(self, head_sha: str, output: CheckRunOutput) -> None:
        self._repo.create_check_run(
            name=output.name,
            head_sha=head_sha,
            status="completed",
            conclusion=output.conclusion.value,
            output=output.as_github_output(),
        )

    def update_check_run(self, check_run_id: int, output: CheckRunOutput) -> None:
        check_run = self._repo.get_check_run(check_run_id)
        check_run.edit(
            status="completed",
            conclusion=output.conclusion.value,
            output=output.as_github_output(),
        )

    # notifications

    @property
    def bot_login(self) -> str:
        if self._bot_login is None:
            self._bot_login = self._github.get_user().login
        return self._bot_login

    def request_reviewers(self, pr_number: int, reviewers: Sequence[str]) -> None:
        self._repo.get_pull(pr_number).create_review_request(reviewers=list(reviewers))

    def get_bot_comments(self, pr_number: int) -> list[dict]:
        return [
            {"id": comment.id, "body": comment.body}
            for comment in self._repo.get_issue(pr_number).get_comments()
            if comment.user is not None and comment.user.login == self.bot_login
        ]

    def create_comment(self, pr_number: int, body: str) -> None:
        self._repo.get_issue(pr_number).create_comment(body)

    def update_comment(self, pr_number: int, comment_id: int, body: str) -> None:
        self._repo.get_issue(pr_number).get_comment(comment_id).edit(body)
