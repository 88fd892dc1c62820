import logging
import os
import sys
from collections.abc import Callable

import click
import sentry_sdk
from pydantic import ValidationError
from ruamel import yaml
from sentry_sdk.integrations.logging import LoggingIntegration

from owners_check.notifier import OwnersNotifier
from owners_check.owners_bot import OwnersBot
from owners_check.ownership.approval import evaluate
from owners_check.ownership.membership import (
    MembershipResolutionError,
    MembershipSnapshot,
)
from owners_check.ownership.parser import (
    ParseResult,
    build,
)
from owners_check.ownership.sources import (
    OWNERS_FILE_NAME,
    LocalRuleSource,
    RuleSourceError,
)
from owners_check.status import ExitCodes
from owners_check.utils.config import ConfigNotFound
from owners_check.utils.github_api import GithubOwnersApi
from owners_check.utils.output import (
    OUTPUT_FORMATS,
    print_output,
)
from owners_check.utils.runtime.environment import (
    OWNERS_CHECK_CONFIG,
    init_env,
    init_logging,
)
from owners_check.utils.settings import get_settings

# Enable Sentry
if os.getenv("SENTRY_DSN"):
    sentry_sdk.init(
        os.environ["SENTRY_DSN"],
        integrations=[
            LoggingIntegration(event_level=logging.ERROR),
        ],
    )


def config_file(function: Callable) -> Callable:
    help_msg = "Path to configuration file in toml format."
    function = click.option(
        "--config",
        "configfile",
        required=True,
        default=os.environ.get(OWNERS_CHECK_CONFIG),
        help=help_msg,
    )(function)
    return function


def log_level(function: Callable) -> Callable:
    function = click.option(
        "--log-level",
        help="log-level of the command. Defaults to INFO.",
        type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]),
    )(function)
    return function


def dry_run(function: Callable) -> Callable:
    help_msg = (
        "If `true`, it will only print the planned actions "
        "that would be performed, without executing them."
    )

    function = click.option("--dry-run/--no-dry-run", default=False, help=help_msg)(
        function
    )
    return function


def owners_filename(function: Callable) -> Callable:
    function = click.option(
        "--filename",
        default=OWNERS_FILE_NAME,
        show_default=True,
        help="Name of the files holding ownership declarations.",
    )(function)
    return function


def members_file(function: Callable) -> Callable:
    help_msg = (
        "YAML file mapping group references (org/team) to their members. "
        "Groups not listed are reported as unknown."
    )
    function = click.option(
        "--members",
        "members_path",
        type=click.Path(exists=True, dir_okay=False),
        help=help_msg,
    )(function)
    return function


def output(function: Callable) -> Callable:
    function = click.option(
        "--output",
        "-o",
        default="table",
        type=click.Choice(OUTPUT_FORMATS),
    )(function)
    return function


def load_members(members_path: str | None) -> MembershipSnapshot:
    if not members_path:
        return MembershipSnapshot.empty()
    with open(members_path, encoding="utf-8") as f:
        groups = yaml.YAML(typ="safe", pure=True).load(f) or {}
    if not isinstance(groups, dict):
        raise click.BadParameter(
            "members file must map groups to lists of members", param_hint="--members"
        )
    return MembershipSnapshot({g: members or [] for g, members in groups.items()})


def parse_local_tree(
    path: str, filename: str, members_path: str | None
) -> ParseResult:
    source = LocalRuleSource(path, filename=filename)
    try:
        return build(source.list_raw_declarations(), load_members(members_path))
    except RuleSourceError as e:
        sys.stderr.write(str(e) + "\n")
        sys.exit(ExitCodes.ERROR)


@click.group()
@dry_run
@log_level
@click.pass_context
def root(ctx: click.Context, dry_run: bool, log_level: str | None) -> None:
    ctx.ensure_object(dict)
    init_logging(log_level=log_level, dry_run=dry_run)
    ctx.obj["dry_run"] = dry_run


@root.command(short_help="Validates the OWNERS files of a local checkout.")
@click.argument("path", type=click.Path(exists=True, file_okay=False))
@owners_filename
@members_file
@click.option("--print-tree/--no-print-tree", default=False)
def validate(
    path: str, filename: str, members_path: str | None, print_tree: bool
) -> None:
    result = parse_local_tree(path, filename, members_path)
    if print_tree:
        click.echo(result.tree.render())
    for error in result.errors:
        click.echo(str(error), err=True)
    if result.errors:
        sys.exit(ExitCodes.DECLARATION_ERRORS)
    rules = len(result.tree.all_rules())
    click.echo(f"{rules} ownership rules, no errors")


@root.command(short_help="Shows the owners check result for a set of files.")
@click.argument("path", type=click.Path(exists=True, file_okay=False))
@click.argument("files", nargs=-1, required=True)
@click.option(
    "--approved",
    multiple=True,
    help="Handle of a reviewer who approved. Can be given multiple times.",
)
@owners_filename
@members_file
@output
def explain(
    path: str,
    files: tuple[str, ...],
    approved: tuple[str, ...],
    filename: str,
    members_path: str | None,
    output: str,
) -> None:
    result = parse_local_tree(path, filename, members_path)
    coverage = evaluate(result.tree, files, dict.fromkeys(approved, True))

    content = []
    for f in coverage.files:
        if f.ownerless:
            status = "unowned"
        elif f.covered:
            status = "approved"
        else:
            status = "missing approval"
        content.append({
            "file": f.path,
            "status": status,
            "rules": [r.describe() for r in f.eligible_rules or f.rules],
            "approvers": list(f.approvers),
        })
    print_output(
        {"output": output}, content, columns=["file", "status", "rules", "approvers"]
    )
    if coverage.suggested_reviewers:
        click.echo(
            "suggested reviewers: " + ", ".join(coverage.suggested_reviewers)
        )
    if not coverage.passing:
        sys.exit(ExitCodes.CHECK_FAILED)


@root.command(short_help="Runs the owners check on a GitHub pull request.")
@config_file
@click.option("--pr", "pr_number", type=int, required=True, help="Pull request number.")
@click.option(
    "--request-owners/--no-request-owners",
    default=None,
    help="Request reviews from suggested owners. Defaults to the config setting.",
)
@click.pass_context
def run(
    ctx: click.Context,
    configfile: str,
    pr_number: int,
    request_owners: bool | None,
) -> None:
    dry_run = ctx.obj["dry_run"]
    try:
        init_env(config_file=configfile, dry_run=dry_run)
        settings = get_settings()
    except (ConfigNotFound, ValidationError) as e:
        sys.stderr.write(str(e) + "\n")
        sys.exit(ExitCodes.ERROR)

    if request_owners is None:
        request_owners = settings.owners.request_owners

    with GithubOwnersApi(
        repo_url=settings.github.repo,
        token=settings.github.token,
        ref=settings.owners.ref,
        owners_file=settings.owners.filename,
    ) as github:
        bot = OwnersBot(
            rule_source=github,
            team_directory=github,
            pull_requests=github,
            check_runs=github,
            notifier=OwnersNotifier(github),
            ownerless_blocks=settings.owners.ownerless_blocks,
            checkrun_delay=settings.owners.checkrun_delay,
            members_delay=settings.owners.members_delay,
            dry_run=dry_run,
        )
        try:
            bot.refresh_tree(sync_teams=True)
        except (RuleSourceError, MembershipResolutionError) as e:
            sys.stderr.write(str(e) + "\n")
            sys.exit(ExitCodes.ERROR)
        coverage = bot.run_owners_check_on_pr_number(
            pr_number, request_owners=request_owners
        )

    if coverage is not None and not coverage.passing:
        sys.exit(ExitCodes.CHECK_FAILED)
