from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

from owners_check.ownership.approval import CoverageResult
from owners_check.ownership.parser import ParseError
from owners_check.ownership.rules import OwnerRule
from owners_check.utils.output import format_table

OWNERS_CHECKRUN_NAME = "owners-check"


class CheckConclusion(Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    NEUTRAL = "neutral"


@dataclass(frozen=True)
class CheckRunOutput:
    name: str
    conclusion: CheckConclusion
    title: str
    summary: str
    text: str
    suggested_reviewers: tuple[str, ...] = ()

    def as_github_output(self) -> dict[str, str]:
        return {"title": self.title, "summary": self.summary, "text": self.text}


def _conclusion(coverage: CoverageResult) -> CheckConclusion:
    if not coverage.passing:
        return CheckConclusion.FAILURE
    if not coverage.covered_files:
        return CheckConclusion.NEUTRAL
    return CheckConclusion.SUCCESS


def _summary(coverage: CoverageResult, conclusion: CheckConclusion) -> str:
    unowned = [f.path for f in coverage.ownerless_files]
    if conclusion == CheckConclusion.NEUTRAL:
        summary = "No owned files were changed."
    elif conclusion == CheckConclusion.SUCCESS:
        summary = (
            "All owned files in this PR have OWNERS approval."
            if unowned
            else "All files in this PR have OWNERS approval."
        )
    else:
        summary = "Missing required OWNERS approvals!"
        reviewers = coverage.reviewers_to_request
        if reviewers:
            summary += " Suggested reviewers: " + ", ".join(reviewers) + "."
        elif coverage.uncovered_files:
            summary += " No eligible reviewers are left to request."
    if unowned:
        summary += " Unowned files: " + ", ".join(unowned) + "."
    return summary


def _owners(rule: OwnerRule) -> str:
    return ", ".join(o.name for o in rule.owners)


def _coverage_section(coverage: CoverageResult) -> list[str]:
    approved_by_rule: dict[OwnerRule, list[str]] = defaultdict(list)
    rule_approvers: dict[OwnerRule, tuple[str, ...]] = {}
    for f in coverage.files:
        if f.satisfied_by is None:
            continue
        approved_by_rule[f.satisfied_by].append(f.path)
        rule_approvers[f.satisfied_by] = f.approvers

    lines = ["### Current coverage", ""]
    if not approved_by_rule:
        lines.append("No files have OWNERS approval yet.")
    for rule, paths in approved_by_rule.items():
        lines.append(
            f"- **{rule.source}** approved by {', '.join(rule_approvers[rule])}"
        )
        lines.extend(f"  - {path}" for path in paths)
    return lines


def _missing_section(coverage: CoverageResult) -> list[str]:
    if not coverage.uncovered_files:
        return []
    lines = ["", "### Missing approval", ""]
    for f in coverage.uncovered_files:
        lines.append(f"- {f.path}")
        for rule in f.eligible_rules:
            required = (
                f" ({rule.required_count} required)" if rule.required_count > 1 else ""
            )
            lines.append(f"  - {rule.source}: {_owners(rule)}{required}")
    return lines


def _ownerless_section(coverage: CoverageResult) -> list[str]:
    if not coverage.ownerless_files:
        return []
    lines = ["", "### Unowned files", ""]
    lines.extend(f"- {f.path}" for f in coverage.ownerless_files)
    return lines


def _suggestions_section(coverage: CoverageResult) -> list[str]:
    if not coverage.suggestions:
        return []
    table = format_table(
        [{"reviewer": s.reviewer, "files": len(s.files)} for s in coverage.suggestions],
        ["reviewer", "files"],
        table_format="github",
    )
    return ["", "### Suggested reviewers", "", table]


def _errors_section(parse_errors: Iterable[ParseError]) -> list[str]:
    errors = list(parse_errors)
    if not errors:
        return []
    lines = ["", "### OWNERS declaration errors", ""]
    lines.extend(f"- `{e.location}`: {e.message}" for e in errors)
    return lines


def format_coverage(
    coverage: CoverageResult,
    parse_errors: Iterable[ParseError] = (),
) -> CheckRunOutput:
    conclusion = _conclusion(coverage)
    text = "\n".join(
        _coverage_section(coverage)
        + _missing_section(coverage)
        + _ownerless_section(coverage)
        + _suggestions_section(coverage)
        + _errors_section(parse_errors)
    )
    return CheckRunOutput(
        name=OWNERS_CHECKRUN_NAME,
        conclusion=conclusion,
        title=f"{OWNERS_CHECKRUN_NAME}: {conclusion.value}",
        summary=_summary(coverage, conclusion),
        text=text,
        suggested_reviewers=tuple(coverage.reviewers_to_request),
    )
