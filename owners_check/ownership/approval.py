from collections import defaultdict
from collections.abc import (
    Collection,
    Iterable,
    Mapping,
)
from dataclasses import dataclass

from owners_check.ownership.identity import normalize_handle
from owners_check.ownership.rules import (
    OwnerRule,
    canonical_path,
)
from owners_check.ownership.tree import OwnersTree

ReviewerApprovalMap = Mapping[str, bool]


@dataclass(frozen=True)
class FileCoverage:
    """
    Ownership status of one changed file.

    ``rules`` is the full rule chain (root first), ``eligible_rules`` the
    rules that were allowed to approve the file (most specific first,
    stopping at the first rule that blocks its parents) and
    ``satisfied_by`` the rule whose owners approved the file, if any.
    """

    path: str
    rules: tuple[OwnerRule, ...]
    eligible_rules: tuple[OwnerRule, ...]
    satisfied_by: OwnerRule | None = None
    approvers: tuple[str, ...] = ()

    @property
    def ownerless(self) -> bool:
        return not self.rules

    @property
    def covered(self) -> bool:
        return self.satisfied_by is not None


@dataclass(frozen=True)
class ReviewerSuggestion:
    reviewer: str
    files: tuple[str, ...]


@dataclass(frozen=True)
class CoverageResult:
    files: tuple[FileCoverage, ...]
    passing: bool
    suggestions: tuple[ReviewerSuggestion, ...] = ()

    @property
    def suggested_reviewers(self) -> list[str]:
        return [s.reviewer for s in self.suggestions]

    @property
    def reviewers_to_request(self) -> list[str]:
        return pick_reviewers(self.suggestions)

    @property
    def covered_files(self) -> list[FileCoverage]:
        return [f for f in self.files if f.covered]

    @property
    def uncovered_files(self) -> list[FileCoverage]:
        return [f for f in self.files if not f.covered and not f.ownerless]

    @property
    def ownerless_files(self) -> list[FileCoverage]:
        return [f for f in self.files if f.ownerless]


def _approving_handles(
    tree: OwnersTree, rule: OwnerRule, approved: Collection[str]
) -> set[str]:
    handles: set[str] = set()
    for owner in rule.owners:
        handles.update(h for h in tree.membership.expand(owner) if h in approved)
    return handles


def _eligible_handles(tree: OwnersTree, rules: Iterable[OwnerRule]) -> set[str]:
    handles: set[str] = set()
    for rule in rules:
        for owner in rule.owners:
            handles.update(tree.membership.expand(owner))
    return handles


def file_coverage(
    tree: OwnersTree, file_path: str, approved: Collection[str]
) -> FileCoverage:
    """
    Walks the rule levels of a file from the most specific directory up.
    The first level with a rule approved by enough distinct owners covers
    the file. A level that is not satisfied ends the walk when one of its
    rules does not allow falling back to the parent directories.
    """
    eligible: list[OwnerRule] = []
    for level in tree.rule_levels(file_path):
        eligible.extend(level)
        for rule in level:
            approvers = _approving_handles(tree, rule, approved)
            if len(approvers) >= rule.required_count:
                return FileCoverage(
                    path=file_path,
                    rules=tree.rules_for(file_path),
                    eligible_rules=tuple(eligible),
                    satisfied_by=rule,
                    approvers=tuple(sorted(approvers)),
                )
        if not all(rule.allow_fallback for rule in level):
            break

    return FileCoverage(
        path=file_path,
        rules=tree.rules_for(file_path),
        eligible_rules=tuple(eligible),
    )


def suggest_reviewers(
    tree: OwnersTree,
    uncovered: Iterable[FileCoverage],
    excluded: Collection[str],
) -> tuple[ReviewerSuggestion, ...]:
    """
    Ranks the owners who could still help cover the uncovered files by the
    number of files they are eligible for, ties broken by handle.
    """
    candidates: dict[str, list[str]] = defaultdict(list)
    for coverage in uncovered:
        for handle in _eligible_handles(tree, coverage.eligible_rules):
            if handle not in excluded:
                candidates[handle].append(coverage.path)

    ranked = sorted(candidates.items(), key=lambda c: (-len(c[1]), c[0]))
    return tuple(
        ReviewerSuggestion(reviewer=handle, files=tuple(files))
        for handle, files in ranked
    )


def pick_reviewers(suggestions: Iterable[ReviewerSuggestion]) -> list[str]:
    """
    Greedily picks the candidate eligible for the most files still lacking
    a reviewer, ties broken by handle, until every suggested file has one.
    """
    candidates = {s.reviewer: set(s.files) for s in suggestions}
    remaining = set().union(*candidates.values())
    picked: list[str] = []
    while remaining:
        reviewer = min(
            candidates, key=lambda c: (-len(candidates[c] & remaining), c)
        )
        picked.append(reviewer)
        remaining -= candidates.pop(reviewer)
    return picked


def evaluate(
    tree: OwnersTree,
    changed_files: Iterable[str],
    reviewer_approvals: ReviewerApprovalMap,
    requested_reviewers: Collection[str] = (),
    ownerless_blocks: bool = False,
) -> CoverageResult:
    approved = frozenset(
        normalize_handle(r)
        for r, is_approved in reviewer_approvals.items()
        if is_approved
    )

    files: list[FileCoverage] = []
    seen: set[str] = set()
    for changed_file in changed_files:
        path = canonical_path(changed_file)
        if path in seen:
            continue
        seen.add(path)
        files.append(file_coverage(tree, path, approved))

    passing = all(
        f.covered or (f.ownerless and not ownerless_blocks) for f in files
    )
    uncovered = [f for f in files if not f.covered and not f.ownerless]
    requested = {normalize_handle(r) for r in requested_reviewers}
    suggestions = suggest_reviewers(tree, uncovered, excluded=approved | requested)
    return CoverageResult(files=tuple(files), passing=passing, suggestions=suggestions)
