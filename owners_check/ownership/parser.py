import logging
from collections.abc import (
    Iterable,
    Mapping,
)
from dataclasses import dataclass
from typing import Any

from pydantic import (
    BaseModel,
    Extra,
    Field,
    ValidationError,
)
from ruamel import yaml
from ruamel.yaml.error import YAMLError

from owners_check.ownership.identity import (
    InvalidIdentityError,
    OwnerIdentity,
    parse_identity,
)
from owners_check.ownership.membership import (
    CachingMembershipResolver,
    MembershipResolutionError,
    MembershipResolver,
)
from owners_check.ownership.rules import (
    ROOT_PATH,
    InvalidPathError,
    OwnerRule,
    canonical_path,
)
from owners_check.ownership.sources import (
    OWNERS_FILE_NAME,
    RawDeclaration,
)
from owners_check.ownership.tree import (
    OwnersTree,
    OwnersTreeBuilder,
)

_LOG = logging.getLogger(__name__)

TOP_LEVEL_KEYS = ("approvers", "reviewers", "options", "rules")


class OwnersRuleV1(BaseModel):
    owners: list[str]
    pattern: str | None = None
    required: int = Field(1, ge=1)
    fallback: bool | None = None
    reviewers: list[str] = []

    class Config:
        extra = Extra.forbid


class OwnersOptionsV1(BaseModel):
    no_parent_owners: bool = False

    class Config:
        extra = Extra.forbid


@dataclass(frozen=True)
class ParseError:
    location: str
    message: str

    def __str__(self) -> str:
        return f"{self.location}: {self.message}"


@dataclass(frozen=True)
class ParseResult:
    errors: tuple[ParseError, ...]
    tree: OwnersTree

    @classmethod
    def empty(cls) -> "ParseResult":
        return cls(errors=(), tree=OwnersTree.empty())


def _format_validation_error(e: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(loc) for loc in err['loc'])}: {err['msg']}"
        for err in e.errors()
    )


class OwnersParser:
    """
    Turns raw OWNERS declarations into an OwnersTree.

    Malformed entries never abort the parse: each one is recorded as a
    ParseError and skipped, leaving a partial but usable tree.
    """

    def __init__(self, membership_resolver: MembershipResolver):
        self._resolver = CachingMembershipResolver(membership_resolver)
        self._errors: list[ParseError] = []

    def _error(self, location: str, message: str) -> None:
        self._errors.append(ParseError(location=location, message=message))

    def parse(self, declarations: Iterable[RawDeclaration]) -> ParseResult:
        builder = OwnersTreeBuilder()

        canonical = []
        for declaration in declarations:
            try:
                path = canonical_path(declaration.path)
            except InvalidPathError as e:
                self._error(declaration.path, str(e))
                continue
            canonical.append(RawDeclaration(path=path, text=declaration.text))

        for declaration in sorted(canonical, key=lambda d: d.path):
            rules = self.parse_declaration(declaration)
            if rules:
                builder.add_rules(declaration.path, rules)

        return ParseResult(
            errors=tuple(self._errors),
            tree=builder.build(self._resolver.snapshot()),
        )

    def parse_declaration(self, declaration: RawDeclaration) -> list[OwnerRule]:
        location = (
            OWNERS_FILE_NAME
            if declaration.path == ROOT_PATH
            else f"{declaration.path}/{OWNERS_FILE_NAME}"
        )
        try:
            content = yaml.YAML(typ="safe", pure=True).load(declaration.text)
        except YAMLError as e:
            self._error(location, f"unable to parse YAML: {e}")
            return []

        if content is None:
            self._error(location, "file is empty")
            return []
        if not isinstance(content, Mapping):
            self._error(location, "content is not a dictionary")
            return []

        for key in content:
            if key not in TOP_LEVEL_KEYS:
                self._error(location, f"unknown key {key!r}")

        try:
            options = OwnersOptionsV1.parse_obj(content.get("options") or {})
        except ValidationError as e:
            self._error(f"{location}:options", _format_validation_error(e))
            options = OwnersOptionsV1()
        allow_fallback = not options.no_parent_owners

        rules = []
        if "approvers" in content:
            rule = self._shorthand_rule(
                location, declaration.path, content, allow_fallback
            )
            if rule:
                rules.append(rule)
        elif "reviewers" in content:
            self._error(location, "reviewers are declared without approvers")

        raw_rules = content.get("rules") or []
        if not isinstance(raw_rules, list):
            self._error(f"{location}:rules", "rules must be a list")
            raw_rules = []
        for i, raw_rule in enumerate(raw_rules):
            rule = self._rule(
                f"{location}:rules[{i}]", declaration.path, raw_rule, allow_fallback
            )
            if rule:
                rules.append(rule)

        if not rules and not self._has_errors_for(location):
            self._error(location, "no ownership rules declared")
        return rules

    def _has_errors_for(self, location: str) -> bool:
        return any(
            e.location == location or e.location.startswith(f"{location}:")
            for e in self._errors
        )

    def _shorthand_rule(
        self,
        location: str,
        path: str,
        content: Mapping[str, Any],
        allow_fallback: bool,
    ) -> OwnerRule | None:
        approvers = content.get("approvers")
        reviewers = content.get("reviewers") or []
        if not isinstance(approvers, list):
            self._error(f"{location}:approvers", "approvers must be a list")
            return None
        if not isinstance(reviewers, list):
            self._error(f"{location}:reviewers", "reviewers must be a list")
            reviewers = []
        return self._make_rule(
            location,
            path,
            owners=self._identities(f"{location}:approvers", approvers),
            reviewers=self._identities(f"{location}:reviewers", reviewers),
            allow_fallback=allow_fallback,
        )

    def _rule(
        self,
        location: str,
        path: str,
        raw_rule: Any,
        allow_fallback: bool,
    ) -> OwnerRule | None:
        if not isinstance(raw_rule, Mapping):
            self._error(location, "rule is not a dictionary")
            return None
        try:
            parsed = OwnersRuleV1.parse_obj(raw_rule)
        except ValidationError as e:
            self._error(location, _format_validation_error(e))
            return None
        return self._make_rule(
            location,
            path,
            owners=self._identities(f"{location}.owners", parsed.owners),
            reviewers=self._identities(f"{location}.reviewers", parsed.reviewers),
            allow_fallback=(
                allow_fallback if parsed.fallback is None else parsed.fallback
            ),
            scope=parsed.pattern,
            required=parsed.required,
        )

    def _make_rule(
        self,
        location: str,
        path: str,
        owners: list[OwnerIdentity],
        reviewers: list[OwnerIdentity],
        allow_fallback: bool,
        scope: str | None = None,
        required: int = 1,
    ) -> OwnerRule | None:
        if not owners:
            self._error(location, "rule has no valid owners")
            return None

        available: set[str] = set()
        for owner in owners:
            available.update(self._expand(owner))
        if len(available) < required:
            self._error(
                location,
                f"rule requires {required} approvals but only "
                f"{len(available)} owners can approve",
            )

        return OwnerRule(
            path=path,
            owners=tuple(owners),
            scope=scope,
            required_count=required,
            allow_fallback=allow_fallback,
            reviewers=tuple(reviewers),
            source=location,
        )

    def _expand(self, identity: OwnerIdentity) -> frozenset[str]:
        if not identity.is_group:
            return frozenset([identity.name])
        return self._resolver.members_of(identity.name)

    def _identities(self, location: str, raw_entries: list[Any]) -> list[OwnerIdentity]:
        identities: list[OwnerIdentity] = []
        for i, raw in enumerate(raw_entries):
            entry_location = f"{location}[{i}]"
            try:
                identity = parse_identity(raw)
            except InvalidIdentityError as e:
                self._error(entry_location, str(e))
                continue
            if identity.is_group:
                try:
                    self._resolver.members_of(identity.name)
                except MembershipResolutionError as e:
                    _LOG.warning(f"{entry_location}: {e}")
                    self._error(entry_location, f"unable to resolve group: {e}")
                    continue
            if identity not in identities:
                identities.append(identity)
        return identities


def build(
    declarations: Iterable[RawDeclaration],
    membership_resolver: MembershipResolver,
) -> ParseResult:
    return OwnersParser(membership_resolver).parse(declarations)
