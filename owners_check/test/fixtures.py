from collections.abc import (
    Iterable,
    Mapping,
)

from owners_check.ownership.membership import MembershipSnapshot
from owners_check.ownership.parser import (
    ParseResult,
    build,
)
from owners_check.ownership.sources import RawDeclaration
from owners_check.ownership.tree import OwnersTree


def parse_declarations(
    declarations: Mapping[str, str],
    groups: Mapping[str, Iterable[str]] | None = None,
) -> ParseResult:
    return build(
        [RawDeclaration(path=path, text=text) for path, text in declarations.items()],
        MembershipSnapshot(groups or {}),
    )


def build_tree(
    declarations: Mapping[str, str],
    groups: Mapping[str, Iterable[str]] | None = None,
) -> OwnersTree:
    result = parse_declarations(declarations, groups)
    assert result.errors == ()
    return result.tree
