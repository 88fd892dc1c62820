import pytest

from owners_check.ownership.identity import parse_identity
from owners_check.ownership.rules import (
    ROOT_PATH,
    OwnerRule,
)
from owners_check.ownership.tree import (
    OwnersNode,
    OwnersTree,
    OwnersTreeBuilder,
)


def rule(path: str, owner: str, scope: str | None = None) -> OwnerRule:
    return OwnerRule(path=path, owners=(parse_identity(owner),), scope=scope)


@pytest.fixture
def tree() -> OwnersTree:
    builder = OwnersTreeBuilder()
    builder.add_rules(ROOT_PATH, [rule(ROOT_PATH, "root")])
    builder.add_rules(
        "lib/foo", [rule("lib/foo", "foo"), rule("lib/foo", "js", "*.js")]
    )
    builder.add_rules("lib/foo/bar", [rule("lib/foo/bar", "bar")])
    return builder.build()


def test_intermediate_directories_are_created(tree: OwnersTree) -> None:
    assert len(tree) == 4
    lib = tree.node("lib")
    assert lib is not None
    assert lib.rules == ()
    assert set(lib.children) == {"foo"}
    assert "lib/foo/bar" in tree
    assert "/lib/foo/bar/" in tree
    assert "lib/baz" not in tree


def test_nodes_link_to_parents(tree: OwnersTree) -> None:
    bar = tree.node("lib/foo/bar")
    assert bar is not None
    assert bar.parent is not None
    assert tree.node_by_id(bar.parent).path == "lib/foo"
    assert tree.root.parent is None


def test_rules_for_root_to_leaf(tree: OwnersTree) -> None:
    owners = [r.owners[0].name for r in tree.rules_for("lib/foo/bar/x.js")]
    assert owners == ["root", "foo", "js", "bar"]


def test_rules_for_filters_scope(tree: OwnersTree) -> None:
    owners = [r.owners[0].name for r in tree.rules_for("lib/foo/x.css")]
    assert owners == ["root", "foo"]


def test_rules_for_stops_at_missing_directory(tree: OwnersTree) -> None:
    owners = [r.owners[0].name for r in tree.rules_for("lib/other/x.js")]
    assert owners == ["root"]


def test_rules_for_root_file(tree: OwnersTree) -> None:
    owners = [r.owners[0].name for r in tree.rules_for("/README.md")]
    assert owners == ["root"]


def test_rule_levels_most_specific_first(tree: OwnersTree) -> None:
    levels = tree.rule_levels("lib/foo/bar/x.js")
    assert [[r.owners[0].name for r in level] for level in levels] == [
        ["bar"],
        ["foo", "js"],
        ["root"],
    ]


def test_empty_tree_has_no_rules() -> None:
    tree = OwnersTree.empty()
    assert len(tree) == 1
    assert tree.rules_for("x.py") == ()
    assert tree.rule_levels("x.py") == ()


def test_tree_requires_root_node() -> None:
    with pytest.raises(ValueError):
        OwnersTree([OwnersNode(path="lib")])


def test_render(tree: OwnersTree) -> None:
    assert tree.render() == "\n".join(
        [
            "./",
            "  - .: root",
            "  lib/",
            "    foo/",
            "      - lib/foo: foo",
            "      - lib/foo (*.js): js",
            "      bar/",
            "        - lib/foo/bar: bar",
        ]
    )
