import pytest

from owners_check.ownership.identity import parse_identity
from owners_check.ownership.membership import UnknownGroupError
from owners_check.ownership.parser import (
    ParseError,
    build,
)
from owners_check.ownership.sources import (
    RawDeclaration,
    RuleSourceError,
)
from owners_check.test.fixtures import parse_declarations


def test_shorthand_declaration() -> None:
    result = parse_declarations(
        {".": "approvers:\n  - alice\n  - org/team\nreviewers:\n  - bob\n"},
        groups={"org/team": ["dave"]},
    )
    assert result.errors == ()
    [rule] = result.tree.all_rules()
    assert rule.path == "."
    assert rule.owners == (parse_identity("alice"), parse_identity("org/team"))
    assert rule.reviewers == (parse_identity("bob"),)
    assert rule.required_count == 1
    assert rule.allow_fallback
    assert rule.source == "OWNERS"


def test_explicit_rules() -> None:
    result = parse_declarations(
        {
            "lib": (
                "rules:\n"
                "  - owners: [alice, bob]\n"
                "    pattern: '*.js'\n"
                "    required: 2\n"
                "    fallback: false\n"
                "  - owners: [carol]\n"
            )
        }
    )
    assert result.errors == ()
    first, second = result.tree.all_rules()
    assert first.scope == "*.js"
    assert first.required_count == 2
    assert not first.allow_fallback
    assert first.source == "lib/OWNERS:rules[0]"
    assert second.scope is None
    assert second.allow_fallback


def test_no_parent_owners_option() -> None:
    result = parse_declarations(
        {
            "lib": (
                "options:\n"
                "  no_parent_owners: true\n"
                "approvers: [alice]\n"
                "rules:\n"
                "  - owners: [bob]\n"
                "  - owners: [carol]\n"
                "    fallback: true\n"
            )
        }
    )
    assert result.errors == ()
    assert [r.allow_fallback for r in result.tree.all_rules()] == [False, False, True]


def test_invalid_yaml_does_not_abort_parse() -> None:
    result = parse_declarations(
        {
            ".": "approvers: [alice",
            "lib": "approvers: [bob]",
        }
    )
    assert len(result.errors) == 1
    assert result.errors[0].location == "OWNERS"
    assert "unable to parse YAML" in result.errors[0].message
    assert [r.path for r in result.tree.all_rules()] == ["lib"]


@pytest.mark.parametrize(
    "text, message",
    [
        ("", "file is empty"),
        ("- alice", "content is not a dictionary"),
        ("options: {}", "no ownership rules declared"),
        ("reviewers: [bob]", "reviewers are declared without approvers"),
    ],
)
def test_malformed_files(text: str, message: str) -> None:
    result = parse_declarations({"lib": text})
    assert ParseError(location="lib/OWNERS", message=message) in result.errors
    assert result.tree.all_rules() == []


def test_unknown_top_level_key_is_reported() -> None:
    result = parse_declarations({".": "approvers: [alice]\nowners: [bob]\n"})
    assert result.errors == (ParseError("OWNERS", "unknown key 'owners'"),)
    assert len(result.tree.all_rules()) == 1


def test_invalid_rule_is_skipped() -> None:
    result = parse_declarations(
        {
            ".": (
                "rules:\n"
                "  - owners: [alice]\n"
                "    required: 0\n"
                "  - owners: [bob]\n"
                "    unknown: true\n"
                "  - just-a-string\n"
                "  - owners: [carol]\n"
            )
        }
    )
    assert [e.location for e in result.errors] == [
        "OWNERS:rules[0]",
        "OWNERS:rules[1]",
        "OWNERS:rules[2]",
    ]
    [rule] = result.tree.all_rules()
    assert rule.owners == (parse_identity("carol"),)


def test_invalid_owner_entry_is_skipped() -> None:
    result = parse_declarations({".": "approvers: [alice, 'not valid', bob]"})
    assert [e.location for e in result.errors] == ["OWNERS:approvers[1]"]
    [rule] = result.tree.all_rules()
    assert rule.owners == (parse_identity("alice"), parse_identity("bob"))


def test_unknown_group_is_skipped() -> None:
    result = parse_declarations({".": "approvers: [org/missing, alice]"})
    assert len(result.errors) == 1
    assert result.errors[0].location == "OWNERS:approvers[0]"
    assert "unable to resolve group" in result.errors[0].message
    [rule] = result.tree.all_rules()
    assert rule.owners == (parse_identity("alice"),)


def test_rule_without_valid_owners_is_skipped() -> None:
    result = parse_declarations({".": "approvers: [org/missing]"})
    assert ParseError("OWNERS", "rule has no valid owners") in result.errors
    assert result.tree.all_rules() == []


def test_required_count_above_available_owners_is_reported() -> None:
    result = parse_declarations(
        {".": "rules:\n  - owners: [alice, org/team]\n    required: 3\n"},
        groups={"org/team": ["alice", "bob"]},
    )
    assert result.errors == (
        ParseError(
            "OWNERS:rules[0]",
            "rule requires 3 approvals but only 2 owners can approve",
        ),
    )
    assert len(result.tree.all_rules()) == 1


def test_duplicate_owners_are_collapsed() -> None:
    result = parse_declarations({".": "approvers: [alice, '@alice']"})
    [rule] = result.tree.all_rules()
    assert rule.owners == (parse_identity("alice"),)


def test_invalid_declaration_path() -> None:
    result = parse_declarations({"../outside": "approvers: [alice]"})
    assert [e.location for e in result.errors] == ["../outside"]
    assert result.tree.all_rules() == []


def test_build_is_deterministic() -> None:
    declarations = {
        "lib": "approvers: [bob, 'bad handle']",
        ".": "approvers: [alice]",
        "lib/foo": "approvers: [org/missing]",
    }
    first = parse_declarations(declarations)
    second = parse_declarations(dict(reversed(list(declarations.items()))))
    assert first.errors == second.errors
    assert first.tree.all_rules() == second.tree.all_rules()
    assert first.tree.render() == second.tree.render()


def test_groups_are_resolved_once_per_build(mocker) -> None:
    resolver = mocker.Mock()
    resolver.members_of.return_value = ["alice"]
    result = build(
        [
            RawDeclaration(".", "approvers: [org/team]"),
            RawDeclaration("lib", "approvers: [org/team]"),
        ],
        resolver,
    )
    assert result.errors == ()
    resolver.members_of.assert_called_once_with("org/team")
    assert result.tree.membership.members_of("org/team") == frozenset({"alice"})


def test_group_resolution_failure_degrades(mocker) -> None:
    resolver = mocker.Mock()
    resolver.members_of.side_effect = UnknownGroupError("unknown group org/team")
    result = build([RawDeclaration(".", "approvers: [org/team, bob]")], resolver)
    assert len(result.errors) == 1
    [rule] = result.tree.all_rules()
    assert rule.owners == (parse_identity("bob"),)


def test_unreadable_source_is_fatal(mocker) -> None:
    def declarations():
        raise RuleSourceError("gone")
        yield

    with pytest.raises(RuleSourceError):
        build(declarations(), mocker.Mock())


def test_errors_of_similarly_named_paths_are_kept_apart() -> None:
    result = parse_declarations(
        {"OWNERS_dir/../x": "approvers: [alice]", ".": "options: {}"}
    )
    assert [e.location for e in result.errors] == ["OWNERS_dir/../x", "OWNERS"]
    assert result.errors[1].message == "no ownership rules declared"
