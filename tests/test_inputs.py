from __future__ import annotations

from pathlib import Path

import allure
import pytest

from agent_batch.orchestrator.inputs import (
    combine_context_rules,
    expand_targets,
    parse_context_rule,
    resolve_prompt,
)

pytestmark = [
    allure.epic("Batch Execution"),
    allure.feature("CLI Inputs"),
]


def test_expand_targets_sorts_glob_matches_and_dedupes(tmp_path: Path) -> None:
    for name in ("b.md", "a.md", "c.txt"):
        (tmp_path / name).write_text(name, "utf-8")
    (tmp_path / "sub.md").mkdir()

    targets = expand_targets([str(tmp_path / "*.md"), str(tmp_path / "a.md")])

    assert targets == [tmp_path / "a.md", tmp_path / "b.md"]


def test_expand_targets_rejects_missing_literal_path(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="not found"):
        expand_targets([str(tmp_path / "missing.md")])


def test_expand_targets_allows_empty_glob(tmp_path: Path) -> None:
    assert expand_targets([str(tmp_path / "*.rst")]) == []


def test_resolve_prompt_literal_file_and_glob(tmp_path: Path) -> None:
    (tmp_path / "01-role.txt").write_text("You are an editor.\n", "utf-8")
    (tmp_path / "02-task.txt").write_text("Fix typos.\n", "utf-8")

    assert resolve_prompt("Fix typos") == "Fix typos"
    assert resolve_prompt(str(tmp_path / "02-task.txt")) == "Fix typos.\n"
    assert resolve_prompt(str(tmp_path / "*.txt")) == "You are an editor.\n\nFix typos."


def test_resolve_prompt_glob_without_matches_is_literal(tmp_path: Path) -> None:
    assert resolve_prompt("Rename *.tmp files") == "Rename *.tmp files"


def test_resolve_prompt_rejects_blank() -> None:
    with pytest.raises(ValueError, match="empty"):
        resolve_prompt("  ")


def test_context_rule_substitutes_first_match_only() -> None:
    rule = parse_context_rule("/de/=>/en/")

    assert rule(Path("docs/de/guide/de/page.md")) == Path("docs/en/guide/de/page.md")
    assert rule(Path("docs/fr/page.md")) is None


def test_context_rule_supports_regex_groups() -> None:
    rule = parse_context_rule(r"(\w+)\.test\.py$=>\1.py")

    assert rule(Path("src/parser.test.py")) == Path("src/parser.py")


@pytest.mark.parametrize("rule", ["no-separator", "=>x", "([=>y"])
def test_invalid_context_rules_raise(rule: str) -> None:
    with pytest.raises(ValueError, match="Invalid dynamic context"):
        parse_context_rule(rule)


def test_combined_rules_use_first_matching_rule() -> None:
    combined = combine_context_rules(
        [parse_context_rule("/de/=>/en/"), parse_context_rule("/fr/=>/en/")],
    )

    assert combined is not None
    assert combined(Path("x/fr/a.md")) == Path("x/en/a.md")
    assert combined(Path("x/it/a.md")) is None
    assert combine_context_rules([]) is None
