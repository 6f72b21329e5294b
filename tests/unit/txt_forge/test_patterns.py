from pathlib import Path

import pytest

from txt_forge.patterns import is_ignored, is_system_hidden, matches, parse_gitignore, read_gitignore, split_rel


@pytest.mark.unit
def test_split_rel_accepts_both_separators() -> None:
    assert split_rel("src\\lib/app.py") == ["src", "lib", "app.py"]
    assert split_rel("./src/") == ["src"]


@pytest.mark.unit
@pytest.mark.parametrize(
    ("rel", "pattern", "is_dir", "expected"),
    [
        ("build", "!build", True, False),
        ("dist", "dist/", True, True),
        ("dist", "dist/", False, False),
        ("logs/app.log", "*.log", False, True),
        ("src/node_modules", "/node_modules", True, False),
        ("node_modules/pkg", "/node_modules", True, True),
        ("src/target", "target", True, True),
        ("src/Target", "target", True, False),
        ("src/lib/util.py", "src/lib", False, True),
        ("src/library.py", "src/lib", False, False),
        ("src/app.py", "# comment", False, False),
        ("src/app.py", "   ", False, False),
        ("ios/Pods", "ios\\Pods/", True, True),
    ],
)
def test_matches_precedence(rel: str, pattern: str, *, is_dir: bool, expected: bool) -> None:
    assert matches(split_rel(rel), pattern, is_dir=is_dir) is expected


@pytest.mark.unit
def test_is_system_hidden() -> None:
    assert is_system_hidden(".env")
    assert is_system_hidden("node_modules")
    assert is_system_hidden("TXT-Forge")
    assert is_system_hidden("yarn.lock")
    assert not is_system_hidden("src")


@pytest.mark.unit
def test_is_ignored_checks_ancestors() -> None:
    patterns = ["build/"]

    assert is_ignored(split_rel("build/out/app.js"), patterns, is_dir=False)
    assert is_ignored(split_rel("src/.cache/x.py"), [], is_dir=False)
    assert not is_ignored(split_rel("src/build.py"), patterns, is_dir=False)


@pytest.mark.unit
def test_parse_gitignore_skips_blanks_and_comments() -> None:
    text = "# deps\nnode_modules/\n\n  *.log  \n"

    assert parse_gitignore(text) == ["node_modules/", "*.log"]


def test_read_gitignore_missing_file_is_empty(tmp_path: Path) -> None:
    assert read_gitignore(tmp_path) == []

    (tmp_path / ".gitignore").write_text("dist\n", encoding="utf-8")

    assert read_gitignore(tmp_path) == ["dist"]
