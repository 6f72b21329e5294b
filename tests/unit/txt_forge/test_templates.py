import pytest

from txt_forge.exceptions import UnknownTemplateError
from txt_forge.templates import (
    active_extensions,
    active_ignores,
    all_templates,
    generate_gitignore,
    get_template,
    matches_extension,
    templates_for,
    universal_ignores,
)


@pytest.mark.unit
def test_catalogue_ids_are_unique_and_complete() -> None:
    ids = [t.id for t in all_templates()]

    assert len(ids) == len(set(ids))
    for expected in ("typescript", "python", "react", "spring-boot", "godot4", "android", "flask", "flutter"):
        assert expected in ids


@pytest.mark.unit
def test_get_template_raises_for_unknown_id() -> None:
    assert get_template("python").name

    with pytest.raises(UnknownTemplateError) as exc:
        get_template("cobol")

    assert "cobol" in str(exc.value)


@pytest.mark.unit
def test_templates_for_follows_catalogue_order_and_drops_unknown() -> None:
    templates = templates_for(["react", "nope", "typescript"])

    assert [t.id for t in templates] == ["typescript", "react"]


@pytest.mark.unit
def test_active_extensions_and_ignores_are_unions() -> None:
    templates = templates_for(["python", "sql"])

    assert {".py", ".sql"} <= active_extensions(templates)
    ignores = active_ignores(templates)
    assert len(ignores) == len(set(ignores))
    assert "*.sqlite" in ignores


@pytest.mark.unit
@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("app.py", True),
        ("APP.PY", True),
        ("types.d.ts", True),
        ("Dockerfile", True),
        ("notes.txt", False),
        ("python", False),
    ],
)
def test_matches_extension(name: str, *, expected: bool) -> None:
    assert matches_extension(name, {".py", ".d.ts", "Dockerfile"}) is expected


@pytest.mark.unit
def test_generate_gitignore_combines_universal_and_template_patterns() -> None:
    text = generate_gitignore(["rust", "python"])

    assert text.startswith("# Python, Rust Configuration\n")
    assert "Cargo.lock" in text
    assert "__pycache__/" in text
    assert "yarn.lock" in universal_ignores()
    assert generate_gitignore(["unknown"]) == ""
