from __future__ import annotations

from functools import cache
from importlib import resources
from typing import TYPE_CHECKING, Any

import yaml

from txt_forge.config import Template
from txt_forge.exceptions import UnknownTemplateError

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

CATALOGUE_RESOURCE = "templates.yaml"


@cache
def _load_catalogue() -> dict[str, Any]:
    raw = resources.files("txt_forge").joinpath(CATALOGUE_RESOURCE).read_text(encoding="utf-8")
    data = yaml.safe_load(raw) or {}
    if not isinstance(data, dict):
        msg = f"{CATALOGUE_RESOURCE} must contain a mapping"
        raise TypeError(msg)
    return data


@cache
def all_templates() -> tuple[Template, ...]:
    """Return the immutable template catalogue, in catalogue order.

    Returns:
        tuple[Template, ...]: every known template
    """
    entries = _load_catalogue().get("templates", [])
    return tuple(Template.model_validate(entry) for entry in entries)


@cache
def universal_ignores() -> tuple[str, ...]:
    """Return the project-independent `.gitignore` lines (comments and blanks included)."""
    return tuple(str(line) for line in _load_catalogue().get("universal_ignores", []))


def find_template(template_id: str) -> Template | None:
    """Find a template by identifier.

    Args:
        template_id (str): the identifier to look up

    Returns:
        Template | None: the template, or None if unknown
    """
    for template in all_templates():
        if template.id == template_id:
            return template
    return None


def get_template(template_id: str) -> Template:
    """Find a template by identifier, raising for unknown ones.

    Args:
        template_id (str): the identifier to look up

    Raises:
        UnknownTemplateError: if the identifier is not in the catalogue

    Returns:
        Template: the template
    """
    template = find_template(template_id)
    if template is None:
        raise UnknownTemplateError(template_id=template_id)
    return template


def templates_for(template_ids: Iterable[str]) -> list[Template]:
    """Resolve identifiers to templates, silently dropping unknown ones.

    The result follows catalogue order, so the same set of identifiers always
    produces the same pattern and extension order.

    Args:
        template_ids (Iterable[str]): identifiers of the active templates

    Returns:
        list[Template]: the active templates
    """
    wanted = set(template_ids)
    return [t for t in all_templates() if t.id in wanted]


def active_extensions(templates: Sequence[Template]) -> set[str]:
    """Union of the extensions of `templates`."""
    return {ext for t in templates for ext in t.extensions}


def active_ignores(templates: Sequence[Template]) -> list[str]:
    """Union of the ignore patterns of `templates`, first occurrence order."""
    seen: dict[str, None] = {}
    for t in templates:
        for pattern in t.ignores:
            seen.setdefault(pattern, None)
    return list(seen)


def matches_extension(name: str, extensions: Iterable[str]) -> bool:
    """Check a file name against template extensions.

    Dotted entries (".d.ts") are case-insensitive suffixes; bare entries
    ("Dockerfile") must equal the whole name, case-insensitively.

    Args:
        name (str): the file's base name
        extensions (Iterable[str]): extensions or bare file names

    Returns:
        bool: True if the name is covered by one of the extensions
    """
    low = name.lower()
    for ext in extensions:
        e = ext.lower()
        if e.startswith("."):
            if low.endswith(e):
                return True
        elif low == e:
            return True
    return False


def generate_gitignore(template_ids: Iterable[str]) -> str:
    """Generate `.gitignore` content combining universal and template patterns.

    Args:
        template_ids (Iterable[str]): identifiers of the templates to combine

    Returns:
        str: the `.gitignore` text, or "" when no identifier is known
    """
    templates = templates_for(template_ids)
    if not templates:
        return ""
    patterns: dict[str, None] = dict.fromkeys(universal_ignores())
    for pattern in active_ignores(templates):
        patterns.setdefault(pattern, None)
    names = ", ".join(t.name for t in templates)
    body = "\n".join(p for p in patterns if p.strip())
    return f"# {names} Configuration\n{body}\n"
