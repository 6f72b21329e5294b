"""Simplified gitignore-style pattern matching.

This is not a full `.gitignore` implementation: negations never
match, `*` is only understood as a leading suffix wildcard, and name matches are
case-sensitive everywhere.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from txt_forge.config import SYSTEM_HIDDEN
from txt_forge.logging import logger

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from pathlib import Path


def split_rel(rel: str) -> list[str]:
    """Split a relative path into its non-empty segments, accepting both separators.

    Args:
        rel (str): the relative path (e.g. "src/lib/app.py")

    Returns:
        list[str]: the path segments
    """
    return [s for s in rel.replace("\\", "/").split("/") if s and s != "."]


def is_system_hidden(name: str) -> bool:
    """Check if a single path segment is hidden by the tool itself.

    Args:
        name (str): an entry name

    Returns:
        bool: True for dotfiles and for the fixed list of system names
    """
    return name.startswith(".") or name in SYSTEM_HIDDEN


def matches(segments: Sequence[str], pattern: str, *, is_dir: bool) -> bool:
    """Evaluate one ignore pattern against an entry.

    Rules, in precedence order:

    1. `!negation` never matches.
    2. `name/` only matches directories; the slash is stripped.
    3. `*suffix` matches when the base name ends with the suffix.
    4. `/rooted` matches the full relative path or anything nested under it.
    5. `name` (no slash) matches the base name exactly.
    6. `a/b` matches the full relative path or anything nested under it.

    Args:
        segments (Sequence[str]): the entry's relative path split on "/"
        pattern (str): the gitignore-style pattern
        is_dir (bool): whether the entry is a directory

    Returns:
        bool: True if the pattern matches the entry
    """
    p = pattern.strip().replace("\\", "/")
    if not p or p.startswith("#") or not segments:
        return False
    if p.startswith("!"):
        return False
    if p.endswith("/"):
        if not is_dir:
            return False
        p = p.rstrip("/")
        if not p:
            return False

    name = segments[-1]
    if p.startswith("*"):
        return name.endswith(p[1:])

    rel = "/".join(segments)
    if p.startswith("/"):
        rooted = p.lstrip("/")
        return rel == rooted or rel.startswith(rooted + "/")

    if "/" not in p:
        return name == p

    return rel == p or rel.startswith(p + "/")


def matches_any(segments: Sequence[str], patterns: Iterable[str], *, is_dir: bool) -> bool:
    """Check if any pattern matches the entry itself."""
    return any(matches(segments, p, is_dir=is_dir) for p in patterns)


def is_ignored(segments: Sequence[str], patterns: Sequence[str], *, is_dir: bool) -> bool:
    """Check if an entry, or any folder along its relative path, is ignored.

    A path is ignored when one of its segments is system-hidden, or when a
    pattern matches the entry or one of its ancestor folders.

    Args:
        segments (Sequence[str]): the entry's relative path split on "/"
        patterns (Sequence[str]): accumulated ignore patterns
        is_dir (bool): whether the entry itself is a directory

    Returns:
        bool: True if the entry is ignored
    """
    if any(is_system_hidden(s) for s in segments):
        return True
    last = len(segments)
    for i in range(1, last + 1):
        if matches_any(segments[:i], patterns, is_dir=is_dir if i == last else True):
            return True
    return False


def parse_gitignore(text: str) -> list[str]:
    """Extract the usable pattern lines from `.gitignore` content.

    Args:
        text (str): raw `.gitignore` content

    Returns:
        list[str]: stripped, non-blank, non-comment lines
    """
    out: list[str] = []
    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        out.append(line)
    return out


def read_gitignore(directory: Path) -> list[str]:
    """Read the `.gitignore` of `directory`, if any.

    Args:
        directory (Path): the folder that may hold a `.gitignore`

    Returns:
        list[str]: its patterns, or an empty list when absent or unreadable
    """
    gitignore = directory / ".gitignore"
    if not gitignore.is_file():
        return []
    try:
        return parse_gitignore(gitignore.read_text(encoding="utf-8", errors="ignore"))
    except OSError as e:
        logger.debug("gitignore_unreadable", path=str(gitignore), error=str(e))
        return []
