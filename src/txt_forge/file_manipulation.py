from __future__ import annotations

import os
import stat
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from txt_forge.config import (
    BASE_IGNORE_PATTERNS,
    BINARY_EXTENSIONS,
    BINARY_SNIFF_BYTES,
    GLOBAL_VAULT_NAME,
    MASSIVE_FOLDERS,
    MAX_CONTENT_FILE_SIZE,
    OUTPUT_FOLDER_NAME,
    ROOT_RULE_KEY,
    FileRecord,
    RuleState,
)
from txt_forge.logging import logger
from txt_forge.patterns import is_ignored, is_system_hidden, read_gitignore, split_rel
from txt_forge.templates import active_extensions, active_ignores, matches_extension

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping, Sequence

    from txt_forge.config import Template

# Never entered by any walk, whatever the rules say.
ALWAYS_PRUNED = frozenset({".git", OUTPUT_FOLDER_NAME, GLOBAL_VAULT_NAME})

# The broad tree walk stops at these; gitignored files stay visible.
TREE_PRUNED = MASSIVE_FOLDERS | ALWAYS_PRUNED
TREE_IGNORE_PATTERNS: tuple[str, ...] = ("*.import", "*.uid")


@dataclass(frozen=True)
class FileSelection:
    """Files to merge and files to show in the project structure.

    Attributes:
        content_files: Absolute paths whose content goes into the merged output, in walk order.
        tree_files: Absolute paths shown in `Source-Tree.txt`, sorted by relative path.
    """

    content_files: list[Path] = field(default_factory=list)
    tree_files: list[Path] = field(default_factory=list)


def relpath(path: Path, root: Path) -> str:
    """Send the relative path of path from root.

    Args:
        path (Path): the path to "relativise"
        root (Path): the root to relativise from

    Returns:
        str: the relative path from root to path, with POSIX separators.
            If path is not under root, returns the original path as a string.
    """
    try:
        return path.relative_to(root).as_posix()
    except ValueError:
        return str(path)


def is_regular_file(path: Path) -> bool:
    """Check if a file is regular.

    Args:
        path (Path): path to test.

    Returns:
        bool: True if the file is regular, False otherwise.
    """
    try:
        st = path.stat()
        return stat.S_ISREG(st.st_mode)
    except OSError:
        return False


def is_binary_extension(name: str) -> bool:
    """Check a file name against the fixed binary/media extension set."""
    return Path(name).suffix.lower() in BINARY_EXTENSIONS


def is_binary_content(path: Path, nbytes: int = BINARY_SNIFF_BYTES) -> bool:
    """Check if the first bytes of a file contain a NUL byte.

    Args:
        path (Path): path to test.
        nbytes (int, optional): number of bytes to inspect. Defaults to 4096.

    Raises:
        OSError: if the file cannot be opened.

    Returns:
        bool: True if the file looks binary.
    """
    with path.open("rb") as f:
        chunk = f.read(nbytes)
    return b"\x00" in chunk


def find_rule_key(rel: str, rules: Mapping[str, RuleState]) -> str | None:
    """Find the key of the selection rule governing `rel`: its own, its nearest ancestor's, then the root's.

    Args:
        rel (str): slash-separated path relative to the source root
        rules (Mapping[str, RuleState]): normalized selection rules

    Returns:
        str | None: the winning rule key, or None when no rule applies
    """
    segments = split_rel(rel)
    for i in range(len(segments), 0, -1):
        key = "/".join(segments[:i])
        if key in rules:
            return key
    return ROOT_RULE_KEY if ROOT_RULE_KEY in rules else None


def _is_within(rel: str, folder: str) -> bool:
    return rel == folder or rel.startswith(folder + "/")


def _has_included_descendant(rel_dir: str, rules: Mapping[str, RuleState]) -> bool:
    return any(state == RuleState.INCLUDE and _is_within(key, rel_dir) for key, state in rules.items())


def reopens_ignored(rel: str, key: str, ignored_at: str) -> bool:
    """Check if an include rule keyed `key` brings back the ignored file `rel`.

    The rule must name the file itself, or sit at or below the outermost
    ignored entry `ignored_at`. Below the rule, system-hidden names stay out.

    Args:
        rel (str): the ignored file
        key (str): the key of the include rule governing it
        ignored_at (str): the outermost ignored entry on the file's path

    Returns:
        bool: True if the file is merged
    """
    if key == rel:
        return True
    if key == ROOT_RULE_KEY or not _is_within(key, ignored_at):
        return False
    below = split_rel(rel)[len(split_rel(key)) :]
    return not any(is_system_hidden(s) for s in below)


def _entry_order(name: str) -> tuple[str, str]:
    return (name.lower(), name)


def _list_dir(directory: Path) -> tuple[list[str], list[str]]:
    try:
        names = os.listdir(directory)
    except OSError as e:
        logger.debug("directory_unreadable", directory=str(directory), error=str(e))
        return [], []
    dirs: list[str] = []
    files: list[str] = []
    for name in sorted(names, key=_entry_order):
        p = directory / name
        if p.is_dir():
            if not p.is_symlink():
                dirs.append(name)
        elif is_regular_file(p):
            files.append(name)
    return dirs, files


def walk_files(
    root: Path,
    patterns: Sequence[str],
    *,
    rules: Mapping[str, RuleState] | None = None,
    use_gitignore: bool = True,
    pruned: frozenset[str] = ALWAYS_PRUNED,
) -> Iterator[tuple[Path, str, str | None]]:
    """Walk `root` in display order, yielding each file with its ignore state.

    Like the project structure, a folder's subfolders come before its files,
    names sorted case-insensitively. Ignored folders are pruned, unless an
    include rule targets them or a path inside them; their files are then
    yielded as ignored. A folder's own `.gitignore` applies to its direct entries.

    Args:
        root (Path): the directory to walk
        patterns (Sequence[str]): ignore patterns applying everywhere
        rules (Mapping[str, RuleState] | None): selection rules that can reopen ignored folders
        use_gitignore (bool): honor per-directory `.gitignore` files
        pruned (frozenset[str]): folder names never entered

    Yields:
        tuple[Path, str, str | None]: absolute path, relative path and the
            outermost ignored entry on that path (None when not ignored)
    """
    yield from _walk(root, "", None, patterns, rules, use_gitignore=use_gitignore, pruned=pruned)


def _walk(
    current: Path,
    rel_dir: str,
    ignored_at: str | None,
    patterns: Sequence[str],
    rules: Mapping[str, RuleState] | None,
    *,
    use_gitignore: bool,
    pruned: frozenset[str],
) -> Iterator[tuple[Path, str, str | None]]:
    dirs, files = _list_dir(current)
    active = [*patterns, *read_gitignore(current)] if use_gitignore else list(patterns)

    for d in dirs:
        if d in pruned:
            continue
        rel = f"{rel_dir}/{d}" if rel_dir else d
        child_ignored_at = ignored_at
        if child_ignored_at is None and is_ignored(split_rel(rel), active, is_dir=True):
            child_ignored_at = rel
        if child_ignored_at is not None and not (rules and _has_included_descendant(rel, rules)):
            continue
        yield from _walk(
            current / d,
            rel,
            child_ignored_at,
            patterns,
            rules,
            use_gitignore=use_gitignore,
            pruned=pruned,
        )

    for f in files:
        rel = f"{rel_dir}/{f}" if rel_dir else f
        file_ignored_at = ignored_at
        if file_ignored_at is None and is_ignored(split_rel(rel), active, is_dir=False):
            file_ignored_at = rel
        yield current / f, rel, file_ignored_at


def select_by_templates(root: Path, extensions: set[str], patterns: Sequence[str]) -> list[Path]:
    """Template-driven selection: non-ignored, non-binary files with an active extension."""
    return [
        p
        for p, rel, ignored_at in walk_files(root, patterns)
        if ignored_at is None and not is_binary_extension(rel) and matches_extension(p.name, extensions)
    ]


def select_by_rules(
    root: Path,
    extensions: set[str],
    patterns: Sequence[str],
    rules: Mapping[str, RuleState],
) -> list[Path]:
    """Rule-driven selection: the nearest selection rule overrides the template default.

    The default is "included" for non-ignored files with an active extension.
    An include rule brings back an ignored file only as `reopens_ignored`
    allows. Binary and media files are excluded whatever the rules say.
    """
    out: list[Path] = []
    for p, rel, ignored_at in walk_files(root, patterns, rules=rules):
        if is_binary_extension(rel):
            continue
        key = find_rule_key(rel, rules)
        if key is None:
            included = ignored_at is None and matches_extension(p.name, extensions)
        elif rules[key] == RuleState.EXCLUDE:
            included = False
        else:
            included = ignored_at is None or reopens_ignored(rel, key, ignored_at)
        if included:
            out.append(p)
    return out


def select_tree_files(root: Path) -> list[Path]:
    """Broad selection for the project structure: all but hidden entries, massive folders and import stubs."""
    walked = walk_files(root, TREE_IGNORE_PATTERNS, use_gitignore=False, pruned=TREE_PRUNED)
    files = [p for p, _, hidden_at in walked if hidden_at is None]
    return sorted(files, key=lambda p: relpath(p, root))


def resolve_files(
    source_root: Path,
    active_templates: Sequence[Template],
    selection_rules: Mapping[str, RuleState] | None = None,
    *,
    hide_ignored_in_tree: bool = False,
) -> FileSelection:
    """Compute the content files and the tree display files of a project.

    Without selection rules, only files with an extension of an active template
    are merged. With rules, every file is a candidate and the nearest rule
    overrides the template default. The tree shows the broad project context
    unless `hide_ignored_in_tree`, in which case it equals the content set.

    Args:
        source_root (Path): the project root
        active_templates (Sequence[Template]): templates driving extensions and ignores
        selection_rules (Mapping[str, RuleState] | None): normalized per-path overrides
        hide_ignored_in_tree (bool): make the tree identical to the content set

    Returns:
        FileSelection: the resolved file lists
    """
    root = source_root.resolve()
    extensions = active_extensions(active_templates)
    patterns = [*BASE_IGNORE_PATTERNS, *active_ignores(active_templates)]

    if selection_rules:
        content = select_by_rules(root, extensions, patterns, selection_rules)
    else:
        content = select_by_templates(root, extensions, patterns)

    if hide_ignored_in_tree:
        tree = sorted(content, key=lambda p: relpath(p, root))
    else:
        tree = select_tree_files(root)

    logger.debug("files_resolved", root=str(root), content=len(content), tree=len(tree))
    return FileSelection(content_files=content, tree_files=tree)


def read_file_records(
    files: Sequence[Path],
    root: Path,
    max_file_size: int = MAX_CONTENT_FILE_SIZE,
) -> list[FileRecord]:
    """Read the files that pass the content gates into `FileRecord`s.

    Files over `max_file_size`, binary files (by extension or by a NUL byte in
    their first 4 KiB) and unreadable files are skipped with a warning.

    Args:
        files (Sequence[Path]): absolute paths, in the order to merge them
        root (Path): the root to relativise file paths against
        max_file_size (int): size cap in bytes

    Returns:
        list[FileRecord]: records in input order
    """
    recs: list[FileRecord] = []
    for f in files:
        rel = relpath(f, root)
        try:
            if is_binary_extension(f.name):
                logger.warning("Skipping binary file %s", rel)
                continue
            size = f.stat().st_size
            if size > max_file_size:
                logger.warning("Skipping %s: %d bytes exceeds the %d bytes cap", rel, size, max_file_size)
                continue
            if is_binary_content(f):
                logger.warning("Skipping binary content %s", rel)
                continue
            content = f.read_text(encoding="utf-8", errors="ignore")
        except OSError as e:
            logger.warning("Skipping %s: %s", rel, e)
            continue
        recs.append(FileRecord(path=f, rel=rel, content=content))
    return recs
