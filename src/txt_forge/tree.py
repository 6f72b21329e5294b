"""Display tree of a project directory.

The tree is rebuilt on every call and never cached. Known dependency and build
folders, and folders with too many entries, are returned without children so
a caller can expand them later by scanning them again as a lazy-load root.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from txt_forge.config import (
    MASSIVE_FILE_SIZE,
    MASSIVE_FOLDER_ENTRIES,
    MASSIVE_FOLDERS,
    MEDIA_EXTENSIONS,
    NodeType,
    TreeNode,
)
from txt_forge.logging import logger
from txt_forge.patterns import is_ignored, read_gitignore, split_rel

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence


def _list_entries(directory: Path) -> list[Path] | None:
    try:
        return list(directory.iterdir())
    except OSError as e:
        logger.debug("directory_unreadable", directory=str(directory), error=str(e))
        return None


def _is_folder(path: Path) -> bool:
    try:
        return path.is_dir()
    except OSError:
        return False


def _file_size(path: Path) -> int:
    try:
        return path.stat().st_size
    except OSError:
        return 0


def _sort_key(path: Path) -> tuple[bool, str]:
    return (not _is_folder(path), path.name)


def _build_nodes(
    root: Path,
    current: Path,
    entries: list[Path],
    depth: int,
    inherited_ignores: Sequence[str],
    *,
    parent_ignored: bool,
) -> list[TreeNode]:
    # the local .gitignore applies to this level; only the caller's set goes deeper
    active = [*inherited_ignores, *read_gitignore(current)]
    nodes: list[TreeNode] = []
    for entry in sorted(entries, key=_sort_key):
        rel = entry.relative_to(root).as_posix()
        folder = _is_folder(entry)
        ignored = parent_ignored or is_ignored(split_rel(rel), active, is_dir=folder)

        if not folder:
            nodes.append(
                TreeNode(
                    name=entry.name,
                    path=rel,
                    type=NodeType.FILE,
                    is_ignored=ignored,
                    is_media=entry.suffix.lower() in MEDIA_EXTENSIONS,
                    is_massive=_file_size(entry) > MASSIVE_FILE_SIZE,
                    depth=depth,
                ),
            )
            continue

        massive = entry.name in MASSIVE_FOLDERS
        children: list[TreeNode] | None = None
        if not massive:
            child_entries = [] if entry.is_symlink() else _list_entries(entry)
            if child_entries is None:
                children = []
            elif len(child_entries) > MASSIVE_FOLDER_ENTRIES:
                massive = True
            else:
                children = _build_nodes(
                    root,
                    entry,
                    child_entries,
                    depth + 1,
                    inherited_ignores,
                    parent_ignored=ignored,
                )
        nodes.append(
            TreeNode(
                name=entry.name,
                path=rel,
                type=NodeType.FOLDER,
                is_ignored=ignored,
                is_massive=massive,
                depth=depth,
                children=children,
            ),
        )
    return nodes


def scan_directory(
    root_dir: str | Path,
    scan_dir: str | Path | None = None,
    depth: int = 0,
    inherited_ignores: Sequence[str] = (),
    *,
    is_lazy_load_root: bool = False,
    parent_ignored: bool = False,
) -> list[TreeNode]:
    """Scan `scan_dir` (default: `root_dir`) into an ordered list of tree nodes.

    Folders come before files, then names sort case-sensitively. Node paths are
    relative to `root_dir`. Massive folders carry `children=None`; scanning
    one of them again with `is_lazy_load_root=True` expands it one call deep.

    Args:
        root_dir (str | Path): the project root the node paths are relative to
        scan_dir (str | Path | None): the folder to list; defaults to `root_dir`
        depth (int): depth recorded on the returned nodes
        inherited_ignores (Sequence[str]): ignore patterns applying to the whole subtree
        is_lazy_load_root (bool): expand `scan_dir` even if it has too many entries
        parent_ignored (bool): mark every returned node ignored, as when expanding an ignored folder

    Returns:
        list[TreeNode]: the nodes, or an empty list if `scan_dir` cannot be read
    """
    root = Path(root_dir)
    current = Path(scan_dir) if scan_dir is not None else root
    logger.debug("scanning_directory", directory=str(current), depth=depth)
    entries = _list_entries(current)
    if entries is None:
        return []
    if depth > 0 and not is_lazy_load_root and len(entries) > MASSIVE_FOLDER_ENTRIES:
        return []
    return _build_nodes(root, current, entries, depth, inherited_ignores, parent_ignored=parent_ignored)


def iter_nodes(nodes: Sequence[TreeNode]) -> Iterator[TreeNode]:
    """Yield every node depth-first, parents before their children."""
    stack = list(reversed(nodes))
    while stack:
        node = stack.pop()
        yield node
        if node.children:
            stack.extend(reversed(node.children))


def flatten_tree(nodes: Sequence[TreeNode], *, include_ignored: bool = True) -> list[str]:
    """List the relative paths of the file nodes of a tree, in display order.

    Args:
        nodes (Sequence[TreeNode]): the tree, as returned by `scan_directory`
        include_ignored (bool): keep files flagged as ignored

    Returns:
        list[str]: slash-separated relative paths
    """
    return [
        n.path
        for n in iter_nodes(nodes)
        if n.type == NodeType.FILE and (include_ignored or not n.is_ignored)
    ]
