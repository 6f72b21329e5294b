from __future__ import annotations

import math
import re
import shutil
from typing import TYPE_CHECKING, Any

from txt_forge.exceptions import ChunkSizeError, OutputDirectoryError
from txt_forge.logging import logger

if TYPE_CHECKING:
    from collections.abc import Callable, Collection, Iterable, Iterator, Sequence
    from pathlib import Path

    from txt_forge.config import FileRecord

    BoundaryFinder = Callable[[str], int]

SEPARATOR = "=" * 50
INDEX_TITLE = "--- INDEX ---"
INDEX_RULE = "-" * 30
TREE_TITLE = "--- PROJECT STRUCTURE ---"
TREE_LEGEND = "Legend: entries marked [-] are shown for context and are not merged."
TREE_ROOT = "repository/"
EXCLUDED_MARK = " [-]"
FULL_CONTEXT_FILE_NAME = "Source-1 (Full Context).txt"
BLOCK_TRAILER = "\n\n"

# Room kept for headers when estimating the number of parts of an oversized file.
HEADER_RESERVE = 500

DECLARATION_KEYWORDS: tuple[str, ...] = (
    "function",
    "class",
    "export",
    "interface",
    "type",
    "def",
    "func",
    "const",
    "let",
    "var",
    "public",
    "private",
    "protected",
    "struct",
    "impl",
    "package",
    "import",
)


def build_tree_lines(
    root_name: str,
    rel_paths: Iterable[str],
    included: Collection[str] | None = None,
) -> list[str]:
    """Build a visual tree representation of file paths.

    Args:
        root_name (str): the name to use for the root of the tree
        rel_paths (Iterable[str]): the file paths relative to the root, using POSIX separators (e.g. "src/main.py")
        included (Collection[str] | None): paths that are merged; other files get the `[-]` mark.
            None marks nothing.

    Returns:
        list[str]: a list of strings representing the tree structure, suitable for printing
    """
    rels = sorted(
        {p.strip("/").replace("\\", "/") for p in rel_paths if p.strip()},
        key=str.lower,
    )
    tree: dict[str, Any] = {}
    for rp in rels:
        cur = tree
        parts = rp.split("/")
        for i, part in enumerate(parts):
            if i == len(parts) - 1:
                cur.setdefault("__files__", {})[part] = rp
            else:
                cur = cur.setdefault(part, {})

    lines: list[str] = [root_name]

    def walk(node: dict[str, Any], prefix: str) -> None:
        dirs = sorted([k for k in node if k != "__files__"], key=str.lower)
        files = node.get("__files__", {})
        entries: list[tuple[str, str, Any]] = []
        entries.extend(("dir", d, node[d]) for d in dirs)
        entries.extend(("file", f, files[f]) for f in sorted(files, key=str.lower))
        for idx, (kind, name, child) in enumerate(entries):
            last = idx == len(entries) - 1
            branch = "└── " if last else "├── "
            if kind == "dir":
                lines.append(prefix + branch + name + "/")
                ext = "    " if last else "│   "
                walk(child, prefix + ext)
            else:
                mark = EXCLUDED_MARK if included is not None and child not in included else ""
                lines.append(prefix + branch + name + mark)

    walk(tree, "")
    return lines


def build_tree_text(rel_paths: Iterable[str], included: Collection[str] | None = None) -> str:
    """Render the `Source-Tree.txt` content: title, legend and the tree under `repository/`.

    Args:
        rel_paths (Iterable[str]): every path to show
        included (Collection[str] | None): the merged paths; None when all shown paths are merged

    Returns:
        str: the rendered project structure
    """
    lines = [TREE_TITLE, TREE_LEGEND, *build_tree_lines(TREE_ROOT, rel_paths, included)]
    return "\n".join(lines) + "\n"


def file_header(label: str) -> str:
    return f"\n{SEPARATOR}\nFile: {label}\n{SEPARATOR}\n\n"


def file_block(rel: str, content: str) -> str:
    """Wrap a file's content with its header block, as it appears in a chunk."""
    return file_header(rel) + content + BLOCK_TRAILER


def index_header(entries: Sequence[str]) -> str:
    return f"{INDEX_TITLE}\n" + "\n".join(entries) + f"\n{INDEX_RULE}\n\n"


def make_declaration_boundary_finder(keywords: Iterable[str]) -> BoundaryFinder:
    """Create a boundary finder cutting before the last top-level declaration.

    A boundary is a newline followed by one of `keywords` and whitespace; the
    finder returns the offset of that newline in the searched window.

    Args:
        keywords (Iterable[str]): declaration keywords, e.g. "def" or "class"

    Returns:
        BoundaryFinder: callable returning the last boundary offset, or -1
    """
    alternatives = "|".join(re.escape(k) for k in keywords)
    pattern = re.compile(rf"\n(?=(?:{alternatives})\s)")

    def finder(window: str) -> int:
        last = -1
        for match in pattern.finditer(window):
            last = match.start()
        return last

    return finder


find_safe_split = make_declaration_boundary_finder(DECLARATION_KEYWORDS)


def split_offset(window: str, boundary_finder: BoundaryFinder) -> int:
    """Pick where to cut `window`: last declaration, else last newline, else its end.

    Offset 0 is never returned, so every cut consumes at least one character.
    """
    idx = boundary_finder(window)
    if idx <= 0:
        idx = window.rfind("\n")
    if idx <= 0:
        idx = len(window)
    return idx


def estimate_parts(length: int, max_chars: int) -> int:
    """Estimate the number of parts of an oversized file, for display only."""
    reserve = min(HEADER_RESERVE, max_chars // 2)
    return max(1, math.ceil(length / max(1, max_chars - reserve)))


def part_label(rel: str, part: int, total: int) -> str:
    return f"{rel} (Part {part}/{total})"


def iter_parts(
    rel: str,
    content: str,
    max_chars: int,
    boundary_finder: BoundaryFinder = find_safe_split,
) -> Iterator[tuple[int, str]]:
    """Split an oversized file into rendered multipart chunks.

    Each chunk holds its index header, its file header, a piece of the content
    and the block trailer, and never exceeds `max_chars`. The part count shown
    in headers is an estimate; the loop runs until the content is consumed.

    Args:
        rel (str): the file's relative path
        content (str): the file's content
        max_chars (int): maximum characters per chunk
        boundary_finder (BoundaryFinder): locates safe cut offsets

    Raises:
        ChunkSizeError: if the headers of a part alone reach `max_chars`

    Yields:
        Iterator[tuple[int, str]]: the part number and the chunk text
    """
    total = estimate_parts(len(content), max_chars)
    remaining = content
    part = 1
    while remaining:
        label = part_label(rel, part, total)
        head = index_header([label]) + file_header(label)
        available = max_chars - len(head) - len(BLOCK_TRAILER)
        if available < 1:
            raise ChunkSizeError(rel=rel, max_chars=max_chars)
        if len(remaining) <= available:
            piece, remaining = remaining, ""
        else:
            cut = split_offset(remaining[:available], boundary_finder)
            piece, remaining = remaining[:cut], remaining[cut:]
        yield part, head + piece + BLOCK_TRAILER
        part += 1


def _write(output_dir: Path, name: str, text: str) -> None:
    (output_dir / name).write_text(text, encoding="utf-8")


def merge_full_context(files: Sequence[FileRecord], output_dir: Path, tree_text: str = "") -> list[str]:
    """Write every file, sorted by relative path, into one uncapped output file."""
    body = "".join(file_block(r.rel, r.content) for r in sorted(files, key=lambda r: r.rel))
    text = f"{tree_text}\n{body}" if tree_text else body
    _write(output_dir, FULL_CONTEXT_FILE_NAME, text)
    return [FULL_CONTEXT_FILE_NAME]


def merge_files(
    files: Sequence[FileRecord],
    output_dir: Path,
    max_chars: int,
    *,
    disable_splitting: bool = False,
    tree_text: str = "",
    boundary_finder: BoundaryFinder = find_safe_split,
) -> list[str]:
    """Merge file records into chunk files written to `output_dir`.

    Files whose block fits in `max_chars` are packed next-fit, in input order,
    into `Source-<N> (<count> Files).txt`; a chunk is flushed when the next
    block would push its blocks over `max_chars`. Larger files follow as
    `Source-<N>.<part> (Multipart File).txt`, numbering continuing after the
    packed chunks. With `disable_splitting`, everything goes to one
    `Source-1 (Full Context).txt` preceded by `tree_text`.

    Args:
        files (Sequence[FileRecord]): the records to merge, in order
        output_dir (Path): existing directory receiving the chunks
        max_chars (int): maximum characters per chunk
        disable_splitting (bool): write a single full-context file
        tree_text (str): project structure embedded in full-context mode
        boundary_finder (BoundaryFinder): locates safe cut offsets in oversized files

    Raises:
        ChunkSizeError: if `max_chars` cannot hold the part headers of an oversized file

    Returns:
        list[str]: the generated file names, in creation order
    """
    if disable_splitting:
        return merge_full_context(files, output_dir, tree_text)

    created: list[str] = []
    standard: list[tuple[str, str]] = []
    oversized: list[FileRecord] = []
    for rec in files:
        block = file_block(rec.rel, rec.content)
        if len(block) > max_chars:
            oversized.append(rec)
        else:
            standard.append((rec.rel, block))

    file_index = 1
    buffer: list[str] = []
    names: list[str] = []
    size = 0

    def flush() -> None:
        nonlocal file_index, size
        if not buffer:
            return
        name = f"Source-{file_index} ({len(names)} Files).txt"
        _write(output_dir, name, index_header(names) + "".join(buffer))
        created.append(name)
        file_index += 1
        buffer.clear()
        names.clear()
        size = 0

    for rel, block in standard:
        if size + len(block) > max_chars:
            flush()
        buffer.append(block)
        names.append(rel)
        size += len(block)
    flush()

    for rec in oversized:
        logger.debug("splitting_oversized_file", rel=rec.rel, chars=len(rec.content))
        for part, text in iter_parts(rec.rel, rec.content, max_chars, boundary_finder):
            name = f"Source-{file_index}.{part} (Multipart File).txt"
            _write(output_dir, name, text)
            created.append(name)
        file_index += 1

    return created


def prepare_output_directory(path: Path) -> Path:
    """Delete `path` and recreate it empty.

    Args:
        path (Path): the directory to reset

    Raises:
        OutputDirectoryError: if the directory cannot be removed or created

    Returns:
        Path: the fresh directory
    """
    try:
        if path.exists():
            shutil.rmtree(path)
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise OutputDirectoryError(directory=path, reason=str(e)) from e
    return path
