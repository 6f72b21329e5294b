from pathlib import Path

import pytest
from pytest_mock import MockerFixture

from txt_forge.config import FileRecord
from txt_forge.exceptions import ChunkSizeError, OutputDirectoryError
from txt_forge.output_construction import (
    FULL_CONTEXT_FILE_NAME,
    SEPARATOR,
    build_tree_lines,
    build_tree_text,
    estimate_parts,
    file_block,
    find_safe_split,
    make_declaration_boundary_finder,
    merge_files,
    prepare_output_directory,
    split_offset,
)


def rec(rel: str, content: str) -> FileRecord:
    return FileRecord(path=Path("/project") / rel, rel=rel, content=content)


def rec_with_block_length(rel: str, length: int) -> FileRecord:
    return rec(rel, "x" * (length - len(file_block(rel, ""))))


def read(directory: Path, name: str) -> str:
    return (directory / name).read_text(encoding="utf-8")


def packed_blocks(text: str) -> str:
    return text.split("-" * 30 + "\n\n", 1)[1]


def multipart_piece(text: str) -> str:
    return text.split(SEPARATOR + "\n\n", 1)[1][:-2]


@pytest.mark.unit
def test_file_block_format() -> None:
    assert file_block("src/a.py", "pass") == f"\n{SEPARATOR}\nFile: src/a.py\n{SEPARATOR}\n\npass\n\n"


@pytest.mark.unit
def test_build_tree_lines_dirs_first_then_files() -> None:
    lines = build_tree_lines("repository/", ["src/app.py", "logo.png", "README.md", "src/lib/util.py"])

    assert lines == [
        "repository/",
        "├── src/",
        "│   ├── lib/",
        "│   │   └── util.py",
        "│   └── app.py",
        "├── logo.png",
        "└── README.md",
    ]


@pytest.mark.unit
def test_build_tree_text_marks_files_not_merged() -> None:
    text = build_tree_text(["src/app.py", "logo.png"], {"src/app.py"})

    lines = text.splitlines()
    assert lines[0] == "--- PROJECT STRUCTURE ---"
    assert lines[1].startswith("Legend:")
    assert lines[2:] == ["repository/", "├── src/", "│   └── app.py", "└── logo.png [-]"]


@pytest.mark.unit
def test_find_safe_split_returns_last_declaration() -> None:
    window = "import os\n\ndef a():\n    pass\n\nclass B:\n    pass\n"

    assert find_safe_split(window) == window.index("\nclass")
    assert find_safe_split("no declarations here") == -1


@pytest.mark.unit
def test_split_offset_falls_back_to_newline_then_hard_cut() -> None:
    def never(_window: str) -> int:
        return -1

    assert split_offset("abc\ndef\nghi", never) == 7
    assert split_offset("abcdef", never) == 6
    assert split_offset("\nabcdef", never) == 7


@pytest.mark.unit
def test_estimate_parts() -> None:
    assert estimate_parts(3000, 1000) == 6
    assert estimate_parts(10, 1) == 10


def test_next_fit_packs_six_blocks_of_150_per_chunk(tmp_path: Path) -> None:
    files = [rec_with_block_length(f"f{i}.txt", 150) for i in range(10)]

    created = merge_files(files, tmp_path, 1000)

    assert created == ["Source-1 (6 Files).txt", "Source-2 (4 Files).txt"]
    first = read(tmp_path, created[0])
    assert first.startswith("--- INDEX ---\nf0.txt\nf1.txt\nf2.txt\nf3.txt\nf4.txt\nf5.txt\n" + "-" * 30 + "\n\n")
    assert len(packed_blocks(first)) == 900
    assert packed_blocks(read(tmp_path, created[1])) == "".join(file_block(f.rel, f.content) for f in files[6:])


def test_next_fit_preserves_input_order(tmp_path: Path) -> None:
    sizes = [400, 700, 200, 300, 800, 150]
    files = [rec_with_block_length(f"f{i}.txt", size) for i, size in enumerate(sizes)]

    created = merge_files(files, tmp_path, 1000)

    order: list[str] = []
    for name in created:
        header = read(tmp_path, name).split("-" * 30, 1)[0]
        order.extend(header.splitlines()[1:])
        assert len(packed_blocks(read(tmp_path, name))) <= 1000
    assert order == [f.rel for f in files]
    assert created == [
        "Source-1 (1 Files).txt",
        "Source-2 (2 Files).txt",
        "Source-3 (1 Files).txt",
        "Source-4 (2 Files).txt",
    ]


def test_multipart_hard_cut_reconstructs_content(tmp_path: Path) -> None:
    max_chars = 1000
    content = "y" * (3 * max_chars)

    created = merge_files([rec("huge.min.js", content)], tmp_path, max_chars)

    assert len(created) >= 3
    assert all(name.startswith("Source-1.") and name.endswith(" (Multipart File).txt") for name in created)
    texts = [read(tmp_path, name) for name in created]
    assert all(len(t) <= max_chars for t in texts)
    assert "".join(multipart_piece(t) for t in texts) == content
    total = estimate_parts(len(content), max_chars)
    assert f"huge.min.js (Part 1/{total})" in texts[0]


def test_multipart_prefers_declaration_boundaries(tmp_path: Path) -> None:
    body = "".join(f"def f{i}():\n    return {i}\n\n" for i in range(80))

    created = merge_files([rec("mod.py", body)], tmp_path, 600)

    pieces = [multipart_piece(read(tmp_path, name)) for name in created]
    assert "".join(pieces) == body
    assert all(p.startswith("\ndef ") for p in pieces[1:])


def test_multipart_files_follow_packed_chunks(tmp_path: Path) -> None:
    files = [rec("a.txt", "a"), rec("big.txt", "line\n" * 400), rec("b.txt", "b")]

    created = merge_files(files, tmp_path, 1000)

    assert created[0] == "Source-1 (2 Files).txt"
    assert created[1] == "Source-2.1 (Multipart File).txt"
    assert created[-1].startswith("Source-2.")


def test_custom_boundary_finder_is_used(tmp_path: Path) -> None:
    finder = make_declaration_boundary_finder(["fn"])
    body = "".join(f"fn f{i}() {{}}\nlet x = {i};\n" for i in range(100))

    created = merge_files([rec("lib.rs", body)], tmp_path, 500, boundary_finder=finder)

    pieces = [multipart_piece(read(tmp_path, name)) for name in created]
    assert "".join(pieces) == body
    assert all(p.startswith("\nfn ") for p in pieces[1:])


def test_chunk_size_below_part_headers_is_refused(tmp_path: Path) -> None:
    with pytest.raises(ChunkSizeError) as exc:
        merge_files([rec("a.py", "x" * 400)], tmp_path, 150)

    assert "a.py" in str(exc.value)
    assert list(tmp_path.iterdir()) == []


def test_full_context_writes_one_sorted_file(tmp_path: Path) -> None:
    files = [rec("b.py", "B" * 5000), rec("a.py", "A")]

    created = merge_files(files, tmp_path, 100, disable_splitting=True, tree_text="TREE\n")

    assert created == [FULL_CONTEXT_FILE_NAME]
    text = read(tmp_path, FULL_CONTEXT_FILE_NAME)
    assert text.startswith("TREE\n\n")
    assert text.index("File: a.py") < text.index("File: b.py")
    assert "B" * 5000 in text


def test_prepare_output_directory_clears_previous_run(tmp_path: Path) -> None:
    merged = tmp_path / "out" / "Merged"
    merged.mkdir(parents=True)
    (merged / "stale.txt").write_text("old", encoding="utf-8")

    assert prepare_output_directory(merged) == merged
    assert list(merged.iterdir()) == []


def test_prepare_output_directory_wraps_os_errors(tmp_path: Path, mocker: MockerFixture) -> None:
    merged = tmp_path / "Merged"
    merged.mkdir()
    mocker.patch("txt_forge.output_construction.shutil.rmtree", side_effect=PermissionError("denied"))

    with pytest.raises(OutputDirectoryError) as exc:
        prepare_output_directory(merged)

    assert "denied" in str(exc.value)
