"""
txt-forge: merge a project's source files into LLM-sized text files.

Overview
--------
Running `txt-forge` in a project detects its stack (package manifests first,
marker files as a fallback), selects the matching source files and writes them
as numbered chunks of at most `--max-chars` characters, next to a
`Source-Tree.txt` project structure, in `TXT-Forge/Merged/`.

Usage
-----
Run `python -m txt_forge --help` for full options. Common examples:
    - Merge the current directory (auto mode):
        txt-forge

    - Merge another project into the global vault, hiding ignored files from the tree:
        txt-forge --repo ../api --vault -i

    - One single file, whatever its size:
        txt-forge --no-split

    - Only show what would be detected:
        txt-forge detect --json
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

from txt_forge import __version__
from txt_forge.config import BASE_IGNORE_PATTERNS, RuleState, SaveMode
from txt_forge.detection import detect_codebase
from txt_forge.exceptions import TxtForgeError
from txt_forge.logging import setup_logging
from txt_forge.output_construction import build_tree_text
from txt_forge.processor import forge
from txt_forge.settings import Settings, load_saved_config
from txt_forge.templates import active_ignores, all_templates, generate_gitignore, get_template, templates_for
from txt_forge.tree import flatten_tree, iter_nodes, scan_directory

if TYPE_CHECKING:
    from collections.abc import Sequence

    from txt_forge.config import DetectionResult, ProcessResult

SUBCOMMANDS = ("forge", "detect", "tree", "templates", "gitignore")
DEFAULT_SUBCOMMAND = "forge"


def _common_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--repo", type=str, default=None, help="Project root (default: TXT_FORGE_CWD or cwd).")
    common.add_argument("--debug", action="store_true", help="Verbose logging.")
    common.add_argument("--log-file", type=str, default="", help="Log file path.")
    return common


def build_parser() -> argparse.ArgumentParser:
    common = _common_parser()
    p = argparse.ArgumentParser(
        prog="txt-forge",
        description="Merge a project's source files into size-bounded text files for LLM context windows.",
    )
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = p.add_subparsers(dest="command")

    f = sub.add_parser("forge", parents=[common], help="Detect, select and merge (default).")
    dest = f.add_mutually_exclusive_group()
    dest.add_argument(
        "--vault",
        action="store_const",
        const=SaveMode.GLOBAL,
        dest="save_mode",
        help="Write to ~/.txt-forge-vault/<project> instead of the project folder.",
    )
    dest.add_argument("-c", "--custom", type=str, default=None, help="Write to this directory.")
    f.add_argument(
        "-i",
        "--ignore",
        action="store_true",
        dest="hide_ignored",
        help="Hide files that are not merged from the project structure.",
    )
    f.add_argument(
        "--templates",
        type=str,
        default=None,
        help="Comma list of template ids, replacing detection (see `txt-forge templates`).",
    )
    f.add_argument("--max-chars", type=int, default=None, help="Maximum characters per chunk.")
    f.add_argument("--no-split", action="store_true", help="Write a single full-context file.")
    f.add_argument(
        "--include",
        action="append",
        default=[],
        help="Relative path to force into the merge (repeatable).",
    )
    f.add_argument(
        "--exclude",
        action="append",
        default=[],
        help="Relative path to keep out of the merge (repeatable).",
    )
    f.add_argument("--config", type=str, default=None, help="Saved project configuration (JSON).")

    d = sub.add_parser("detect", parents=[common], help="Print the detected stack.")
    d.add_argument("--json", action="store_true", help="JSON output.")

    t = sub.add_parser("tree", parents=[common], help="Print the project tree.")
    t.add_argument("--path", type=str, default=None, help="Expand only this sub-folder.")
    t.add_argument("--templates", type=str, default=None, help="Comma list of template ids for ignores.")
    t.add_argument("--json", action="store_true", help="JSON output.")

    tpl = sub.add_parser("templates", parents=[common], help="List the template catalogue.")
    tpl.add_argument("--json", action="store_true", help="JSON output.")

    g = sub.add_parser("gitignore", parents=[common], help="Generate a .gitignore for templates.")
    g.add_argument("template_ids", nargs="+", help="Template ids.")
    return p


def normalize_argv(argv: Sequence[str]) -> list[str]:
    """Insert the default sub-command when none is given.

    Args:
        argv (Sequence[str]): raw command line arguments

    Returns:
        list[str]: arguments starting with a sub-command, unless only help or version is asked
    """
    args = list(argv)
    if args and (args[0] in SUBCOMMANDS or args[0] in {"-h", "--help", "--version"}):
        return args
    return [DEFAULT_SUBCOMMAND, *args]


def parse_template_ids(raw: str | None) -> list[str] | None:
    """Split and validate a comma list of template ids.

    Raises:
        UnknownTemplateError: for an id missing from the catalogue
    """
    if raw is None:
        return None
    ids = [x.strip() for x in raw.split(",") if x.strip()]
    for template_id in ids:
        get_template(template_id)
    return ids


def parse_rules(include: Sequence[str], exclude: Sequence[str]) -> dict[str, RuleState] | None:
    rules: dict[str, RuleState] = {}
    rules.update(dict.fromkeys(exclude, RuleState.EXCLUDE))
    rules.update(dict.fromkeys(include, RuleState.INCLUDE))
    return rules or None


def format_detection(result: DetectionResult) -> str:
    lines = [f"git: {result.git_status}"]
    lines.extend(f"{tid}: {'; '.join(result.reasons.get(tid, []))}" for tid in result.ids)
    if not result.ids:
        lines.append("no technology detected")
    return "\n".join(lines)


def format_result(result: ProcessResult) -> str:
    lines = [result.message]
    if result.detected_ids:
        lines.append(f"detected: {', '.join(result.detected_ids)}")
    if result.output_path:
        lines.append(f"output: {result.output_path}")
    lines.extend(f"  {name}" for name in result.files)
    if result.git_ignore_modified:
        lines.append("added TXT-Forge/ to .gitignore")
    return "\n".join(lines)


def run_forge(args: argparse.Namespace, settings: Settings, repo: Path) -> int:
    saved = load_saved_config(Path(args.config)) if args.config else None
    overrides: dict[str, Any] = {
        "template_ids": parse_template_ids(args.templates),
        "max_chars": args.max_chars,
        "selection_rules": parse_rules(args.include, args.exclude),
        "hide_ignored_in_tree": True if args.hide_ignored else None,
        "disable_splitting": True if args.no_split else None,
    }
    if args.max_chars is None and (saved is None or not saved.is_current):
        overrides["max_chars"] = settings.max_chars
    if args.custom:
        overrides["save_mode"] = SaveMode.CUSTOM
        overrides["custom_path"] = Path(args.custom)
    elif args.save_mode:
        overrides["save_mode"] = args.save_mode

    result = forge(repo, saved, **overrides)
    if not result.success:
        print(format_result(result), file=sys.stderr)
        return 1
    print(format_result(result))
    return 0


def run_detect(args: argparse.Namespace, repo: Path) -> int:
    result = detect_codebase(repo)
    print(result.model_dump_json(by_alias=True, indent=2) if args.json else format_detection(result))
    return 0


def run_tree(args: argparse.Namespace, repo: Path) -> int:
    template_ids = parse_template_ids(args.templates) or []
    patterns = [*BASE_IGNORE_PATTERNS, *active_ignores(templates_for(template_ids))]
    scan_dir = repo / args.path if args.path else repo
    depth = len(Path(args.path).parts) if args.path else 0
    nodes = scan_directory(repo, scan_dir, depth, patterns, is_lazy_load_root=bool(args.path))
    if args.json:
        print(json.dumps([n.model_dump(by_alias=True, mode="json") for n in nodes], indent=2))
        return 0
    shown = {n.path for n in iter_nodes(nodes) if not n.is_ignored}
    print(build_tree_text(flatten_tree(nodes), shown), end="")
    return 0


def run_templates(args: argparse.Namespace) -> int:
    templates = all_templates()
    if args.json:
        print(json.dumps([t.model_dump(mode="json") for t in templates], indent=2))
        return 0
    for t in templates:
        print(f"{t.id}\t{t.name}\t{' '.join(t.extensions)}")
    return 0


def run_gitignore(args: argparse.Namespace) -> int:
    ids = parse_template_ids(",".join(args.template_ids)) or []
    print(generate_gitignore(ids), end="")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(normalize_argv(sys.argv[1:] if argv is None else argv))
    try:
        settings = Settings.from_env()
    except TxtForgeError as e:
        print(f"txt-forge: {e}", file=sys.stderr)
        return 1
    log_file = args.log_file or settings.log_file
    setup_logging(log_file or None, debug=args.debug or settings.debug)

    repo = Path(args.repo).resolve() if args.repo else settings.cwd.resolve()
    try:
        if args.command == "detect":
            return run_detect(args, repo)
        if args.command == "tree":
            return run_tree(args, repo)
        if args.command == "templates":
            return run_templates(args)
        if args.command == "gitignore":
            return run_gitignore(args)
        return run_forge(args, settings, repo)
    except TxtForgeError as e:
        print(f"txt-forge: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
