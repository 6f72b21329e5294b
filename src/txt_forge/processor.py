"""End-to-end processing: select, read, and merge a project into the output folder."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any

from txt_forge.config import (
    GITIGNORE_MARKER,
    GLOBAL_VAULT_NAME,
    MERGED_DIR_NAME,
    OUTPUT_FOLDER_NAME,
    TREE_FILE_NAME,
    ProcessResult,
    SaveMode,
)
from txt_forge.detection import detect_codebase
from txt_forge.exceptions import InvalidSaveModeError, NoMatchingFilesError, TxtForgeError
from txt_forge.file_manipulation import read_file_records, relpath, resolve_files
from txt_forge.logging import logger
from txt_forge.output_construction import build_tree_text, merge_files, prepare_output_directory
from txt_forge.settings import ProcessConfig
from txt_forge.templates import templates_for

if TYPE_CHECKING:
    from txt_forge.config import DetectionResult
    from txt_forge.settings import SavedProjectConfig

GITIGNORE_ENTRY = f"{OUTPUT_FOLDER_NAME}/"


def resolve_output_base(config: ProcessConfig) -> Path:
    """Resolve the folder receiving the `Merged` directory.

    Args:
        config (ProcessConfig): the processing configuration

    Raises:
        InvalidSaveModeError: for the custom mode without a custom path

    Returns:
        Path: `<source>/TXT-Forge`, `~/.txt-forge-vault/<project>` or the custom path
    """
    source_root = config.source_dir.resolve()
    if config.save_mode == SaveMode.ROOT:
        return source_root / OUTPUT_FOLDER_NAME
    if config.save_mode == SaveMode.GLOBAL:
        return Path.home() / GLOBAL_VAULT_NAME / source_root.name
    if config.save_mode == SaveMode.CUSTOM and config.custom_path:
        return config.custom_path.expanduser().resolve()
    raise InvalidSaveModeError(save_mode=str(config.save_mode))


def ensure_gitignore(root: Path) -> bool:
    """Append the output folder to the project's `.gitignore` unless it is already mentioned.

    The file is created when missing. Failures are logged, not raised.

    Args:
        root (Path): the project root

    Returns:
        bool: True if `.gitignore` was modified
    """
    gitignore = root / ".gitignore"
    try:
        content = gitignore.read_text(encoding="utf-8", errors="ignore") if gitignore.exists() else ""
        if GITIGNORE_MARKER in content:
            return False
        prefix = "" if not content or content.endswith("\n") else "\n"
        with gitignore.open("a", encoding="utf-8") as f:
            f.write(prefix + GITIGNORE_ENTRY)
    except OSError as e:
        logger.warning("Could not update %s: %s", gitignore, e)
        return False
    logger.info("gitignore_updated", path=str(gitignore))
    return True


def _process(config: ProcessConfig) -> ProcessResult:
    source_root = config.source_dir.resolve()
    templates = templates_for(config.template_ids)
    selection = resolve_files(
        source_root,
        templates,
        config.selection_rules,
        hide_ignored_in_tree=config.hide_ignored_in_tree,
    )
    if not selection.content_files:
        raise NoMatchingFilesError(source_dir=source_root)

    output_base = resolve_output_base(config)
    git_ignore_modified = ensure_gitignore(source_root) if config.save_mode == SaveMode.ROOT else False
    merged_dir = prepare_output_directory(output_base / MERGED_DIR_NAME)

    records = read_file_records(selection.content_files, source_root)
    tree_text = build_tree_text(
        [relpath(p, source_root) for p in selection.tree_files],
        {r.rel for r in records},
    )
    if config.disable_splitting:
        files = merge_files(records, merged_dir, config.max_chars, disable_splitting=True, tree_text=tree_text)
    else:
        (merged_dir / TREE_FILE_NAME).write_text(tree_text, encoding="utf-8")
        files = [TREE_FILE_NAME, *merge_files(records, merged_dir, config.max_chars)]

    logger.info("processing_complete", output=str(merged_dir), files=len(files), merged=len(records))
    return ProcessResult(
        success=True,
        message="Processing Complete",
        output_path=str(merged_dir),
        files=files,
        git_ignore_modified=git_ignore_modified,
    )


def process_files(config: ProcessConfig) -> ProcessResult:
    """Run selection and merging for one configuration.

    Never raises: every failure is reported through `success=False` and `message`.

    Args:
        config (ProcessConfig): the processing configuration

    Returns:
        ProcessResult: the outcome, with the generated file names on success
    """
    try:
        return _process(config)
    except TxtForgeError as e:
        logger.warning("processing_failed", source=str(config.source_dir), error=str(e))
        return ProcessResult(success=False, message=str(e))
    except Exception as e:  # noqa: BLE001
        logger.exception("processing_crashed", source=str(config.source_dir))
        return ProcessResult(success=False, message=str(e) or "Unknown Error")


def resolve_process_config(
    source_dir: str | Path,
    saved: SavedProjectConfig | None = None,
    *,
    detection: DetectionResult | None = None,
    **overrides: Any,  # noqa: ANN401
) -> ProcessConfig:
    """Build the processing configuration of a project.

    A saved bundle of the current version is used as is; an absent or outdated
    one falls back to live detection. Non-None `overrides` win over both.

    Args:
        source_dir (str | Path): the project root
        saved (SavedProjectConfig | None): previously saved configuration, if any
        detection (DetectionResult | None): detection already run on `source_dir`
        **overrides: `ProcessConfig` fields set explicitly by the caller

    Returns:
        ProcessConfig: the resolved configuration
    """
    values: dict[str, Any]
    if saved is not None and saved.is_current:
        values = saved.model_dump(exclude={"version"})
    else:
        if saved is not None:
            logger.info("saved_config_outdated", version=saved.version)
        result = detection if detection is not None else detect_codebase(source_dir)
        values = {"template_ids": list(result.ids)}
    values.update({k: v for k, v in overrides.items() if v is not None})
    return ProcessConfig(source_dir=Path(source_dir), **values)


def forge(
    source_dir: str | Path,
    saved: SavedProjectConfig | None = None,
    **overrides: Any,  # noqa: ANN401
) -> ProcessResult:
    """Detect the stack of `source_dir` and process it in one call.

    Args:
        source_dir (str | Path): the project root
        saved (SavedProjectConfig | None): previously saved configuration, if any
        **overrides: `ProcessConfig` fields set explicitly by the caller

    Returns:
        ProcessResult: the outcome, with the detected identifiers attached
    """
    detection = detect_codebase(source_dir)
    logger.info("stack_detected", source=str(source_dir), ids=detection.ids)
    try:
        config = resolve_process_config(source_dir, saved, detection=detection, **overrides)
    except ValueError as e:
        return ProcessResult(success=False, message=str(e), detected_ids=detection.ids)
    result = process_files(config)
    return result.model_copy(update={"detected_ids": detection.ids})
