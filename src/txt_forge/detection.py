"""Technology stack detection.

Detection is two-tiered: package manifests at the project root are the strong
evidence (a `package.json` listing `react` proves React), and trigger files are
only a fallback for ecosystems without manifests. Generic triggers and, once a
manifest was seen, generic language identifiers are never guessed from stray
files, which avoids calling a Node project "Java" because of one `.java` file.
"""

from __future__ import annotations

import json
import re
from fnmatch import fnmatchcase
from pathlib import Path
from typing import TYPE_CHECKING, Any

import tomlkit
import yaml
from packaging.requirements import InvalidRequirement, Requirement
from packaging.utils import canonicalize_name

from txt_forge.config import (
    DETECTION_SCAN_DEPTH,
    DETECTION_SKIP_FOLDERS,
    GENERIC_TRIGGERS,
    GITIGNORE_MARKER,
    MANAGED_GENERIC_IDS,
    DetectionResult,
    GitStatus,
)
from txt_forge.logging import logger
from txt_forge.templates import all_templates

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    ManifestAnalyzer = Callable[[Path, DetectionResult], None]

_ARTIFACT_ID = re.compile(r"<artifactId>\s*([^<\s]+)\s*</artifactId>")
_GROUP_ID = re.compile(r"<groupId>\s*([^<\s]+)\s*</groupId>")
_GRADLE_PLUGIN_ID = re.compile(r"""\bid\s*\(?\s*["']([^"']+)["']""")
_GRADLE_APPLY_PLUGIN = re.compile(r"""apply\s+plugin\s*:\s*["']([^"']+)["']""")
_GRADLE_KOTLIN_PLUGIN = re.compile(r"""\bkotlin\s*\(\s*["'](\w+)["']\s*\)""")
_GRADLE_COORDINATE = re.compile(r"""["']([\w.\-]+):([\w.\-]+)(?::[^"']*)?["']""")

DOCKER_FILES = ("Dockerfile", "docker-compose.yml", "docker-compose.yaml")


def match_packages(dependencies: Iterable[str], result: DetectionResult, *, manifest: str) -> None:
    """Add every template whose `package_match` names one of `dependencies`.

    Args:
        dependencies (Iterable[str]): dependency names declared by a manifest
        result (DetectionResult): the result to enrich
        manifest (str): manifest file name, used in the reason text
    """
    deps = list(dict.fromkeys(dependencies))
    for template in all_templates():
        if not template.package_match:
            continue
        found = next(
            (dep for pattern in template.package_match for dep in deps if fnmatchcase(dep, pattern)),
            None,
        )
        if found is not None:
            result.add(template.id, f"Dependency: {found} ({manifest})")


def _read_json_object(path: Path) -> dict[str, Any]:
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        msg = f"{path.name} does not contain a JSON object"
        raise TypeError(msg)
    return data


def _dict_keys(*values: Any) -> list[str]:  # noqa: ANN401
    out: list[str] = []
    for value in values:
        if isinstance(value, dict):
            out.extend(str(k) for k in value)
    return out


def analyze_node(root: Path, result: DetectionResult) -> None:
    """Detect JavaScript/TypeScript frameworks from `package.json`.

    `typescript` among the dependencies makes the project TypeScript; otherwise
    it is JavaScript, never both.
    """
    pkg = _read_json_object(root / "package.json")
    deps = _dict_keys(pkg.get("dependencies"), pkg.get("devDependencies"))
    match_packages(deps, result, manifest="package.json")
    if "typescript" in deps:
        result.add("typescript", "Found typescript dependency")
    elif not result.has("typescript"):
        result.add("javascript", "Found package.json (Node Project)")


def analyze_maven(root: Path, result: DetectionResult) -> None:
    """Detect Spring Boot, Kotlin and Java from `pom.xml` group and artifact ids."""
    content = (root / "pom.xml").read_text(encoding="utf-8", errors="ignore")
    deps = [*_ARTIFACT_ID.findall(content), *_GROUP_ID.findall(content)]
    match_packages(deps, result, manifest="pom.xml")
    if result.has("spring-boot"):
        result.add("java", "Spring Boot implies Java")
    if not result.has("kotlin"):
        result.add("java", "Found pom.xml (Java Project)")


def gradle_dependencies(content: str) -> list[str]:
    """Extract plugin ids and dependency coordinates from a Gradle build script.

    Args:
        content (str): Groovy or Kotlin DSL build script

    Returns:
        list[str]: plugin ids, group ids and artifact ids, in order of appearance
    """
    deps: list[str] = []
    deps.extend(_GRADLE_PLUGIN_ID.findall(content))
    deps.extend(_GRADLE_APPLY_PLUGIN.findall(content))
    deps.extend(f"org.jetbrains.kotlin.{name}" for name in _GRADLE_KOTLIN_PLUGIN.findall(content))
    for group, artifact in _GRADLE_COORDINATE.findall(content):
        deps.extend((group, artifact))
    return deps


def analyze_gradle(root: Path, result: DetectionResult) -> None:
    """Detect Android, Spring Boot, Kotlin and Java from `build.gradle[.kts]`."""
    build_file = next(
        (root / name for name in ("build.gradle", "build.gradle.kts") if (root / name).is_file()),
        None,
    )
    if build_file is None:
        return
    content = build_file.read_text(encoding="utf-8", errors="ignore")
    match_packages(gradle_dependencies(content), result, manifest=build_file.name)
    if build_file.suffix == ".kts":
        result.add("kotlin", "Found build.gradle.kts (Kotlin DSL)")
    elif not result.has("kotlin"):
        result.add("java", f"Found {build_file.name} (JVM Project)")


def analyze_composer(root: Path, result: DetectionResult) -> None:
    """Detect PHP frameworks from `composer.json`; the manifest itself means PHP."""
    composer = _read_json_object(root / "composer.json")
    deps = _dict_keys(composer.get("require"), composer.get("require-dev"))
    match_packages(deps, result, manifest="composer.json")
    result.add("php", "Found composer.json")


def _requirement_name(line: str) -> str | None:
    try:
        return canonicalize_name(Requirement(line).name)
    except InvalidRequirement:
        return None


def pyproject_dependencies(text: str) -> list[str]:
    """Collect canonical dependency names declared by a `pyproject.toml`.

    Reads PEP 621 dependencies and optional dependencies, PEP 735 dependency
    groups and Poetry dependency tables.

    Args:
        text (str): the `pyproject.toml` content

    Returns:
        list[str]: canonicalized distribution names
    """
    doc = tomlkit.parse(text).unwrap()
    specs: list[str] = []
    project = doc.get("project", {})
    specs.extend(project.get("dependencies", []))
    for group in project.get("optional-dependencies", {}).values():
        specs.extend(group)
    for group in doc.get("dependency-groups", {}).values():
        specs.extend(item for item in group if isinstance(item, str))

    names = [name for name in map(_requirement_name, specs) if name]
    poetry = doc.get("tool", {}).get("poetry", {})
    poetry_tables = [poetry.get("dependencies", {})]
    poetry_tables.extend(g.get("dependencies", {}) for g in poetry.get("group", {}).values())
    names.extend(canonicalize_name(k) for table in poetry_tables for k in table if k != "python")
    return names


def requirements_dependencies(text: str) -> list[str]:
    """Collect canonical dependency names from a `requirements.txt`, skipping pip options."""
    names: list[str] = []
    for raw in text.splitlines():
        line = raw.split("#", 1)[0].strip()
        if not line or line.startswith("-"):
            continue
        if name := _requirement_name(line):
            names.append(name)
    return names


def analyze_python(root: Path, result: DetectionResult) -> None:
    """Detect Python frameworks from `pyproject.toml` and `requirements.txt`."""
    deps: list[str] = []
    manifests: list[str] = []
    pyproject = root / "pyproject.toml"
    if pyproject.is_file():
        deps.extend(pyproject_dependencies(pyproject.read_text(encoding="utf-8")))
        manifests.append(pyproject.name)
    requirements = root / "requirements.txt"
    if requirements.is_file():
        deps.extend(requirements_dependencies(requirements.read_text(encoding="utf-8", errors="ignore")))
        manifests.append(requirements.name)
    if not manifests:
        return
    match_packages(deps, result, manifest=manifests[0])
    result.add("python", f"Found {manifests[0]} (Python Project)")


def analyze_pubspec(root: Path, result: DetectionResult) -> None:
    """Detect Dart and Flutter from `pubspec.yaml`."""
    data = yaml.safe_load((root / "pubspec.yaml").read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        msg = "pubspec.yaml does not contain a mapping"
        raise TypeError(msg)
    deps = _dict_keys(data.get("dependencies"), data.get("dev_dependencies"))
    match_packages(deps, result, manifest="pubspec.yaml")
    result.add("dart", "Found pubspec.yaml (Dart Project)")


MANIFEST_ANALYZERS: tuple[tuple[tuple[str, ...], ManifestAnalyzer], ...] = (
    (("pom.xml",), analyze_maven),
    (("build.gradle", "build.gradle.kts"), analyze_gradle),
    (("package.json",), analyze_node),
    (("composer.json",), analyze_composer),
    (("pyproject.toml", "requirements.txt"), analyze_python),
    (("pubspec.yaml",), analyze_pubspec),
)


def detect_git_status(root: Path, entries: set[str]) -> GitStatus:
    """Report whether `root` is a git repository already ignoring the output folder.

    Args:
        root (Path): the project root
        entries (set[str]): names of the root entries

    Returns:
        GitStatus: none, clean or ignored
    """
    if ".git" not in entries:
        return GitStatus.NONE
    if ".gitignore" in entries:
        try:
            content = (root / ".gitignore").read_text(encoding="utf-8", errors="ignore")
        except OSError as e:
            logger.debug("gitignore_unreadable", path=str(root / ".gitignore"), error=str(e))
        else:
            if GITIGNORE_MARKER in content:
                return GitStatus.IGNORED
    return GitStatus.CLEAN


def deep_scan_extensions(directory: Path, depth: int = DETECTION_SCAN_DEPTH) -> set[str]:
    """Collect the lowercased file extensions found a few levels below `directory`.

    Dot entries and dependency/build folders are skipped; unreadable folders
    contribute nothing.

    Args:
        directory (Path): the folder to scan
        depth (int): how many levels to descend, `directory` itself included

    Returns:
        set[str]: extensions such as ".sql"
    """
    extensions: set[str] = set()
    if depth <= 0:
        return extensions
    try:
        entries = sorted(directory.iterdir())
    except OSError as e:
        logger.debug("extension_scan_failed", directory=str(directory), error=str(e))
        return extensions
    for entry in entries:
        if entry.name.startswith(".") or entry.name in DETECTION_SKIP_FOLDERS:
            continue
        if entry.is_dir():
            extensions |= deep_scan_extensions(entry, depth - 1)
        elif entry.suffix:
            extensions.add(entry.suffix.lower())
    return extensions


def trigger_matches(root: Path, entries: set[str], trigger: str) -> bool:
    """Check a non-generic template trigger against the project root.

    Args:
        root (Path): the project root
        entries (set[str]): names of the root entries
        trigger (str): "name", "*suffix", "folder/" or "nested/path"

    Returns:
        bool: True if the trigger is present
    """
    if trigger in GENERIC_TRIGGERS:
        return False
    if trigger.startswith("*"):
        suffix = trigger[1:]
        return any(e.endswith(suffix) for e in entries)
    if trigger.endswith("/"):
        return (root / trigger.rstrip("/")).is_dir()
    if "/" in trigger:
        return (root / trigger).exists()
    return trigger in entries


def _detect(root: Path) -> DetectionResult:
    result = DetectionResult()
    entries = {p.name for p in root.iterdir()}
    result.git_status = detect_git_status(root, entries)

    is_managed_project = False
    for names, analyzer in MANIFEST_ANALYZERS:
        if not any(n in entries for n in names):
            continue
        is_managed_project = True
        try:
            analyzer(root, result)
        except Exception as e:  # noqa: BLE001
            logger.warning("manifest_analysis_failed", manifest=names[0], error=str(e))

    if any(name in entries for name in DOCKER_FILES):
        result.add("docker", "Docker config found")

    found = deep_scan_extensions(root)
    if ".sql" in found:
        result.add("sql", "SQL files found")
    if ".sh" in found:
        result.add("bash-shell", "Shell scripts found")
    if ".html" in found or ".css" in found:
        result.add("html-css", "HTML/CSS files found")

    for template in all_templates():
        if result.has(template.id):
            continue
        if is_managed_project and template.id in MANAGED_GENERIC_IDS:
            continue
        trigger = next((t for t in template.triggers if trigger_matches(root, entries, t)), None)
        if trigger is not None:
            result.add(template.id, f"File trigger detected: {trigger}")

    return result


def detect_codebase(root: str | Path) -> DetectionResult:
    """Detect the technology stack of a project directory.

    Never raises: a failing manifest contributes nothing, and a failure of the
    whole scan (missing or unreadable root) returns an empty result.

    Args:
        root (str | Path): the project directory

    Returns:
        DetectionResult: detected template identifiers, reasons and git status
    """
    root_path = Path(root).resolve()
    logger.debug("detection_started", root=str(root_path))
    try:
        result = _detect(root_path)
    except Exception as e:  # noqa: BLE001
        logger.warning("detection_failed", root=str(root_path), error=str(e))
        return DetectionResult()
    logger.debug("detection_finished", root=str(root_path), ids=result.ids)
    return result
