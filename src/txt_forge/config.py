from __future__ import annotations

from enum import StrEnum, auto
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

OUTPUT_FOLDER_NAME = "TXT-Forge"
GLOBAL_VAULT_NAME = ".txt-forge-vault"
GITIGNORE_MARKER = "TXT-Forge"
MERGED_DIR_NAME = "Merged"
TREE_FILE_NAME = "Source-Tree.txt"

DEFAULT_MAX_CHARS = 75_000
# Smallest chunk leaving room for the index and file headers of a multipart chunk.
MIN_MAX_CHARS = 1_000
MAX_CONTENT_FILE_SIZE = 5 * 1024 * 1024
MASSIVE_FILE_SIZE = 1024 * 1024
MASSIVE_FOLDER_ENTRIES = 150
BINARY_SNIFF_BYTES = 4096
DETECTION_SCAN_DEPTH = 3

ROOT_RULE_KEY = "."

BINARY_EXTENSIONS = frozenset(
    {
        # images
        ".png", ".jpg", ".jpeg", ".gif", ".webp", ".ico", ".svg", ".bmp", ".tiff", ".heic",
        # fonts
        ".ttf", ".otf", ".woff", ".woff2", ".eot",
        # audio / video
        ".mp3", ".wav", ".ogg", ".mp4", ".webm", ".mov", ".avi", ".mkv",
        # 3d models
        ".fbx", ".obj", ".blend", ".glb", ".gltf", ".3ds",
        # archives / binaries
        ".pdf", ".zip", ".tar", ".gz", ".7z", ".rar", ".exe", ".dll", ".so", ".dylib", ".bin",
        ".apk", ".aab",
        # android signing
        ".keystore", ".jks",
    },
)  # fmt: skip

MEDIA_EXTENSIONS = frozenset(
    {
        ".png", ".jpg", ".jpeg", ".gif", ".webp", ".ico", ".svg", ".bmp", ".tiff",
        ".mp3", ".wav", ".ogg", ".mp4", ".webm", ".mov", ".avi",
        ".pdf", ".zip", ".tar", ".gz", ".7z", ".rar",
        ".exe", ".dll", ".so", ".dylib", ".bin",
        ".ttf", ".otf", ".woff", ".woff2", ".eot",
    },
)  # fmt: skip

SYSTEM_HIDDEN = frozenset(
    {
        ".git",
        ".DS_Store",
        "Thumbs.db",
        "node_modules",
        "__pycache__",
        ".svelte-kit",
        GLOBAL_VAULT_NAME,
        OUTPUT_FOLDER_NAME,
        "package-lock.json",
        "yarn.lock",
        "pnpm-lock.yaml",
        "bun.lockb",
    },
)

MASSIVE_FOLDERS = frozenset(
    {"node_modules", ".git", ".godot", ".svelte-kit", ".next", "dist", "build", "vendor"},
)

BASE_IGNORE_PATTERNS: tuple[str, ...] = (
    ".git",
    "node_modules",
    ".godot",
    OUTPUT_FOLDER_NAME,
    GLOBAL_VAULT_NAME,
    "*.import",
    "*.uid",
)

# Folders the extension scan of the detector never enters.
DETECTION_SKIP_FOLDERS = frozenset({"node_modules", "dist", "build", "vendor"})

# Trigger files too common to prove a specific template.
GENERIC_TRIGGERS = frozenset(
    {
        "package.json",
        "README.md",
        ".gitignore",
        ".env",
        ".editorconfig",
        "LICENSE",
        "tsconfig.json",
        "vite.config.ts",
        "vite.config.js",
        "vite.config.mts",
        "vite.config.mjs",
    },
)

# Identifiers the trigger fallback skips once a package manifest was found.
MANAGED_GENERIC_IDS = frozenset(
    {"java", "kotlin", "android", "javascript", "typescript", "react", "vuejs", "angular"},
)


class SaveMode(StrEnum):
    """Destination strategy for the generated output."""

    ROOT = auto()
    GLOBAL = auto()
    CUSTOM = auto()


class GitStatus(StrEnum):
    """Git state of the scanned directory.

    `none` means no `.git` entry, `clean` a repository whose `.gitignore` does not
    mention the output folder yet, `ignored` a repository already excluding it.
    """

    NONE = auto()
    CLEAN = auto()
    IGNORED = auto()


class NodeType(StrEnum):
    """Kind of filesystem entry in the display tree."""

    FILE = auto()
    FOLDER = auto()


class RuleState(StrEnum):
    """Value of a per-path selection override."""

    INCLUDE = auto()
    EXCLUDE = auto()


SelectionRules = dict[str, RuleState]


class Template(BaseModel):
    """Catalogue entry describing one recognizable technology.

    Attributes:
        id: Stable identifier (e.g. "react").
        name: Display name.
        extensions: File extensions (or bare file names such as "Dockerfile") merged for this template.
        ignores: gitignore-style patterns excluded while this template is active.
        triggers: Root file names, `*suffix` globs or `folder/` names hinting at the template.
        package_match: Manifest dependency names (globs allowed) that strongly imply the template.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    extensions: tuple[str, ...] = Field(default=())
    ignores: tuple[str, ...] = Field(default=())
    triggers: tuple[str, ...] = Field(default=())
    package_match: tuple[str, ...] = Field(default=())


class DetectionResult(BaseModel):
    """Outcome of a stack detection run."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    ids: list[str] = Field(default_factory=list, description="Detected template identifiers")
    reasons: dict[str, list[str]] = Field(default_factory=dict, description="Identifier to trigger reasons")
    git_status: GitStatus = Field(default=GitStatus.NONE)

    def add(self, template_id: str, reason: str) -> None:
        """Record `template_id` once and append `reason` to its reasons."""
        if template_id not in self.ids:
            self.ids.append(template_id)
        bucket = self.reasons.setdefault(template_id, [])
        if reason not in bucket:
            bucket.append(reason)

    def has(self, template_id: str) -> bool:
        return template_id in self.ids


class TreeNode(BaseModel):
    """One filesystem entry of the display tree, relative to the scan root."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: str
    path: str = Field(..., description="Slash-normalized path relative to the scan root")
    type: NodeType
    is_ignored: bool = False
    is_media: bool = False
    is_massive: bool = False
    depth: int = Field(default=0, ge=0)
    children: list[TreeNode] | None = None


class FileRecord(BaseModel):
    """A file that passed every content gate, ready to be merged.

    Attributes:
        path: Absolute path to the file on disk.
        rel: Path relative to the source root, with POSIX separators.
        content: Decoded text content.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    path: Path = Field(..., description="Absolute file path")
    rel: str = Field(..., description="File path relative to the source root")
    content: str = Field(default="", description="Text content")


class ProcessResult(BaseModel):
    """Structured outcome of a processing run; callers inspect `success`."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool
    message: str
    output_path: str = ""
    files: list[str] = Field(default_factory=list)
    git_ignore_modified: bool = False
    detected_ids: list[str] = Field(default_factory=list)
