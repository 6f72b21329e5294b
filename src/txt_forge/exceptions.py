from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class TxtForgeError(Exception):
    """Base exception for errors in the txt_forge package."""

    def __str__(self) -> str:
        return getattr(self, "message", "") or (self.__doc__ or "").strip()


@dataclass(frozen=True)
class NoMatchingFilesError(TxtForgeError):
    """Raised when the configuration selects no file to merge."""

    source_dir: Path
    message: str = "No matching files found."


@dataclass(frozen=True)
class InvalidSaveModeError(TxtForgeError):
    """Raised when the save mode cannot be turned into an output directory."""

    save_mode: str
    message: str = "Invalid save path configuration."


@dataclass(frozen=True)
class OutputDirectoryError(TxtForgeError):
    """Raised when the output directory cannot be cleared or created."""

    directory: Path
    reason: str = ""
    message: str = "Could not prepare the output directory."

    def __str__(self) -> str:
        detail = f": {self.reason}" if self.reason else ""
        return f"{self.message} ({self.directory}){detail}"


@dataclass(frozen=True)
class UnknownTemplateError(TxtForgeError):
    """Raised when a template identifier is not part of the catalogue."""

    template_id: str
    message: str = "Unknown template identifier."

    def __str__(self) -> str:
        return f"{self.message} {self.template_id!r}"


@dataclass(frozen=True)
class ChunkSizeError(TxtForgeError):
    """Raised when the chunk size leaves no room for content after a multipart header."""

    rel: str
    max_chars: int
    message: str = "Maximum chunk size too small for the part headers of"

    def __str__(self) -> str:
        return f"{self.message} {self.rel} ({self.max_chars} characters)"


@dataclass(frozen=True)
class InvalidSettingsError(TxtForgeError):
    """Raised when `TXT_FORGE_*` environment variables hold invalid values."""

    reason: str
    message: str = "Invalid TXT_FORGE_* settings"

    def __str__(self) -> str:
        return f"{self.message}: {self.reason}"
