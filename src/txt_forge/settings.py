from __future__ import annotations

import os
from pathlib import Path

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from txt_forge.config import DEFAULT_MAX_CHARS, MIN_MAX_CHARS, RuleState, SaveMode, SelectionRules
from txt_forge.exceptions import InvalidSettingsError
from txt_forge.logging import logger

ENV_FILE = find_dotenv(usecwd=True)

CONFIG_VERSION = 2

_TRUTHY = {"1", "true", "yes", "on"}


class Settings(BaseModel):
    """Process-wide settings read from the environment (and `.env` when present)."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    cwd: Path = Field(default_factory=Path.cwd, description="Directory to scan when none is given.")
    debug: bool = Field(default=False, description="Enable debug logging.")
    max_chars: int = Field(default=DEFAULT_MAX_CHARS, ge=MIN_MAX_CHARS, description="Default chunk size in characters.")
    log_file: str = Field(default="", description="Log file path.")

    @classmethod
    def from_env(cls, env_file: str | None = None) -> Settings:
        """Build settings from `TXT_FORGE_*` variables.

        Args:
            env_file: Optional `.env` path; defaults to the one found from the working directory.

        Raises:
            InvalidSettingsError: if a variable holds a value the settings reject.

        Returns:
            Settings: the resolved settings.
        """
        dotenv_path = env_file if env_file is not None else ENV_FILE
        if dotenv_path:
            load_dotenv(dotenv_path, override=False)
        values: dict[str, object] = {}
        if cwd := os.environ.get("TXT_FORGE_CWD"):
            values["cwd"] = Path(cwd)
        if debug := os.environ.get("TXT_FORGE_DEBUG"):
            values["debug"] = debug.strip().lower() in _TRUTHY
        if max_chars := os.environ.get("TXT_FORGE_MAX_CHARS"):
            values["max_chars"] = max_chars.strip()
        if log_file := os.environ.get("TXT_FORGE_LOG_FILE"):
            values["log_file"] = log_file
        try:
            return cls.model_validate(values)
        except ValidationError as e:
            raise InvalidSettingsError(reason=str(e)) from e


def normalize_rule_key(key: str) -> str:
    """Normalize a selection-rule key to a slash-separated relative path.

    Args:
        key (str): raw key, possibly with backslashes, a leading `./` or slashes.

    Returns:
        str: the normalized key, or the root sentinel "." for the root itself.
    """
    k = key.strip().replace("\\", "/")
    while k.startswith("./"):
        k = k[2:]
    k = k.strip("/")
    return k or "."


class ProcessConfig(BaseModel):
    """Per-invocation processing configuration; never persisted by the core."""

    model_config = ConfigDict(arbitrary_types_allowed=True, alias_generator=to_camel, populate_by_name=True)

    source_dir: Path = Field(..., description="Project directory to merge.")
    save_mode: SaveMode = Field(default=SaveMode.ROOT, description="Output destination strategy.")
    custom_path: Path | None = Field(default=None, description="Output directory for the custom save mode.")
    template_ids: list[str] = Field(default_factory=list, description="Active template identifiers.")
    max_chars: int = Field(default=DEFAULT_MAX_CHARS, ge=MIN_MAX_CHARS, description="Maximum characters per chunk.")
    selection_rules: SelectionRules = Field(default_factory=dict, description="Per-path include/exclude overrides.")
    hide_ignored_in_tree: bool = Field(default=False, description="Make the tree identical to the content set.")
    disable_splitting: bool = Field(default=False, description="Write a single full-context file.")

    @field_validator("selection_rules", mode="before")
    @classmethod
    def _normalize_rules(cls, value: object) -> object:
        if isinstance(value, dict):
            return {normalize_rule_key(str(k)): v for k, v in value.items()}
        return value


class SavedProjectConfig(BaseModel):
    """Configuration bundle previously saved for a project by the configuration store."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    version: int = Field(default=CONFIG_VERSION)
    template_ids: list[str] = Field(default_factory=list)
    selection_rules: dict[str, RuleState] = Field(default_factory=dict)
    hide_ignored_in_tree: bool = False
    max_chars: int = Field(default=DEFAULT_MAX_CHARS, ge=MIN_MAX_CHARS)
    disable_splitting: bool = False

    @field_validator("selection_rules", mode="before")
    @classmethod
    def _normalize_rules(cls, value: object) -> object:
        if isinstance(value, dict):
            return {normalize_rule_key(str(k)): v for k, v in value.items()}
        return value

    @property
    def is_current(self) -> bool:
        return self.version == CONFIG_VERSION


def load_saved_config(path: Path) -> SavedProjectConfig | None:
    """Load a saved project configuration from a JSON file.

    Args:
        path (Path): the JSON file written by the configuration store

    Returns:
        SavedProjectConfig | None: the bundle, or None when it is missing or invalid
    """
    try:
        return SavedProjectConfig.model_validate_json(path.read_text(encoding="utf-8"))
    except OSError as e:
        logger.warning("Saved configuration %s unreadable: %s", path, e)
    except ValidationError as e:
        logger.warning("Saved configuration %s invalid: %s", path, e)
    return None
