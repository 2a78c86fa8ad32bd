"""Configuration management for Revision Search."""

import json
import logging
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

CONFIG_DIR_NAME = ".revision-search"


class SearchConfig(BaseModel):
    """Defaults and limits applied to every search."""

    default_limit: int = Field(
        default=100, description="Maximum number of results when no limit is given"
    )
    default_context_lines: int = Field(
        default=0, description="Context lines reported around each content match"
    )
    default_case_sensitive: bool = Field(
        default=True, description="Match case unless the caller asks otherwise"
    )
    default_regex: bool = Field(
        default=False, description="Treat queries as regular expressions by default"
    )
    max_line_length: int = Field(
        default=300,
        description="Matched lines longer than this many characters are not reported",
    )
    # git grep is invoked once per batch, like xargs would
    max_files_per_invocation: int = Field(
        default=1000, description="Maximum number of paths passed to one git grep"
    )
    git_timeout_seconds: float = Field(
        default=60.0, description="Timeout for listing and checkout git commands"
    )
    exclude_patterns: List[str] = Field(
        default=[],
        description="gitwildmatch patterns for paths that are never searched",
    )

    @field_validator("default_limit", "max_line_length", "max_files_per_invocation")
    @classmethod
    def must_be_positive(cls, v: int) -> int:
        """Reject zero and negative sizes."""
        if v <= 0:
            raise ValueError(f"must be greater than 0, got {v}")
        return v

    @field_validator("default_context_lines")
    @classmethod
    def must_not_be_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"must not be negative, got {v}")
        return v

    @field_validator("git_timeout_seconds")
    @classmethod
    def timeout_must_be_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"must be greater than 0, got {v}")
        return v


class ConfigManager:
    """Manages configuration loading, saving, and validation."""

    DEFAULT_CONFIG_PATH = Path(CONFIG_DIR_NAME) / "config.json"

    def __init__(self, config_path: Optional[Path] = None):
        self.config_path = config_path or self.DEFAULT_CONFIG_PATH
        self._config: Optional[SearchConfig] = None

    def load(self) -> SearchConfig:
        """Load configuration from file or fall back to defaults."""
        if self.config_path.exists():
            try:
                with open(self.config_path, "r", encoding="utf-8") as f:
                    data = json.load(f)
                self._config = SearchConfig(**data)
            except Exception as e:
                raise ValueError(f"Failed to load config from {self.config_path}: {e}")
            logger.debug(f"Loaded search config from {self.config_path}")
        else:
            self._config = SearchConfig()

        return self._config

    def save(self, config: Optional[SearchConfig] = None) -> None:
        """Save configuration to file."""
        if config is None:
            config = self._config

        if config is None:
            raise ValueError("No configuration to save")

        self.config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(self.config_path, "w", encoding="utf-8") as f:
            json.dump(config.model_dump(), f, indent=2)

    def get_config(self) -> SearchConfig:
        """Get current configuration, loading if necessary."""
        if self._config is None:
            self.load()
        if self._config is None:
            raise RuntimeError("Failed to load configuration")
        return self._config

    @staticmethod
    def find_config_path(start_dir: Optional[Path] = None) -> Optional[Path]:
        """Find .revision-search/config.json by walking up the directory tree.

        Args:
            start_dir: Directory to start searching from (default: current directory)

        Returns:
            Path to config.json if found, None otherwise
        """
        current = start_dir or Path.cwd()

        for path in [current] + list(current.parents):
            config_path = path / CONFIG_DIR_NAME / "config.json"
            if config_path.exists():
                return config_path

        return None

    @classmethod
    def create_with_backtrack(cls, start_dir: Optional[Path] = None) -> "ConfigManager":
        """Create ConfigManager for the nearest config, or the default location."""
        config_path = cls.find_config_path(start_dir)
        if config_path is None:
            start = start_dir or Path.cwd()
            config_path = start / CONFIG_DIR_NAME / "config.json"
        return cls(config_path)
