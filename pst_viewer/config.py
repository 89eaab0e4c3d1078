"""Viewer configuration loaded from environment variables.

Uses pydantic-settings so every field can be overridden via env vars
(``PST_VIEWER_CACHE_MAX_ENTRIES=200`` and so on).
"""

from __future__ import annotations

import tempfile
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

DEFAULT_BLOCKED_EXTENSIONS: tuple[str, ...] = (
    "app", "applescript", "action", "appimage", "bash", "bat", "bin", "cmd",
    "com", "command", "cpl", "csh", "deb", "dll", "dmg", "dylib", "elf", "exe",
    "hta", "jar", "js", "jse", "ksh", "lnk", "msc", "msi", "pif", "pkg", "pl",
    "ps1", "psm1", "py", "rb", "reg", "rpm", "run", "scpt", "scr", "sh", "so",
    "vbe", "vbs", "workflow", "ws", "wsf", "zsh",
)


class CacheConfig(BaseSettings):
    """Message detail cache settings."""

    model_config = {"env_prefix": "PST_VIEWER_CACHE_"}

    max_entries: int = Field(
        default=50,
        ge=1,
        description="Maximum number of loaded message details kept in memory",
    )


class SearchConfig(BaseSettings):
    """Search engine limits."""

    model_config = {"env_prefix": "PST_VIEWER_SEARCH_"}

    max_results: int = Field(
        default=10_000,
        ge=1,
        description="Hard cap on the number of results a single search returns",
    )


class AttachmentConfig(BaseSettings):
    """Transient attachment materialisation settings."""

    model_config = {"env_prefix": "PST_VIEWER_ATTACHMENTS_"}

    temp_dir: Path = Field(
        default_factory=lambda: Path(tempfile.gettempdir()) / "pst-viewer",
        description="Managed directory for attachments opened with the default application",
    )
    stale_max_age_seconds: float = Field(
        default=3600.0,
        gt=0,
        description="Age after which leftover transient files are removed on startup",
    )
    blocked_extensions: list[str] = Field(
        default_factory=lambda: list(DEFAULT_BLOCKED_EXTENSIONS),
        description="Executable-like extensions that require confirmation before opening",
    )

    @field_validator("blocked_extensions")
    @classmethod
    def _normalize_extensions(cls, value: list[str]) -> list[str]:
        return [ext.lower().lstrip(".") for ext in value if ext.strip(". ")]


class LoggingConfig(BaseSettings):
    """Log output settings."""

    model_config = {"env_prefix": "PST_VIEWER_LOG_"}

    level: str = Field(default="INFO", description="Root log level name")
    json_lines: bool = Field(
        default=False,
        description="Emit JSON lines instead of console-formatted logs",
    )


class ViewerConfig(BaseSettings):
    """Root configuration for a viewer session.

    Nested configs are populated from their own env-var prefixes.
    """

    model_config = {"env_prefix": "PST_VIEWER_"}

    cache: CacheConfig = Field(default_factory=CacheConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    attachments: AttachmentConfig = Field(default_factory=AttachmentConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
