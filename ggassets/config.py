"""Runtime settings, read from GGASSETS_* environment variables or a .env file."""

import os
import sys
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_cache_dir() -> Path:
    if sys.platform == "win32":
        base = Path(os.environ.get("LOCALAPPDATA", Path.home() / "AppData" / "Local"))
    else:
        base = Path(os.environ.get("XDG_CACHE_HOME", Path.home() / ".cache"))
    return base / "ggassets"


DEFAULT_CONTAINER_DIRS = ["SSGWINCD", "ONWINCD", "ONWINCD/INSTALL", "."]
DEFAULT_ARCHIVE_DIRS = ["ASSETS", "."]
DEFAULT_CONTAINER_EXTENSIONS = [".DAT", ".RSC"]
DEFAULT_ARCHIVE_EXTENSION = ".GRP"
DEFAULT_PALETTE_FILE = "INSTALL/AUTO256.BMP"


class AssetSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="GGASSETS_",
        extra="ignore",
    )

    game_path: Path = Path(".")
    cache_dir: Path = Path("")

    # Searched in order, relative to game_path
    container_dirs: list[str] = DEFAULT_CONTAINER_DIRS
    archive_dirs: list[str] = DEFAULT_ARCHIVE_DIRS
    container_extensions: list[str] = DEFAULT_CONTAINER_EXTENSIONS
    archive_extension: str = DEFAULT_ARCHIVE_EXTENSION

    # 256-colour BMP whose colour table is the default sprite palette
    palette_file: str = DEFAULT_PALETTE_FILE

    # Root of pre-extracted BMP/WAV/MIDI trees, laid out as <game id>/sprites,
    # <game id>/audio/wav and so on. Defaults to game_path.
    extracted_path: Path | None = None

    @model_validator(mode="after")
    def _resolve_cache_dir(self) -> "AssetSettings":
        if self.cache_dir == Path(""):
            self.cache_dir = _default_cache_dir()
        return self
