from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings, loaded from the environment and an optional .env file."""

    model_config = SettingsConfigDict(
        env_file=Path(__file__).resolve().parents[2] / ".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "File to PDF Merger"
    app_version: str = "0.1.0"

    base_dir: Path = Field(default_factory=lambda: Path(__file__).resolve().parents[2])
    storage_dir: Optional[Path] = None
    public_dir: Optional[Path] = None
    temp_dir: Optional[Path] = None

    allow_origins: list[str] = Field(default_factory=lambda: ["*"])
    log_level: str = "INFO"

    # Server-side directory imports are only allowed below this root.
    import_root: Optional[Path] = None
    session_ttl_minutes: int = 120

    page_size: Literal["A4", "letter"] = "A4"
    page_margin: float = 50.0
    title_font_size: int = 16
    body_font_size: int = 10
    line_height: float = 14.0
    email_max_lines: int = 60

    progress_band_start: int = 20
    progress_band_end: int = 80
    output_prefix: str = "merged-files"
    render_previews: bool = True

    def configure_paths(self) -> None:
        """Resolve default directories and create the missing ones."""
        self.storage_dir = (self.storage_dir or (self.base_dir / "storage")).resolve()
        self.public_dir = (self.public_dir or (self.base_dir / "public")).resolve()
        self.temp_dir = (self.temp_dir or (self.storage_dir / "tmp")).resolve()

        for directory in (self.storage_dir, self.temp_dir, self.public_dir):
            directory.mkdir(parents=True, exist_ok=True)

        (self.public_dir / "downloads").mkdir(parents=True, exist_ok=True)


@lru_cache()
def get_settings() -> Settings:
    settings = Settings()
    settings.configure_paths()
    return settings
