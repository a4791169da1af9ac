"""Configuration management using Pydantic Settings."""

from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Paths
    assets_dir: Path = Field(default=Path("assets"), alias="ASSETS_DIR")
    temp_dir: Path = Field(default=Path("temp"), alias="TEMP_DIR")

    # Video Settings (16:9 landscape viewport)
    video_width: int = Field(default=1280, alias="VIDEO_WIDTH")
    video_height: int = Field(default=720, alias="VIDEO_HEIGHT")
    video_fps: int = Field(default=30, alias="VIDEO_FPS")
    background_color: str = Field(default="white", alias="BACKGROUND_COLOR")

    # Encoder Settings
    ffmpeg_path: str = Field(default="ffmpeg", alias="FFMPEG_PATH")
    ffprobe_path: str = Field(default="ffprobe", alias="FFPROBE_PATH")
    video_codec: str = Field(default="libx264", alias="VIDEO_CODEC")
    x264_preset: str = Field(default="veryfast", alias="X264_PRESET")
    x264_crf: int = Field(default=23, alias="X264_CRF")
    pixel_format: str = Field(default="yuv420p", alias="PIXEL_FORMAT")
    audio_codec: str = Field(default="aac", alias="AUDIO_CODEC")
    audio_bitrate: str = Field(default="192k", alias="AUDIO_BITRATE")

    # Timeouts
    probe_timeout_seconds: float = Field(default=30, alias="PROBE_TIMEOUT_SECONDS")
    encode_timeout_seconds: float = Field(default=300, alias="ENCODE_TIMEOUT_SECONDS")
    render_timeout_seconds: float = Field(default=30, alias="RENDER_TIMEOUT_SECONDS")
    run_timeout_seconds: float = Field(default=600, alias="RUN_TIMEOUT_SECONDS")

    # Fonts
    title_font: str = Field(default="PlayfairDisplay-Bold.ttf", alias="TITLE_FONT")
    body_font: str = Field(default="Lato-Regular.ttf", alias="BODY_FONT")
    author_font: str = Field(default="PlayfairDisplay-Italic.ttf", alias="AUTHOR_FONT")
    allow_fallback_font: bool = Field(default=False, alias="ALLOW_FALLBACK_FONT")

    # Letter layout
    letter_width: int = Field(default=800, alias="LETTER_WIDTH")

    # Rendering backend
    svg_backend: Literal["playwright", "cairosvg"] = Field(
        default="playwright", alias="SVG_BACKEND"
    )
    browser_pool_size: int = Field(default=4, alias="BROWSER_POOL_SIZE")
    browser_executable_path: Optional[Path] = Field(
        default=None, alias="BROWSER_EXECUTABLE_PATH"
    )
    max_concurrent_runs: int = Field(default=4, alias="MAX_CONCURRENT_RUNS")

    # Server
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8080, alias="PORT")
    max_request_bytes: int = Field(default=50 * 1024 * 1024, alias="MAX_REQUEST_BYTES")

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    gcp_project_id: Optional[str] = Field(default=None, alias="GCP_PROJECT_ID")

    @model_validator(mode="after")
    def _check_dimensions(self) -> "Settings":
        if self.video_width <= 0 or self.video_height <= 0:
            raise ValueError("VIDEO_WIDTH and VIDEO_HEIGHT must be positive")
        if self.video_fps <= 0:
            raise ValueError("VIDEO_FPS must be positive")
        if self.letter_width <= 0 or self.letter_width > self.video_width:
            raise ValueError("LETTER_WIDTH must be positive and not exceed VIDEO_WIDTH")
        if self.browser_pool_size <= 0 or self.max_concurrent_runs <= 0:
            raise ValueError("BROWSER_POOL_SIZE and MAX_CONCURRENT_RUNS must be positive")
        return self

    def ensure_directories(self) -> None:
        """Create required directories if they don't exist."""
        self.temp_dir.mkdir(parents=True, exist_ok=True)

    @property
    def fonts_dir(self) -> Path:
        """Path to the fonts directory."""
        return self.assets_dir / "fonts"

    @property
    def templates_dir(self) -> Path:
        """Path to the SVG header templates."""
        return self.assets_dir / "templates"

    def template_path(self, template_id: str) -> Path:
        """Path to the SVG file for a template identifier."""
        return self.templates_dir / f"template{template_id}.svg"


# Global settings instance
settings = Settings()
