from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Application
    app_name: str = "clipcaption"
    log_level: str = "INFO"

    # Celery broker / result backend
    redis_url: str = "redis://localhost:6379/0"
    compose_queue: str = "compose"

    # Google Cloud Storage
    gcs_bucket_name: str = "clipcaption-media"
    gcs_project_id: str = ""
    signed_url_expiration_minutes: int = 60 * 24 * 7

    # Local storage for development (when GCS is not configured)
    use_local_storage: bool = True  # Set to False in production
    local_storage_path: str = "/tmp/clipcaption-storage"
    local_storage_base_url: str = "http://localhost:8000/api/storage/files"

    # FFmpeg
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"
    ffmpeg_preset: str = "medium"
    ffmpeg_crf: int = 18
    # Number of trailing stderr lines kept on RenderProcessError
    ffmpeg_diagnostic_tail_lines: int = 20

    # Subtitle styling
    subtitle_font_family: str = "Noto Sans CJK JP"
    # Font file used by the image overlay rasterizer (empty = search candidates)
    subtitle_font_path: str = ""
    subtitle_default_font_size: Literal["small", "medium", "large"] = "medium"
    subtitle_default_outline_color: str = "#30bca7"
    subtitle_default_padding_color: str = "#000000"
    subtitle_render_strategy: Literal["text_overlay", "image_overlay"] = "text_overlay"

    # Composition pipeline
    # Fold scale/pad into the subtitle pass instead of a separate encode
    compose_fuse_format_conversion: bool = True
    compose_timeout_seconds: float = 1800.0
    compose_workspace_prefix: str = "clipcaption_compose_"
    compose_download_chunk_bytes: int = 1024 * 1024


@lru_cache
def get_settings() -> Settings:
    return Settings()
