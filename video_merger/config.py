import json
from functools import lru_cache
from typing import Literal

from pydantic import computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Application
    app_name: str = "Video Merger API"
    app_version: str = "0.1.0"
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = True
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 4000

    # CORS - stored as string, parsed via computed property
    cors_origins_raw: str = "http://localhost:5173,http://localhost:3000"

    @computed_field
    @property
    def cors_origins(self) -> list[str]:
        """Parse CORS origins from pipe/comma-separated string or JSON array."""
        v = self.cors_origins_raw
        # Try JSON first
        if v.startswith("["):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                pass
        if "|" in v:
            return [origin.strip() for origin in v.split("|") if origin.strip()]
        return [origin.strip() for origin in v.split(",") if origin.strip()]

    # Storage
    upload_dir: str = "/tmp/video-merger/uploads"
    work_root: str = "/tmp/video-merger/work"

    # Upload limits
    max_upload_size_mb: int = 100
    max_videos: int = 20

    # Acceptance policy
    allowed_video_codecs: list[str] = ["h264", "hevc", "vp8", "vp9"]
    allowed_audio_codecs: list[str] = ["aac", "mp3", "opus", "vorbis"]
    max_width: int = 3840
    max_height: int = 2160

    # FFmpeg
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"
    ffmpeg_timeout_s: float = 1800.0
    ffprobe_timeout_s: float = 30.0

    # Canonical merge profile
    merge_fps: int = 30
    merge_crf: int = 23
    merge_preset: str = "medium"
    merge_pix_fmt: str = "yuv420p"
    merge_video_codec: str = "libx264"
    merge_audio_codec: str = "aac"
    merge_audio_bitrate: str = "192k"
    merge_output_name: str = "merged.mp4"
    # "-vsync" works on ffmpeg 4.x and later; newer builds also accept "-fps_mode"
    merge_sync_flag: str = "-vsync"

    # Parallel normalize calls per job. 0 = auto (CPU count)
    normalize_concurrency: int = 0


@lru_cache
def get_settings() -> Settings:
    return Settings()
