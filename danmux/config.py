"""Configuration loading for danmux.

All settings come from environment variables (a ``.env`` file in the working
directory is loaded first). Every variable is optional:

    DANMUX_COOKIE_FILE=~/.local/share/danmux/cookies.txt
    DANMUX_YTDLP_ARGS="--limit-rate 5M"
    DANMUX_EXTERNAL_DOWNLOADER=true
    DANMUX_EXTERNAL_DOWNLOADER_ARGS="-x 16 -s 16 -k 1M"
    DANMUX_AUDIO_QUALITY=0
    DANMUX_AUDIO_FFMPEG_ARGS="-ar 48000"
    DANMUX_COMMENT_BACKEND=auto        # auto | yutto | convert
    DANMUX_CONVERTER=danmaku2ass
    DANMUX_RETRY_ATTEMPTS=3
    DANMUX_RETRY_DELAY=1.0
    DANMUX_MAX_WORKERS=2

The resulting Settings object is passed explicitly to every pipeline step;
nothing below this module reads the environment.
"""

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from dotenv import find_dotenv, load_dotenv
from platformdirs import user_data_dir
from pydantic import BaseModel, ValidationError, field_validator

from danmux.models import UsageError

ENV_PREFIX = "DANMUX_"
COMMENT_BACKENDS = {"auto", "yutto", "convert"}


def get_data_dir() -> Path:
    """Platform-specific data directory (cookie store lives here)."""
    return Path(user_data_dir("danmux", appauthor=False))


def default_cookie_file() -> Path:
    return get_data_dir() / "cookies.txt"


class Settings(BaseModel):  # type: ignore[misc]
    """Effective danmux configuration.

    Attributes:
        cookie_file: Netscape-format cookie store passed to yt-dlp and used to
            read the Bilibili session credential for yutto.
        ytdlp_args: Raw yt-dlp command line options appended to every fetch.
        external_downloader: Hand media downloads to aria2c.
        external_downloader_args: Arguments for aria2c.
        audio_quality: FFmpegExtractAudio quality (0 = best VBR).
        audio_ffmpeg_args: Extra ffmpeg arguments for the audio extraction step.
        comment_backend: "auto", "yutto" (native) or "convert" (yt-dlp + converter).
        converter: Command converting raw danmaku XML to ASS.
        retry_attempts: Whole-invocation attempts before giving up.
        retry_delay: Seconds between attempts.
        max_workers: Items of one batch processed in parallel.
    """

    cookie_file: Path = default_cookie_file()
    ytdlp_args: str = ""
    external_downloader: bool = False
    external_downloader_args: str = "-x 16 -s 16 -k 1M"
    audio_quality: str = "0"
    audio_ffmpeg_args: str = ""
    comment_backend: str = "auto"
    converter: str = "danmaku2ass"
    retry_attempts: int = 3
    retry_delay: float = 1.0
    max_workers: int = 2

    @field_validator("cookie_file")  # type: ignore[untyped-decorator]
    @classmethod
    def expand_cookie_file(cls, v: Path) -> Path:
        """Expand ~ in the cookie path."""
        return v.expanduser()

    @field_validator("comment_backend")  # type: ignore[untyped-decorator]
    @classmethod
    def validate_comment_backend(cls, v: str) -> str:
        """Normalize the backend name; "native" is an alias for yutto."""
        v = v.strip().lower()
        if v == "native":
            v = "yutto"
        if v not in COMMENT_BACKENDS:
            msg = f"Comment backend must be one of: {', '.join(sorted(COMMENT_BACKENDS))}"
            raise ValueError(msg)
        return v

    @field_validator("retry_attempts", "max_workers")  # type: ignore[untyped-decorator]
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            msg = "Must be at least 1"
            raise ValueError(msg)
        return v

    @field_validator("retry_delay")  # type: ignore[untyped-decorator]
    @classmethod
    def validate_delay(cls, v: float) -> float:
        if v < 0:
            msg = "Retry delay must be non-negative"
            raise ValueError(msg)
        return v


def _from_env(env: Mapping[str, str]) -> dict[str, Any]:
    """Collect DANMUX_* variables as Settings field values."""
    data: dict[str, Any] = {}
    for name in Settings.model_fields:
        value = env.get(ENV_PREFIX + name.upper())
        if value is not None and value != "":
            data[name] = value
    return data


def load_settings(env: Mapping[str, str] | None = None) -> Settings:
    """Load settings from the environment (and .env when env is None).

    Raises:
        UsageError: If any variable fails validation.
    """
    if env is None:
        load_dotenv(find_dotenv(usecwd=True))
        env = os.environ
    try:
        settings: Settings = Settings.model_validate(_from_env(env))
    except ValidationError as e:
        raise UsageError(f"Invalid configuration: {e}") from e
    return settings
