"""Configuration loading, validation and path resolution."""

from __future__ import annotations

import os
import re
from pathlib import Path

import yaml

from slidecast.commands import CLIP_PROFILE, MASTER_PROFILE, EncodeProfile
from slidecast.errors import ConfigurationError
from slidecast.models import VOICE_ENGINES, VideoConfig

_DEFAULT_CONFIG = "config.yaml"

_MIN_IMAGES = 2
_MAX_IMAGES = 20
_MIN_CLIP_SECONDS = 2.0
_MAX_CLIP_SECONDS = 10.0

_API_KEY_ENV = {
    "unsplash": "UNSPLASH_ACCESS_KEY",
    "openai": "OPENAI_API_KEY",
    "did": "DID_API_KEY",
}


def load_config(config_path: str | None = None) -> dict:
    """Load the YAML configuration file.

    Args:
        config_path: Path to config.yaml. Defaults to ./config.yaml.

    Returns:
        Parsed config dict (empty if the file is empty).

    Raises:
        FileNotFoundError: If config file doesn't exist.
    """
    path = Path(config_path or _DEFAULT_CONFIG)
    if not path.exists():
        raise FileNotFoundError(f"Config not found: {path}")
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def get_project_root(config_path: str | None = None) -> Path:
    """Return the project root (directory containing config.yaml)."""
    path = Path(config_path or _DEFAULT_CONFIG)
    return path.resolve().parent


def resolve_path(config: dict, key_path: str, config_path: str | None = None) -> Path:
    """Resolve a path from config relative to project root.

    Args:
        config: Parsed config dict.
        key_path: Dot-separated path into config (e.g. 'output.work_dir').
        config_path: Path to config.yaml for resolving project root.

    Returns:
        Resolved absolute Path.
    """
    root = get_project_root(config_path)
    val = config
    for k in key_path.split("."):
        val = val[k]
    p = Path(val)
    if not p.is_absolute():
        p = root / p
    return p


def get_work_dir(config: dict, config_path: str | None = None) -> Path:
    """Get the resolved root directory for run workspaces."""
    if "work_dir" not in config.get("output", {}):
        return get_project_root(config_path) / "build"
    return resolve_path(config, "output.work_dir", config_path)


def get_api_key(config: dict, section: str) -> str:
    """Return the API key for a provider section.

    The environment variable wins over config.yaml.

    Raises:
        ConfigurationError: If the key is missing or still a placeholder.
    """
    env_name = _API_KEY_ENV.get(section)
    api_key = (os.environ.get(env_name) if env_name else None) or config.get(section, {}).get("api_key", "")
    if not api_key or api_key.startswith("YOUR_"):
        hint = f" or set {env_name}" if env_name else ""
        raise ConfigurationError(
            f"API key not configured. Set '{section}.api_key' in config.yaml{hint}."
        )
    return api_key


def extract_keywords(topic: str) -> tuple[str, ...]:
    """Split a topic into up to 10 lowercase search keywords."""
    words = re.split(r"[,\s]+", topic.lower())
    return tuple(w for w in words if len(w) > 2)[:10]


def validate_video_config(config: VideoConfig) -> list[str]:
    """Return a list of problems with ``config`` (empty when valid)."""
    errors: list[str] = []

    if not config.topic.strip():
        errors.append("Topic is required")

    if not _MIN_IMAGES <= config.image_count <= _MAX_IMAGES:
        errors.append(f"Image count must be between {_MIN_IMAGES} and {_MAX_IMAGES}")

    if not _MIN_CLIP_SECONDS <= config.clip_duration <= _MAX_CLIP_SECONDS:
        errors.append(
            f"Clip duration must be between {_MIN_CLIP_SECONDS:g} and {_MAX_CLIP_SECONDS:g} seconds"
        )

    if config.crossfade_duration < 0:
        errors.append("Crossfade duration cannot be negative")
    elif config.crossfade_duration >= config.clip_duration:
        errors.append("Crossfade duration must be shorter than the clip duration")

    if config.output_width <= 0 or config.output_height <= 0:
        errors.append("Output resolution must be positive")

    if config.fps <= 0:
        errors.append("Frame rate must be positive")

    if config.voice_engine not in VOICE_ENGINES:
        errors.append(f"Unknown voice engine '{config.voice_engine}' (expected one of {', '.join(VOICE_ENGINES)})")

    return errors


def build_video_config(config: dict, **overrides) -> VideoConfig:
    """Build a validated VideoConfig from the ``video`` section plus overrides.

    Raises:
        ConfigurationError: Listing every invalid setting.
    """
    section = dict(config.get("video", {}))
    section.update({k: v for k, v in overrides.items() if v is not None})

    try:
        video = VideoConfig(
            topic=str(section.get("topic", "")),
            image_count=int(section.get("image_count", 12)),
            clip_duration=float(section.get("clip_duration", 5.0)),
            crossfade_duration=float(section.get("crossfade_duration", 0.8)),
            output_width=int(section.get("output_width", 1920)),
            output_height=int(section.get("output_height", 1080)),
            fps=int(section.get("fps", 30)),
            voice_engine=str(section.get("voice_engine", "openai-tts")),
            keywords=extract_keywords(str(section.get("topic", ""))),
            presenter_id=section.get("presenter_id"),
            voice=str(section.get("voice", "nova")),
        )
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid video settings: {exc}") from exc

    problems = validate_video_config(video)
    if problems:
        raise ConfigurationError("Invalid configuration: " + "; ".join(problems), problems)
    return video


def _profile_from(section: dict, base: EncodeProfile) -> EncodeProfile:
    return EncodeProfile(
        codec=str(section.get("codec", base.codec)),
        crf=int(section.get("crf", base.crf)),
        preset=str(section.get("preset", base.preset)),
        pix_fmt=str(section.get("pix_fmt", base.pix_fmt)),
        audio_codec=str(section.get("audio_codec", base.audio_codec)),
        audio_bitrate=str(section.get("audio_bitrate", base.audio_bitrate)),
    )


def get_encode_profiles(config: dict) -> tuple[EncodeProfile, EncodeProfile]:
    """Return (clip, master) encode profiles, defaults overridden by ``encoding``."""
    encoding = config.get("encoding", {})
    return (
        _profile_from(encoding.get("clip", {}), CLIP_PROFILE),
        _profile_from(encoding.get("master", {}), MASTER_PROFILE),
    )


def get_polling(config: dict) -> tuple[float, int]:
    """Return (interval_seconds, max_attempts) for remote render polling."""
    polling = config.get("polling", {})
    return float(polling.get("interval_seconds", 2.0)), int(polling.get("max_attempts", 30))
