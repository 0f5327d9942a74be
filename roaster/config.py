"""Runtime settings.

Settings are resolved in three layers: built-in defaults, an optional YAML
file (``ROASTER_CONFIG`` or an explicit path), then environment variables.
:meth:`Settings.validate` runs once at start-up and raises
:class:`~roaster.errors.ConfigError` on anything unusable.

Example YAML::

    db_path: ./db.json
    corpus_dir: ./corpus
    rate_limit_seconds: 300
    log_retention: 100
    default_voice_id: pNInz6obpgDQGcFmaJgB
    voice_map:
      silly: 21m00Tcm4TlvDq8ikWAM
    admins:
      "-100123": ["42"]
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml

from roaster.errors import ConfigError
from roaster.models import VoiceMode
from roaster.synthesis.voices import DEFAULT_VOICE_ID, DEFAULT_VOICE_MAP

_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}

# Environment variable -> (settings field, parser)
_ENV_OVERRIDES: dict[str, tuple[str, type]] = {
    "ROASTER_DB_PATH": ("db_path", str),
    "ROASTER_CORPUS_DIR": ("corpus_dir", str),
    "ROASTER_AUDIT_DIR": ("audit_dir", str),
    "RATE_LIMIT": ("rate_limit_seconds", float),
    "LOG_RETENTION": ("log_retention", int),
    "DEFAULT_VOICE_ID": ("default_voice_id", str),
    "ELEVENLABS_API_KEY": ("elevenlabs_api_key", str),
    "ELEVENLABS_MODEL_ID": ("elevenlabs_model_id", str),
    "TTS_TIMEOUT": ("tts_timeout", float),
    "TRANSCODE_TIMEOUT": ("transcode_timeout", float),
    "FFMPEG_BIN": ("ffmpeg_bin", str),
    "ROASTER_GATEWAY_URL": ("gateway_url", str),
    "ROASTER_GATEWAY_SECRET": ("gateway_secret", str),
    "ROASTER_LOG_LEVEL": ("log_level", str),
}

# Settings field -> parser, applied to YAML scalars as well
_FIELD_PARSERS: dict[str, type] = {name: parser for name, parser in _ENV_OVERRIDES.values()}


@dataclass
class Settings:
    """Resolved configuration values."""

    db_path: str = "db.json"
    corpus_dir: str = ""  # empty: packaged corpus
    audit_dir: str = "audit_logs"
    rate_limit_seconds: float = 300.0
    log_retention: int = 100
    default_voice_id: str = DEFAULT_VOICE_ID
    voice_map: dict[str, str] = field(
        default_factory=lambda: {mode.value: vid for mode, vid in DEFAULT_VOICE_MAP.items()}
    )
    elevenlabs_api_key: str = ""
    elevenlabs_model_id: str = "eleven_monolingual_v1"
    tts_timeout: float = 30.0
    transcode_timeout: float = 30.0
    ffmpeg_bin: str = "ffmpeg"
    gateway_url: str = ""
    gateway_secret: str = ""
    admins: dict[str, list[str]] = field(default_factory=dict)
    log_level: str = "INFO"

    def validate(self) -> "Settings":
        """Check every value; returns self so calls can be chained."""
        problems: list[str] = []
        if self.rate_limit_seconds <= 0:
            problems.append("rate_limit_seconds must be positive")
        if self.log_retention <= 0:
            problems.append("log_retention must be positive")
        if self.tts_timeout <= 0:
            problems.append("tts_timeout must be positive")
        if self.transcode_timeout <= 0:
            problems.append("transcode_timeout must be positive")
        if not self.default_voice_id:
            problems.append("default_voice_id must not be empty")
        for mode in self.voice_map:
            try:
                VoiceMode(mode)
            except ValueError:
                problems.append(f"voice_map has unknown voice mode '{mode}'")
        if self.log_level.upper() not in _LOG_LEVELS:
            problems.append(f"log_level '{self.log_level}' is not a logging level")
        if problems:
            raise ConfigError("Invalid configuration: " + "; ".join(problems))
        return self

    def resolved_voice_map(self) -> dict[VoiceMode, str]:
        return {VoiceMode(mode): vid for mode, vid in self.voice_map.items()}

    @property
    def log_level_value(self) -> int:
        return getattr(logging, self.log_level.upper())


def _coerce(name: str, parser: type, raw: Any) -> Any:
    if isinstance(raw, (dict, list)):
        raise ConfigError(f"Invalid value for {name}: expected a single value, got {raw!r}")
    try:
        return parser(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid value for {name}: {raw!r}") from exc


def _load_yaml(path: Path) -> dict[str, Any]:
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Failed to read config file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    return data


def _yaml_value(key: str, value: Any, settings: Settings) -> Any:
    if key == "voice_map":
        if not isinstance(value, dict):
            raise ConfigError("voice_map must be a mapping of voice mode to voice id")
        merged = dict(settings.voice_map)
        merged.update({str(k): str(v) for k, v in value.items()})
        return merged
    if key == "admins":
        if not isinstance(value, dict) or not all(isinstance(u, list) for u in value.values()):
            raise ConfigError("admins must map group ids to lists of user ids")
        return {str(g): [str(u) for u in users] for g, users in value.items()}
    return _coerce(key, _FIELD_PARSERS[key], value)


def load_settings(
    path: Optional[str | Path] = None,
    env: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Build validated :class:`Settings` from defaults, YAML and environment."""
    env = os.environ if env is None else env
    settings = Settings()
    known = {f.name for f in fields(Settings)}

    config_path = path or env.get("ROASTER_CONFIG")
    if config_path:
        for key, value in _load_yaml(Path(config_path)).items():
            if key not in known:
                raise ConfigError(f"Unknown config key '{key}'")
            if value is None:
                continue
            setattr(settings, key, _yaml_value(key, value, settings))

    for var, (name, parser) in _ENV_OVERRIDES.items():
        raw = env.get(var)
        if raw not in (None, ""):
            setattr(settings, name, _coerce(var, parser, raw))

    return settings.validate()
