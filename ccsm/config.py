"""Claude Session Manager backend configuration."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional


def _env_bool(env: Mapping[str, str], name: str, default: bool = False) -> bool:
    value = env.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    value = env.get(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_str(env: Mapping[str, str], *names: str, default: str) -> str:
    for name in names:
        value = env.get(name)
        if value:
            return value
    return default


@dataclass(frozen=True)
class Settings:
    """Process-wide settings, built once at startup and passed down explicitly."""

    config_dir: Path
    user_config_file: Path
    host: str = "127.0.0.1"
    port: int = 3581
    cors_origin: str = "http://localhost:5173"
    watch_enabled: bool = True
    watch_debounce_ms: int = 500
    log_level: str = "INFO"
    otel_enabled: bool = False
    otel_endpoint: str = "http://localhost:4318"
    otel_service_name: str = "ccsm-backend"
    prom_port: int = 9464

    @property
    def projects_dir(self) -> Path:
        """Per-project session data (~/.claude/projects/)."""
        return self.config_dir / "projects"

    @property
    def settings_file(self) -> Path:
        return self.config_dir / "settings.json"

    @property
    def user_claude_md(self) -> Path:
        return self.config_dir / "CLAUDE.md"

    @property
    def user_skills_dir(self) -> Path:
        return self.config_dir / "skills"

    @classmethod
    def for_config_dir(cls, config_dir: Path, home: Optional[Path] = None, **overrides) -> "Settings":
        """Build settings rooted at an explicit config directory."""
        home_dir = home if home is not None else config_dir.parent
        return cls(
            config_dir=config_dir,
            user_config_file=home_dir / ".claude.json",
            **overrides,
        )

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        """Read settings from the environment.

        Honors ``CLAUDE_CONFIG_DIR`` the same way the assistant itself does;
        everything else lives under the ``CCSM_`` prefix, with the bare
        ``PORT``/``CORS_ORIGIN`` names accepted as fallbacks.
        """
        env = os.environ if env is None else env
        home = Path(env.get("HOME") or Path.home())
        config_dir = Path(env.get("CLAUDE_CONFIG_DIR") or home / ".claude").expanduser()

        return cls(
            config_dir=config_dir,
            user_config_file=home / ".claude.json",
            host=_env_str(env, "CCSM_HOST", default="127.0.0.1"),
            port=_env_int(env, "CCSM_PORT", _env_int(env, "PORT", 3581)),
            cors_origin=_env_str(env, "CCSM_CORS_ORIGIN", "CORS_ORIGIN", default="http://localhost:5173"),
            watch_enabled=_env_bool(env, "CCSM_WATCH_ENABLED", True),
            watch_debounce_ms=max(0, _env_int(env, "CCSM_WATCH_DEBOUNCE_MS", 500)),
            log_level=_env_str(env, "CCSM_LOG_LEVEL", default="INFO").upper(),
            otel_enabled=_env_bool(env, "CCSM_OTEL_ENABLED", False),
            otel_endpoint=_env_str(env, "CCSM_OTEL_ENDPOINT", default="http://localhost:4318"),
            otel_service_name=_env_str(env, "CCSM_OTEL_SERVICE_NAME", default="ccsm-backend"),
            prom_port=_env_int(env, "CCSM_PROM_PORT", 9464),
        )
