"""Relay configuration system with 3-tier precedence.

Precedence (highest wins):
  1. Environment variables (LOOPBACK_RELAY_<SECTION>_<KEY>, e.g. LOOPBACK_RELAY_SERVER_PORT=3100)
  2. Global config   (~/.loopback_relay/config.yaml)
  3. Pydantic defaults (hardcoded in this module)
"""

import logging
import os
import threading
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

from . import constants

_log = logging.getLogger(__name__)

# ── Global config location ───────────────────────────────────────────────────

GLOBAL_CONFIG_DIR = os.path.join(Path.home(), ".loopback_relay")
GLOBAL_CONFIG_PATH = os.path.join(GLOBAL_CONFIG_DIR, "config.yaml")

ENV_PREFIX = "LOOPBACK_RELAY_"


# ── Sections ─────────────────────────────────────────────────────────────────


class ServerConfig(BaseModel):
    """Where the relay listens."""

    host: str = constants.DEFAULT_HOST
    port: int = constants.DEFAULT_PORT
    callback_path: str = constants.DEFAULT_CALLBACK_PATH

    @field_validator("port")
    @classmethod
    def _validate_port(cls, v: int) -> int:
        if not 0 <= v <= 65535:
            raise ValueError(f"port must be 0-65535, got {v}")
        return v

    @field_validator("callback_path")
    @classmethod
    def _validate_callback_path(cls, v: str) -> str:
        if not v.startswith("/"):
            raise ValueError(f"callback_path must start with '/', got {v!r}")
        if "?" in v or "#" in v:
            raise ValueError(f"callback_path must not contain a query or fragment, got {v!r}")
        return v


class RelaySection(BaseModel):
    """How results leave the browser.

    ``target_origin`` defaults to the ``*`` wildcard so any opener receives the
    code.  Production deployments should set it to the opener's origin.
    """

    target_origin: str = constants.TARGET_ORIGIN_ANY
    cors_allow_origin: str = constants.CORS_ALLOW_ORIGIN_ANY
    message_type: str = constants.AUTH_MESSAGE_TYPE
    close_window: bool = True

    @field_validator("message_type")
    @classmethod
    def _validate_message_type(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("message_type must not be empty")
        return v


class LoginConfig(BaseModel):
    timeout: float = constants.DEFAULT_LOGIN_TIMEOUT

    @field_validator("timeout")
    @classmethod
    def _validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"timeout must be > 0, got {v}")
        return v


class EnvironmentProfile(BaseModel):
    provider_url: str
    auth_callback_url: str


def _default_profiles() -> dict[str, EnvironmentProfile]:
    return {
        "development": EnvironmentProfile(
            provider_url="https://auth.example.com",
            auth_callback_url="http://localhost:3000",
        ),
        "production": EnvironmentProfile(
            provider_url="https://auth.example.com",
            auth_callback_url="https://app.example.com",
        ),
    }


class EnvironmentConfig(BaseModel):
    """Per-environment settings table, selected once at startup by name."""

    active: str = "development"
    profiles: dict[str, EnvironmentProfile] = Field(default_factory=_default_profiles)


class GlobalConfig(BaseModel):
    """Top-level relay configuration.

    Written to ``~/.loopback_relay/config.yaml`` on first run.
    """

    server: ServerConfig = Field(default_factory=ServerConfig)
    relay: RelaySection = Field(default_factory=RelaySection)
    login: LoginConfig = Field(default_factory=LoginConfig)
    environment: EnvironmentConfig = Field(default_factory=EnvironmentConfig)


def select_environment(config: GlobalConfig, name: str | None = None) -> EnvironmentProfile:
    """Return the profile for *name* (defaults to ``environment.active``)."""
    chosen = name or config.environment.active
    profile = config.environment.profiles.get(chosen)
    if profile is None:
        available = ", ".join(sorted(config.environment.profiles))
        raise ValueError(f"Unknown environment '{chosen}'. Available: {available}")
    return profile


# ── Singleton: the resolved global config ────────────────────────────────────

_global_config: GlobalConfig | None = None
_config_lock: threading.Lock = threading.Lock()


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Apply LOOPBACK_RELAY_<SECTION>_<KEY>=<value> environment variables.

    Values stay strings; pydantic coerces them to each field's declared type,
    so ``LOOPBACK_RELAY_SERVER_PORT=3100`` becomes an int while
    ``LOOPBACK_RELAY_RELAY_MESSAGE_TYPE=1`` stays the string ``"1"``.
    """
    for env_key, env_val in os.environ.items():
        if not env_key.startswith(ENV_PREFIX):
            continue
        parts = env_key[len(ENV_PREFIX) :].lower().split("_", 1)
        if len(parts) != 2:
            continue
        section, field = parts
        if section not in data:
            data[section] = {}
        if not isinstance(data[section], dict):
            continue
        data[section][field] = env_val
    return data


def load_global_config(force_reload: bool = False) -> GlobalConfig:
    """Load and cache the global config with 3-tier precedence."""
    global _global_config
    with _config_lock:
        if _global_config is not None and not force_reload:
            return _global_config

        data: dict[str, Any] = {}
        if os.path.exists(GLOBAL_CONFIG_PATH):
            try:
                with open(GLOBAL_CONFIG_PATH, encoding="utf-8") as f:
                    file_data = yaml.safe_load(f)
                    if isinstance(file_data, dict):
                        data = file_data
            except (OSError, yaml.YAMLError) as exc:
                _log.warning("Failed to read global config %s: %s", GLOBAL_CONFIG_PATH, exc)
        data = _apply_env_overrides(data)
        try:
            _global_config = GlobalConfig(**data)
        except (ValueError, TypeError) as exc:
            _log.warning("Invalid global config, using defaults: %s", exc)
            _global_config = GlobalConfig()
        return _global_config


def ensure_global_config() -> bool:
    """Write the default config to ``~/.loopback_relay/config.yaml`` if it doesn't exist.

    Returns True when a file was written.
    """
    if os.path.exists(GLOBAL_CONFIG_PATH):
        return False

    config_dir = os.path.dirname(GLOBAL_CONFIG_PATH)
    data = GlobalConfig().model_dump()

    try:
        os.makedirs(config_dir, exist_ok=True)
        with open(GLOBAL_CONFIG_PATH, "w", encoding="utf-8") as f:
            f.write("# Loopback relay configuration\n")
            f.write("# relay.target_origin '*' lets any opener receive the code; pin it in production.\n")
            f.write(f"# Environment variables: {ENV_PREFIX}<SECTION>_<KEY>=<value>\n\n")
            yaml.dump(data, f, default_flow_style=False, sort_keys=False, allow_unicode=True)
    except OSError as exc:
        _log.warning("Failed to write global config to %s: %s", GLOBAL_CONFIG_PATH, exc)
        return False
    _log.info("Wrote default global config to %s", GLOBAL_CONFIG_PATH)
    return True
