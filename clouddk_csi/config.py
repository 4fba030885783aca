"""TOML and environment based driver configuration.

Loads ~/.clouddk/defaults.toml (global) and clouddk.toml (project), merges
them, applies CLOUDDK_* environment overrides and resolves the result into
an immutable Settings instance.
"""

from __future__ import annotations

import os
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, TypeAlias

from clouddk_csi.core.exceptions import ConfigurationError

RawConfig: TypeAlias = dict[str, Any]

GLOBAL_CONFIG_PATH = Path.home() / ".clouddk" / "defaults.toml"
PROJECT_CONFIG_NAME = "clouddk.toml"
CONFIG_SECTION = "clouddk"

DEFAULT_API_ENDPOINT = "https://api.cloud.dk/v1"
DEFAULT_TEMPLATE = "ubuntu-18.04-x64"
DEFAULT_MIRROR = "mirrors.dotsrc.org"

ENV_OVERRIDES = {
    "CLOUDDK_API_KEY": "api_key",
    "CLOUDDK_API_ENDPOINT": "api_endpoint",
    "CLOUDDK_PUBLIC_KEY": "public_key",
    "CLOUDDK_PRIVATE_KEY": "private_key",
    "CLOUDDK_PUBLIC_KEY_FILE": "public_key_file",
    "CLOUDDK_PRIVATE_KEY_FILE": "private_key_file",
}


@dataclass(frozen=True, slots=True)
class Settings:
    """Driver settings.

    Args:
        api_key: Cloud.dk API key.
        public_key: OpenSSH public key authorized on every new server.
        private_key: Matching private key, used for all connections after bootstrap.
        api_endpoint: Control-plane base URL.
        template: OS template for new servers.
        mirror: Package mirror the bootstrap script points apt at.
        ready_timeout: Seconds to wait for a new server to accept SSH.
        ready_interval: Seconds between SSH connection attempts.
        request_timeout: Per-request HTTP timeout in seconds.
        known_hosts: known_hosts file for host-key checks. None disables them.
    """

    api_key: str
    public_key: str
    private_key: str
    api_endpoint: str = DEFAULT_API_ENDPOINT
    template: str = DEFAULT_TEMPLATE
    mirror: str = DEFAULT_MIRROR
    ready_timeout: float = 300.0
    ready_interval: int = 10
    request_timeout: float = 30.0
    known_hosts: str | None = None

    def __repr__(self) -> str:
        return (
            f"Settings(api_endpoint={self.api_endpoint!r}, template={self.template!r}, "
            f"mirror={self.mirror!r}, ready_timeout={self.ready_timeout}, "
            f"ready_interval={self.ready_interval})"
        )


def _deep_merge(base: RawConfig, override: RawConfig) -> RawConfig:
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _read_toml(path: Path) -> RawConfig:
    if not path.is_file():
        return {}
    try:
        with path.open("rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"Invalid TOML in {path}: {e}") from e


def load_config(
    *,
    project_dir: Path | None = None,
    global_path: Path | None = None,
) -> RawConfig:
    global_cfg = _read_toml(global_path or GLOBAL_CONFIG_PATH)
    project_path = (project_dir or Path.cwd()) / PROJECT_CONFIG_NAME
    project_cfg = _read_toml(project_path)

    merged = _deep_merge(global_cfg, project_cfg)
    section = merged.get(CONFIG_SECTION, {})
    if not isinstance(section, dict):
        raise ConfigurationError(f"[{CONFIG_SECTION}] must be a table")
    return dict(section)


def _apply_env(raw: RawConfig, environ: Mapping[str, str]) -> RawConfig:
    result = dict(raw)
    for var, key in ENV_OVERRIDES.items():
        if value := environ.get(var):
            result[key] = value
    return result


def _resolve_key(raw: RawConfig, name: str) -> str:
    inline = raw.pop(name, None)
    path = raw.pop(f"{name}_file", None)
    if inline:
        return str(inline)
    if path:
        key_path = Path(path).expanduser()
        try:
            return key_path.read_text()
        except OSError as e:
            raise ConfigurationError(f"Cannot read {name} from {key_path}: {e}") from e
    raise ConfigurationError(
        f"Missing {name}. Set '{name}' or '{name}_file' in [{CONFIG_SECTION}] "
        f"or CLOUDDK_{name.upper()}"
    )


_FIELD_TYPES: dict[str, tuple[type, ...]] = {
    "api_endpoint": (str,),
    "template": (str,),
    "mirror": (str,),
    "ready_timeout": (int, float),
    "ready_interval": (int,),
    "request_timeout": (int, float),
    "known_hosts": (str,),
}


def _check_types(raw: RawConfig) -> None:
    for key, value in raw.items():
        expected = _FIELD_TYPES[key]
        if isinstance(value, bool) or not isinstance(value, expected):
            names = " or ".join(t.__name__ for t in expected)
            raise ConfigurationError(
                f"{key} in [{CONFIG_SECTION}] must be {names}, "
                f"got {type(value).__name__}: {value!r}"
            )


def build_settings(raw: RawConfig) -> Settings:
    """Validate a raw [clouddk] table and turn it into Settings."""
    raw = dict(raw)

    public_key = _resolve_key(raw, "public_key").strip()
    private_key = _resolve_key(raw, "private_key")

    api_key = raw.pop("api_key", None)
    if not api_key:
        raise ConfigurationError(
            f"Missing api_key. Set it in [{CONFIG_SECTION}] or CLOUDDK_API_KEY"
        )

    valid = {f.name for f in fields(Settings)}
    unknown = sorted(set(raw) - valid)
    if unknown:
        raise ConfigurationError(
            f"Unknown setting(s) in [{CONFIG_SECTION}]: {', '.join(unknown)}. "
            f"Valid: {', '.join(sorted(valid))}"
        )

    _check_types(raw)
    settings = Settings(
        api_key=str(api_key),
        public_key=public_key,
        private_key=private_key,
        **raw,
    )
    if settings.ready_interval <= 0:
        raise ConfigurationError(f"ready_interval must be positive: {settings.ready_interval}")
    if settings.ready_timeout <= 0:
        raise ConfigurationError(f"ready_timeout must be positive: {settings.ready_timeout}")
    return settings


def load_settings(
    *,
    project_dir: Path | None = None,
    global_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> Settings:
    raw = load_config(project_dir=project_dir, global_path=global_path)
    raw = _apply_env(raw, os.environ if environ is None else environ)
    return build_settings(raw)
