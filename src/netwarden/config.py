"""Global configuration — XDG paths, optional YAML file, env vars, defaults."""

from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml


class ConfigError(ValueError):
    """Raised when a configuration file or override is invalid."""


def _default_data_dir() -> Path:
    xdg = os.environ.get("XDG_DATA_HOME")
    if xdg:
        return Path(xdg) / "netwarden"
    return Path.home() / ".local" / "share" / "netwarden"


def _default_config_dir() -> Path:
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "netwarden"
    return Path.home() / ".config" / "netwarden"


_PATH_FIELDS = {"data_dir", "config_dir", "ip_ranges_path"}
_OPTIONAL_FIELDS = {"ip_ranges_path", "process_cache_ttl"}
_FLOAT_FIELDS = {"poll_interval", "command_timeout", "dns_timeout", "process_cache_ttl"}
_INT_FIELDS = {"max_workers", "ledger_retries", "web_port"}
_STR_FIELDS = {"target_process", "provider_label", "web_host"}


@dataclass
class NetwardenConfig:
    """Application-wide configuration."""

    data_dir: Path = field(default_factory=_default_data_dir)
    config_dir: Path = field(default_factory=_default_config_dir)
    poll_interval: float = 2.0
    target_process: str = "cursor"
    ip_ranges_path: Path | None = None
    provider_label: str = "aws.amazon.com"
    seed_criteria: list[str] = field(default_factory=lambda: ["s3", "aws.amazon.com"])
    max_workers: int = 16
    command_timeout: float = 5.0
    dns_timeout: float = 2.0
    process_cache_ttl: float | None = None
    ledger_retries: int = 2
    web_host: str = "127.0.0.1"  # Dashboard is local-only
    web_port: int = 3000
    verbose: bool = False

    @property
    def db_path(self) -> Path:
        return self.data_dir / "netwarden.db"

    @property
    def ranges_path(self) -> Path:
        """Location of the cloud provider IP range dataset."""
        if self.ip_ranges_path is not None:
            return self.ip_ranges_path
        return self.data_dir / "ip-ranges.json"

    @classmethod
    def load(cls, path: str | Path | None = None) -> NetwardenConfig:
        """Load config from YAML (if present) and environment variables.

        ``path`` defaults to ``<config_dir>/config.yaml``; a missing default
        file is ignored, a missing explicit file is an error.
        """
        config = cls()

        if path is not None:
            config_file = Path(path)
            if not config_file.is_file():
                raise ConfigError(f"Config file not found: {config_file}")
        else:
            config_file = config.config_dir / "config.yaml"

        if config_file.is_file():
            config.apply(_read_yaml(config_file))

        env_dir = os.environ.get("NETWARDEN_DATA_DIR")
        if env_dir:
            config.data_dir = Path(env_dir)

        env_interval = os.environ.get("NETWARDEN_POLL_INTERVAL")
        if env_interval:
            config.poll_interval = _env_number(
                "NETWARDEN_POLL_INTERVAL", env_interval, float
            )

        env_target = os.environ.get("NETWARDEN_TARGET_PROCESS")
        if env_target:
            config.target_process = env_target

        env_ranges = os.environ.get("NETWARDEN_IP_RANGES")
        if env_ranges:
            config.ip_ranges_path = Path(env_ranges)

        env_port = os.environ.get("NETWARDEN_WEB_PORT")
        if env_port:
            config.web_port = _env_number("NETWARDEN_WEB_PORT", env_port, int)

        config.validate()
        return config

    def apply(self, overrides: dict) -> None:
        """Apply a mapping of field name → value onto this config."""
        known = {f.name for f in dataclasses.fields(self)}
        unknown = sorted(set(overrides) - known)
        if unknown:
            raise ConfigError(f"Unknown config keys: {', '.join(unknown)}")

        for key, value in overrides.items():
            setattr(self, key, _coerce(key, value))

    def validate(self) -> None:
        if self.poll_interval <= 0:
            raise ConfigError("poll_interval must be positive")
        if self.max_workers < 1:
            raise ConfigError("max_workers must be at least 1")
        if not self.target_process:
            raise ConfigError("target_process must not be empty")
        if self.command_timeout <= 0 or self.dns_timeout <= 0:
            raise ConfigError("timeouts must be positive")
        if any(not c.strip() for c in self.seed_criteria):
            raise ConfigError("seed_criteria must not contain blank strings")
        if self.ledger_retries < 0:
            raise ConfigError("ledger_retries must not be negative")
        if self.process_cache_ttl is not None and self.process_cache_ttl <= 0:
            raise ConfigError("process_cache_ttl must be positive")
        if not 0 < self.web_port < 65536:
            raise ConfigError("web_port must be between 1 and 65535")


def _coerce(key: str, value: object) -> object:
    """Check a config value against the type of its field."""
    if value is None:
        if key in _OPTIONAL_FIELDS:
            return None
        raise ConfigError(f"{key} must not be null")

    if key in _PATH_FIELDS:
        if not isinstance(value, (str, os.PathLike)):
            raise ConfigError(f"{key} must be a path")
        return Path(value).expanduser()

    # bool is an int subclass
    if key in _FLOAT_FIELDS:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ConfigError(f"{key} must be a number, got {value!r}")
        return float(value)
    if key in _INT_FIELDS:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigError(f"{key} must be an integer, got {value!r}")
        return value
    if key in _STR_FIELDS:
        if not isinstance(value, str):
            raise ConfigError(f"{key} must be a string, got {value!r}")
        return value
    if key == "verbose":
        if not isinstance(value, bool):
            raise ConfigError(f"verbose must be true or false, got {value!r}")
        return value
    if key == "seed_criteria":
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise ConfigError("seed_criteria must be a list of strings")
        return list(value)
    return value


def _env_number(name: str, raw: str, kind: type) -> float | int:
    try:
        return kind(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from exc


def _read_yaml(path: Path) -> dict:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError("Config YAML must be a mapping")
    return data
