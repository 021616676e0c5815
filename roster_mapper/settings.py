"""
Runtime configuration.

Precedence, lowest to highest: built-in defaults, the JSON config file
(``roster-mapper.json`` or an explicit path), then environment variables.
"""

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, replace
from pathlib import Path
from typing import Any, Mapping

from roster_mapper.errors import ConfigError

DEFAULT_CONFIG_PATH = Path("roster-mapper.json")
SUPPORTED_CONFIG_SUFFIXES = {".json", ".yml", ".yaml"}

ENV_VARS = {
    "store_path": "ROSTER_MAPPER_STORE",
    "resend_api_key": "RESEND_API_KEY",
    "mail_from": "ROSTER_MAPPER_MAIL_FROM",
    "template_max_file_bytes": "TEMPLATE_MAX_FILE_BYTES",
    "rate_limit_window_seconds": "IMPORT_RATE_LIMIT_WINDOW_SECONDS",
    "rate_limit_max": "IMPORT_RATE_LIMIT_MAX",
    "access_code": "ROSTER_MAPPER_ACCESS_CODE",
}

INT_FIELDS = {"template_max_file_bytes", "rate_limit_window_seconds", "rate_limit_max"}


@dataclass(frozen=True)
class Settings:
    store_path: str = "roster-mapper-data.json"
    resend_api_key: str = ""
    mail_from: str = "Participant Import <onboarding@resend.dev>"
    template_max_file_bytes: int = 2 * 1024 * 1024
    rate_limit_window_seconds: int = 60
    rate_limit_max: int = 10
    access_code: str = ""

    def to_dict(self, *, redact: bool = True) -> dict[str, Any]:
        payload = asdict(self)
        if redact:
            for key in ("resend_api_key", "access_code"):
                if payload[key]:
                    payload[key] = "***"
        return payload


DEFAULTS = Settings()


def parse_positive_int(value: Any, fallback: int) -> int:
    try:
        parsed = int(float(str(value).strip()))
    except (TypeError, ValueError):
        return fallback
    return parsed if parsed > 0 else fallback


def _coerce(name: str, value: Any) -> Any:
    if name in INT_FIELDS:
        return parse_positive_int(value, getattr(DEFAULTS, name))
    return "" if value is None else str(value).strip()


def read_config_file(config_path: Path) -> dict[str, Any]:
    suffix = config_path.suffix.lower()
    if suffix not in SUPPORTED_CONFIG_SUFFIXES:
        raise ConfigError("Config must be .json")
    if suffix in {".yml", ".yaml"}:
        raise ConfigError("YAML config files are not supported. Use JSON.")
    try:
        payload = json.loads(config_path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise ConfigError(f"Could not read config: {exc}") from exc
    if not isinstance(payload, dict):
        raise ConfigError("Config root must be a JSON object.")
    unknown = sorted(set(payload) - set(ENV_VARS))
    if unknown:
        raise ConfigError(f"Unknown config keys: {', '.join(unknown)}")
    return payload


def load_settings(
    config_path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> Settings:
    env = os.environ if environ is None else environ
    settings = DEFAULTS

    if config_path is not None:
        path = Path(config_path)
        if not path.exists():
            raise ConfigError(f"Config not found: {path}")
        file_values = read_config_file(path)
    elif DEFAULT_CONFIG_PATH.exists():
        file_values = read_config_file(DEFAULT_CONFIG_PATH)
    else:
        file_values = {}

    overrides = {name: _coerce(name, value) for name, value in file_values.items()}
    for name, env_name in ENV_VARS.items():
        if env.get(env_name):
            overrides[name] = _coerce(name, env[env_name])
    return replace(settings, **overrides)


def starter_config() -> str:
    payload = DEFAULTS.to_dict(redact=False)
    return json.dumps(payload, indent=2, sort_keys=True) + "\n"
