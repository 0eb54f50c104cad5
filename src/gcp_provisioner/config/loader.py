"""YAML configuration file loader."""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import TYPE_CHECKING, Any

from dotenv import dotenv_values
from pydantic import ValidationError
from ruamel.yaml import YAML

from gcp_provisioner.config.schema import Config

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Raised for configuration loading / validation errors."""


# Field name → environment variable.
_PROVIDER_ENV_MAP: dict[str, str] = {
    "project": "GCP_PROJECT",
    "region": "GCP_REGION",
    "simulation_path": "GCP_SIMULATION_PATH",
}

# ${var.NAME} and ${env.NAME}; resource references have three segments.
_SUBST_PATTERN = re.compile(r"\$\{(var|env)\.([A-Za-z_][A-Za-z0-9_]*)\}")


def _read_dotenv(config_dir: Path) -> dict[str, str | None]:
    env_file = config_dir / ".env"
    return dotenv_values(env_file, encoding="utf-8-sig") if env_file.is_file() else {}


def _resolve_provider(
    raw_provider: dict[str, Any], dotenv_vals: Mapping[str, str | None]
) -> dict[str, Any]:
    """Resolve provider fields from YAML, env vars, and ``.env`` file.

    Priority (highest wins): YAML value > env var > ``.env`` file.
    """
    resolved: dict[str, Any] = {}
    for field, env_key in _PROVIDER_ENV_MAP.items():
        val = raw_provider.get(field)
        if val is None:
            val = os.environ.get(env_key)
        if val is None:
            val = dotenv_vals.get(env_key)
        if val is not None:
            resolved[field] = val

    unknown = sorted(set(raw_provider) - set(_PROVIDER_ENV_MAP))
    if unknown:
        raise ConfigError(f"Unknown provider field(s): {', '.join(unknown)}")
    return resolved


def _substitute(value: Any, lookup: Callable[[str, str], Any], errors: list[str]) -> Any:
    """Replace ``${var.X}``/``${env.X}`` in *value*.

    A string that is exactly one expression takes the looked-up value with its
    type; embedded expressions are interpolated as text.
    """
    if isinstance(value, dict):
        return {k: _substitute(v, lookup, errors) for k, v in value.items()}
    if isinstance(value, list):
        return [_substitute(v, lookup, errors) for v in value]
    if not isinstance(value, str):
        return value

    def _lookup(match: re.Match[str]) -> Any:
        scope, name = match.group(1), match.group(2)
        try:
            return lookup(scope, name)
        except KeyError:
            errors.append(f"Undefined {scope} '{name}' in {value!r}")
            return match.group(0)

    whole = _SUBST_PATTERN.fullmatch(value)
    if whole is not None:
        return _lookup(whole)
    return _SUBST_PATTERN.sub(lambda m: str(_lookup(m)), value)


def _make_lookup(
    variables: Mapping[str, Any], dotenv_vals: Mapping[str, str | None]
) -> Callable[[str, str], Any]:
    def lookup(scope: str, name: str) -> Any:
        if scope == "var":
            return variables[name]
        val = os.environ.get(name)
        if val is None:
            val = dotenv_vals.get(name)
        if val is None:
            raise KeyError(name)
        return val

    return lookup


def _anchor(path: Path, config_dir: Path) -> Path:
    return path if path.is_absolute() else config_dir / path


def load_config(path: Path | str) -> Config:
    """Load a YAML configuration file and return a ``Config`` object.

    ``${var.NAME}`` expressions are replaced by declared variables and
    ``${env.NAME}`` expressions by environment (or ``.env``) values before
    validation. Relative paths are taken relative to the config file.

    Raises:
        ConfigError: On YAML parse errors, undefined substitutions, or
            validation failures.
    """
    path = Path(path)

    try:
        raw = YAML(typ="safe").load(path)
    except Exception as exc:
        raise ConfigError(f"Failed to read {path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError(f"{path}: expected a mapping at the top level")

    config_dir = path.parent
    dotenv_vals = _read_dotenv(config_dir)
    raw["provider"] = _resolve_provider(raw.get("provider") or {}, dotenv_vals)

    errors: list[str] = []
    env_only = _make_lookup({}, dotenv_vals)
    variables = _substitute(raw.get("variables") or {}, env_only, errors)
    lookup = _make_lookup(variables, dotenv_vals)
    raw["variables"] = variables
    for section in ("resources", "outputs"):
        if raw.get(section) is not None:
            raw[section] = _substitute(raw[section], lookup, errors)
    if errors:
        raise ConfigError("\n".join(errors))

    try:
        config = Config.model_validate(raw)
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc

    config.config_dir = config_dir
    config.state_path = _anchor(config.state_path, config_dir)
    if config.provider.simulation_path is not None:
        config.provider.simulation_path = _anchor(config.provider.simulation_path, config_dir)

    logger.info("Loaded config from %s (%d resources)", path, len(config.resources))
    return config
