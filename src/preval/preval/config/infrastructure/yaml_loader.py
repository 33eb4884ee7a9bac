"""YAML config loader — parses, interpolates env vars, validates, and emits observer events."""

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from preval.config.domain.config import PrevalConfig
from preval.config.domain.observer import ConfigObserver
from preval.config.infrastructure.env_interpolation import (
    collect_missing_vars,
    interpolate,
)
from preval.config.infrastructure.errors import (
    ConfigLoadError,
    ConfigValidationError,
    MissingEnvVarsError,
)

# Handshakes slower than this are almost always a hung evaluator.
_HANDSHAKE_TIMEOUT_WARNING_SECONDS = 60.0


class YamlConfigLoader:
    """Loads, interpolates, validates, and returns a PrevalConfig from a YAML file."""

    def __init__(self, observer: ConfigObserver) -> None:
        self._observer = observer

    def load(self, path: Path) -> PrevalConfig:
        """
        Load, interpolate, validate, and return a PrevalConfig from a YAML file.

        Raises:
            ConfigLoadError: if the file is missing, unreadable or not valid YAML.
            MissingEnvVarsError: if any ${ENV_VAR} references are unset (all collected first).
            ConfigValidationError: if the schema is violated.
        """
        raw = _parse_yaml(path=path)
        _check_missing_env_vars(raw=raw)
        interpolated = interpolate(raw)
        named = _attach_evaluator_names(interpolated=interpolated)
        cfg = _build_config(resolved=named)
        _emit_warnings(cfg=cfg, observer=self._observer)
        self._observer.config_loaded(
            name=cfg.name, version=cfg.version, evaluators=len(cfg.evaluators)
        )
        return cfg


def load_config(path: Path, observer: ConfigObserver) -> PrevalConfig:
    return YamlConfigLoader(observer=observer).load(path=path)


def _parse_yaml(path: Path) -> Any:
    if not path.is_file():
        raise ConfigLoadError(path=path)
    try:
        with path.open("r", encoding="utf-8") as fh:
            raw = yaml.safe_load(fh)
    except OSError as exc:
        raise ConfigLoadError(path=path, reason=str(exc)) from exc
    except yaml.YAMLError as exc:
        raise ConfigLoadError(path=path, reason=f"invalid YAML ({exc})") from exc
    if not isinstance(raw, dict):
        raise ConfigLoadError(path=path, reason="top level must be a mapping")
    return raw


def _check_missing_env_vars(raw: Any) -> None:
    """Raise MissingEnvVarsError if any ${ENV_VAR} references in raw are unset."""
    missing = collect_missing_vars(raw)
    if missing:
        raise MissingEnvVarsError(missing)


def _attach_evaluator_names(interpolated: Any) -> Any:
    """
    Copy each evaluator's mapping key into its ``name`` field.

    A bare string entry is shorthand for ``{command: <string>}``.

    Raises:
        ConfigValidationError: listing ALL malformed evaluator entries before
            raising (not just the first one).
    """
    evaluators_raw = interpolated.get("evaluators")
    if not isinstance(evaluators_raw, dict):
        return interpolated

    invalid: list[str] = []
    resolved: dict[str, Any] = {}
    for name, entry in evaluators_raw.items():
        if isinstance(entry, str):
            entry = {"command": entry}
        if not isinstance(entry, dict):
            invalid.append(f"evaluator '{name}' must be a mapping or a command string")
            continue
        resolved[str(name)] = {"name": str(name), **entry}

    if invalid:
        raise ConfigValidationError("; ".join(invalid))

    return {**interpolated, "evaluators": resolved}


def _build_config(resolved: Any) -> PrevalConfig:
    try:
        return PrevalConfig.model_validate(resolved)
    except ValidationError as exc:
        raise ConfigValidationError(str(exc)) from exc


def _emit_warnings(cfg: PrevalConfig, observer: ConfigObserver) -> None:
    timeout = cfg.session.handshake_timeout_seconds
    if timeout > _HANDSHAKE_TIMEOUT_WARNING_SECONDS:
        observer.config_handshake_timeout_warning(timeout_seconds=timeout)
