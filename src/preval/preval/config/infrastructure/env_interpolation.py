"""Recursive ${ENV_VAR} / ${ENV_VAR:-default} interpolation for raw config data."""

import os
import re

from typing_extensions import TypeAliasType

_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-([^}]*))?\}")

RawValue = TypeAliasType(
    "RawValue",
    str | int | float | bool | None | list["RawValue"] | dict[str, "RawValue"],
)


def collect_missing_vars(data: RawValue) -> list[str]:
    """
    Walk the data tree and return the names of all referenced env vars that
    are not currently set and have no default.  Every missing var is collected
    before returning.
    """
    missing: list[str] = []
    _collect(data, missing)
    return missing


def _collect(data: RawValue, missing: list[str]) -> None:
    if isinstance(data, str):
        for match in _ENV_VAR_PATTERN.finditer(data):
            var_name, default = match.group(1), match.group(2)
            if default is not None:
                continue
            if var_name not in os.environ and var_name not in missing:
                missing.append(var_name)
    elif isinstance(data, list):
        for item in data:
            _collect(item, missing)
    elif isinstance(data, dict):
        for value in data.values():
            _collect(value, missing)


def _substitute(match: re.Match[str]) -> str:
    var_name, default = match.group(1), match.group(2)
    if default is None:
        return os.environ[var_name]
    return os.environ.get(var_name, default)


def interpolate(data: RawValue) -> RawValue:
    """
    Recursively substitute all ${ENV_VAR} occurrences with their runtime values.

    ``${ENV_VAR:-default}`` falls back to ``default`` when the variable is
    unset.  Assumes all other referenced variables are present — call
    `collect_missing_vars` first and raise `MissingEnvVarsError` if any are absent.
    """
    if isinstance(data, str):
        return _ENV_VAR_PATTERN.sub(_substitute, data)
    if isinstance(data, list):
        return [interpolate(item) for item in data]
    if isinstance(data, dict):
        return {key: interpolate(value) for key, value in data.items()}
    return data
