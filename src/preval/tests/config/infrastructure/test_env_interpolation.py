"""Tests for ${ENV_VAR} interpolation of raw config data."""

import pytest

from preval.config.infrastructure.env_interpolation import (
    collect_missing_vars,
    interpolate,
)


class TestCollectMissingVars:
    def test_collects_every_missing_var_once(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.delenv("PREVAL_A", raising=False)
        monkeypatch.delenv("PREVAL_B", raising=False)
        data = {"x": "${PREVAL_A}", "y": ["${PREVAL_B}", "${PREVAL_A}"]}

        assert collect_missing_vars(data) == ["PREVAL_A", "PREVAL_B"]

    def test_vars_with_defaults_are_never_missing(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.delenv("PREVAL_A", raising=False)

        assert collect_missing_vars({"x": "${PREVAL_A:-fallback}"}) == []

    def test_set_vars_are_not_missing(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PREVAL_A", "1")

        assert collect_missing_vars("${PREVAL_A}") == []


class TestInterpolate:
    def test_substitutes_nested_values(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PREVAL_HOST", "example.org")
        data = {"urls": ["https://${PREVAL_HOST}/a"], "n": 3, "flag": True}

        assert interpolate(data) == {
            "urls": ["https://example.org/a"],
            "n": 3,
            "flag": True,
        }

    def test_default_used_when_unset(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("PREVAL_LEVEL", raising=False)

        assert interpolate("level=${PREVAL_LEVEL:-info}") == "level=info"

    def test_empty_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("PREVAL_LEVEL", raising=False)

        assert interpolate("${PREVAL_LEVEL:-}") == ""

    def test_leaves_plain_strings_alone(self) -> None:
        assert interpolate("no variables $HOME here") == "no variables $HOME here"
