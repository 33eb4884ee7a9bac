"""Top-level PrevalConfig aggregate — the root configuration object."""

from pathlib import Path

from pydantic import BaseModel, Field, model_validator
from typing_extensions import TypeAliasType

from preval.config.domain.comparison import ComparisonConfig
from preval.config.domain.evaluator import EvaluatorSpec
from preval.config.domain.session import SessionSettings

EvaluatorName = TypeAliasType("EvaluatorName", str)


class PrevalConfig(BaseModel, frozen=True):
    """Root configuration aggregate for a preval dashboard run."""

    name: str = Field(min_length=1)
    version: str = Field(default="1", min_length=1)
    evaluators: dict[EvaluatorName, EvaluatorSpec] = Field(min_length=1)
    session: SessionSettings = Field(default_factory=SessionSettings)
    comparison: ComparisonConfig = Field(default_factory=ComparisonConfig)
    history_dir: Path | None = None

    @model_validator(mode="after")
    def _check_evaluator_names(self) -> "PrevalConfig":
        for key, spec in self.evaluators.items():
            if spec.name != key:
                raise ValueError(
                    f"evaluator '{key}' declares a different name '{spec.name}'"
                )
        return self

    def evaluator_specs(self) -> list[EvaluatorSpec]:
        return list(self.evaluators.values())
