"""Handshake — the first message an evaluator writes to stdout."""

from enum import StrEnum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing_extensions import TypeAliasType

SampleId = TypeAliasType("SampleId", str)
GroupName = TypeAliasType("GroupName", str)


class EvaluationMode(StrEnum):
    TEST_SUITE = "test_suite"
    ONLINE_COLLECTION = "online_collection"
    CONTINUOUS = "continuous"


class MetricKind(StrEnum):
    GAUGE = "gauge"
    COUNTER = "counter"
    HISTOGRAM = "histogram"


class EvaluatorInfo(BaseModel, frozen=True):
    """Identity of the evaluator process."""

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=255)
    description: str | None = Field(default=None, min_length=1, max_length=512)
    version: str | None = None


class ExecutionPlan(BaseModel, frozen=True):
    """Declared amount of work, used for deterministic progress and ETA."""

    model_config = ConfigDict(extra="ignore")

    total_samples: int = Field(gt=0)
    runs_per_sample: int = Field(default=1, ge=1)
    batch_size: int | None = Field(default=None, gt=0)
    sample_groups: dict[GroupName, list[SampleId]] | None = None

    @property
    def total_runs(self) -> int:
        return self.total_samples * self.runs_per_sample


class MetricDefinition(BaseModel, frozen=True):
    """One entry of the handshake's metrics_schema."""

    model_config = ConfigDict(
        extra="ignore", str_strip_whitespace=True, populate_by_name=True
    )

    name: str = Field(min_length=1, max_length=128)
    kind: MetricKind = Field(default=MetricKind.GAUGE, alias="type")
    unit: str | None = Field(default=None, max_length=32)
    description: str | None = None


class Handshake(BaseModel, frozen=True):
    """Validated handshake. Immutable once accepted by the negotiator.

    The execution plan is mandatory in test_suite mode, optional in
    online_collection mode and meaningless in continuous mode, which has no
    predetermined end.
    """

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    type: Literal["handshake"] = "handshake"
    mode: EvaluationMode
    version: str = Field(min_length=1, max_length=32)
    evaluator: EvaluatorInfo
    execution_plan: ExecutionPlan | None = None
    metrics_schema: list[MetricDefinition] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_plan_matches_mode(self) -> "Handshake":
        if self.mode is EvaluationMode.TEST_SUITE and self.execution_plan is None:
            raise ValueError("test_suite mode requires an execution_plan")
        if self.mode is EvaluationMode.CONTINUOUS and self.execution_plan is not None:
            raise ValueError("continuous mode must not declare an execution_plan")
        return self

    def metric_definition(self, name: str) -> MetricDefinition | None:
        for definition in self.metrics_schema:
            if definition.name == name:
                return definition
        return None
