"""Comparison configuration models."""

from pydantic import BaseModel, Field


class ComparisonConfig(BaseModel, frozen=True):
    epsilon: float = Field(default=0.001, ge=0)
    lower_is_better: list[str] = Field(default_factory=list)
