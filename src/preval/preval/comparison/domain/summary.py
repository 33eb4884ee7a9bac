"""RunSummary — the condensed result of one session, exchanged with storage."""

from datetime import datetime

from pydantic import BaseModel, Field
from typing_extensions import TypeAliasType

from preval.protocol.domain.handshake import EvaluationMode

MetricName = TypeAliasType("MetricName", str)
MetricValues = TypeAliasType("MetricValues", dict[MetricName, float])


class RunSummary(BaseModel, frozen=True):
    """Overall and per-sample metric values of a finished session.

    ``metrics`` holds one value per metric for the whole session; ``samples``
    holds one value per metric for each sample, keyed by sample id in display
    order.
    """

    evaluator_name: str = Field(min_length=1)
    mode: EvaluationMode
    session_id: str
    finished_at: datetime
    status: str
    metrics: MetricValues = Field(default_factory=dict)
    samples: dict[str, MetricValues] = Field(default_factory=dict)
