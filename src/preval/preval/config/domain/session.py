"""Per-session tuning knobs."""

from pydantic import BaseModel, Field


class SessionSettings(BaseModel, frozen=True):
    handshake_timeout_seconds: float = Field(default=5.0, gt=0)
    buffer_capacity: int = Field(default=10_000, ge=1)
    eta_window: int = Field(default=10, ge=1)
    stall_threshold_seconds: float = Field(default=30.0, gt=0)
    terminate_grace_seconds: float = Field(default=3.0, ge=0)
    infer_run_completion: bool = True
    line_limit_bytes: int = Field(default=16 * 1024 * 1024, ge=1024)
