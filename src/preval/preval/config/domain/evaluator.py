"""EvaluatorSpec — how to launch one evaluator subprocess."""

from pydantic import BaseModel, Field


class EvaluatorSpec(BaseModel, frozen=True):
    """An already-resolved command line plus environment overrides.

    ``env`` is layered over the parent environment; nothing here is
    interpreted as flags.
    """

    name: str = Field(min_length=1)
    command: str = Field(min_length=1)
    args: list[str] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict)

    @property
    def command_line(self) -> str:
        return " ".join([self.command, *self.args])
