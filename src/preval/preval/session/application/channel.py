"""Items carried from the stdout reader to the session, in arrival order."""

import asyncio

from pydantic import BaseModel
from typing_extensions import TypeAliasType

from preval.process.domain.exit_status import ExitStatus


class EndOfStream(BaseModel, frozen=True):
    """Sentinel sent after the last stdout line, once the process was reaped."""

    exit_status: ExitStatus


StreamItem = TypeAliasType("StreamItem", str | EndOfStream)
LineChannel = TypeAliasType("LineChannel", asyncio.Queue[StreamItem])
