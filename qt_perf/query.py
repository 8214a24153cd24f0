"""Query definitions and output-consumption modes.

A Query is a named piece of SQL plus the ExecutionMode that decides how its
result rows are consumed while the full execution is timed:

- collect_all:  materialize every row in memory
- discard_each: iterate every row and drop it immediately
- persist_to:   write the result durably under a location
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ExecutionModeKind(str, Enum):
    """How result rows are consumed during the timed execution."""
    COLLECT_ALL = "collect_all"
    DISCARD_EACH = "discard_each"
    PERSIST_TO = "persist_to"


@dataclass(frozen=True)
class ExecutionMode:
    """Consumption strategy for a query. Only PERSIST_TO carries a location."""

    kind: ExecutionModeKind
    location: Optional[str] = None

    def __post_init__(self):
        kind = ExecutionModeKind(self.kind)
        object.__setattr__(self, "kind", kind)
        if kind is ExecutionModeKind.PERSIST_TO:
            if not self.location:
                raise ValueError("persist_to requires a non-empty location")
        elif self.location is not None:
            raise ValueError(f"{kind.value} does not take a location")

    @classmethod
    def collect_all(cls) -> "ExecutionMode":
        return cls(ExecutionModeKind.COLLECT_ALL)

    @classmethod
    def discard_each(cls) -> "ExecutionMode":
        return cls(ExecutionModeKind.DISCARD_EACH)

    @classmethod
    def persist_to(cls, location: str) -> "ExecutionMode":
        return cls(ExecutionModeKind.PERSIST_TO, location)

    @classmethod
    def parse(cls, value: str) -> "ExecutionMode":
        """Build a mode from a short string.

        Accepted forms: ``collect``, ``discard``, ``persist:<location>``
        (the enum values ``collect_all``/``discard_each`` work too).
        """
        text = value.strip()
        lowered = text.lower()
        if lowered in ("collect", "collect_all"):
            return cls.collect_all()
        if lowered in ("discard", "discard_each", "foreach"):
            return cls.discard_each()
        prefix, sep, location = text.partition(":")
        if sep and prefix.lower() in ("persist", "persist_to"):
            return cls.persist_to(location.strip())
        raise ValueError(f"Unknown execution mode: {value!r}")

    @property
    def persists(self) -> bool:
        return self.kind is ExecutionModeKind.PERSIST_TO

    def __str__(self) -> str:
        if self.persists:
            return f"{self.kind.value}({self.location})"
        return self.kind.value


COLLECT_ALL = ExecutionMode.collect_all()
DISCARD_EACH = ExecutionMode.discard_each()


@dataclass(frozen=True)
class Query:
    """A named SQL text to benchmark.

    Attributes:
        name: Identifier unique within a benchmark run; also names output files.
        text: SQL passed verbatim to the engine.
        description: Free-form note, not used by the runner.
        mode: How the result is consumed while execution is timed.
    """

    name: str
    text: str
    description: str = ""
    mode: ExecutionMode = COLLECT_ALL

    def __post_init__(self):
        if not self.name or not self.name.strip():
            raise ValueError("Query name must be non-empty")
        if not isinstance(self.mode, ExecutionMode):
            raise TypeError(f"mode must be an ExecutionMode, got {type(self.mode).__name__}")
