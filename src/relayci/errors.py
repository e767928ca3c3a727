# errors.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional


class RelayError(Exception):
    """Base class for every error relayci raises on purpose."""


class MalformedDefinition(RelayError):
    """
    The pipeline definition could not be parsed into a PipelineDefinition.
    Fatal: no run starts.
    """

    def __init__(self, message: str, problems: Optional[List[str]] = None, source: str | None = None):
        super().__init__(message)
        self.message = message
        self.problems = list(problems or [])
        self.source = source

    def __str__(self) -> str:
        lines = [self.message if not self.source else f"{self.message} ({self.source})"]
        for p in self.problems:
            lines.append(f"  - {p}")
        return "\n".join(lines)


class NoTriggerMatch(RelayError):
    """No trigger rule matched the event. Not a failure: the pipeline just does not run."""

    def __init__(self, event_kind: str, branch: str | None = None):
        super().__init__(f"no trigger rule matches event '{event_kind}'" + (f" on '{branch}'" if branch else ""))
        self.event_kind = event_kind
        self.branch = branch


@dataclass
class StepExecutionFailure(RelayError):
    """A step's external action terminated abnormally."""
    job: str
    step: str
    cmd: str
    exit_code: Optional[int]
    output: str = ""
    hint: Optional[str] = None

    def __str__(self) -> str:
        code = "n/a" if self.exit_code is None else self.exit_code
        return f"[{self.job}] step '{self.step}' failed (exit={code}): {self.cmd}"


@dataclass
class JobCancelled(RelayError):
    """A sibling in the same fail-fast group failed; this instance stops."""
    job: str
    before_step: Optional[str] = None

    def __str__(self) -> str:
        if self.before_step:
            return f"[{self.job}] cancelled before step '{self.before_step}'"
        return f"[{self.job}] cancelled"


@dataclass
class AggregationIncomplete(RelayError):
    """A dispatched JobInstance never produced exactly one JobResult."""
    missing: List[str] = field(default_factory=list)
    duplicated: List[str] = field(default_factory=list)
    unexpected: List[str] = field(default_factory=list)

    def __str__(self) -> str:
        parts = []
        if self.missing:
            parts.append(f"no result for: {', '.join(self.missing)}")
        if self.duplicated:
            parts.append(f"more than one result for: {', '.join(self.duplicated)}")
        if self.unexpected:
            parts.append(f"result for an instance that was never dispatched: {', '.join(self.unexpected)}")
        return "aggregation incomplete: " + "; ".join(parts)
