# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple


class StepStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED = "skipped"


class JobStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


class RunStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"


# ---------------------------------------------------------------------
# Definition side (immutable once loaded)
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class Event:
    """A repository event handed to us by the hosting trigger source."""
    kind: str
    branch: Optional[str] = None
    subtype: Optional[str] = None
    sha: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "branch": self.branch,
            "subtype": self.subtype,
            "sha": self.sha,
        }


@dataclass(frozen=True)
class TriggerRule:
    event: str
    branches: Optional[Tuple[str, ...]] = None
    branches_ignore: Optional[Tuple[str, ...]] = None
    types: Optional[Tuple[str, ...]] = None


@dataclass(frozen=True)
class StepTemplate:
    """
    One step of a job: either an inline shell command (`run`) or a named
    external action (`uses`) configured through `with_`.
    """
    name: str
    run: Optional[str] = None
    uses: Optional[str] = None
    with_: Mapping[str, Any] = field(default_factory=dict)
    continue_on_error: bool = False
    working_directory: Optional[str] = None
    env: Mapping[str, str] = field(default_factory=dict)

    @property
    def is_action(self) -> bool:
        return self.uses is not None


@dataclass(frozen=True)
class MatrixSpec:
    # axis name -> ordered values; dict order is declaration order
    axes: Mapping[str, Tuple[Any, ...]] = field(default_factory=dict)
    include: Tuple[Mapping[str, Any], ...] = ()
    exclude: Tuple[Mapping[str, Any], ...] = ()
    fail_fast: bool = True


@dataclass(frozen=True)
class JobDefinition:
    name: str
    steps: Tuple[StepTemplate, ...]
    runs_on: Optional[str] = None
    display_name: Optional[str] = None
    matrix: Optional[MatrixSpec] = None
    env: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class PipelineDefinition:
    triggers: Tuple[TriggerRule, ...]
    jobs: Tuple[JobDefinition, ...]
    name: Optional[str] = None

    def job(self, name: str) -> JobDefinition:
        for j in self.jobs:
            if j.name == name:
                return j
        raise KeyError(name)


# ---------------------------------------------------------------------
# Run side
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class JobInstance:
    """A job definition bound to one value per matrix axis."""
    job: JobDefinition
    steps: Tuple[StepTemplate, ...]
    matrix: Mapping[str, Any] = field(default_factory=dict)
    fail_fast: bool = True
    index: int = 0
    display_name: Optional[str] = None

    @property
    def name(self) -> str:
        return self.job.name

    @property
    def instance_id(self) -> str:
        if not self.matrix:
            return self.job.name
        values = ", ".join(str(v) for v in self.matrix.values())
        return f"{self.job.name} ({values})"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.instance_id,
            "job": self.job.name,
            "name": self.display_name or self.job.name,
            "runs_on": self.job.runs_on,
            "matrix": dict(self.matrix),
        }


@dataclass
class StepResult:
    step: StepTemplate
    status: StepStatus
    exit_code: Optional[int] = None
    output: str = ""
    duration: float = 0.0
    hint: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "name": self.step.name,
            "status": self.status.value,
            "exit_code": self.exit_code,
            "duration": round(self.duration, 3),
            "continue_on_error": self.step.continue_on_error,
        }
        if self.status is StepStatus.FAILURE:
            d["output"] = self.output
            if self.hint:
                d["hint"] = self.hint
        return d


@dataclass
class JobResult:
    instance: JobInstance
    steps: List[StepResult] = field(default_factory=list)
    status: JobStatus = JobStatus.SUCCEEDED

    @property
    def failed_steps(self) -> List[StepResult]:
        return [s for s in self.steps if s.status is StepStatus.FAILURE]

    def to_dict(self) -> Dict[str, Any]:
        d = self.instance.to_dict()
        d["status"] = self.status.value
        d["steps"] = [s.to_dict() for s in self.steps]
        return d


@dataclass
class PipelineRun:
    event: Event
    jobs: Tuple[JobDefinition, ...]
    instances: List[JobInstance]
    results: List[JobResult]
    status: RunStatus
    name: Optional[str] = None

    @property
    def exit_code(self) -> int:
        return 0 if self.status is RunStatus.SUCCEEDED else 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "event": self.event.to_dict(),
            "status": self.status.value,
            "jobs": [j.name for j in self.jobs],
            "instances": [r.to_dict() for r in self.results],
        }
