"""Pipeline definition schema using Pydantic for validation.

This module mirrors the on-disk YAML shape of a relayci pipeline:
- trigger rules under ``on``
- jobs keyed by id, each with ``runs-on``, ``steps`` and an optional
  ``strategy`` carrying the matrix and its fail-fast flag

Every model forbids unknown keys, so a typo is reported instead of being
silently ignored. The loader turns these models into the frozen records in
``relayci.model``.
"""

from __future__ import annotations

import re
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

Scalar = Union[str, int, float, bool]

JOB_ID_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_-]*$")


def _as_list(value: Any) -> Any:
    """Allow ``branches: main`` as shorthand for ``branches: [main]``."""
    if isinstance(value, str):
        return [value]
    return value


def _stringify_env(env: Optional[Dict[str, Scalar]]) -> Dict[str, str]:
    if not env:
        return {}
    out: Dict[str, str] = {}
    for k, v in env.items():
        if isinstance(v, bool):
            out[k] = "true" if v else "false"
        else:
            out[k] = str(v)
    return out


class StrictModel(BaseModel):
    model_config = ConfigDict(extra="forbid")


class TriggerFilterModel(StrictModel):
    """Filters for one event kind. Every declared filter must hold."""
    branches: Optional[List[str]] = None
    branches_ignore: Optional[List[str]] = Field(None, alias="branches-ignore")
    types: Optional[List[str]] = None

    @field_validator("branches", "branches_ignore", "types", mode="before")
    @classmethod
    def listify(cls, value):
        return _as_list(value)

    @model_validator(mode="after")
    def validate_branch_filters(self):
        if self.branches is not None and self.branches_ignore is not None:
            raise ValueError("'branches' and 'branches-ignore' cannot be used together")
        return self


class StepModel(StrictModel):
    name: Optional[str] = None
    run: Optional[str] = None
    uses: Optional[str] = None
    with_: Optional[Dict[str, Any]] = Field(None, alias="with")
    continue_on_error: bool = Field(False, alias="continue-on-error")
    working_directory: Optional[str] = Field(None, alias="working-directory")
    env: Optional[Dict[str, Scalar]] = None

    @model_validator(mode="after")
    def validate_step_kind(self):
        """A step is exactly one of an inline command or a named action."""
        if self.run is None and self.uses is None:
            raise ValueError("step must have either 'run' or 'uses'")
        if self.run is not None and self.uses is not None:
            raise ValueError("step cannot have both 'run' and 'uses'")
        if self.run is not None and not self.run.strip():
            raise ValueError("'run' must not be empty")
        if self.with_ and self.uses is None:
            raise ValueError("'with' is only valid on 'uses' steps")
        return self

    @property
    def env_str(self) -> Dict[str, str]:
        return _stringify_env(self.env)

    @property
    def label(self) -> str:
        if self.name:
            return self.name
        if self.uses is not None:
            return f"Run {self.uses}"
        return f"Run {self.run.strip().splitlines()[0]}"


class MatrixModel(BaseModel):
    """
    Axis names are free-form keys, so unknown keys are allowed here and
    checked by hand: each one must be a non-empty list of distinct scalars.
    """
    model_config = ConfigDict(extra="allow")

    include: Optional[List[Dict[str, Scalar]]] = None
    exclude: Optional[List[Dict[str, Scalar]]] = None

    @model_validator(mode="after")
    def validate_axes(self):
        axes = self.model_extra or {}
        for axis, values in axes.items():
            if not isinstance(values, list):
                raise ValueError(f"matrix axis '{axis}' must be a list of values")
            if not values:
                raise ValueError(f"matrix axis '{axis}' must not be empty")
            for v in values:
                if not isinstance(v, (str, int, float, bool)):
                    raise ValueError(f"matrix axis '{axis}' values must be scalars, got {type(v).__name__}")
            # keyed on type too, so 1 and true stay distinct values
            seen = set()
            dupes = []
            for v in values:
                if (type(v), v) in seen and v not in dupes:
                    dupes.append(v)
                seen.add((type(v), v))
            if dupes:
                raise ValueError(f"matrix axis '{axis}' has duplicate values {dupes}")
        if not axes and not self.include:
            raise ValueError("matrix must declare at least one axis or an 'include' list")
        for entry in self.exclude or []:
            unknown = sorted(k for k in entry if k not in axes)
            if unknown:
                raise ValueError(f"matrix 'exclude' refers to unknown axis {unknown}")
        return self

    @property
    def axes(self) -> Dict[str, List[Scalar]]:
        return dict(self.model_extra or {})


class StrategyModel(StrictModel):
    fail_fast: bool = Field(True, alias="fail-fast")
    matrix: MatrixModel


class JobModel(StrictModel):
    name: Optional[str] = None
    runs_on: Optional[str] = Field(None, alias="runs-on")
    env: Optional[Dict[str, Scalar]] = None
    strategy: Optional[StrategyModel] = None
    steps: List[StepModel] = Field(..., min_length=1)

    @property
    def env_str(self) -> Dict[str, str]:
        return _stringify_env(self.env)


class WorkflowModel(StrictModel):
    """Complete pipeline definition document."""
    name: Optional[str] = None
    on: Union[str, List[str], Dict[str, Optional[TriggerFilterModel]]]
    env: Optional[Dict[str, Scalar]] = None
    jobs: Dict[str, JobModel]

    @field_validator("on")
    @classmethod
    def validate_triggers(cls, on):
        if isinstance(on, str):
            if not on.strip():
                raise ValueError("trigger event name must not be empty")
        elif not on:
            raise ValueError("at least one trigger rule is required")
        return on

    @field_validator("jobs")
    @classmethod
    def validate_jobs(cls, jobs: Dict[str, JobModel]):
        if not jobs:
            raise ValueError("pipeline must declare at least one job")
        bad = sorted(j for j in jobs if not JOB_ID_RE.match(j))
        if bad:
            raise ValueError(f"invalid job id(s) {bad}: must start with a letter or '_' "
                             "and contain only alphanumerics, '-' or '_'")
        return jobs

    @property
    def env_str(self) -> Dict[str, str]:
        return _stringify_env(self.env)
