# loader.py
from __future__ import annotations

from collections.abc import Hashable
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml
from pydantic import ValidationError

from .errors import MalformedDefinition
from .matrix import expand
from .model import JobDefinition, MatrixSpec, PipelineDefinition, StepTemplate, TriggerRule
from .schema import JobModel, StepModel, TriggerFilterModel, WorkflowModel


# ----------------------------------------------------------------------
# YAML reading
# ----------------------------------------------------------------------

class _UniqueKeyLoader(yaml.SafeLoader):
    """SafeLoader that refuses duplicate mapping keys instead of keeping the last one."""

    def construct_mapping(self, node, deep=False):
        seen = set()
        for key_node, _value_node in node.value:
            key = self.construct_object(key_node, deep=deep)
            # unhashable keys are rejected by the base constructor
            if not isinstance(key, Hashable):
                continue
            if key in seen:
                raise yaml.constructor.ConstructorError(
                    None, None, f"duplicate key {key!r}", key_node.start_mark
                )
            seen.add(key)
        return super().construct_mapping(node, deep=deep)


def _read_yaml(text: str, source: str | None) -> Dict[str, Any]:
    try:
        raw = yaml.load(text, Loader=_UniqueKeyLoader)
    except yaml.YAMLError as e:
        raise MalformedDefinition("Definition is not valid YAML", [str(e)], source=source) from e

    if raw is None:
        raise MalformedDefinition("Definition is empty", source=source)
    if not isinstance(raw, dict):
        raise MalformedDefinition(
            "Definition must be a mapping at the top level",
            [f"got {type(raw).__name__}"],
            source=source,
        )

    # YAML 1.1 reads a bare `on:` key as boolean True.
    if True in raw:
        if "on" in raw:
            raise MalformedDefinition("Trigger section declared twice", ["both 'on' and a boolean key"], source=source)
        raw["on"] = raw.pop(True)

    bad_keys = [k for k in raw if not isinstance(k, str)]
    if bad_keys:
        raise MalformedDefinition("Top-level keys must be strings", [repr(k) for k in bad_keys], source=source)
    return raw


def _problems(e: ValidationError) -> List[str]:
    out: List[str] = []
    for err in e.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "<root>"
        out.append(f"{loc}: {err.get('msg')}")
    return out


# ----------------------------------------------------------------------
# Model -> record conversion
# ----------------------------------------------------------------------

def _tuple_or_none(values: Optional[List[str]]) -> Optional[Tuple[str, ...]]:
    return None if values is None else tuple(values)


def _to_triggers(on) -> Tuple[TriggerRule, ...]:
    if isinstance(on, str):
        return (TriggerRule(event=on),)
    if isinstance(on, list):
        return tuple(TriggerRule(event=e) for e in on)

    rules: List[TriggerRule] = []
    for event, filters in on.items():
        f: TriggerFilterModel | None = filters
        if f is None:
            rules.append(TriggerRule(event=event))
            continue
        rules.append(
            TriggerRule(
                event=event,
                branches=_tuple_or_none(f.branches),
                branches_ignore=_tuple_or_none(f.branches_ignore),
                types=_tuple_or_none(f.types),
            )
        )
    return tuple(rules)


def _to_step(step: StepModel) -> StepTemplate:
    return StepTemplate(
        name=step.label,
        run=step.run,
        uses=step.uses,
        with_=dict(step.with_ or {}),
        continue_on_error=step.continue_on_error,
        working_directory=step.working_directory,
        env=step.env_str,
    )


def _to_job(job_id: str, job: JobModel, workflow_env: Dict[str, str]) -> JobDefinition:
    matrix: Optional[MatrixSpec] = None
    if job.strategy is not None:
        m = job.strategy.matrix
        matrix = MatrixSpec(
            axes={axis: tuple(values) for axis, values in m.axes.items()},
            include=tuple(dict(e) for e in (m.include or [])),
            exclude=tuple(dict(e) for e in (m.exclude or [])),
            fail_fast=job.strategy.fail_fast,
        )

    env = dict(workflow_env)
    env.update(job.env_str)

    return JobDefinition(
        name=job_id,
        steps=tuple(_to_step(s) for s in job.steps),
        runs_on=job.runs_on,
        display_name=job.name,
        matrix=matrix,
        env=env,
    )


# ----------------------------------------------------------------------
# Public API
# ----------------------------------------------------------------------

def load_definition(text: str, *, source: str | None = None) -> PipelineDefinition:
    """
    Parse a pipeline definition from YAML text.

    Raises:
      MalformedDefinition if the text is not YAML, has an unknown shape,
      misses triggers/jobs/steps, or declares a matrix with no combination.
    """
    raw = _read_yaml(text, source)

    try:
        wf = WorkflowModel.model_validate(raw)
    except ValidationError as e:
        raise MalformedDefinition("Invalid pipeline definition", _problems(e), source=source) from e

    triggers = _to_triggers(wf.on)
    jobs = tuple(_to_job(job_id, job, wf.env_str) for job_id, job in wf.jobs.items())

    definition = PipelineDefinition(triggers=triggers, jobs=jobs, name=wf.name)

    # A matrix that excludes everything would silently drop the job.
    empty = [j.name for j in jobs if j.matrix is not None and not expand(j)]
    if empty:
        raise MalformedDefinition(
            "Matrix yields no combinations",
            [f"jobs.{name}.strategy.matrix: every combination is excluded" for name in empty],
            source=source,
        )

    return definition


def load_definition_file(path: str | Path) -> PipelineDefinition:
    """Load a pipeline definition from a .yml/.yaml file."""
    p = Path(path).expanduser().resolve()
    if not p.exists():
        raise FileNotFoundError(f"Pipeline definition not found: {p}")
    if p.suffix not in (".yml", ".yaml"):
        raise ValueError(f"Pipeline definition must be a .yml or .yaml file, got: {p.name}")
    return load_definition(p.read_text(encoding="utf-8"), source=str(p))
