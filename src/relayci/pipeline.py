# pipeline.py
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List, Tuple

from .aggregate import ResultAggregator
from .errors import NoTriggerMatch
from .matrix import expand_all
from .model import Event, JobDefinition, JobInstance, PipelineDefinition, PipelineRun, TriggerRule
from .runner import Executor, StepRunner
from .scheduler import JobScheduler
from .triggers import match, matching_rules
from .ui.console import get_console


@dataclass(frozen=True)
class RunPlan:
    """What a run would execute for one event, computed without executing anything."""
    event: Event
    rules: Tuple[TriggerRule, ...]
    jobs: Tuple[JobDefinition, ...]
    instances: Tuple[JobInstance, ...]

    @property
    def is_noop(self) -> bool:
        return not self.rules


def plan_run(definition: PipelineDefinition, event: Event) -> RunPlan:
    rules = matching_rules(event, definition)
    jobs = match(event, definition)
    instances: List[JobInstance] = expand_all(jobs)
    return RunPlan(event=event, rules=rules, jobs=jobs, instances=tuple(instances))


def start_run(
    definition: PipelineDefinition,
    event: Event,
    *,
    executor: Executor | None = None,
    workspace: str | Path = ".",
    max_workers: int | None = None,
    scheduler: JobScheduler | None = None,
) -> PipelineRun:
    """
    Loader output -> trigger evaluation -> matrix expansion -> concurrent
    execution -> aggregation.

    Raises:
      NoTriggerMatch if no trigger rule matches `event` (nothing runs).
      AggregationIncomplete if an instance did not report exactly once.
    """
    console = get_console()
    plan = plan_run(definition, event)
    if plan.is_noop:
        raise NoTriggerMatch(event.kind, event.branch)

    console.print_plan(plan)

    if scheduler is None:
        scheduler = JobScheduler(StepRunner(executor=executor, workspace=workspace), max_workers=max_workers)

    results = scheduler.run(plan.instances)
    return ResultAggregator().finalize(
        event,
        plan.jobs,
        plan.instances,
        results,
        name=definition.name,
    )
