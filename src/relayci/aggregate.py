# aggregate.py
from __future__ import annotations

from typing import Iterable, List, Optional, Sequence

from .errors import AggregationIncomplete
from .model import Event, JobDefinition, JobInstance, JobResult, JobStatus, PipelineRun, RunStatus


def aggregate(job_results: Iterable[JobResult]) -> RunStatus:
    """Failed iff at least one job result failed."""
    if any(r.status is JobStatus.FAILED for r in job_results):
        return RunStatus.FAILED
    return RunStatus.SUCCEEDED


class ResultAggregator:
    """Checks that every dispatched instance reported exactly once, then builds the PipelineRun."""

    @staticmethod
    def check_coverage(instances: Sequence[JobInstance], results: Sequence[Optional[JobResult]]) -> List[JobResult]:
        # Instances hold dicts, so match on identity rather than hashing.
        counts = {id(inst): 0 for inst in instances}
        for r in results:
            if r is None:
                continue
            if id(r.instance) in counts:
                counts[id(r.instance)] += 1

        missing = [inst.instance_id for inst in instances if counts[id(inst)] == 0]
        duplicated = [inst.instance_id for inst in instances if counts[id(inst)] > 1]
        unexpected = [r.instance.instance_id for r in results if r is not None and id(r.instance) not in counts]

        if missing or duplicated or unexpected:
            raise AggregationIncomplete(missing=missing, duplicated=duplicated, unexpected=unexpected)

        order = {id(inst): i for i, inst in enumerate(instances)}
        return sorted((r for r in results if r is not None), key=lambda r: order[id(r.instance)])

    def finalize(
        self,
        event: Event,
        jobs: Sequence[JobDefinition],
        instances: Sequence[JobInstance],
        results: Sequence[Optional[JobResult]],
        *,
        name: str | None = None,
    ) -> PipelineRun:
        ordered = self.check_coverage(instances, results)
        return PipelineRun(
            event=event,
            jobs=tuple(jobs),
            instances=list(instances),
            results=ordered,
            status=aggregate(ordered),
            name=name,
        )
