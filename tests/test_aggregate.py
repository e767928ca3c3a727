"""Tests for the pipeline verdict."""

import pytest

from relayci.aggregate import ResultAggregator, aggregate
from relayci.errors import AggregationIncomplete
from relayci.matrix import expand
from relayci.model import Event, JobDefinition, JobResult, JobStatus, MatrixSpec, RunStatus, StepTemplate

JOB = JobDefinition(
    name="integ",
    steps=(StepTemplate(name="t", run="t"),),
    matrix=MatrixSpec(axes={"v": ("a", "b", "c")}),
)


def _results(*statuses):
    return [JobResult(instance=i, status=s) for i, s in zip(expand(JOB), statuses)]


@pytest.mark.parametrize(
    "statuses, expected",
    [
        ((JobStatus.SUCCEEDED,) * 3, RunStatus.SUCCEEDED),
        ((JobStatus.SUCCEEDED, JobStatus.FAILED, JobStatus.SUCCEEDED), RunStatus.FAILED),
        ((JobStatus.FAILED, JobStatus.CANCELLED, JobStatus.CANCELLED), RunStatus.FAILED),
        ((JobStatus.FAILED,) * 3, RunStatus.FAILED),
    ],
)
def test_failed_iff_any_job_failed(statuses, expected):
    assert aggregate(_results(*statuses)) is expected


def test_empty_result_set_succeeds():
    assert aggregate([]) is RunStatus.SUCCEEDED


def test_finalize_orders_results_by_dispatch():
    instances = expand(JOB)
    results = [JobResult(instance=i) for i in reversed(instances)]

    run = ResultAggregator().finalize(Event(kind="push"), [JOB], instances, results, name="CI")

    assert [r.instance.instance_id for r in run.results] == [i.instance_id for i in instances]
    assert run.status is RunStatus.SUCCEEDED
    assert run.exit_code == 0
    assert run.to_dict()["name"] == "CI"


def test_missing_result_is_an_invariant_breach():
    instances = expand(JOB)
    results = [JobResult(instance=instances[0]), None, JobResult(instance=instances[2])]

    with pytest.raises(AggregationIncomplete) as ei:
        ResultAggregator().finalize(Event(kind="push"), [JOB], instances, results)
    assert ei.value.missing == ["integ (b)"]


def test_duplicate_and_stray_results_are_rejected():
    instances = expand(JOB)
    stray = expand(JOB)[0]  # equal content, but never dispatched
    results = [JobResult(instance=i) for i in instances] + [JobResult(instance=instances[1]), JobResult(instance=stray)]

    with pytest.raises(AggregationIncomplete) as ei:
        ResultAggregator().check_coverage(instances, results)
    assert ei.value.duplicated == ["integ (b)"]
    assert ei.value.unexpected == ["integ (a)"]
