"""Tests for concurrent job scheduling and fail-fast groups."""

import threading

import pytest
from conftest import FakeExecutor

from relayci.matrix import expand, expand_all
from relayci.model import JobDefinition, JobStatus, MatrixSpec, StepTemplate
from relayci.runner import StepRunner
from relayci.scheduler import JobScheduler


def _integ(fail_fast):
    return JobDefinition(
        name="integ",
        steps=(
            StepTemplate(name="build", run="cargo +${{ matrix.rust_version }} build"),
            StepTemplate(name="test", run="cargo +${{ matrix.rust_version }} test"),
        ),
        matrix=MatrixSpec(axes={"rust_version": ("stable", "beta", "nightly")}, fail_fast=fail_fast),
    )


def _fail_beta(cmd, env):
    return 101 if env.get("MATRIX_RUST_VERSION") == "beta" else None


def _scheduler(ex, tmp_path, workers):
    return JobScheduler(StepRunner(ex, workspace=tmp_path), max_workers=workers)


@pytest.mark.parametrize("workers", [1, 3])
def test_no_fail_fast_isolates_failures(tmp_path, workers):
    ex = FakeExecutor(fail_when=_fail_beta)
    instances = expand(_integ(fail_fast=False))

    results = _scheduler(ex, tmp_path, workers).run(instances)

    assert [r.status for r in results] == [JobStatus.SUCCEEDED, JobStatus.FAILED, JobStatus.SUCCEEDED]
    assert len(ex.calls) == 2 + 1 + 2


def test_fail_fast_cancels_siblings_not_yet_started(tmp_path):
    ex = FakeExecutor(fail_when=_fail_beta)
    instances = expand(_integ(fail_fast=True))

    # one slot: instances start in dispatch order, so nightly is still queued
    results = _scheduler(ex, tmp_path, 1).run(instances)

    assert [r.status for r in results] == [JobStatus.SUCCEEDED, JobStatus.FAILED, JobStatus.CANCELLED]
    assert all(s.status.value == "skipped" for s in results[2].steps)
    assert not any("nightly" in c for c, _, _ in ex.calls)


def test_fail_fast_cancels_in_flight_sibling_at_next_step(tmp_path):
    beta_failed = threading.Event()

    def on_call(cmd, env):
        # stable's first step waits until beta has been marked failed
        if env.get("MATRIX_RUST_VERSION") == "stable" and cmd.endswith("build"):
            beta_failed.wait(timeout=5)

    ex = FakeExecutor(fail_when=_fail_beta, on_call=on_call)
    job = JobDefinition(
        name="integ",
        steps=_integ(True).steps,
        matrix=MatrixSpec(axes={"rust_version": ("stable", "beta")}, fail_fast=True),
    )
    instances = expand(job)

    scheduler = _scheduler(ex, tmp_path, 2)
    original = scheduler._run_instance

    def run_instance(instance, cancel):
        result = original(instance, cancel)
        if instance.matrix["rust_version"] == "beta":
            beta_failed.set()
        return result

    scheduler._run_instance = run_instance
    results = scheduler.run(instances)

    assert [r.status for r in results] == [JobStatus.CANCELLED, JobStatus.FAILED]
    stable_steps = [s.status.value for s in results[0].steps]
    assert stable_steps == ["success", "skipped"]


def test_failure_in_one_job_never_cancels_another_job(tmp_path):
    lint = JobDefinition(name="lint", steps=(StepTemplate(name="fmt", run="cargo fmt"),))
    ex = FakeExecutor(fail_when=lambda cmd, env: 1 if cmd == "cargo fmt" else None)
    instances = expand_all([lint, _integ(fail_fast=True)])

    results = _scheduler(ex, tmp_path, 1).run(instances)

    assert [r.instance.instance_id for r in results] == [
        "lint",
        "integ (stable)",
        "integ (beta)",
        "integ (nightly)",
    ]
    assert [r.status for r in results] == [JobStatus.FAILED] + [JobStatus.SUCCEEDED] * 3


def test_instances_run_concurrently_up_to_the_slot_count(tmp_path):
    running = 0
    peak = 0
    lock = threading.Lock()
    barrier = threading.Barrier(3, timeout=5)

    def on_call(cmd, env):
        nonlocal running, peak
        with lock:
            running += 1
            peak = max(peak, running)
        barrier.wait()
        with lock:
            running -= 1

    ex = FakeExecutor(on_call=on_call)
    job = JobDefinition(
        name="integ",
        steps=(StepTemplate(name="build", run="build"),),
        matrix=MatrixSpec(axes={"v": ("a", "b", "c")}),
    )

    results = _scheduler(ex, tmp_path, 3).run(expand(job))

    assert peak == 3
    assert all(r.status is JobStatus.SUCCEEDED for r in results)


def test_crashed_worker_leaves_a_hole(tmp_path):
    class Boom(StepRunner):
        def run(self, instance, cancel=None):
            raise RuntimeError("worker died")

    results = JobScheduler(Boom(FakeExecutor(), workspace=tmp_path), max_workers=1).run(expand(_integ(False)))
    assert results == [None, None, None]


def test_rejects_zero_workers():
    with pytest.raises(ValueError):
        JobScheduler(max_workers=0)
