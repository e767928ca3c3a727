"""End-to-end orchestration tests with a fake process executor."""

import json

import pytest
from conftest import FakeExecutor

from relayci.errors import NoTriggerMatch
from relayci.loader import load_definition
from relayci.model import Event, JobStatus, RunStatus, StepStatus
from relayci.pipeline import plan_run, start_run


@pytest.fixture
def definition(rust_pipeline_text):
    return load_definition(rust_pipeline_text)


def _lint_checkout_fails(cmd, env):
    if env.get("RELAYCI_JOB") == "lint" and cmd.startswith("git "):
        return 1
    return None


def test_plan_for_push_to_base(definition):
    plan = plan_run(definition, Event(kind="push", branch="base"))

    assert not plan.is_noop
    assert [j.name for j in plan.jobs] == ["lint", "integ"]
    assert [i.instance_id for i in plan.instances] == [
        "lint",
        "integ (stable)",
        "integ (beta)",
        "integ (nightly)",
    ]


def test_lint_failure_does_not_stop_integ(definition, tmp_path):
    ex = FakeExecutor(fail_when=_lint_checkout_fails)

    run = start_run(definition, Event(kind="push", branch="base"), executor=ex, workspace=tmp_path, max_workers=2)

    assert len(run.results) == 4
    lint, *integ = run.results

    assert lint.status is JobStatus.FAILED
    assert lint.steps[0].status is StepStatus.FAILURE
    assert [s.status for s in lint.steps[1:]] == [StepStatus.SKIPPED] * 3

    assert [r.status for r in integ] == [JobStatus.SUCCEEDED] * 3
    for r in integ:
        assert [s.status for s in r.steps] == [StepStatus.SUCCESS] * 5

    assert run.status is RunStatus.FAILED
    assert run.exit_code == 1


def test_green_run(definition, tmp_path):
    ex = FakeExecutor()

    run = start_run(definition, Event(kind="pull_request", branch="base", subtype="opened"), executor=ex, workspace=tmp_path)

    assert run.status is RunStatus.SUCCEEDED
    assert run.exit_code == 0
    assert len(ex.calls) == 4 + 3 * 5


def test_toolchain_action_gets_each_matrix_value(definition, tmp_path):
    ex = FakeExecutor()

    start_run(definition, Event(kind="push", branch="base"), executor=ex, workspace=tmp_path, max_workers=1)

    installs = sorted(c for c, job, _ in ex.calls if job == "integ" and c.startswith("rustup"))
    assert installs == [
        "rustup toolchain install beta --component rustfmt && rustup override set beta",
        "rustup toolchain install nightly --component rustfmt && rustup override set nightly",
        "rustup toolchain install stable --component rustfmt && rustup override set stable",
    ]


def test_no_trigger_match_raises_noop(definition, tmp_path):
    ex = FakeExecutor()
    with pytest.raises(NoTriggerMatch):
        start_run(definition, Event(kind="push", branch="main"), executor=ex, workspace=tmp_path)
    assert ex.calls == []


def test_run_record_is_json_serializable(definition, tmp_path):
    ex = FakeExecutor(fail_when=_lint_checkout_fails)
    run = start_run(definition, Event(kind="push", branch="base", sha="abc123"), executor=ex, workspace=tmp_path)

    record = json.loads(json.dumps(run.to_dict()))

    assert record["status"] == "failed"
    assert record["event"] == {"kind": "push", "branch": "base", "subtype": None, "sha": "abc123"}
    assert [i["id"] for i in record["instances"]] == ["lint", "integ (stable)", "integ (beta)", "integ (nightly)"]
    assert record["instances"][1]["matrix"] == {"rust_version": "stable"}
    lint_steps = record["instances"][0]["steps"]
    assert lint_steps[0]["status"] == "failure"
    assert "boom" in lint_steps[0]["output"]
    assert "output" not in lint_steps[1]
