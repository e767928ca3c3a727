# runner.py
from __future__ import annotations

import os
import re
import subprocess
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Protocol

from .actions import UnknownAction, known_actions, resolve_action, tool_hint
from .errors import JobCancelled, StepExecutionFailure
from .matrix import interpolate
from .model import JobInstance, JobResult, JobStatus, StepResult, StepStatus, StepTemplate
from .ui.console import get_console

# Keep the end of the output: that is where compilers and test runners report.
OUTPUT_TAIL = 4000

# POSIX shells exit 127 when the command is not found.
EXIT_COMMAND_NOT_FOUND = 127


# ----------------------------------------------------------------------
# Process execution (external collaborator)
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class ProcessOutcome:
    exit_code: int
    output: str


class Executor(Protocol):
    def execute(self, cmd: str, *, cwd: Path, env: Mapping[str, str]) -> ProcessOutcome:
        ...


class ShellExecutor:
    """Runs a command line through the shell and waits for it to terminate."""

    def __init__(self, timeout: float | None = None):
        self.timeout = timeout

    def execute(self, cmd: str, *, cwd: Path, env: Mapping[str, str]) -> ProcessOutcome:
        try:
            proc = subprocess.run(
                cmd,
                shell=True,
                cwd=str(cwd),
                env=dict(env),
                text=True,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,  # one interleaved stream, like a terminal
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            out = e.output or ""
            if isinstance(out, bytes):
                out = out.decode("utf-8", errors="replace")
            return ProcessOutcome(exit_code=-1, output=f"{out}\ntimed out after {self.timeout}s")
        return ProcessOutcome(exit_code=proc.returncode, output=proc.stdout or "")


def _tail(text: str) -> str:
    return text[-OUTPUT_TAIL:]


def _env_key(axis: str) -> str:
    return "MATRIX_" + re.sub(r"[^A-Za-z0-9]", "_", axis).upper()


# ----------------------------------------------------------------------
# StepRunner
# ----------------------------------------------------------------------

class StepRunner:
    """
    Runs the steps of one JobInstance strictly in order.

    A failing step without continue-on-error stops the job: every later step
    is recorded as skipped and the job fails. A failing step with
    continue-on-error is recorded as failed but the job goes on.
    """

    def __init__(self, executor: Executor | None = None, workspace: str | Path = "."):
        self.executor = executor or ShellExecutor()
        self.workspace = Path(workspace).resolve()

    # ---- primitives ----

    def command_for(self, instance: JobInstance, step: StepTemplate) -> str:
        if not step.is_action:
            return step.run or ""
        try:
            return resolve_action(step.uses, step.with_)
        except UnknownAction as e:
            raise StepExecutionFailure(
                job=instance.instance_id,
                step=step.name,
                cmd=f"uses: {step.uses}",
                exit_code=None,
                output=str(e),
                hint=f"Known actions: {', '.join(known_actions())}",
            ) from e

    def environment_for(self, instance: JobInstance, step: StepTemplate) -> Dict[str, str]:
        env = os.environ.copy()
        env["CI"] = "true"
        env["RELAYCI_JOB"] = instance.name
        env.update({k: interpolate(v, instance.matrix) or "" for k, v in instance.job.env.items()})
        env.update({_env_key(axis): str(v) for axis, v in instance.matrix.items()})
        env.update(step.env)
        return env

    def _run_step(self, instance: JobInstance, step: StepTemplate) -> str:
        cmd = self.command_for(instance, step)

        cwd = (self.workspace / (step.working_directory or ".")).resolve()
        if not cwd.is_dir():
            raise StepExecutionFailure(
                job=instance.instance_id,
                step=step.name,
                cmd=cmd,
                exit_code=None,
                output=f"working directory not found: {cwd}",
            )

        try:
            outcome = self.executor.execute(cmd, cwd=cwd, env=self.environment_for(instance, step))
        except OSError as e:
            raise StepExecutionFailure(
                job=instance.instance_id,
                step=step.name,
                cmd=cmd,
                exit_code=None,
                output=str(e),
                hint=tool_hint(cmd),
            ) from e

        if outcome.exit_code != 0:
            raise StepExecutionFailure(
                job=instance.instance_id,
                step=step.name,
                cmd=cmd,
                exit_code=outcome.exit_code,
                output=_tail(outcome.output),
                hint=tool_hint(cmd) if outcome.exit_code == EXIT_COMMAND_NOT_FOUND else None,
            )
        return _tail(outcome.output)

    @staticmethod
    def _check_cancelled(instance: JobInstance, step: StepTemplate, cancel: Optional[threading.Event]) -> None:
        if cancel is not None and cancel.is_set():
            raise JobCancelled(job=instance.instance_id, before_step=step.name)

    # ---- public ----

    def run(self, instance: JobInstance, cancel: Optional[threading.Event] = None) -> JobResult:
        console = get_console()
        job_id = instance.instance_id
        results: List[StepResult] = []
        status = JobStatus.SUCCEEDED
        stopped = False

        console.print_job_start(job_id)

        for step in instance.steps:
            if stopped:
                results.append(StepResult(step=step, status=StepStatus.SKIPPED))
                continue

            started = time.monotonic()
            try:
                self._check_cancelled(instance, step, cancel)
                console.print_step(job_id, step.name)
                output = self._run_step(instance, step)
            except JobCancelled as e:
                console.print_debug(str(e))
                status = JobStatus.CANCELLED
                stopped = True
                results.append(StepResult(step=step, status=StepStatus.SKIPPED))
                continue
            except StepExecutionFailure as e:
                results.append(
                    StepResult(
                        step=step,
                        status=StepStatus.FAILURE,
                        exit_code=e.exit_code,
                        output=e.output,
                        duration=time.monotonic() - started,
                        hint=e.hint,
                    )
                )
                console.print_step_failure(job_id, step.name, e, continued=step.continue_on_error)
                if step.continue_on_error:
                    continue
                status = JobStatus.FAILED
                stopped = True
                continue

            results.append(
                StepResult(
                    step=step,
                    status=StepStatus.SUCCESS,
                    exit_code=0,
                    output=output,
                    duration=time.monotonic() - started,
                )
            )

        console.print_job_status(job_id, status.value)
        return JobResult(instance=instance, steps=results, status=status)
