"""Console output formatting utilities for relayci."""

from __future__ import annotations

import sys
import threading
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from relayci.errors import StepExecutionFailure
    from relayci.model import PipelineDefinition, PipelineRun
    from relayci.pipeline import RunPlan


STATUS_MARKS = {
    "succeeded": "✓",
    "failed": "✗",
    "cancelled": "⊘",
    "success": "✓",
    "failure": "✗",
    "skipped": "⏭",
}


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False, stream=None):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
            stream: Where regular output goes (defaults to sys.stdout at call time)
        """
        self.debug = debug
        self._stream = stream
        # Jobs run on worker threads; keep their lines whole.
        self._lock = threading.Lock()

    @property
    def stream(self):
        return self._stream or sys.stdout

    def _out(self, *lines: str) -> None:
        with self._lock:
            for line in lines:
                print(line, file=self.stream)

    def _err(self, *lines: str) -> None:
        with self._lock:
            for line in lines:
                print(line, file=sys.stderr)

    def print_header(self, title: str) -> None:
        """Print a section header."""
        self._out(f"\n{title}", "-" * len(title))

    def print_run_started(self, workflow: str, event: str, job_count: int) -> None:
        """Print run start information."""
        self._out("\nRUN STARTED", f"Workflow: {workflow}", f"Event: {event}", f"Job instances: {job_count}", "")

    def print_definition(self, definition: "PipelineDefinition") -> None:
        from relayci.triggers import describe_rule

        self.print_header(definition.name or "pipeline")
        self._out("Triggers:")
        self._out(*(f"  {describe_rule(r)}" for r in definition.triggers))
        self._out("Jobs:")
        for j in definition.jobs:
            matrix = ""
            if j.matrix is not None:
                axes = ", ".join(f"{k}={list(v)}" for k, v in j.matrix.axes.items()) or "include-only"
                matrix = f" matrix[{axes}] fail-fast={str(j.matrix.fail_fast).lower()}"
            self._out(f"  {j.name} ({len(j.steps)} steps, runs-on={j.runs_on}){matrix}")

    def print_plan(self, plan: "RunPlan") -> None:
        """Print which rules matched and which instances will be dispatched."""
        from relayci.triggers import describe_rule

        self.print_header("PLAN")
        for r in plan.rules:
            self._out(f"  trigger: {describe_rule(r)}")
        for inst in plan.instances:
            mode = ""
            if inst.matrix:
                mode = " (fail-fast)" if inst.fail_fast else " (no fail-fast)"
            self._out(f"  ✓ {inst.instance_id}{mode}")
        self._out(f"  {len(plan.instances)} job instance(s) from {len(plan.jobs)} job(s)")

    def print_noop(self, reason: str) -> None:
        self._out(f"\nNO-OP: {reason}")

    def print_job_start(self, name: str) -> None:
        """Print job start message."""
        self._out(f"[{name}] JOB STARTED")

    def print_step(self, job: str, step: str) -> None:
        """Print step start message."""
        self._out(f"[{job}] ▶ {step}")

    def print_step_failure(self, job: str, step: str, err: "StepExecutionFailure", continued: bool = False) -> None:
        """
        Print a failed step.

        Args:
            job: Instance id
            step: Step label
            err: The failure, carrying exit code, output tail and hint
            continued: True if the step has continue-on-error set
        """
        code = "n/a" if err.exit_code is None else err.exit_code
        suffix = " (continue-on-error)" if continued else ""
        lines = [f"[{job}] STEP FAILED: {step} (exit={code}){suffix}"]
        if err.hint:
            lines.append(f"[{job}] Hint: {err.hint}")
        if self.debug and err.output:
            lines.extend(f"[{job}]   {line}" for line in err.output.splitlines())
        self._out(*lines)

    def print_job_status(self, name: str, status: str) -> None:
        self._out(f"[{name}] STATUS: {status}")

    def print_results(self, run: "PipelineRun") -> None:
        """Print final results: every instance, its bindings, its steps, and output for failed steps."""
        self._out("\n" + "=" * 40, "RESULTS", "=" * 40)
        for result in run.results:
            inst = result.instance
            mark = STATUS_MARKS.get(result.status.value, "?")
            self._out(f"{mark} {inst.instance_id}: {result.status.value.upper()}")
            if inst.matrix:
                self._out("    matrix: " + ", ".join(f"{k}={v}" for k, v in inst.matrix.items()))
            for s in result.steps:
                self._out(f"    {STATUS_MARKS.get(s.status.value, '?')} {s.step.name}: {s.status.value}")
                if s.status.value == "failure":
                    code = "n/a" if s.exit_code is None else s.exit_code
                    self._out(f"      exit code: {code}")
                    if s.hint:
                        self._out(f"      hint: {s.hint}")
                    if s.output:
                        self._out("      output:")
                        self._out(*(f"        {line}" for line in s.output.splitlines()[-20:]))
        self._out("=" * 40, f"PIPELINE: {run.status.value.upper()}")

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        lines = [f"\nERROR: {title}", message]
        if details:
            lines.extend(f"  {d}" for d in details)
        if suggestion:
            lines.append(f"\n{suggestion}")
        self._err(*lines)

    def print_exception(self, exc: Exception) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            with self._lock:
                traceback.print_exception(type(exc), exc, exc.__traceback__, file=sys.stderr)
        else:
            self._err(f"Error: {exc}")

    def print_info(self, message: str) -> None:
        """Print informational message."""
        self._out(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            self._err(f"[DEBUG] {message}")


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
