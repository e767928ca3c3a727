# scheduler.py
from __future__ import annotations

import os
import threading
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from typing import Dict, List, Optional, Sequence

from .model import JobInstance, JobResult, JobStatus
from .runner import StepRunner
from .ui.console import get_console


def default_workers() -> int:
    c = os.cpu_count() or 2
    return max(1, c - 1)


class JobScheduler:
    """
    Runs JobInstances concurrently on a bounded worker pool.

    - every instance is independent: no shared mutable state between them
    - instances beyond `max_workers` queue until a slot frees
    - all instances of one job form a group sharing a cancellation token;
      in a fail-fast group the first failure sets the token, so queued
      siblings never start and running ones stop at their next step
    """

    def __init__(self, runner: StepRunner | None = None, max_workers: int | None = None):
        self.runner = runner or StepRunner()
        self.max_workers = max_workers if max_workers is not None else default_workers()
        if self.max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {self.max_workers}")

    def _run_instance(self, instance: JobInstance, cancel: threading.Event) -> JobResult:
        result = self.runner.run(instance, cancel=cancel)
        # Set before returning, i.e. before this worker slot is handed to a sibling.
        if result.status is JobStatus.FAILED and instance.fail_fast and not cancel.is_set():
            get_console().print_info(f"[{instance.instance_id}] fail-fast: cancelling remaining '{instance.name}' jobs")
            cancel.set()
        return result

    def run(self, instances: Sequence[JobInstance]) -> List[Optional[JobResult]]:
        """
        Returns one entry per instance, in dispatch order. An entry is None
        only if the worker crashed without producing a result; the
        aggregator treats that as an incomplete run.
        """
        console = get_console()
        instances = list(instances)
        tokens: Dict[str, threading.Event] = {}
        for inst in instances:
            tokens.setdefault(inst.name, threading.Event())

        results: List[Optional[JobResult]] = [None] * len(instances)

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="relayci") as pool:
            futures: Dict[Future, int] = {
                pool.submit(self._run_instance, inst, tokens[inst.name]): idx
                for idx, inst in enumerate(instances)
            }

            for future in as_completed(futures):
                idx = futures[future]
                try:
                    results[idx] = future.result()
                except Exception as e:
                    console.print_error(
                        "Job crashed",
                        f"{instances[idx].instance_id} did not produce a result",
                        details=[f"{type(e).__name__}: {e}"],
                    )

        return results
