# matrix.py
from __future__ import annotations

import re
from dataclasses import replace
from typing import Any, Dict, List, Mapping

from .model import JobDefinition, JobInstance, MatrixSpec, StepTemplate

# ${{ matrix.rust_version }}
MATRIX_EXPR = re.compile(r"\$\{\{\s*matrix\.([A-Za-z0-9_-]+)\s*\}\}")


# ---------------------------------------------------------------------
# Combinations
# ---------------------------------------------------------------------

def _matches(combo: Mapping[str, Any], entry: Mapping[str, Any]) -> bool:
    return all(k in combo and combo[k] == v for k, v in entry.items())


def combinations(spec: MatrixSpec) -> List[Dict[str, Any]]:
    """
    Cross-product over the axes, first declared axis varying slowest,
    then `exclude` removal, then `include` merge/append.

    Example:
        axes {os: [linux, mac], py: [3.11, 3.12]}
        -> [{os: linux, py: 3.11}, {os: linux, py: 3.12},
            {os: mac, py: 3.11}, {os: mac, py: 3.12}]
    """
    combos: List[Dict[str, Any]] = [{}] if spec.axes else []
    for axis, values in spec.axes.items():
        combos = [{**c, axis: v} for c in combos for v in values]

    if spec.exclude:
        combos = [c for c in combos if not any(_matches(c, e) for e in spec.exclude)]

    original_axes = set(spec.axes)
    base_count = len(combos)
    for entry in spec.include:
        extended = False
        for c in combos[:base_count]:
            # may add keys, never overwrite an original axis value
            if all(c[k] == v for k, v in entry.items() if k in original_axes):
                c.update(entry)
                extended = True
        if not extended:
            combos.append(dict(entry))

    return combos


# ---------------------------------------------------------------------
# ${{ matrix.* }} substitution
# ---------------------------------------------------------------------

def _render(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def interpolate(text: str | None, bindings: Mapping[str, Any]) -> str | None:
    """Replace ${{ matrix.<key> }} with the bound value (empty string when unbound)."""
    if text is None:
        return None
    return MATRIX_EXPR.sub(lambda m: _render(bindings[m.group(1)]) if m.group(1) in bindings else "", text)


def _interpolate_value(value: Any, bindings: Mapping[str, Any]) -> Any:
    if isinstance(value, str):
        return interpolate(value, bindings)
    if isinstance(value, list):
        return [_interpolate_value(v, bindings) for v in value]
    if isinstance(value, dict):
        return {k: _interpolate_value(v, bindings) for k, v in value.items()}
    return value


def bind_step(step: StepTemplate, bindings: Mapping[str, Any]) -> StepTemplate:
    return replace(
        step,
        name=interpolate(step.name, bindings),
        run=interpolate(step.run, bindings),
        with_=_interpolate_value(dict(step.with_), bindings),
        working_directory=interpolate(step.working_directory, bindings),
        env={k: interpolate(v, bindings) for k, v in step.env.items()},
    )


# ---------------------------------------------------------------------
# Expansion
# ---------------------------------------------------------------------

def expand(job: JobDefinition) -> List[JobInstance]:
    """
    Expand a job into concrete instances.

    No matrix -> exactly one instance with no bindings; any
                 matrix expression in it renders empty.
    Matrix    -> one instance per combination, in combination order, each
                 carrying the matrix's fail-fast flag.
    """
    if job.matrix is None:
        return [
            JobInstance(
                job=job,
                steps=tuple(bind_step(s, {}) for s in job.steps),
                display_name=interpolate(job.display_name, {}),
            )
        ]

    instances: List[JobInstance] = []
    for idx, combo in enumerate(combinations(job.matrix)):
        instances.append(
            JobInstance(
                job=job,
                steps=tuple(bind_step(s, combo) for s in job.steps),
                matrix=combo,
                fail_fast=job.matrix.fail_fast,
                index=idx,
                display_name=interpolate(job.display_name, combo),
            )
        )
    return instances


def expand_all(jobs) -> List[JobInstance]:
    """Expand every selected job, preserving job declaration order."""
    out: List[JobInstance] = []
    for j in jobs:
        out.extend(expand(j))
    return out
