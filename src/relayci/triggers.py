# triggers.py
from __future__ import annotations

from fnmatch import fnmatch
from typing import Iterable, Tuple

from .model import Event, JobDefinition, PipelineDefinition, TriggerRule

# Spellings the hosting trigger source may use for the event kinds in a definition.
EVENT_ALIASES = {
    "push-to-branch": ("push", None),
    "merge-group-check": ("merge_group", "checks_requested"),
    "merge-group": ("merge_group", None),
    "pull-request": ("pull_request", None),
}


def normalize_event(kind: str, branch: str | None = None, subtype: str | None = None, sha: str | None = None) -> Event:
    """
    Build an Event, accepting both definition spellings (push, pull_request)
    and hyphenated ones (push-to-branch, pull-request-opened).
    """
    k = kind.strip()
    if k in EVENT_ALIASES:
        k, default_subtype = EVENT_ALIASES[k]
        subtype = subtype or default_subtype
    elif k.startswith("pull-request-"):
        subtype = subtype or k[len("pull-request-"):]
        k = "pull_request"
    return Event(kind=k, branch=branch, subtype=subtype, sha=sha)


def _matches_any(value: str, patterns: Iterable[str]) -> bool:
    return any(fnmatch(value, p) for p in patterns)


def rule_matches(rule: TriggerRule, event: Event) -> bool:
    if rule.event != event.kind:
        return False

    if rule.branches is not None:
        if event.branch is None or not _matches_any(event.branch, rule.branches):
            return False

    if rule.branches_ignore is not None:
        if event.branch is None or _matches_any(event.branch, rule.branches_ignore):
            return False

    if rule.types is not None:
        if event.subtype is None or event.subtype not in rule.types:
            return False

    return True


def matching_rules(event: Event, definition: PipelineDefinition) -> Tuple[TriggerRule, ...]:
    return tuple(r for r in definition.triggers if rule_matches(r, event))


def match(event: Event, definition: PipelineDefinition) -> Tuple[JobDefinition, ...]:
    """
    Select the jobs to run for an event.

    Triggering is pipeline-wide: any matching rule selects every job, in
    declaration order. No matching rule -> empty tuple (a no-op, not an error).
    """
    if not matching_rules(event, definition):
        return ()
    return tuple(definition.jobs)


def describe_rule(rule: TriggerRule) -> str:
    parts = [rule.event]
    filters: list[str] = []
    if rule.branches is not None:
        filters.append(f"branches={list(rule.branches)}")
    if rule.branches_ignore is not None:
        filters.append(f"branches-ignore={list(rule.branches_ignore)}")
    if rule.types is not None:
        filters.append(f"types={list(rule.types)}")
    if filters:
        parts.append("(" + ", ".join(filters) + ")")
    return " ".join(parts)

