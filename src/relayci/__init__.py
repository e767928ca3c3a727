from .errors import AggregationIncomplete, JobCancelled, MalformedDefinition, NoTriggerMatch, StepExecutionFailure
from .loader import load_definition, load_definition_file
from .matrix import expand
from .model import Event, JobDefinition, JobInstance, JobResult, PipelineDefinition, PipelineRun
from .pipeline import plan_run, start_run
from .triggers import match, normalize_event

__all__ = [
    "load_definition",
    "load_definition_file",
    "match",
    "normalize_event",
    "expand",
    "plan_run",
    "start_run",
    "Event",
    "JobDefinition",
    "JobInstance",
    "JobResult",
    "PipelineDefinition",
    "PipelineRun",
    "MalformedDefinition",
    "NoTriggerMatch",
    "StepExecutionFailure",
    "JobCancelled",
    "AggregationIncomplete",
]
