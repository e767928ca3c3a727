# cli.py
from __future__ import annotations

import json
import sys
from pathlib import Path

import click

from relayci.errors import AggregationIncomplete, MalformedDefinition, NoTriggerMatch
from relayci.git_facts.git import local_facts
from relayci.loader import load_definition_file
from relayci.pipeline import plan_run, start_run
from relayci.triggers import normalize_event
from relayci.ui.console import Console, get_console, set_console

DEFAULT_WORKFLOW_NAMES = ("relayci.yml", "relayci.yaml")

EXIT_FAILED = 1
EXIT_INVALID = 2
EXIT_INTERRUPTED = 130


def find_workflow_files(root: Path | None = None) -> list[Path]:
    """
    Find candidate pipeline definitions.

    Looks for relayci.yml / relayci.yaml in `root`, then any
    .github/workflows/*.yml / *.yaml.
    """
    root = root or Path(".")
    found = [root / n for n in DEFAULT_WORKFLOW_NAMES if (root / n).exists()]
    wf_dir = root / ".github" / "workflows"
    if wf_dir.is_dir():
        found.extend(sorted(wf_dir.glob("*.yml")) + sorted(wf_dir.glob("*.yaml")))
    return found


def discover_workflow(workflow_arg: str | None) -> Path:
    """
    Resolve the definition file from --workflow or by discovery.

    Raises:
        SystemExit: If no definition or several definitions are found
    """
    console = get_console()

    if workflow_arg:
        workflow_path = Path(workflow_arg)
        if not workflow_path.exists():
            console.print_error(
                "Workflow file not found",
                f"Could not find workflow file: {workflow_arg}",
                suggestion="Create a definition or point at one:\n  relayci run --workflow ci.yml",
            )
            sys.exit(EXIT_INVALID)
        return workflow_path

    workflow_files = find_workflow_files()

    if not workflow_files:
        console.print_error(
            "No workflow file found",
            "Could not find any pipeline definition.",
            details=["Looked for:", "  relayci.yml / relayci.yaml", "  .github/workflows/*.yml"],
            suggestion="Specify a definition explicitly:\n  relayci run --workflow ci.yml",
        )
        sys.exit(EXIT_INVALID)

    if len(workflow_files) > 1:
        console.print_error(
            "Multiple workflow files found",
            "Found multiple pipeline definitions. Please specify which one to use:",
            details=[str(f) for f in workflow_files],
            suggestion=f"Specify a definition explicitly:\n  relayci run --workflow {workflow_files[0]}",
        )
        sys.exit(EXIT_INVALID)

    return workflow_files[0]


def _load(workflow_path: Path):
    console = get_console()
    try:
        return load_definition_file(workflow_path)
    except MalformedDefinition as e:
        console.print_error(
            "Malformed pipeline definition",
            e.message,
            details=e.problems or None,
            suggestion=f"Fix {workflow_path} and retry:\n  relayci validate --workflow {workflow_path}",
        )
        sys.exit(EXIT_INVALID)
    except ValueError as e:
        console.print_error("Unsupported workflow file", str(e))
        sys.exit(EXIT_INVALID)


def _event(kind: str, branch: str | None, subtype: str | None, sha: str | None, workspace: str):
    if branch is None or sha is None:
        local_branch, local_sha = local_facts(workspace)
        branch = branch if branch is not None else local_branch
        sha = sha if sha is not None else local_sha
    return normalize_event(kind, branch=branch, subtype=subtype, sha=sha)


def event_options(fn):
    fn = click.option("--sha", default=None, help="Commit sha of the event (defaults to local HEAD)")(fn)
    fn = click.option("--type", "subtype", default=None, help="Event subtype, e.g. opened, synchronize")(fn)
    fn = click.option("--branch", default=None, help="Target branch of the event (defaults to current branch)")(fn)
    fn = click.option(
        "--event",
        "event_kind",
        default="push",
        show_default=True,
        envvar="RELAYCI_EVENT",
        help="Event kind: push, pull_request, merge_group (or push-to-branch, pull-request-opened, ...)",
    )(fn)
    fn = click.option(
        "--workflow",
        default=None,
        envvar="RELAYCI_WORKFLOW",
        help="Pipeline definition (defaults to relayci.yml or the single .github/workflows file)",
    )(fn)
    return fn


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    envvar="RELAYCI_DEBUG",
    help="Enable debug mode (show stack traces and step output as it fails)",
)
@click.pass_context
def cli(ctx, debug):
    """relayci: event-triggered, matrix-aware CI pipeline runner."""
    set_console(Console(debug=debug))
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command()
@click.option(
    "--workflow",
    default=None,
    envvar="RELAYCI_WORKFLOW",
    help="Pipeline definition (defaults to relayci.yml or the single .github/workflows file)",
)
def validate(workflow):
    """Load a pipeline definition and print its triggers and jobs."""
    console = get_console()
    workflow_path = discover_workflow(workflow)
    definition = _load(workflow_path)
    console.print_definition(definition)
    console.print_info(f"\n{workflow_path}: OK")


@cli.command()
@event_options
@click.option("--workspace", default=".", envvar="RELAYCI_WORKSPACE", help="Repository checkout the steps run in")
def plan(workflow, event_kind, branch, subtype, sha, workspace):
    """Show which job instances an event would run, without running them."""
    console = get_console()
    workflow_path = discover_workflow(workflow)
    definition = _load(workflow_path)
    event = _event(event_kind, branch, subtype, sha, workspace)

    run_plan = plan_run(definition, event)
    if run_plan.is_noop:
        console.print_noop(str(NoTriggerMatch(event.kind, event.branch)))
        return
    console.print_plan(run_plan)


@cli.command()
@event_options
@click.option("--workspace", default=".", envvar="RELAYCI_WORKSPACE", help="Repository checkout the steps run in")
@click.option("--workers", default=None, type=click.IntRange(min=1), envvar="RELAYCI_WORKERS",
              help="Number of parallel job slots (defaults to CPU count - 1)")
@click.option("--report", "report_path", default=None, type=click.Path(dir_okay=False),
              help="Write the run record as JSON to this path")
def run(workflow, event_kind, branch, subtype, sha, workspace, workers, report_path):
    """Run a pipeline for one repository event."""
    console = get_console()
    workflow_path = discover_workflow(workflow)
    definition = _load(workflow_path)
    event = _event(event_kind, branch, subtype, sha, workspace)

    run_plan = plan_run(definition, event)
    if run_plan.is_noop:
        console.print_noop(str(NoTriggerMatch(event.kind, event.branch)))
        return

    try:
        console.print_run_started(
            workflow=workflow_path.name,
            event=f"{event.kind}" + (f" ({event.subtype})" if event.subtype else "") + (f" on {event.branch}" if event.branch else ""),
            job_count=len(run_plan.instances),
        )

        pipeline_run = start_run(definition, event, workspace=workspace, max_workers=workers)
        console.print_results(pipeline_run)

        if report_path:
            Path(report_path).write_text(json.dumps(pipeline_run.to_dict(), indent=2), encoding="utf-8")
            console.print_info(f"Report written to {report_path}")

        if pipeline_run.exit_code != 0:
            sys.exit(EXIT_FAILED)

    except NoTriggerMatch as e:
        console.print_noop(str(e))
    except AggregationIncomplete as e:
        console.print_error("Internal error", str(e), suggestion="Re-run with --debug and report this.")
        sys.exit(EXIT_INVALID)
    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(EXIT_INTERRUPTED)
    except Exception as e:
        console.print_exception(e)
        sys.exit(EXIT_FAILED)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
