# cli.py
from __future__ import annotations

import json
import signal
import sys
from pathlib import Path

import click

from relayci import settings
from relayci.dag import build_dag
from relayci.errors import RelayError
from relayci.events import Event, event_from_git
from relayci.loader import find_pipeline_files, load_pipeline
from relayci.model import RunStatus
from relayci.runner import PipelineRunner
from relayci.secrets import ChainSecretStore, EnvSecretStore, FileSecretStore
from relayci.ui.console import Console, get_console, set_console

EXIT_CODES = {
    RunStatus.SUCCESS: 0,
    RunStatus.NOT_TRIGGERED: 0,
    RunStatus.FAILURE: 1,
    RunStatus.CANCELLED: 130,
}


def discover_pipeline(pipeline_arg: str | None) -> Path:
    """
    Resolve the pipeline file from the --pipeline argument or by discovery.

    Raises:
        SystemExit: If no pipeline (or more than one) can be found
    """
    console = get_console()

    if pipeline_arg:
        path = Path(pipeline_arg)
        if not path.exists():
            console.print_error(
                "Pipeline file not found",
                f"Could not find pipeline file: {pipeline_arg}",
                suggestion="Create a pipeline file or specify a different path:\n  relayci run --pipeline relayci.yml",
            )
            sys.exit(1)
        return path

    files = find_pipeline_files(".")
    if not files:
        console.print_error(
            "No pipeline file found",
            "Could not find any pipeline files.",
            details=["Looked for:", "  relayci.yml / relayci.yaml", "  relayci_pipeline.py", "  *_pipeline.py"],
            suggestion="Create relayci.yml, or specify a pipeline explicitly:\n  relayci run --pipeline ci.yml",
        )
        sys.exit(1)

    if len(files) > 1:
        console.print_error(
            "Multiple pipeline files found",
            "Found multiple pipeline files. Please specify which one to use:",
            details=[str(f) for f in files],
            suggestion="Specify a pipeline explicitly:\n  relayci run --pipeline relayci.yml",
        )
        sys.exit(1)

    return files[0]


def _load_or_exit(ctx, pipeline_arg):
    console = get_console()
    path = discover_pipeline(pipeline_arg)
    try:
        return path, load_pipeline(path)
    except (RelayError, FileNotFoundError) as e:
        console.print_error("Failed to load pipeline", f"Could not load pipeline from {path}", details=[str(e)])
        sys.exit(1)


def _nonempty_prefix(ctx, param, value):
    if not value:
        raise click.BadParameter("must not be empty")
    return value


def _build_event(event_name, ref, sha, actor, repository, base_ref, event_file) -> Event:
    if event_file:
        payload = json.loads(Path(event_file).read_text(encoding="utf-8"))
        return Event.from_payload(payload)
    return event_from_git(
        event_name,
        ref=ref,
        sha=sha,
        actor=actor,
        repository=repository,
        base_ref=base_ref,
    )


@click.group()
@click.option("--debug", is_flag=True, default=False, help="Show step output, stack traces and debug lines")
@click.option("--quiet", is_flag=True, default=False, help="Only print errors and the final results")
@click.pass_context
def cli(ctx, debug, quiet):
    """relayci: local pipeline orchestration engine."""
    set_console(Console(debug=debug, quiet=quiet))
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command()
@click.option("--pipeline", "pipeline_arg", default=None, help="Pipeline file (.yml/.yaml/.py)")
@click.pass_context
def validate(ctx, pipeline_arg):
    """Check a pipeline definition without running anything."""
    console = get_console()
    path, pipeline = _load_or_exit(ctx, pipeline_arg)
    try:
        dag = build_dag(pipeline)
    except RelayError as e:
        console.print_error("Invalid pipeline", str(e), details=[f"file: {path}"])
        sys.exit(1)
    console.print_info(f"OK: pipeline '{pipeline.name}' with {len(dag.jobs)} job(s) is valid")


@cli.command()
@click.option("--pipeline", "pipeline_arg", default=None, help="Pipeline file (.yml/.yaml/.py)")
@click.pass_context
def plan(ctx, pipeline_arg):
    """Print the stages the pipeline's jobs fall into."""
    console = get_console()
    _path, pipeline = _load_or_exit(ctx, pipeline_arg)
    try:
        dag = build_dag(pipeline)
    except RelayError as e:
        console.print_error("Invalid pipeline", str(e))
        sys.exit(1)
    console.print_plan(dag.levels())


@cli.command()
@click.option("--pipeline", "pipeline_arg", default=None, help="Pipeline file (.yml/.yaml/.py)")
@click.option("--workspace", default=".", show_default=True, help="Directory steps run in")
@click.option("--workers", default=settings.WORKERS, type=int, help="Max jobs running at once")
@click.option("--timeout", "step_timeout", default=settings.STEP_TIMEOUT, type=float, show_default=True,
              help="Default step timeout in seconds")
@click.option("--event", "event_name", default="push", show_default=True, help="Triggering event name")
@click.option("--ref", default=None, help="Git ref (defaults to the current branch)")
@click.option("--sha", default=None, help="Commit SHA (defaults to HEAD)")
@click.option("--actor", default=None, help="Who triggered the run (defaults to git user.name)")
@click.option("--repository", default=None, help="owner/name (defaults to the origin remote)")
@click.option("--base-ref", default=None, help="Target branch for pull_request events")
@click.option("--event-file", default=None, type=click.Path(exists=True, dir_okay=False),
              help="JSON event payload (overrides the event options)")
@click.option("--secrets-file", default=None, type=click.Path(exists=True, dir_okay=False),
              help="YAML mapping of secret names to values")
@click.option("--secret-prefix", default=settings.SECRET_PREFIX, show_default=True,
              callback=_nonempty_prefix, help="Environment variable prefix for secrets")
@click.option("--record-dir", default=settings.RECORD_DIR, show_default=True, help="Directory for JSON run records")
@click.option("--record/--no-record", default=True, show_default=True, help="Write a JSON run record")
@click.option("--record-db", default=settings.DATABASE_URL, help="SQLAlchemy URL to also store the run record in")
@click.pass_context
def run(ctx, pipeline_arg, workspace, workers, step_timeout, event_name, ref, sha, actor, repository,
        base_ref, event_file, secrets_file, secret_prefix, record_dir, record, record_db):
    """Run a pipeline for one event."""
    from relayci.reporter import JsonFileSink

    console = get_console()
    _path, pipeline = _load_or_exit(ctx, pipeline_arg)

    try:
        event = _build_event(event_name, ref, sha, actor, repository, base_ref, event_file)
    except Exception as e:
        console.print_error(
            "Could not determine the triggering event",
            str(e),
            suggestion="Pass --ref/--sha/--actor explicitly or use --event-file.",
        )
        sys.exit(1)

    stores = [EnvSecretStore(prefix=secret_prefix)]
    if secrets_file:
        stores.insert(0, FileSecretStore(secrets_file))

    sinks = []
    if record:
        sinks.append(JsonFileSink(record_dir))
    if record_db:
        from relayci.records import SqlRunSink

        sinks.append(SqlRunSink(record_db))

    runner = PipelineRunner(
        pipeline,
        event,
        secrets=ChainSecretStore(*stores),
        workspace=workspace,
        max_workers=workers,
        step_timeout=step_timeout,
        sinks=sinks,
        console=console,
    )

    def _cancel(signum, frame):
        console.print_info(f"\nReceived signal {signum}, cancelling run...")
        runner.cancel()

    previous = {sig: signal.signal(sig, _cancel) for sig in (signal.SIGINT, signal.SIGTERM)}
    try:
        result = runner.run()
    except RelayError as e:
        console.print_error("Invalid pipeline", str(e))
        sys.exit(1)
    except Exception as e:
        console.print_exception(e)
        sys.exit(1)
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)

    if result.status != RunStatus.NOT_TRIGGERED:
        console.print_results(result)
    sys.exit(EXIT_CODES[result.status])


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
