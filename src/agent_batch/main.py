"""CLI entrypoint for agent-batch."""

import logging
from pathlib import Path

import rich_click as click

from agent_batch import __version__
from agent_batch.orchestrator.controllers import (
    OUTPUT_FORMATS,
    DetectCommand,
    InvokeCommand,
    OrchestratorCliController,
)

click.rich_click.USE_MARKDOWN = True
ORCHESTRATOR_CONTROLLER = OrchestratorCliController()

LOG_LEVELS = (logging.WARNING, logging.INFO, logging.DEBUG)


@click.group()
@click.version_option(version=__version__, prog_name="agent-batch")
@click.option(
    "-v",
    "--verbose",
    count=True,
    help="Increase log verbosity: -v for info, -vv for debug.",
)
def agent_batch(verbose: int) -> None:
    """Run AI coding CLIs over batches of files."""

    logging.basicConfig(
        level=LOG_LEVELS[min(verbose, len(LOG_LEVELS) - 1)],
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@agent_batch.command("invoke")
@click.argument("paths", nargs=-1, required=True)
@click.option(
    "--prompt",
    required=True,
    help="Prompt text, a prompt file, or a glob of prompt files to concatenate.",
)
@click.option(
    "--tool",
    default=None,
    help="Tool name or alias, or `all` for every installed tool. Auto-detected when omitted.",
)
@click.option("--model", default=None, help="Model id override for the selected tool.")
@click.option(
    "--reasoning-effort",
    type=click.Choice(["low", "medium", "high"], case_sensitive=False),
    default=None,
    help="Deliberation hint passed to the tool.",
)
@click.option(
    "--context",
    "context_files",
    multiple=True,
    type=click.Path(path_type=Path),
    help="Static context file attached to every batch. Can be repeated.",
)
@click.option(
    "--dynamic-context",
    "context_rules",
    multiple=True,
    metavar="PATTERN=>REPLACEMENT",
    help="Regex rule deriving a per-file context path from the target path. Can be repeated.",
)
@click.option(
    "--batch-size",
    type=click.IntRange(min=1),
    default=1,
    show_default=True,
    help="Files per tool invocation.",
)
@click.option(
    "--parallel/--sequential",
    default=False,
    show_default=True,
    help="Dispatch batches to a worker pool.",
)
@click.option(
    "--max-workers",
    type=click.IntRange(min=1),
    default=None,
    help="Worker pool size for --parallel. Defaults to AGENT_BATCH_MAX_WORKERS or 3.",
)
@click.option(
    "--retry/--no-retry",
    default=None,
    help="Retry transient failures with exponential backoff. Enabled by default.",
)
@click.option(
    "--max-retry-minutes",
    type=click.FloatRange(min=0),
    default=None,
    help="Cumulative backoff ceiling per batch. Defaults to 240.",
)
@click.option("--skip", type=click.IntRange(min=0), default=0, show_default=True)
@click.option("--first", type=click.IntRange(min=0), default=None, help="Keep the first N files.")
@click.option("--last", type=click.IntRange(min=0), default=None, help="Keep the last N files.")
@click.option(
    "--skip-modified/--no-skip-modified",
    default=False,
    show_default=True,
    help="Skip files with uncommitted or recently committed git changes.",
)
@click.option(
    "--commit-depth",
    type=click.IntRange(min=0),
    default=None,
    help="Recent commits inspected by --skip-modified on main branches.",
)
@click.option(
    "--raw",
    is_flag=True,
    default=False,
    help="Stream the tool's own output; single attempt per batch.",
)
@click.option(
    "--bypass-permissions/--no-bypass-permissions",
    default=None,
    help="Pass the tool's permission bypass flag. Enabled by default.",
)
@click.option(
    "--output-format",
    type=click.Choice(list(OUTPUT_FORMATS), case_sensitive=False),
    default="text",
    show_default=True,
    help="Text lines with a summary, or one JSON object per result.",
)
@click.pass_context
def invoke(  # noqa: PLR0913
    ctx: click.Context,
    paths: tuple[str, ...],
    prompt: str,
    tool: str | None,
    model: str | None,
    reasoning_effort: str | None,
    context_files: tuple[Path, ...],
    context_rules: tuple[str, ...],
    batch_size: int,
    parallel: bool,
    max_workers: int | None,
    retry: bool | None,
    max_retry_minutes: float | None,
    skip: int,
    first: int | None,
    last: int | None,
    skip_modified: bool,
    commit_depth: int | None,
    raw: bool,
    bypass_permissions: bool | None,
    output_format: str,
) -> None:
    """Run one tool invocation per batch of target files."""

    command = InvokeCommand(
        paths=paths,
        prompt=prompt,
        tool=tool,
        model=model,
        reasoning_effort=reasoning_effort.lower() if reasoning_effort else None,
        context_files=context_files,
        context_rules=context_rules,
        batch_size=batch_size,
        parallel=parallel,
        max_workers=max_workers,
        retry=retry,
        max_retry_minutes=max_retry_minutes,
        skip=skip,
        first=first,
        last=last,
        skip_modified=skip_modified,
        commit_depth=commit_depth,
        raw=raw,
        bypass_permissions=bypass_permissions,
        output_format=output_format.lower(),
    )
    try:
        report = ORCHESTRATOR_CONTROLLER.invoke(command, emit=click.echo)
    except ValueError as error:
        raise click.ClickException(str(error)) from error
    ctx.exit(report.exit_code)


@agent_batch.command("tools")
def tools() -> None:
    """List supported tools by priority."""

    _emit_lines(ORCHESTRATOR_CONTROLLER.list_tools())


@agent_batch.command("detect")
@click.option(
    "--timeout-seconds",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Per-probe timeout. Defaults to AGENT_BATCH_PROBE_TIMEOUT_SECONDS or 10.",
)
def detect(timeout_seconds: float | None) -> None:
    """Probe which tools are installed and runnable."""

    try:
        result = ORCHESTRATOR_CONTROLLER.detect(DetectCommand(timeout_seconds=timeout_seconds))
    except ValueError as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException("No installed tools detected.")


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    agent_batch()
