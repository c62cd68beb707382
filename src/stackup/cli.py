# cli.py
from __future__ import annotations

import sys
import threading
from pathlib import Path

import click

from stackup.dag import build_graph
from stackup.errors import GraphError
from stackup.orchestrator import Orchestrator
from stackup.runner import load_stack
from stackup.settings import RunConfig
from stackup.ui.console import Console, set_console, get_console

DEFAULT_STACK_FILE = "stackup_stack.py"


def find_stack_files() -> list[Path]:
    """
    Find all stack files in the current directory.

    Returns:
        List of Path objects for stack files
    """
    stack_files = []
    current_dir = Path(".")

    default_stack = current_dir / DEFAULT_STACK_FILE
    if default_stack.exists():
        stack_files.append(default_stack)

    for path in current_dir.glob("*_stack.py"):
        if path != default_stack:
            stack_files.append(path)

    return sorted(stack_files)


def discover_stack(stack_arg: str | None) -> Path:
    """
    Discover stack file from argument or default.

    Raises:
        SystemExit: If the stack file cannot be found or is ambiguous
    """
    console = get_console()

    if stack_arg:
        stack_path = Path(stack_arg)
        if not stack_path.exists() and stack_path.suffix != ".py":
            stack_path = Path(str(stack_path) + ".py")
        if not stack_path.exists():
            console.print_error(
                "Stack file not found",
                f"Could not find stack file: {stack_arg}",
                suggestion="Create a stack file or specify a different path:\n  stackup up --stack my_stack.py",
            )
            sys.exit(1)
        return stack_path

    stack_files = find_stack_files()

    if len(stack_files) == 0:
        console.print_error(
            "No stack file found",
            "Could not find any stack files.",
            details=["Looked for:", f"  {DEFAULT_STACK_FILE}", "  *_stack.py"],
            suggestion=f"Create a stack file:\n  {DEFAULT_STACK_FILE}\n\nOr specify one explicitly:\n  stackup up --stack my_stack.py",
        )
        sys.exit(1)

    # the default file wins over any *_stack.py next to it
    for path in stack_files:
        if path.name == DEFAULT_STACK_FILE:
            return path

    if len(stack_files) > 1:
        file_list = "\n".join(f"  {f}" for f in stack_files)
        console.print_error(
            "Multiple stack files found",
            "Found multiple stack files. Please specify which one to use:",
            details=[file_list],
            suggestion="Specify a stack explicitly:\n  stackup up --stack my_stack.py",
        )
        sys.exit(1)

    return stack_files[0]


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show probe attempts and stack traces)",
)
@click.pass_context
def cli(ctx, debug):
    """stackup: bring a service stack up in dependency order, healthy first."""
    set_console(Console(debug=debug))
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command()
@click.option("--stack", "stack_file", default=None, help=f"Stack file path (defaults to {DEFAULT_STACK_FILE} if present)")
@click.option("--startup-timeout", type=float, default=None, help="Seconds a service may take to become healthy")
@click.option("--probe-interval", type=float, default=None, help="Seconds between probe attempts")
@click.option("--probe-retries", type=int, default=None, help="Max probe attempts per service")
@click.option("--probe-timeout", type=float, default=None, help="Hard cap on a single probe call")
@click.option("--workers", type=int, default=None, help="Number of parallel workers")
@click.option(
    "--teardown-on-failure/--no-teardown-on-failure",
    default=True,
    show_default=True,
    help="Stop started services when the stack does not come up",
)
@click.option("--hold", is_flag=True, default=False, help="Keep the stack up until Ctrl-C, then tear it down")
@click.pass_context
def up(ctx, stack_file, startup_timeout, probe_interval, probe_retries, probe_timeout, workers, teardown_on_failure, hold):
    """Start a stack and wait for every service to become healthy."""
    console = get_console()
    stack_path = discover_stack(stack_file)
    orchestrator = Orchestrator()

    try:
        config = RunConfig.from_env().override(
            startup_timeout=startup_timeout,
            probe_interval=probe_interval,
            probe_retries=probe_retries,
            probe_timeout=probe_timeout,
            max_workers=workers,
        )
        specs = load_stack(stack_path)
        console.print_run_started(stack=stack_path.name, service_count=len(specs))

        result = orchestrator.start(specs, config)
        console.print_results(result)

        if not result.success:
            if teardown_on_failure:
                console.print_results(orchestrator.stop(), title="TEARDOWN")
            sys.exit(1)

        if hold:
            console.print_info("\nStack is up. Press Ctrl-C to tear it down.")
            threading.Event().wait()

    except GraphError as e:
        console.print_error("Invalid stack", str(e), suggestion="Nothing was started.")
        sys.exit(1)
    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        if orchestrator.running:
            console.print_results(orchestrator.stop(), title="TEARDOWN")
        sys.exit(130)
    except Exception as e:
        console.print_exception(e)
        sys.exit(1)


@cli.command()
@click.option("--stack", "stack_file", default=None, help=f"Stack file path (defaults to {DEFAULT_STACK_FILE} if present)")
@click.pass_context
def plan(ctx, stack_file):
    """Validate a stack and print its start stages and shutdown order."""
    console = get_console()
    stack_path = discover_stack(stack_file)

    try:
        graph = build_graph(load_stack(stack_path))
    except GraphError as e:
        console.print_error("Invalid stack", str(e))
        sys.exit(1)
    except Exception as e:
        console.print_exception(e)
        sys.exit(1)

    console.print_plan(graph.levels(), graph.shutdown_order)


if __name__ == "__main__":
    cli()
