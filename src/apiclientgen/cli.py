from __future__ import annotations

import json
import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from apiclientgen.config import GeneratorConfig
from apiclientgen.errors import ProjectConfigNotFoundError
from apiclientgen.orchestrator.pipeline import analyze_workspace, run_generate


app = typer.Typer(no_args_is_help=True, add_completion=False)

console = Console()
err_console = Console(stderr=True)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False, markup=False)],
        force=True,
    )


def _workspace(path: str) -> Path:
    workspace = Path(path).expanduser().resolve()
    if not workspace.is_dir():
        raise typer.BadParameter(f"Workspace is not a directory: {workspace}")
    return workspace


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    _configure_logging(verbose)


@app.command()
def generate(
    workspace: str = typer.Argument(".", help="Workspace root (holds tsconfig.base.json)"),
) -> None:
    """Regenerate the Angular API client services from the NestJS controllers."""
    root = _workspace(workspace)
    config = GeneratorConfig()

    console.print("[bold]Generating Angular services...[/bold]")
    try:
        result = run_generate(root, config)
    except ProjectConfigNotFoundError as exc:
        console.print(f"[bold red]error:[/bold red] {exc}")
        raise typer.Exit(code=1)

    console.print(f"API prefix: [bold]{result.api_prefix}[/bold]")
    console.print(f"Controller files scanned: {result.files_scanned}")
    if result.skipped_files:
        console.print(f"[yellow]Skipped (parse errors): {len(result.skipped_files)}[/yellow]")
        for rel in result.skipped_files:
            console.print(f"  {rel}")

    for client in sorted(result.clients, key=lambda c: c.class_name):
        console.print(f"  {client.class_name:<40} {client.endpoint_count:>3} methods")

    console.print("")
    console.print(f"Output: {result.output_dir}")
    console.print(f"Manifest: {result.manifest_path}")
    console.print(f"[bold green]Generated {len(result.clients)} client(s)[/bold green]")


@app.command("list")
def list_endpoints(
    workspace: str = typer.Argument(".", help="Workspace root (holds tsconfig.base.json)"),
    format: str = typer.Option("table", help="Output format: table|json"),
) -> None:
    """Show the endpoints a generation run would emit. Writes nothing."""
    root = _workspace(workspace)
    fmt = format.lower().strip()
    if fmt not in ("table", "json"):
        raise typer.BadParameter("format must be one of: table, json")

    try:
        analysis = analyze_workspace(root, GeneratorConfig())
    except ProjectConfigNotFoundError as exc:
        console.print(f"[bold red]error:[/bold red] {exc}")
        raise typer.Exit(code=1)

    rows = [
        {
            "controller": plan.group.name,
            "file": plan.group.source_file_path,
            "method": e.method_name,
            "verb": e.http_verb.value,
            "route": e.route_template,
            "returns": e.return_type.expression,
        }
        for plan in analysis.plans
        for e in plan.endpoints
    ]

    if fmt == "json":
        typer.echo(json.dumps(rows, indent=2))
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("VERB", no_wrap=True)
    table.add_column("ROUTE")
    table.add_column("CLIENT METHOD")
    table.add_column("RETURNS")
    table.add_column("FILE")
    for r in rows:
        table.add_row(r["verb"], "/" + r["route"], f"{r['controller']}.{r['method']}", r["returns"], r["file"])

    console.print(f"[bold]API prefix:[/bold] {analysis.api_prefix}")
    console.print(f"[bold]Endpoints:[/bold] {len(rows)}")
    console.print(table)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
