"""
Docx Grader CLI Application.

Provides a command-line interface for grading Word documents against
rubrics, generating rubrics from exam requirements and checking provider
connectivity.
"""

import json
import logging
from decimal import Decimal
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import BarColumn, MofNCompleteColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

from docx_grader.config import ProviderConfig, ProviderKind, get_settings
from docx_grader.errors import ConfigError, FormatError, ProviderError
from docx_grader.extractors import DocumentExtractor, extract_text
from docx_grader.grading import GradingEngine, GradingQueue, GradingScheduler
from docx_grader.models import GradingItem, ItemStatus, Rubric, Rule
from docx_grader.rubric import RubricValidator, load_rubric, load_rules

# Create Typer app
app = typer.Typer(
    name="docx-grader",
    help="Rubric-based grading of Word documents with AI providers",
    add_completion=False,
)

console = Console()

logger = logging.getLogger("docx_grader")


ProviderOption = Annotated[
    Optional[ProviderKind],
    typer.Option("--provider", help="AI provider (defaults to PROVIDER setting)"),
]
ModelOption = Annotated[
    Optional[str],
    typer.Option("--model", "-m", help="Model override for the selected provider"),
]


def _configure_logging(verbose: bool = False) -> None:
    level = "DEBUG" if verbose else get_settings().log_level
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )
    # SDK request logging is noisy at INFO
    for name in ("httpx", "openai", "google_genai"):
        logging.getLogger(name).setLevel(logging.WARNING)


def _provider_config(
    provider: ProviderKind | None,
    model: str | None,
    concurrency: int | None = None,
) -> ProviderConfig:
    return get_settings().provider_config(kind=provider, model=model, concurrency_limit=concurrency)


@app.command()
def grade(
    rubric_file: Annotated[Path, typer.Argument(help="Rubric file (.json, .txt, .md, .docx, .pdf)")],
    documents: Annotated[
        list[Path],
        typer.Argument(help="Student .docx files or .zip archives of them"),
    ],
    reference: Annotated[
        Optional[Path],
        typer.Option("--reference", "-r", help="Template .docx for differential grading"),
    ] = None,
    provider: ProviderOption = None,
    model: ModelOption = None,
    concurrency: Annotated[
        Optional[int],
        typer.Option("--concurrency", "-c", min=1, max=20, help="Documents graded in parallel"),
    ] = None,
    output: Annotated[
        Optional[Path],
        typer.Option("--output", "-o", help="Write results as JSON to this file"),
    ] = None,
    verify: Annotated[
        bool,
        typer.Option("--verify", help="Test provider connectivity before grading"),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show detailed output"),
    ] = False,
) -> None:
    """
    Grade Word documents against a rubric.

    Every rule is judged by the AI provider; scores come from the rubric's
    point values. Documents are graded concurrently, and a failure in one
    document does not affect the others.
    """
    _configure_logging(verbose)
    aborted: ConfigError | None = None

    try:
        config = _provider_config(provider, model, concurrency)
        rubric = load_rubric(rubric_file)
        RubricValidator().validate_or_raise(rubric)

        extractor = DocumentExtractor()
        reference_parts = extractor.extract_file(reference) if reference else None

        queue = GradingQueue()
        for path in documents:
            _enqueue(queue, path)

        if not len(queue):
            console.print("[yellow]No .docx documents found[/yellow]")
            raise typer.Exit(1)

        engine = GradingEngine(config)
        scheduler = GradingScheduler(engine, queue, rubric, reference=reference_parts)

        console.print(
            Panel(
                f"[bold]{rubric.title}[/bold]\n"
                f"Rules: {len(rubric.rules)}  Max score: {rubric.max_score}\n"
                f"Provider: {engine.provider.name}  Concurrency: {config.concurrency_limit}\n"
                f"Mode: {'differential' if reference_parts else 'standard'}",
                title="Grading",
            )
        )

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            console=console,
        ) as progress:
            task = progress.add_task("Grading...", total=len(queue))
            scheduler.start(verify=verify)
            try:
                while not scheduler.wait(timeout=0.2):
                    progress.update(task, completed=sum(i.is_terminal for i in queue.items()))
            except ConfigError as e:
                # Documents graded before the abort are still reported
                aborted = e
            progress.update(task, completed=sum(i.is_terminal for i in queue.items()))

    except (ConfigError, ProviderError) as e:
        console.print(f"[red]Provider Error:[/red] {e}")
        raise typer.Exit(1)
    except FormatError as e:
        console.print(f"[red]Input Error:[/red] {e}")
        raise typer.Exit(1)

    items = queue.items()
    _display_results(items, rubric, verbose)

    if output:
        _write_json(output, [item.model_dump(mode="json", by_alias=True) for item in items])
        console.print(f"\n[green]Results saved to:[/green] {output}")

    if aborted is not None:
        console.print(f"[red]Provider Error:[/red] {aborted}")
        raise typer.Exit(1)

    if any(item.status == ItemStatus.ERROR for item in items):
        raise typer.Exit(1)


@app.command("generate-rules")
def generate_rules(
    requirements_file: Annotated[
        Path, typer.Argument(help="Exam requirements (.txt, .md, .docx, .pdf)")
    ],
    total: Annotated[float, typer.Option("--total", "-t", help="Full score of the exam")] = 100,
    provider: ProviderOption = None,
    model: ModelOption = None,
    output: Annotated[
        Optional[Path],
        typer.Option("--output", "-o", help="Write the rubric as JSON to this file"),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show detailed output"),
    ] = False,
) -> None:
    """
    Generate grading rules from exam requirements.

    The generated rubric can be passed straight to the grade command.
    """
    _configure_logging(verbose)
    expected_total = Decimal(str(total))

    try:
        requirements = extract_text(requirements_file)
        engine = GradingEngine(_provider_config(provider, model))
        with console.status("Generating rules..."):
            rules = engine.generate_rules(requirements, expected_total)

    except (ConfigError, ProviderError) as e:
        console.print(f"[red]Provider Error:[/red] {e}")
        raise typer.Exit(1)
    except FormatError as e:
        console.print(f"[red]Input Error:[/red] {e}")
        raise typer.Exit(1)

    if not rules:
        console.print("[yellow]The provider returned no usable rules[/yellow]")
        raise typer.Exit(1)

    console.print(_rules_table(rules))
    _print_issues(RubricValidator().validate(rules, expected_total)[1])

    if output:
        rubric = Rubric(title=requirements_file.stem, rules=tuple(rules))
        _write_json(
            output,
            {
                "title": rubric.title,
                "rules": [rule.model_dump(mode="json") for rule in rubric.rules],
            },
        )
        console.print(f"\n[green]Rubric saved to:[/green] {output}")


@app.command("validate-rubric")
def validate_rubric(
    rubric_file: Annotated[Path, typer.Argument(help="Path to the rubric file")],
    total: Annotated[
        Optional[float],
        typer.Option("--total", "-t", help="Expected full score"),
    ] = None,
) -> None:
    """
    Validate a rubric file without performing grading.
    """
    try:
        title, rules = load_rules(rubric_file)
    except FormatError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    expected_total = Decimal(str(total)) if total is not None else None
    is_valid, issues = RubricValidator().validate(rules, expected_total)

    console.print(Panel(f"[bold]{title or rubric_file.stem}[/bold]", title="Rubric"))
    console.print(_rules_table(rules))
    console.print(f"\n[bold]Total Points:[/bold] {sum((r.points for r in rules), Decimal(0))}")

    if is_valid:
        console.print("\n[green]✓ Rubric is valid[/green]")
    else:
        _print_issues(issues)
        raise typer.Exit(1)


@app.command()
def health(provider: ProviderOption = None, model: ModelOption = None) -> None:
    """
    Check that the configured provider is reachable.

    Sends a minimal request with the configured credential.
    """
    try:
        config = _provider_config(provider, model)
        console.print("[bold]Docx Grader Health Check[/bold]\n")

        console.print("[dim]Checking configuration...[/dim]")
        console.print(f"  Provider: {config.provider_kind.value}")
        console.print(f"  Model: {config.model}")
        if config.base_url:
            console.print(f"  API Base URL: {config.base_url}")
        console.print(f"  Concurrency: {config.concurrency_limit}")

        console.print("\n[dim]Checking API connectivity...[/dim]")
        reply = GradingEngine(config).check_connection()
        console.print(f"[green]✓ API is reachable[/green] [dim]({reply.strip()[:60]})[/dim]")

    except (ConfigError, ProviderError) as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(1)

    console.print("\n[green]All systems operational[/green]")


def _enqueue(queue: GradingQueue, path: Path) -> None:
    suffix = path.suffix.lower()
    if suffix not in (".docx", ".zip"):
        raise FormatError(f"Unsupported document '{path.name}': expected .docx or .zip")
    try:
        data = path.read_bytes()
    except OSError as e:
        raise FormatError(f"Cannot read {path}: {e}") from e

    if suffix == ".zip":
        added = queue.enqueue_archive(data, source=path.name)
        logger.info("Queued %d document(s) from %s", len(added), path.name)
    else:
        queue.enqueue(path.name, data)


def _display_results(items: list[GradingItem], rubric: Rubric, verbose: bool = False) -> None:
    """Display grading results in a formatted table."""
    table = Table(title="Results")
    table.add_column("Document", style="cyan")
    table.add_column("Score", justify="right")
    table.add_column("Percentage", justify="right")
    table.add_column("Status")

    for item in items:
        if item.result is not None:
            pct = item.result.percentage
            color = "green" if pct >= 70 else "yellow" if pct >= 50 else "red"
            table.add_row(
                item.display_name,
                f"{item.result.total_score}/{item.result.max_score}",
                f"[{color}]{pct:.1f}%[/{color}]",
                "✓",
            )
        else:
            table.add_row(item.display_name, "-", "-", f"[red]{item.error_message or item.status.value}[/red]")

    console.print(table)

    if not verbose:
        return

    for item in items:
        if item.result is None:
            continue
        detail = Table(title=item.display_name)
        detail.add_column("Rule", style="cyan")
        detail.add_column("Score", justify="right")
        detail.add_column("Found")
        detail.add_column("Reasoning")
        for rule_result in item.result.details:
            rule = rubric.get_rule(rule_result.rule_id)
            points = rule.points if rule is not None else Decimal(0)
            detail.add_row(
                rule_result.rule_id,
                f"{rule_result.score}/{points}",
                rule_result.extracted_value,
                rule_result.reasoning,
            )
        console.print(detail)
        console.print(Panel(item.result.summary, title="Summary"))


def _rules_table(rules: list[Rule]) -> Table:
    table = Table(title="Rules")
    table.add_column("Id", style="cyan")
    table.add_column("Category")
    table.add_column("Points", justify="right")
    table.add_column("Description")
    for rule in rules:
        table.add_row(rule.id, rule.category, str(rule.points), rule.description[:80])
    return table


def _print_issues(issues: list[str]) -> None:
    if not issues:
        return
    console.print("\n[yellow]⚠ Validation issues found:[/yellow]")
    for issue in issues:
        console.print(f"  • {issue}")


def _write_json(path: Path, data: object) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")


if __name__ == "__main__":
    app()
