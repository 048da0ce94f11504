"""Rich console output for the CLI.

Graph nodes report phase transitions and agent messages through this module.
Output is off by default so the HTTP server stays quiet; ``run.py`` turns it
on with ``set_console_output(True)``.
"""

from __future__ import annotations

import json
from typing import Sequence

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from surveyq.schemas.evaluation import EvaluationRecord, RegenerationResult
from surveyq.schemas.questions import Question

console = Console()

# Speaker styles for messages passed between graph nodes
SPEAKER_STYLES = {
    "Critic": "bold white",
    "QuestionWriter": "green",
    "Evaluator": "yellow",
    "QualityJudge": "magenta",
}

_CONSOLE_OUTPUT = False
_VERBOSE_JSON_OUTPUT = False


def set_console_output(enabled: bool) -> None:
    """Turn progress output from graph nodes on or off."""
    global _CONSOLE_OUTPUT
    _CONSOLE_OUTPUT = enabled


def set_verbose_json_output(enabled: bool) -> None:
    """Print final results as raw wire JSON instead of tables."""
    global _VERBOSE_JSON_OUTPUT
    _VERBOSE_JSON_OUTPUT = enabled


def _run_overview(title: str, model: str, max_attempts: int, evaluate_only: bool) -> Table:
    from surveyq.config import get_agent_settings, get_settings

    agent_settings = get_agent_settings()
    settings = get_settings()

    providers = ["OpenRouter"]
    if agent_settings.providers.groq.enabled and settings.groq_api_key:
        providers.append("Groq")
    if agent_settings.providers.ollama.enabled:
        providers.append("Ollama")

    grid = Table.grid(padding=(0, 2))
    grid.add_column(style="dim", justify="right")
    grid.add_column(style="cyan")
    grid.add_row("survey", title)
    grid.add_row("model", model if settings.has_model_credentials else f"{model} [dim](no API key)[/dim]")
    grid.add_row("providers", " > ".join(providers))
    grid.add_row(
        "mode",
        "evaluate only" if evaluate_only else f"generate and evaluate, up to {max_attempts} attempts",
    )
    embedding = agent_settings.embedding
    grid.add_row("embeddings", embedding.model_name if embedding.enabled else "off")
    return grid


def print_header(title: str, model: str, max_attempts: int, evaluate_only: bool = False) -> None:
    """Print the run overview before any model call is made."""
    console.print()
    console.print(
        Panel(
            _run_overview(title, model, max_attempts, evaluate_only),
            title="[bold]surveyq[/bold]",
            title_align="left",
            border_style="bright_blue",
        )
    )


def print_agent_message(from_agent: str, to_agent: str, content: str) -> None:
    """Show a message handed from one graph node to another."""
    if not _CONSOLE_OUTPUT:
        return
    style = SPEAKER_STYLES.get(from_agent, "white")
    console.print(
        Panel(
            Markdown(content),
            title=Text(f"{from_agent} > {to_agent}", style=style),
            title_align="left",
            border_style=style,
        )
    )


def print_phase_transition(phase: str) -> None:
    if not _CONSOLE_OUTPUT:
        return
    console.print(Rule(f"[bold bright_yellow]{str(phase).upper()}[/bold bright_yellow]", style="dim"))


def _flag_text(record: EvaluationRecord) -> str:
    flags = list(record.rule_violations) + list(record.response_option_issues)
    if record.skip_logic_issue:
        flags.append("skip_logic")
    if record.response_scale_issue:
        flags.append("scale")
    return ", ".join(flags) or "-"


def questions_table(
    questions: Sequence[Question],
    evaluations: Sequence[EvaluationRecord] | None,
) -> Table:
    """Build a table of questions with their evaluation signals (if any)."""
    table = Table(show_lines=False, header_style="bold")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Question")
    table.add_column("Type", style="dim")
    table.add_column("Variable")
    if evaluations is not None:
        table.add_column("Rel.", justify="right")
        table.add_column("Read.", justify="right")
        table.add_column("Dup.", justify="right")
        table.add_column("C/N/A/R", justify="center")
        table.add_column("Flags", style="red")

    by_text = {r.question: r for r in evaluations or []}
    for q in questions:
        row = [q.id, q.text, q.type.value, q.variable or "-"]
        if evaluations is not None:
            r = by_text.get(q.text)
            if r is None:
                row += ["-"] * 5
            else:
                s = r.llm_scores
                row += [
                    f"{r.variable_relevance:.2f}",
                    f"{r.readability:.0f}",
                    f"{r.max_duplicate_similarity:.2f}",
                    f"{s.clarity}/{s.neutrality}/{s.answerability}/{s.relevance}",
                    _flag_text(r),
                ]
        table.add_row(*row)
    return table


def print_evaluations(questions: Sequence[Question], evaluations: Sequence[EvaluationRecord]) -> None:
    """Print an evaluation-only report."""
    if _VERBOSE_JSON_OUTPUT:
        console.print_json(json.dumps([r.to_wire() for r in evaluations]))
        return
    console.print(questions_table(questions, evaluations))


def print_final_results(result: RegenerationResult) -> None:
    """Print the final question set and a summary panel."""
    if _VERBOSE_JSON_OUTPUT:
        console.print_json(json.dumps(result.to_wire()))
        return

    console.print(questions_table(result.questions, result.evaluations))

    summary = Table.grid(padding=(0, 2))
    summary.add_column(style="dim", justify="right")
    summary.add_column(style="cyan")
    summary.add_row("attempts", str(result.attempts_made))
    summary.add_row("regenerated", str(result.regenerated))
    summary.add_row("fallback", str(result.fallback_used))
    summary.add_row("issues", "-" if result.issue_count is None else str(result.issue_count))
    if result.evaluation_error:
        summary.add_row("evaluation error", f"[red]{result.evaluation_error}[/red]")
    console.print(Panel(summary, title="[bold green]result[/bold green]", title_align="left", border_style="green"))


def print_info(message: str) -> None:
    console.print(f"  [dim]{message}[/dim]")


def print_langsmith_status(enabled: bool) -> None:
    state = "[green]on[/green]" if enabled else "[dim]off[/dim]"
    console.print(f"  LangSmith tracing {state}")
