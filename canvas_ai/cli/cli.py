"""Canvas AI command-line client.

Runs the answering pipeline locally against the configured providers.

Usage:
    canvas-ai ask CANVAS_ID "환불 규정이 어떻게 되나요?"
    canvas-ai ask CANVAS_ID "..." --header "관리자 지시문" --json
"""

import asyncio
import json
from dataclasses import asdict

import typer
from loguru import logger
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from canvas_ai.config.settings import settings
from canvas_ai.core.logger import setup_logger, setup_logger_from_settings
from canvas_ai.rag.pipeline import build_orchestrator
from canvas_ai.rag.types import KnowledgeCitation, RAGAnswer

console = Console()

app = typer.Typer(
    name="canvas-ai",
    help="Canvas AI CLI - local answering pipeline runs",
    add_completion=False,
)


def _answer_payload(answer: RAGAnswer) -> dict:
    decision = answer.result.action_decision
    return {
        "content": answer.content,
        "provider": answer.provider,
        "action": decision.action.value if decision else None,
        "citations": [asdict(c) for c in answer.citations],
        "rag_used": asdict(answer.result.rag_used),
    }


def _print_answer(answer: RAGAnswer) -> None:
    decision = answer.result.action_decision
    subtitle = f"{decision.action.value} / {answer.provider}" if decision else answer.provider
    console.print(Panel(answer.content, title="Canvas AI", subtitle=subtitle, border_style="cyan"))

    if not answer.citations:
        console.print("[dim]No citations[/dim]")
        return

    table = Table(title="Citations")
    table.add_column("#", justify="right")
    table.add_column("Kind")
    table.add_column("Title")
    table.add_column("Source")
    for i, citation in enumerate(answer.citations, 1):
        if isinstance(citation, KnowledgeCitation):
            source = f"{citation.similarity * 100:.1f}%"
        else:
            source = citation.url
        table.add_row(str(i), citation.kind, citation.title, source)
    console.print(table)


@app.callback()
def main() -> None:
    """Canvas AI local tools."""


@app.command()
def ask(
    canvas_id: str = typer.Argument(..., help="Canvas whose knowledge is searched"),
    message: str = typer.Argument(..., help="User message"),
    header: str | None = typer.Option(None, "--header", help="Override the system prompt header"),
    as_json: bool = typer.Option(False, "--json", help="Print the answer as JSON"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging"),
) -> None:
    """Answer one message for a canvas."""
    if debug:
        setup_logger(level="DEBUG", log_file=settings.log_file)
    else:
        setup_logger_from_settings()

    try:
        orchestrator = build_orchestrator(settings)
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    logger.info("CLI ask", canvas_id=canvas_id)
    answer = asyncio.run(orchestrator.answer(canvas_id, message, system_header=header))

    if as_json:
        console.print_json(json.dumps(_answer_payload(answer), ensure_ascii=False, default=str))
    else:
        _print_answer(answer)


if __name__ == "__main__":
    app()
