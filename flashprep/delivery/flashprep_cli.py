"""
FlashPrep: Main CLI.

A Rich terminal interface for flashcard sets with adaptive test-prep.

Commands:
- flashprep list      - Show all sets
- flashprep create    - Create a set interactively
- flashprep edit      - Rename a set, change or append cards
- flashprep import    - Import a .flashstudy.json file
- flashprep export    - Export a set to a .flashstudy.json file
- flashprep delete    - Delete a set and its history
- flashprep study     - Flip through a set in random order
- flashprep prep      - Start an adaptive test-prep session
- flashprep stats     - Show mastery, history and weakest cards
- flashprep reset     - Clear stats and history for a set
- flashprep migrate   - Load a legacy sets file into an empty store
"""
from __future__ import annotations

import asyncio
import json
import sys
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer
from loguru import logger
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.table import Table

from config import get_settings
from flashprep.core.exceptions import FlashPrepError
from flashprep.delivery.card_set import Card, export_filename
from flashprep.delivery.state_store import SQLiteRecordStore
from flashprep.study.mastery_calculator import MasteryCalculator
from flashprep.study.review_session import RATING_LABELS, RATING_VALUES, ReviewFilter, ReviewSession
from flashprep.study.study_service import StudyService

# =============================================================================
# CLI Setup
# =============================================================================

app = typer.Typer(
    name="flashprep",
    help="FlashPrep: flashcards with adaptive test-prep",
    no_args_is_help=True,
)
console = Console()


# =============================================================================
# Styling
# =============================================================================

BAND_STYLES = {
    "strong": "green",
    "okay": "yellow",
    "weak": "red",
    "unreviewed": "dim",
}


def rating_color(value: float) -> str:
    if value >= 4:
        return "green"
    if value >= 2.5:
        return "yellow"
    return "red"


def stars(value: float) -> str:
    """Render a half-star rating, e.g. 3.5 -> '★★★½'."""
    full = int(value)
    return "★" * full + ("½" if value - full >= 0.5 else "")


def _service() -> StudyService:
    settings = get_settings()
    return StudyService(SQLiteRecordStore(settings.database_path), settings=settings)


def _run(coro):
    """Run a coroutine, reporting FlashPrep errors instead of raising them."""
    try:
        return asyncio.run(coro)
    except FlashPrepError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)


# =============================================================================
# Display Helpers
# =============================================================================

def display_card_side(text: str, image: str, title: str, border: str) -> None:
    content = text or ""
    if image:
        content = f"[dim][image: {image[:40]}][/dim]\n{content}".rstrip()
    console.print(Panel(content or "[dim](empty)[/dim]", title=title, title_align="left",
                        border_style=border, padding=(1, 2)))


def display_summary(session: ReviewSession) -> None:
    summary = session.summary
    if summary is None:
        return
    color = rating_color(summary.avg_rating or 0)
    bands = summary.ratings
    console.print("\n")
    console.print(Panel(
        f"[bold {color}]{summary.avg_rating}[/bold {color}] / 5 avg  (score {summary.score})\n\n"
        f"[red]{bands.low} weak[/red]  [yellow]{bands.mid} okay[/yellow]  "
        f"[green]{bands.high} strong[/green]\n\n"
        f"{MasteryCalculator.verdict_for(summary.avg_rating or 0)}",
        title="Session Complete",
        border_style=color,
    ))


# =============================================================================
# Set Commands
# =============================================================================

@app.command("list")
def list_sets() -> None:
    """Show all sets with their review coverage."""
    overviews = _run(_service().list_overviews())

    if not overviews:
        console.print("[dim]No sets yet. Create one with 'flashprep create' or import a file.[/dim]")
        return

    table = Table(title="Flash Sets")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="bold")
    table.add_column("Cards", justify="right")
    table.add_column("Reviewed", justify="right")

    for o in overviews:
        table.add_row(o.set_id, o.name, str(o.total), str(o.reviewed) if o.reviewed else "-")

    console.print(table)


def prompt_new_cards(start: int = 1) -> list[Card]:
    """Prompt for cards until both sides are left empty."""
    cards: list[Card] = []
    while True:
        console.print(f"\n[bold]Card {start + len(cards)}[/bold]")
        front = Prompt.ask("Front", default="", show_default=False)
        back = Prompt.ask("Back", default="", show_default=False)
        if not front.strip() and not back.strip():
            return cards
        cards.append(Card(front=front, back=back))


@app.command()
def create(name: str = typer.Argument(..., help="Name of the new set")) -> None:
    """Create a set by typing cards; leave front and back empty to finish."""
    console.print("[dim]Enter cards. Leave both sides empty to finish.[/dim]")
    cards = prompt_new_cards()

    card_set = _run(_service().create_set(name, cards))
    console.print(f"[green]Set created![/green] {card_set.name} ({card_set.total} cards, id {card_set.id})")


@app.command()
def edit(
    set_id: str = typer.Argument(..., help="Set to edit"),
    name: Optional[str] = typer.Option(None, "--name", "-n", help="New name (prompted if omitted)"),
) -> None:
    """
    Rename a set, change its cards, or append new ones.

    Press Enter to keep a side, or type '-' to clear it; cards left with
    no content are removed. Stats stay attached to card positions.
    """
    service = _service()
    card_set = _run(service.get_set(set_id))
    new_name = name if name is not None else Prompt.ask("Name", default=card_set.name)

    console.print("[dim]Enter keeps a side, '-' clears it.[/dim]")
    cards: list[Card] = []
    for i, card in enumerate(card_set.cards, start=1):
        console.print(f"\n[bold]Card {i}[/bold]")
        front = Prompt.ask("Front", default=card.front, show_default=bool(card.front))
        back = Prompt.ask("Back", default=card.back, show_default=bool(card.back))
        cards.append(replace(
            card,
            front="" if front.strip() == "-" else front,
            back="" if back.strip() == "-" else back,
        ))

    console.print("\n[dim]Add new cards. Leave both sides empty to finish.[/dim]")
    cards.extend(prompt_new_cards(start=len(cards) + 1))

    updated = _run(service.update_set(set_id, new_name, cards))
    console.print(f"[green]Set updated![/green] {updated.name} ({updated.total} cards)")


@app.command("import")
def import_set(path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Exported set file")) -> None:
    """Import a .flashstudy.json file as a new set."""
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        console.print(f"[red]Failed to read file: {e}[/red]")
        raise typer.Exit(1)

    card_set = _run(_service().import_set(payload))
    console.print(f"[green]Imported \"{card_set.name}\"![/green] id {card_set.id}")


@app.command()
def export(
    set_id: str = typer.Argument(..., help="Set to export"),
    out_dir: Optional[Path] = typer.Option(None, "--out", "-o", help="Output directory"),
) -> None:
    """Export a set to a .flashstudy.json file."""
    payload = _run(_service().export_set(set_id))
    target_dir = out_dir or get_settings().export_dir
    target_dir.mkdir(parents=True, exist_ok=True)
    target = target_dir / export_filename(payload["name"])
    target.write_text(json.dumps(payload), encoding="utf-8")
    console.print(f"[green]Set exported![/green] {target}")


@app.command()
def delete(
    set_id: str = typer.Argument(..., help="Set to delete"),
    confirm: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Delete a set together with its stats and session history."""
    service = _service()
    card_set = _run(service.get_set(set_id))

    if not confirm and not Confirm.ask(f"Delete \"{card_set.name}\"? This cannot be undone.", default=False):
        raise typer.Exit(0)

    if not _run(service.delete_set(set_id)):
        console.print("[red]Failed to delete set (storage error)[/red]")
        raise typer.Exit(1)
    console.print("[green]Set deleted[/green]")


@app.command()
def migrate(path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Legacy sets JSON file")) -> None:
    """Load a legacy array-of-sets file when no sets exist yet."""
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        console.print(f"[red]Failed to read file: {e}[/red]")
        raise typer.Exit(1)

    count = _run(_service().migrate_legacy_sets(payload))
    if count:
        console.print(f"[green]Migrated {count} sets[/green]")
    else:
        console.print("[yellow]Nothing migrated (store already has sets or file is empty)[/yellow]")


# =============================================================================
# Study Commands
# =============================================================================

@app.command()
def study(set_id: str = typer.Argument(..., help="Set to study")) -> None:
    """Flip through a set in random order. Nothing is recorded."""
    service = _service()
    card_set = _run(service.get_set(set_id))
    deck = _run(service.start_free_study(set_id))

    while True:
        index, total = deck.progress
        card = deck.current
        console.clear()
        console.print(f"[bold cyan]{card_set.name}[/bold cyan]  {index} / {total}")
        if deck.flipped:
            display_card_side(card.back, card.back_image, "Back", "green")
        else:
            display_card_side(card.front, card.front_image, "Front", "cyan")

        action = Prompt.ask(
            "[f]lip [n]ext [p]rev [r]estart [q]uit",
            choices=["f", "n", "p", "r", "q"],
            default="f" if not deck.flipped else "n",
        )
        if action == "f":
            deck.flip()
        elif action == "n" and not deck.next():
            console.print(f"\n[green]You reviewed all {total} card{'s' if total != 1 else ''}.[/green]")
            if not Confirm.ask("Study again?", default=False):
                break
            deck.restart()
        elif action == "p":
            deck.previous()
        elif action == "r":
            deck.restart()
        elif action == "q":
            break


@app.command()
def prep(
    set_id: str = typer.Argument(..., help="Set to practice"),
    review_filter: ReviewFilter = typer.Option(ReviewFilter.ALL, "--filter", "-f", help="Which cards to include"),
) -> None:
    """
    Start an adaptive test-prep session.

    Weak and unreviewed cards are drawn earlier more often. Each card is
    rated from 0.5 to 5 stars after revealing the answer.
    """
    _run(_prep_session(_service(), set_id, review_filter))


async def _prep_session(service: StudyService, set_id: str, review_filter: ReviewFilter) -> None:
    counts = await service.get_filter_counts(set_id)
    console.print(
        f"\n[bold]Test Prep[/bold]  all {counts.all}  |  weak {counts.weak}  |  unreviewed {counts.unreviewed}"
    )

    session = await service.start_session(set_id, review_filter)
    choices = [f"{v:g}" for v in RATING_VALUES]

    try:
        while not session.is_finished:
            progress = service.session_progress(session)
            candidate = session.current
            console.clear()
            console.print(f"[bold cyan]{session.set_name}[/bold cyan]  {progress.index} / {progress.total}")
            display_card_side(candidate.card.front, candidate.card.front_image, "Front", "cyan")

            Prompt.ask("\n[dim]Press Enter to reveal[/dim]", default="", show_default=False)
            service.reveal(session)
            display_card_side(candidate.card.back, candidate.card.back_image, "Back", "green")

            console.print("[dim]" + "  ".join(f"{v:g}={RATING_LABELS[v]}" for v in RATING_VALUES[1::2]) + "[/dim]")
            value = float(Prompt.ask("Stars", choices=choices, show_choices=False))
            outcome = await service.rate(session, value)
            if not outcome.persisted:
                console.print("[yellow]Could not save this rating; it will be retried.[/yellow]")

    except KeyboardInterrupt:
        console.print("\n\n[yellow]Session interrupted.[/yellow]")

    if session.pending_writes:
        remaining = await session.flush_pending()
        if remaining and Confirm.ask(f"{remaining} results are unsaved. Retry?", default=True):
            remaining = await session.flush_pending()
        if remaining:
            console.print(f"[red]{remaining} results could not be saved (storage error)[/red]")

    display_summary(session)


# =============================================================================
# Stats Commands
# =============================================================================

@app.command()
def stats(set_id: str = typer.Argument(..., help="Set to report on")) -> None:
    """Show mastery, bucket breakdown, session history and weakest cards."""
    _run(_show_stats(_service(), set_id))


async def _show_stats(service: StudyService, set_id: str) -> None:
    settings = get_settings()
    card_set = await service.get_set(set_id)
    mastery = await service.get_mastery(set_id)
    history = await service.get_session_history(set_id)
    details = await service.get_card_details(set_id)

    color = "green" if mastery.percent >= 80 else "yellow" if mastery.percent >= 50 else "red"
    console.print(f"\n[bold cyan]{card_set.name}[/bold cyan]")
    console.print("=" * 40)
    console.print(f"Mastery: [bold {color}]{mastery.percent}%[/bold {color}]\n")

    breakdown = Table(show_header=False, box=None)
    breakdown.add_column("Bucket", style="dim")
    breakdown.add_column("Cards", style="bold", justify="right")
    breakdown.add_row("[green]Strong (4-5)[/green]", str(mastery.strong))
    breakdown.add_row("[yellow]Okay (2.5-3.5)[/yellow]", str(mastery.okay))
    breakdown.add_row("[red]Weak (0.5-2)[/red]", str(mastery.weak))
    breakdown.add_row("Unreviewed", str(mastery.unreviewed))
    console.print(breakdown)

    console.print("\n[bold]Session History[/bold]")
    if not history:
        console.print("[dim]No sessions yet. Start a test prep to see history.[/dim]")
    else:
        table = Table()
        table.add_column("Date")
        table.add_column("Avg", justify="right")
        table.add_column("Strong", justify="right")
        table.add_column("Okay", justify="right")
        table.add_column("Weak", justify="right")
        table.add_column("Cards", justify="right")
        for row in history[: settings.history_limit]:
            c = rating_color(row.avg_rating)
            table.add_row(
                datetime.fromtimestamp(row.date / 1000).strftime("%b %d"),
                f"[{c}]{row.avg_rating}/5[/{c}]",
                f"{row.high_share * 100:.0f}%",
                f"{row.mid_share * 100:.0f}%",
                f"{row.low_share * 100:.0f}%",
                str(row.total_cards),
            )
        console.print(table)

    console.print("\n[bold]Cards (weakest first)[/bold]")
    cards = Table()
    cards.add_column("#", justify="right", style="dim")
    cards.add_column("Card")
    cards.add_column("Rating")
    cards.add_column("Reviews", justify="right")
    cards.add_column("Streak", justify="right")
    for d in details:
        style = BAND_STYLES[d.band]
        if d.stat is None:
            cards.add_row(str(d.index + 1), f"[{style}]{d.label}[/{style}]", "[dim]Unreviewed[/dim]", "", "")
            continue
        streak = str(d.stat.streak) if d.stat.streak >= settings.streak_display_min else ""
        cards.add_row(
            str(d.index + 1),
            f"[{style}]{d.label}[/{style}]",
            f"[{style}]{stars(d.stat.rating)}[/{style}]",
            str(d.stat.total_reviews),
            streak,
        )
    console.print(cards)


@app.command()
def reset(
    set_id: str = typer.Argument(..., help="Set whose stats to clear"),
    confirm: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Clear all card stats and session history for a set."""
    service = _service()
    card_set = _run(service.get_set(set_id))

    msg = f"Reset all stats and session history for \"{card_set.name}\"? This cannot be undone."
    if not confirm and not Confirm.ask(msg, default=False):
        raise typer.Exit(0)

    if not _run(service.reset_stats(set_id)):
        console.print("[red]Failed to reset stats (storage error)[/red]")
        raise typer.Exit(1)
    console.print("[green]Stats reset[/green]")


# =============================================================================
# Entry Point
# =============================================================================

def main() -> None:
    """CLI entry point."""
    # Configure logging
    logger.remove()
    logger.add(
        sys.stderr,
        level=get_settings().log_level,
        format="<level>{message}</level>",
    )

    app()


if __name__ == "__main__":
    main()
