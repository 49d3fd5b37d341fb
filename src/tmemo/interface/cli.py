"""tmemo CLI: root commands and subgroup registration."""

import dataclasses
import json
import logging
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Annotated

import typer

from tmemo.application.config import AppConfig, resolve_config
from tmemo.application.reconciler import ReconcileResult, reconcile
from tmemo.application.scheduler import FsrsScheduler
from tmemo.application.session import ReviewSession, utc_now
from tmemo.application.stats import accuracy, find_cards, forecast, grade_counts, summarize
from tmemo.application.vault_service import ScanResult, VaultService
from tmemo.application.workload import reschedule
from tmemo.domain.exceptions import TmemoError
from tmemo.domain.models import CardState, Deck
from tmemo.infrastructure.deck_file import JsonDeckRepository
from tmemo.interface.terminal import TerminalOperator, format_interval

# ---------------------------------------------------------------------------
# Root app
# ---------------------------------------------------------------------------

app = typer.Typer(
    help="tmemo: spaced-repetition flashcards from your markdown notes.",
    rich_markup_mode="rich",
)

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s:%(name)s:%(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Register subgroups
# ---------------------------------------------------------------------------

orphans_app = typer.Typer(help="Cards whose source text is gone.", no_args_is_help=True)
app.add_typer(orphans_app, name="orphans")

config_app = typer.Typer(help="Manage tmemo configuration.", no_args_is_help=True)
app.add_typer(config_app, name="config")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _set_verbosity(verbose: int) -> None:
    if verbose <= 0:
        level = logging.WARNING
    elif verbose == 1:
        level = logging.INFO
    else:
        level = logging.DEBUG
    logging.getLogger("tmemo").setLevel(level)


def _config(ctx: typer.Context, **overrides) -> AppConfig:
    obj = ctx.obj or {}
    return resolve_config({"root": obj.get("root"), "verbose": obj.get("verbose"), **overrides})


@contextmanager
def _exit_on_error():
    """Report tmemo errors as a red message and exit code 1."""
    try:
        yield
    except TmemoError as e:
        typer.secho(f"Error: {e}", fg="red", err=True)
        raise typer.Exit(1) from None


def _scan_and_reconcile(
    config: AppConfig, repo: JsonDeckRepository
) -> tuple[Deck, ScanResult, ReconcileResult]:
    deck = repo.load()
    scan = VaultService(config.root).scan()
    result = reconcile(deck, scan.candidates)
    if result.changed:
        repo.save(result.deck)
    return result.deck, scan, result


def _report_update(scan: ScanResult, result: ReconcileResult) -> None:
    typer.echo(
        f"Scanned {scan.files_scanned} files: {len(result.added)} new, "
        f"{len(result.orphaned)} orphaned, {len(result.restored)} restored, "
        f"{len(result.updated)} updated."
    )
    if scan.warnings:
        typer.secho(f"{len(scan.warnings)} malformed cards skipped:", fg="yellow")
        for warning in scan.warnings:
            typer.echo(f"  {warning}")
    if result.collisions:
        typer.secho(f"{len(result.collisions)} duplicate cards ignored:", fg="yellow")
        for collision in result.collisions:
            typer.echo(f"  {collision}")
    for path, reason in scan.files_skipped:
        typer.secho(f"Skipped {path}: {reason}", fg="yellow")


def _describe(card: CardState) -> str:
    due = card.due.date().isoformat() if card.due else "-"
    front = " ".join(card.front.split())
    if len(front) > 60:
        front = front[:57] + "..."
    state = "Buried" if card.buried else card.state.value
    return f"{card.id}  {state:<10}  due {due:<10}  {card.source or '-'}  {front}"


def _review(
    config: AppConfig,
    limit: int | None,
    update: bool,
) -> None:
    repo = JsonDeckRepository(config.deck_path)
    if update:
        deck, scan, result = _scan_and_reconcile(config, repo)
        _report_update(scan, result)
    else:
        deck = repo.load()

    session = ReviewSession(
        deck,
        FsrsScheduler(config.fsrs_parameters()),
        repo,
        track_history=config.track_history,
        new_limit=config.new_limit,
        smooth_load=config.smooth_load,
    )
    if not session.due_cards():
        typer.secho("Nothing to review.", fg="green")
        return

    summary = session.run(TerminalOperator(), limit=limit)
    typer.echo("")
    typer.secho(
        f"Reviewed {summary.reviewed} cards ({summary.again} again, "
        f"{summary.buried} buried), {summary.remaining} left.",
        fg="green",
    )


# ---------------------------------------------------------------------------
# Global callback
# ---------------------------------------------------------------------------


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    root: Annotated[
        Path | None,
        typer.Option(
            "--root", "-r", help="Deck root directory. Defaults to 'root' in config, or CWD."
        ),
    ] = None,
    verbose: Annotated[
        int,
        typer.Option(
            "--verbose", "-v", count=True, help="Increase verbosity. Repeat for more detail."
        ),
    ] = 0,
):
    """
    Scan the notes for cards, update the deck and review what is due.

    Run without a command to do all three.
    """
    ctx.ensure_object(dict)
    ctx.obj["root"] = root
    ctx.obj["verbose"] = verbose
    _set_verbosity(verbose)

    if ctx.invoked_subcommand is None:
        with _exit_on_error():
            _review(_config(ctx), limit=None, update=True)


# ---------------------------------------------------------------------------
# Root commands
# ---------------------------------------------------------------------------


@app.command()
def init(ctx: typer.Context):
    """[bold green]Initialize[/bold green] a deck in the root directory and import its cards."""
    with _exit_on_error():
        config = _config(ctx)
        repo = JsonDeckRepository(config.deck_path)
        repo.initialize()
        deck, scan, result = _scan_and_reconcile(config, repo)
    typer.secho(f"Initialized {config.deck_path} with {len(deck)} cards.", fg="green")
    if scan.warnings or result.collisions:
        _report_update(scan, result)


@app.command()
def update(ctx: typer.Context):
    """Re-scan the notes and merge new, changed and removed cards into the deck."""
    with _exit_on_error():
        config = _config(ctx)
        _, scan, result = _scan_and_reconcile(config, JsonDeckRepository(config.deck_path))
    _report_update(scan, result)


@app.command()
def review(
    ctx: typer.Context,
    limit: Annotated[
        int | None, typer.Option("--limit", "-n", min=1, help="Review at most this many cards.")
    ] = None,
    new_limit: Annotated[
        int | None, typer.Option(min=0, help="Introduce at most this many new cards.")
    ] = None,
    scan: Annotated[
        bool, typer.Option("--scan/--no-scan", help="Update the deck from the notes first.")
    ] = True,
):
    """[bold green]Review[/bold green] the cards that are due."""
    with _exit_on_error():
        config = _config(ctx, new_limit=new_limit)
        _review(config, limit=limit, update=scan)


@app.command()
def find(
    ctx: typer.Context,
    query: Annotated[str, typer.Argument(help="Words that must all appear in the card.")],
    include_orphans: Annotated[
        bool, typer.Option("--orphans", help="Also search orphaned cards.")
    ] = False,
):
    """Search cards by text."""
    with _exit_on_error():
        config = _config(ctx)
        deck = JsonDeckRepository(config.deck_path).load()

    matches = [c for c in find_cards(deck, query) if include_orphans or not c.orphaned]
    if not matches:
        typer.secho("No cards found.", fg="yellow")
        return
    for card in matches:
        typer.echo(_describe(card))


@app.command()
def stats(
    ctx: typer.Context,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
):
    """Show card counts, review accuracy and recall."""
    with _exit_on_error():
        config = _config(ctx)
        deck = JsonDeckRepository(config.deck_path).load()
        now = utc_now()
        summary = summarize(deck, FsrsScheduler(config.fsrs_parameters()), now)
        overall, by_day = accuracy(deck, now)
        grades = grade_counts(deck)

    if json_output:
        typer.echo(
            json.dumps(
                {
                    "total": summary.total,
                    "by_state": {s.value: n for s, n in summary.by_state.items()},
                    "due": summary.due,
                    "new": summary.new,
                    "orphaned": summary.orphaned,
                    "buried": summary.buried,
                    "reviews": summary.reviews,
                    "grades": {g.label: n for g, n in grades.items()},
                    "accuracy": overall.rate,
                    "mean_retrievability": summary.mean_retrievability,
                },
                indent=2,
            )
        )
        return

    typer.echo(f"Cards: {summary.total}  Due: {summary.due}  New: {summary.new}")
    typer.echo(
        "  ".join(f"{status.value}: {count}" for status, count in summary.by_state.items())
    )
    if summary.orphaned:
        typer.secho(f"Orphaned: {summary.orphaned}", fg="yellow")
    if summary.buried:
        typer.echo(f"Buried: {summary.buried}")
    if summary.mean_retrievability is not None:
        typer.echo(f"Mean recall probability: {summary.mean_retrievability:.1%}")

    if overall.total == 0:
        typer.echo("No reviews logged yet.")
        return
    typer.echo(f"Accuracy: {overall.rate:.1%} ({overall.correct}/{overall.total})")
    for bucket in by_day[:14]:
        label = "today" if bucket.days_ago == 0 else f"{bucket.days_ago}d ago"
        typer.echo(f"  {label:<8} {bucket.rate:.1%} ({bucket.correct}/{bucket.total})")


@app.command("forecast")
def forecast_cmd(
    ctx: typer.Context,
    days: Annotated[int, typer.Option("--days", "-d", min=1, help="Days to simulate.")] = 30,
    seed: Annotated[int, typer.Option(help="Random seed for simulated answers.")] = 0,
):
    """Simulate upcoming days of reviews and print the expected workload."""
    with _exit_on_error():
        config = _config(ctx)
        deck = JsonDeckRepository(config.deck_path).load()
        scheduler = FsrsScheduler(config.fsrs_parameters())
        counts = forecast(deck, scheduler, utc_now(), days, seed=seed)
    for day, count in enumerate(counts):
        typer.echo(f"{day}\t{count}")


@app.command()
def intervals(
    ctx: typer.Context,
    card_id: Annotated[str, typer.Argument(help="Card id as shown by 'tmemo find'.")],
):
    """Show the interval each answer would give a card right now."""
    with _exit_on_error():
        config = _config(ctx)
        deck = JsonDeckRepository(config.deck_path).load()
        if card_id not in deck:
            typer.secho(f"No card {card_id}.", fg="red", err=True)
            raise typer.Exit(1)
        previews = FsrsScheduler(config.fsrs_parameters()).preview(deck[card_id], utc_now())
    for grade, days in previews.items():
        typer.echo(f"{grade.label}: {format_interval(days)}")


@app.command()
def schedule(
    ctx: typer.Context,
    days: Annotated[
        int, typer.Option("--days", "-d", min=1, help="Days to spread reviews over.")
    ],
    max_cards: Annotated[
        int, typer.Option("--max-cards", "-m", min=1, help="Target reviews per day.")
    ] = 1,
):
    """Spread the reviews due in the next DAYS days so no day is overloaded."""
    with _exit_on_error():
        config = _config(ctx)
        repo = JsonDeckRepository(config.deck_path)
        deck, moved = reschedule(repo.load(), utc_now(), days, max_cards)
        if moved:
            repo.save(deck)
    typer.secho(f"Moved {len(moved)} reviews over the next {days} days.", fg="green")


@app.command()
def unbury(
    ctx: typer.Context,
    card_ids: Annotated[
        list[str] | None, typer.Argument(help="Cards to unbury. Defaults to all buried cards.")
    ] = None,
):
    """Return buried cards to the review queue."""
    with _exit_on_error():
        config = _config(ctx)
        repo = JsonDeckRepository(config.deck_path)
        deck = repo.load()
        wanted = set(card_ids or [])
        missing = sorted(wanted - {card.id for card in deck})
        if missing:
            typer.secho(f"No card {', '.join(missing)}.", fg="red", err=True)
            raise typer.Exit(1)

        buried = [c for c in deck if c.buried and (not wanted or c.id in wanted)]
        for card in buried:
            deck.put(dataclasses.replace(card, buried=False))
        if buried:
            repo.save(deck)
    typer.secho(f"Unburied {len(buried)} cards.", fg="green")


# ---------------------------------------------------------------------------
# Orphans subgroup
# ---------------------------------------------------------------------------


@orphans_app.command("list")
def orphans_list(ctx: typer.Context):
    """List cards whose text no longer appears in any note."""
    with _exit_on_error():
        config = _config(ctx)
        deck = JsonDeckRepository(config.deck_path).load()

    orphans = deck.orphans()
    if not orphans:
        typer.secho("No orphaned cards.", fg="green")
        return
    for card in orphans:
        typer.echo(_describe(card))
    typer.echo(f"{len(orphans)} orphaned cards.")


@orphans_app.command("prune")
def orphans_prune(
    ctx: typer.Context,
    force: Annotated[
        bool, typer.Option("--force", "-f", help="Bypass confirmation.")
    ] = False,
):
    """Delete orphaned cards and their review history from the deck."""
    with _exit_on_error():
        config = _config(ctx)
        repo = JsonDeckRepository(config.deck_path)
        deck = repo.load()
        orphans = deck.orphans()
        if not orphans:
            typer.secho("No orphaned cards.", fg="green")
            return

        if not force:
            typer.confirm(
                f"Delete {len(orphans)} orphaned cards and their history?", abort=True
            )
        for card in orphans:
            deck.remove(card.id)
        repo.save(deck)

    logger.info(f"Pruned {len(orphans)} orphaned cards")
    typer.secho(f"Deleted {len(orphans)} orphaned cards.", fg="green")


# ---------------------------------------------------------------------------
# Config subgroup
# ---------------------------------------------------------------------------


@config_app.command("show")
def config_show(ctx: typer.Context):
    """Display final resolved configuration."""
    with _exit_on_error():
        config = _config(ctx)
    d = {k: str(v) if isinstance(v, Path) else v for k, v in config.model_dump().items()}
    d["deck_path"] = str(config.deck_path)
    typer.echo(json.dumps(d, indent=2))
