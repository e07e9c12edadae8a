"""
CLI interface for Media Ledger.

Provides command-line access to estimation and ledger administration.
"""

import logging
import sys
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from media_ledger.config.loader import load_pricing_manifest
from media_ledger.core.content import PlainText, SubtitleDocument
from media_ledger.core.estimator import RunItem, UsageEstimate, UsageEstimator
from media_ledger.core.ledger import Ledger
from media_ledger.core.manifest import DEFAULT_MANIFEST, PricingManifest
from media_ledger.storage.db import DEFAULT_DB_PATH
from media_ledger.storage.models import LedgerSnapshot
from media_ledger.storage.repository import initialize_schema

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

DB_OPTION = typer.Option(DEFAULT_DB_PATH, "--db", help="Path to the ledger SQLite database")
CONFIG_OPTION = typer.Option(None, "--config", "-c", help="YAML pricing manifest (defaults to built-in)")


def _load_manifest(config: Optional[str]) -> PricingManifest:
    if not config:
        return DEFAULT_MANIFEST
    return load_pricing_manifest(config)


def _open_ledger(db: str, config: Optional[str]) -> Ledger:
    initialize_schema(db)
    return Ledger(db_path=db, manifest=_load_manifest(config))


def _read_content(text: Optional[str], file: Optional[str]):
    """Text from --text, or a file (.srt files are treated as subtitles)."""
    if text:
        return PlainText(text)
    if not file:
        return None
    path = Path(file)
    raw = path.read_text(encoding="utf-8")
    if path.suffix.lower() == ".srt":
        return SubtitleDocument(raw)
    return PlainText(raw)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging")
):
    """Media Ledger CLI."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if ctx.invoked_subcommand is None:
        console.print("Media Ledger - Use --help to see available commands")


@app.command()
def init(db: str = DB_OPTION):
    """Initialize the ledger database."""
    try:
        initialize_schema(db)
        console.print("[green]✓[/] Database initialized successfully")
        sys.exit(EXIT_CODE_PASS)
    except Exception as e:
        console.print(f"[red]Error initializing database:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def manifest(config: Optional[str] = CONFIG_OPTION):
    """Show the pricing manifest: models, packs and conversion rates."""
    try:
        m = _load_manifest(config)
    except Exception as e:
        console.print(f"[red]Error loading manifest:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    console.print(f"\n[bold]Pricing version:[/bold] {m.version}")
    console.print(f"Media tokens per USD: {m.tokens_per_usd}")
    console.print(f"Quantum: {m.quantum_seconds}s, minimum billable: {m.min_billable_seconds}s")

    models = Table(title="Transcription models")
    models.add_column("Model")
    models.add_column("Label")
    models.add_column("Tokens/min", justify="right")
    for model in m.models:
        models.add_row(model.id, model.label, str(model.tokens_per_minute))
    console.print(models)

    if m.packs:
        packs = Table(title="Token packs")
        packs.add_column("Pack")
        packs.add_column("Tokens", justify="right")
        packs.add_column("Price", justify="right")
        for pack in m.packs:
            packs.add_row(pack.id, str(pack.tokens), f"${pack.usd}")
        console.print(packs)
    sys.exit(EXIT_CODE_PASS)


@app.command("estimate-transcription")
def estimate_transcription(
    duration: List[float] = typer.Option(..., "--duration", "-d", help="Item duration in seconds (repeatable)"),
    model: str = typer.Option("deepgram_nova3", "--model", "-m", help="Transcription model id"),
    config: Optional[str] = CONFIG_OPTION
):
    """Estimate media tokens for transcribing one or more items."""
    try:
        m = _load_manifest(config)
    except Exception as e:
        console.print(f"[red]Error loading manifest:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    if m.get_model(model) is None:
        console.print(f"[yellow]Unknown model '{model}'; it is not priced[/]")

    estimate = UsageEstimator(m).transcription([RunItem(d) for d in duration], model)
    _display_estimate("Transcription", estimate)
    sys.exit(EXIT_CODE_PASS)


@app.command("estimate-translation")
def estimate_translation(
    lang: List[str] = typer.Option(..., "--lang", "-l", help="Target language code (repeatable)"),
    text: Optional[str] = typer.Option(None, "--text", "-t", help="Transcript text"),
    file: Optional[str] = typer.Option(None, "--file", "-f", help="Transcript file (.txt or .srt)"),
    duration: Optional[float] = typer.Option(None, "--duration", "-d", help="Media duration when no transcript exists"),
    config: Optional[str] = CONFIG_OPTION
):
    """Estimate media tokens for translating a transcript."""
    try:
        m = _load_manifest(config)
        content = _read_content(text, file)
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    estimate = UsageEstimator(m).translation(content, lang, duration_seconds=duration)
    _display_estimate("Translation", estimate)
    sys.exit(EXIT_CODE_PASS)


@app.command("estimate-summarization")
def estimate_summarization(
    text: Optional[str] = typer.Option(None, "--text", "-t", help="Transcript text"),
    file: Optional[str] = typer.Option(None, "--file", "-f", help="Transcript file (.txt or .srt)"),
    duration: Optional[float] = typer.Option(None, "--duration", "-d", help="Media duration when no transcript exists"),
    config: Optional[str] = CONFIG_OPTION
):
    """Estimate media tokens for summarizing a transcript."""
    try:
        m = _load_manifest(config)
        content = _read_content(text, file)
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    estimate = UsageEstimator(m).summarization(content, duration_seconds=duration)
    _display_estimate("Summarization", estimate)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def tokens(
    user_id: str = typer.Argument(..., help="Account id"),
    provider: Optional[str] = typer.Option(None, "--provider", "-p", help="Login provider (e.g. google)"),
    db: str = DB_OPTION,
    config: Optional[str] = CONFIG_OPTION
):
    """Show an account's balance, bootstrapping its guaranteed minimum first."""
    try:
        ledger = _open_ledger(db, config)
        snapshot = ledger.bootstrap(user_id, provider=provider)
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    _display_snapshot(snapshot)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def grant(
    user_id: str = typer.Argument(..., help="Account id"),
    amount: int = typer.Argument(..., help="Media tokens to add"),
    ref_type: str = typer.Option("manual_grant", "--ref-type", help="Ledger reference type"),
    ref_id: Optional[str] = typer.Option(None, "--ref-id", help="Ledger reference id"),
    db: str = DB_OPTION,
    config: Optional[str] = CONFIG_OPTION
):
    """Grant media tokens to an account."""
    try:
        ledger = _open_ledger(db, config)
        snapshot = ledger.grant(user_id, amount, ref_type=ref_type, ref_id=ref_id,
                                metadata={"source": "cli"})
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    console.print(f"[green]✓[/] Granted {amount} media tokens to {user_id}")
    _display_snapshot(snapshot)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def history(
    user_id: str = typer.Argument(..., help="Account id"),
    limit: int = typer.Option(20, "--limit", "-n", help="Maximum entries to show"),
    db: str = DB_OPTION
):
    """Show an account's ledger entries, newest first."""
    try:
        initialize_schema(db)
        entries = Ledger(db_path=db).entries(user_id, limit=limit)
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    if not entries:
        console.print(f"\n[dim]No ledger entries for {user_id}.[/]")
        sys.exit(EXIT_CODE_PASS)

    table = Table(title=f"Ledger for {user_id}")
    table.add_column("When")
    table.add_column("Kind")
    table.add_column("Delta", justify="right")
    table.add_column("Reference")
    for entry in entries:
        reference = entry.ref_type + (f":{entry.ref_id}" if entry.ref_id else "")
        table.add_row(
            entry.created_at.isoformat() if entry.created_at else "",
            entry.kind.value,
            f"{entry.delta:+d}",
            reference,
        )
    console.print(table)
    sys.exit(EXIT_CODE_PASS)


def _display_estimate(title: str, estimate: Optional[UsageEstimate]):
    """Display an estimate, or why there is none."""
    console.print(f"\n[bold]{title} estimate[/bold]")
    console.print("-" * 40)
    if estimate is None:
        console.print("[yellow]Estimate unavailable[/] (no transcript text and no media duration)")
        return
    if estimate.output_units:
        console.print(f"Input units: {estimate.input_units}")
        console.print(f"Output units: {estimate.output_units}")
    console.print(f"Billable units: {estimate.billable_units}")
    console.print(f"Cost: {estimate.usd_formatted}")
    console.print(f"Media tokens: {estimate.media_tokens}")


def _display_snapshot(snapshot: LedgerSnapshot):
    console.print(f"\n[bold]Account:[/bold] {snapshot.user_id}")
    console.print(f"Balance: {snapshot.balance}")
    console.print(f"Reserved: {snapshot.reserved}")
    console.print(f"Available: {snapshot.available}")
    console.print(f"Bootstrap minimum: {snapshot.bootstrap_min}")
    console.print(f"Pricing version: {snapshot.pricing_version}")


if __name__ == "__main__":
    app()
