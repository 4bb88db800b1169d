"""Bot subcommand: start, status."""

from __future__ import annotations

import asyncio
import signal
import sys
from pathlib import Path

import typer

from wagerbot.bot.router import CommandRouter
from wagerbot.ingestion.manager import MentionIngestor
from wagerbot.ingestion.twitter import TwitterFeed
from wagerbot.settlement.ledger import MarketLedger
from wagerbot.storage.cursor import load_cursor
from wagerbot.storage.db import get_connection, init_schema
from wagerbot.storage.ledger_log import log_stats

app = typer.Typer(help="Run the mention bot and show its status")


@app.command("start")
def start(ctx: typer.Context) -> None:
    """Poll mentions and settle commands until Ctrl+C (the current mention finishes first)."""
    settings = ctx.obj["settings"]
    if not settings.twitter_access_token:
        typer.echo("No access token. Set WAGERBOT_TWITTER_ACCESS_TOKEN or [twitter].access_token.")
        raise typer.Exit(1)
    conn = get_connection(settings.db_path)
    init_schema(conn)
    ledger = MarketLedger.open(conn, policy=settings.ledger_policy())
    feed = TwitterFeed(
        settings.twitter_access_token,
        api_base=settings.twitter_api_base,
        timeout=settings.twitter_timeout_sec,
        max_results=settings.mentions_page_size,
    )
    router = CommandRouter(
        ledger,
        feed,
        bot_username=settings.bot_username,
        min_bet=settings.min_bet,
        max_bet=settings.max_bet,
        default_duration_days=settings.default_market_duration_days,
    )
    ingestor = MentionIngestor(
        feed,
        router,
        policy=settings.backoff_policy(),
        conn=conn,
        bot_id=settings.bot_id,
        dispatch_delay_sec=settings.dispatch_delay_sec,
    )
    stop_event = asyncio.Event()

    def shutdown() -> None:
        stop_event.set()

    loop = asyncio.new_event_loop()
    if sys.platform != "win32":
        loop.add_signal_handler(signal.SIGINT, shutdown)
        loop.add_signal_handler(signal.SIGTERM, shutdown)
    try:
        typer.echo(f"Starting @{settings.bot_username} (Ctrl+C to stop)...")
        loop.run_until_complete(ingestor.run(stop_event=stop_event))
    except KeyboardInterrupt:
        pass
    finally:
        loop.run_until_complete(feed.aclose())
        loop.close()
        conn.close()
    typer.echo("Stopped.")


@app.command("status")
def status(ctx: typer.Context) -> None:
    """Show the mention cursor and ledger fact counts."""
    settings = ctx.obj["settings"]
    if not Path(settings.db_path).exists():
        typer.echo(f"No database at {settings.db_path}")
        raise typer.Exit(1)
    # the running bot holds the write lock
    conn = get_connection(settings.db_path, read_only=True)
    try:
        cursor = load_cursor(conn, settings.bot_id)
        stats = log_stats(conn)
        typer.echo(f"Bot: @{settings.bot_username}")
        typer.echo(f"Last dispatched mention: {cursor or '-'}")
        typer.echo(f"Ledger facts: {stats['total_facts']}")
        for row in stats["by_fact"]:
            typer.echo(f"  {row['fact']:<20} {row['count']}")
    finally:
        conn.close()
