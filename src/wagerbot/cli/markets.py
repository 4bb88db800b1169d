"""Markets subcommand: create, info, list, bets, resolve."""

from __future__ import annotations

from datetime import datetime, timezone

import typer

from wagerbot.errors import WagerError
from wagerbot.settlement.ledger import MarketLedger
from wagerbot.storage.db import get_connection, init_schema
from wagerbot.units import format_eth

app = typer.Typer(help="Market administration and inspection")


def _open(settings):
    conn = get_connection(settings.db_path)
    init_schema(conn)
    return conn, MarketLedger.open(conn, policy=settings.ledger_policy())


def _fmt_ts(ts: int) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).strftime("%Y-%m-%d %H:%M UTC")


def _parse_outcome(value: str) -> bool:
    v = value.strip().lower()
    if v in ("agree", "true", "yes"):
        return True
    if v in ("disagree", "false", "no"):
        return False
    raise typer.BadParameter("outcome must be agree/true/yes or disagree/false/no")


@app.command("create")
def create(
    ctx: typer.Context,
    market_id: str = typer.Argument(..., help="Market id (conversation/root post id)"),
    prediction: str = typer.Argument(..., help="Prediction text"),
    days: int = typer.Option(None, "--days", "-d", help="Duration in days (default from config)"),
    creator: str = typer.Option("operator", "--creator", help="Creator account"),
) -> None:
    """Create a market by hand."""
    settings = ctx.obj["settings"]
    conn, ledger = _open(settings)
    try:
        market = ledger.create_market(market_id, prediction, days or settings.default_market_duration_days, creator)
        typer.echo(f"Created {market.market_id}, open until {_fmt_ts(market.deadline)}")
    except WagerError as e:
        typer.echo(f"Error ({e.code}): {e.message}")
        raise typer.Exit(1)
    finally:
        conn.close()


@app.command("info")
def info(ctx: typer.Context, market_id: str = typer.Argument(...)) -> None:
    """Show one market."""
    settings = ctx.obj["settings"]
    conn, ledger = _open(settings)
    try:
        m = ledger.get_market_info(market_id)
    except WagerError as e:
        typer.echo(f"Error ({e.code}): {e.message}")
        raise typer.Exit(1)
    finally:
        conn.close()
    typer.echo(f"Market: {m.market_id}")
    typer.echo(f"Prediction: {m.prediction_text}")
    typer.echo(f"Deadline: {_fmt_ts(m.deadline)}")
    if m.resolved:
        typer.echo(f"Resolved: {'AGREE' if m.outcome else 'DISAGREE'}")
    else:
        typer.echo("Resolved: no")
    typer.echo(f"Agree: {format_eth(m.total_agree)} ETH  Disagree: {format_eth(m.total_disagree)} ETH  Bets: {m.bet_count}")


@app.command("list")
def list_markets(
    ctx: typer.Context,
    open_only: bool = typer.Option(False, "--open", help="Show only unresolved markets"),
) -> None:
    """List markets in the ledger."""
    settings = ctx.obj["settings"]
    conn, ledger = _open(settings)
    try:
        rows = [m for m in ledger.list_markets() if not (open_only and m.resolved)]
        for m in rows:
            state = "resolved" if m.resolved else ("expired" if m.is_expired(ledger.now()) else "active")
            typer.echo(f"  {m.market_id[:20]:<20}  {state:<8}  {format_eth(m.total_pool):>10}  {m.prediction_text[:50]}")
        typer.echo(f"Total: {len(rows)} markets")
    finally:
        conn.close()


@app.command("bets")
def bets(
    ctx: typer.Context,
    market_id: str = typer.Argument(...),
    account: str = typer.Argument(..., help="Bettor account"),
) -> None:
    """Show one account's bets on a market."""
    settings = ctx.obj["settings"]
    conn, ledger = _open(settings)
    try:
        rows = ledger.get_user_bets(market_id, account)
    except WagerError as e:
        typer.echo(f"Error ({e.code}): {e.message}")
        raise typer.Exit(1)
    finally:
        conn.close()
    for b in rows:
        typer.echo(f"  {format_eth(b.amount)} ETH  {'AGREE' if b.position else 'DISAGREE'}")
    typer.echo(f"Total: {len(rows)} bets")


@app.command("resolve")
def resolve(
    ctx: typer.Context,
    market_id: str = typer.Argument(...),
    outcome: str = typer.Option(..., "--outcome", "-o", help="agree or disagree"),
) -> None:
    """Resolve an expired market as the configured resolver and credit payouts."""
    settings = ctx.obj["settings"]
    result_outcome = _parse_outcome(outcome)
    conn, ledger = _open(settings)
    try:
        result = ledger.resolve_market(market_id, result_outcome, caller=settings.resolver_account)
    except WagerError as e:
        typer.echo(f"Error ({e.code}): {e.message}")
        raise typer.Exit(1)
    finally:
        conn.close()
    if result.refunded:
        typer.echo("No winning stake: all bets refunded.")
    typer.echo(f"Credited {len(result.payouts)} account(s), {format_eth(result.total_paid)} ETH")
    typer.echo(f"Platform fee: {format_eth(result.fee)} ETH  Unassigned dust: {result.dust} wei")
