"""Ledger subcommand: stats, export, verify, pending, withdraw, stranded, retry."""

from __future__ import annotations

import asyncio

import typer

from wagerbot.errors import WagerError
from wagerbot.settlement.ledger import MarketLedger
from wagerbot.settlement.withdrawals import WithdrawalService
from wagerbot.storage.db import get_connection, init_schema
from wagerbot.storage.export import export_facts_to_parquet
from wagerbot.storage.ledger_log import count_facts, log_stats
from wagerbot.units import format_eth

app = typer.Typer(help="Ledger fact log, balances and withdrawals")


class ManualTransfer:
    """Transfer performed by the operator; confirmed interactively."""

    async def send(self, account: str, amount: int) -> str:
        typer.echo(f"Send {format_eth(amount, places=18)} ETH ({amount} wei) to {account}.")
        if not typer.confirm("Transfer completed?", default=False):
            raise RuntimeError("operator did not confirm the transfer")
        return "manual"


@app.command("stats")
def stats(ctx: typer.Context) -> None:
    """Show fact log statistics (counts, time range, by fact kind)."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        s = log_stats(conn)
        typer.echo(f"Total facts: {s['total_facts']}")
        typer.echo(f"Min recorded_at: {s.get('min_recorded_at')}")
        typer.echo(f"Max recorded_at: {s.get('max_recorded_at')}")
        for row in s["by_fact"]:
            typer.echo(f"  {row['fact']:<20} {row['count']}")
    finally:
        conn.close()


@app.command("export")
def export(
    ctx: typer.Context,
    market: str | None = typer.Option(None, "--market", "-m", help="Filter by market ID"),
    output: str = typer.Option("ledger.parquet", "--output", "-o", help="Output path"),
) -> None:
    """Export ledger facts to Parquet."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        count = export_facts_to_parquet(conn, output, market_id=market)
        typer.echo(f"Exported {count} facts to {output}")
    finally:
        conn.close()


@app.command("verify")
def verify(ctx: typer.Context) -> None:
    """Replay the fact log and check ledger invariants."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        ledger = MarketLedger.open(conn, policy=settings.ledger_policy())
        problems = ledger.check_invariants()
        facts = count_facts(conn)
    finally:
        conn.close()
    if problems:
        for p in problems:
            typer.echo(f"  {p}")
        typer.echo(f"{len(problems)} invariant violation(s)")
        raise typer.Exit(1)
    typer.echo(f"OK: {facts} facts replayed, invariants hold")


@app.command("pending")
def pending(ctx: typer.Context, account: str = typer.Argument(...)) -> None:
    """Show an account's claimable balance."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        ledger = MarketLedger.open(conn, policy=settings.ledger_policy())
        typer.echo(f"{account}: {format_eth(ledger.pending_withdrawal(account), places=18)} ETH")
    finally:
        conn.close()


@app.command("withdraw")
def withdraw(ctx: typer.Context, account: str = typer.Argument(...)) -> None:
    """Debit an account's pending balance and run the transfer."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        service = WithdrawalService(MarketLedger.open(conn, policy=settings.ledger_policy()), ManualTransfer())
        amount, ref = asyncio.run(service.withdraw(account))
        typer.echo(f"Withdrew {format_eth(amount, places=18)} ETH for {account} (ref {ref})")
    except WagerError as e:
        typer.echo(f"Error ({e.code}): {e.message}")
        raise typer.Exit(1)
    finally:
        conn.close()


@app.command("stranded")
def stranded(ctx: typer.Context) -> None:
    """List withdrawals debited but not transferred."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        rows = MarketLedger.open(conn, policy=settings.ledger_policy()).stranded_withdrawals()
    finally:
        conn.close()
    for s in rows:
        typer.echo(f"  #{s.withdrawal_seq}  {s.account}  {format_eth(s.amount, places=18)} ETH  {s.error}")
    typer.echo(f"Total: {len(rows)} stranded")


@app.command("retry")
def retry(ctx: typer.Context, withdrawal_seq: int = typer.Argument(..., help="Withdrawal fact seq")) -> None:
    """Retry the transfer of a stranded withdrawal."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        service = WithdrawalService(MarketLedger.open(conn, policy=settings.ledger_policy()), ManualTransfer())
        ref = asyncio.run(service.retry(withdrawal_seq))
        typer.echo(f"Recovered withdrawal #{withdrawal_seq} (ref {ref})")
    except WagerError as e:
        typer.echo(f"Error ({e.code}): {e.message}")
        raise typer.Exit(1)
    finally:
        conn.close()
