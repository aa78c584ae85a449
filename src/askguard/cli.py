"""CLI for askguard."""

import asyncio
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from askguard.auth.service import TokenManager
from askguard.clock import SystemClock
from askguard.config import GuardConfig
from askguard.errors import AskGuardError, AuthError, RefreshFailedError
from askguard.notifications import Notifier
from askguard.quota.governor import QuotaGovernor
from askguard.quota.limits import MODELS, RATE_LIMITS, TIERS, get_tier_info
from askguard.scheduler import AsyncioTimers, BackgroundScheduler
from askguard.storage import JsonFileStorage

app = typer.Typer(name='askguard', help='askguard - session keep-alive and local quota guard')
console = Console()

StateFileOption = typer.Option(None, '--state-file', help='State file (default: ~/.askguard/state.json)')


class ConsoleNotifier(Notifier):
    def notify(self, title: str, message: str) -> None:
        console.print(f'[bold yellow]{title}:[/bold yellow] {message}')


def _config(state_file: Optional[Path]) -> GuardConfig:
    return GuardConfig.from_env(state_file=state_file)


def _token_manager(config: GuardConfig) -> TokenManager:
    return TokenManager(JsonFileStorage(config.state_file), config, clock=SystemClock(config.timezone))


def _format_ms(epoch_ms: int) -> str:
    return datetime.fromtimestamp(epoch_ms / 1000).strftime('%Y-%m-%d %H:%M:%S')


@app.command()
def login(
    email: str = typer.Option(..., '--email', '-e', prompt=True, help='Account email'),
    password: str = typer.Option(..., '--password', '-p', prompt=True, hide_input=True, help='Account password'),
    state_file: Optional[Path] = StateFileOption,
):
    """Log in and store the session."""
    config = _config(state_file)

    async def _run():
        async with _token_manager(config) as tokens:
            return await tokens.login(email, password)

    try:
        session = asyncio.run(_run())
    except AuthError as e:
        console.print(f'[bold red]Login failed:[/bold red] {e}')
        sys.exit(1)

    console.print(f'[green]✓[/green] Logged in as {email}')
    console.print(f'  Token valid until {_format_ms(session.expiresAt)}')


@app.command()
def logout(state_file: Optional[Path] = StateFileOption):
    """Log out and delete the stored session."""
    config = _config(state_file)

    async def _run():
        async with _token_manager(config) as tokens:
            await tokens.logout()

    asyncio.run(_run())
    console.print('[green]✓[/green] Logged out')


@app.command()
def status(state_file: Optional[Path] = StateFileOption):
    """Show the stored session."""
    config = _config(state_file)

    async def _run():
        async with _token_manager(config) as tokens:
            return await tokens.load_session(), tokens.clock.now_ms()

    session, now_ms = asyncio.run(_run())
    if session is None:
        console.print('[yellow]Not logged in[/yellow]')
        raise typer.Exit(code=1)

    table = Table(title='Session')
    table.add_column('Field', style='cyan')
    table.add_column('Value')

    remaining_s = session.expires_in_ms(now_ms) // 1000
    if remaining_s > 0:
        table.add_row('Token', f'[green]valid[/green] for {remaining_s}s')
    else:
        table.add_row('Token', '[red]expired[/red]')
    table.add_row('Expires at', _format_ms(session.expiresAt))
    if session.user:
        table.add_row('User', session.user.name or session.user.email)
        table.add_row('Email', session.user.email)
        table.add_row('Credits', str(session.user.credits))
        table.add_row('Balance', f'{session.user.balance:,.2f}')
        if session.user.subscriptionStatus:
            table.add_row('Subscription', session.user.subscriptionStatus)
    console.print(table)


@app.command()
def refresh(state_file: Optional[Path] = StateFileOption):
    """Refresh the access token now."""
    config = _config(state_file)

    async def _run():
        async with _token_manager(config) as tokens:
            return await tokens.refresh()

    try:
        session = asyncio.run(_run())
    except RefreshFailedError as e:
        if e.fatal:
            console.print(f'[bold red]Session expired:[/bold red] {e}')
            console.print('Run [bold]askguard login[/bold] to log in again')
        else:
            console.print(f'[yellow]Refresh failed, try again later:[/yellow] {e}')
        sys.exit(1)
    except AskGuardError as e:
        console.print(f'[bold red]Error:[/bold red] {e}')
        sys.exit(1)

    console.print(f'[green]✓[/green] Token refreshed, valid until {_format_ms(session.expiresAt)}')


@app.command()
def usage(
    tier: Optional[str] = typer.Option(None, '--tier', '-t', help='API tier (default: ASKGUARD_TIER)'),
    model: Optional[str] = typer.Option(None, '--model', '-m', help='Model (default: ASKGUARD_MODEL)'),
    reset: bool = typer.Option(False, '--reset', help='Reset all local counters'),
    state_file: Optional[Path] = StateFileOption,
):
    """Show local usage against the rate limits."""
    config = _config(state_file)
    governor = QuotaGovernor(JsonFileStorage(config.state_file), SystemClock(config.timezone))

    async def _run():
        if reset:
            await governor.reset()
        return await governor.usage_summary(tier or config.tier, model or config.model)

    summary = asyncio.run(_run())
    window = summary.window
    limits = summary.limits

    table = Table(title=f'Usage: {get_tier_info(summary.tier).name} / {summary.model}')
    table.add_column('Window', style='cyan')
    table.add_column('Used', justify='right')
    table.add_column('Limit', justify='right')
    table.add_column('Remaining', justify='right', style='green')

    table.add_row(
        'Requests / minute',
        str(window.requestsThisMinute),
        str(limits.rpm),
        str(summary.remaining_requests_this_minute),
    )
    table.add_row(
        'Tokens / minute',
        f'{window.tokensThisMinute:,}',
        f'{limits.tpm:,}',
        f'{summary.remaining_tokens_this_minute:,}',
    )
    remaining_today = summary.remaining_requests_today
    table.add_row(
        'Requests / day',
        str(window.requestsToday),
        str(limits.rpd) if limits.rpd else 'unlimited',
        str(remaining_today) if remaining_today is not None else '-',
    )
    console.print(table)

    tools = window.toolUsageToday
    console.print(
        f'Tools today: search {tools.googleSearch}, code execution {tools.codeExecution}, '
        f'URL context {tools.urlContext}'
    )
    console.print(f'[dim]Day window: {window.lastDayReset} (resets at midnight Pacific Time)[/dim]')


@app.command()
def tiers():
    """List API tiers and their rate limits."""
    table = Table(title='Rate limits (rpm / tpm / rpd)')
    table.add_column('Tier', style='cyan')
    for model in MODELS:
        table.add_column(model)
    table.add_column('Qualification', style='dim')

    for tier in TIERS:
        cells = []
        for model in MODELS:
            limit = RATE_LIMITS[tier][model]
            rpd = str(limit.rpd) if limit.rpd else '∞'
            cells.append(f'{limit.rpm} / {limit.tpm:,} / {rpd}')
        table.add_row(get_tier_info(tier).name, *cells, get_tier_info(tier).qualification)

    console.print(table)


@app.command()
def watch(
    refresh_minutes: Optional[float] = typer.Option(None, '--refresh-minutes', help='Refresh tick interval'),
    liveness_minutes: Optional[float] = typer.Option(None, '--liveness-minutes', help='Liveness tick interval'),
    verbose: bool = typer.Option(False, '--verbose', '-v', help='Show debug logs'),
    state_file: Optional[Path] = StateFileOption,
):
    """Keep the session alive in the foreground until interrupted."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
    )
    config = _config(state_file)
    if refresh_minutes is not None:
        config.refresh_interval_minutes = refresh_minutes
    if liveness_minutes is not None:
        config.liveness_interval_minutes = liveness_minutes

    async def _run():
        async with _token_manager(config) as tokens:
            timers = AsyncioTimers(tokens.clock)
            scheduler = BackgroundScheduler(tokens, timers, ConsoleNotifier(), config)
            scheduler.start()
            await scheduler.liveness_tick()
            try:
                await timers.run()
            finally:
                scheduler.stop()

    console.print('[bold]Watching session[/bold] (Ctrl+C to stop)')
    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        console.print('\n[dim]Stopped[/dim]')


if __name__ == '__main__':
    app()
