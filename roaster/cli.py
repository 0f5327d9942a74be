"""Voice Roaster CLI: operator commands for the roast workflow."""

from __future__ import annotations

from datetime import datetime

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from roaster import __version__
from roaster.config import Settings, load_settings
from roaster.errors import ConfigError, PersistenceAlarm, RoastError
from roaster.log import configure_logging

console = Console()


def _settings(ctx: click.Context) -> Settings:
    return ctx.obj["settings"]


def _services(ctx: click.Context, **overrides):
    from roaster.services import build_services

    return build_services(_settings(ctx), **overrides)


def _fail(message: str) -> None:
    console.print(f"[red]x[/] {message}")
    raise SystemExit(1)


def _on_off(value: str | None) -> bool | None:
    return None if value is None else value == "on"


@click.group()
@click.version_option(version=__version__)
@click.option("--config", "-c", "config_path", default=None, help="YAML settings file")
@click.pass_context
def main(ctx: click.Context, config_path: str | None):
    """Voice Roaster — consent-gated voice note roasts for group chats."""
    try:
        settings = load_settings(config_path)
    except ConfigError as exc:
        _fail(str(exc))
    configure_logging(settings.log_level_value)
    ctx.obj = {"settings": settings}


# ── Database ─────────────────────────────────────────────────────────


@main.command()
@click.pass_context
def init(ctx: click.Context):
    """Create the roast database if it does not exist yet."""
    from roaster.store.document_store import JsonDocumentStore

    store = JsonDocumentStore(_settings(ctx).db_path)
    if store.init():
        console.print(f"[green]Database initialized:[/] {store.path}")
    else:
        console.print(f"[yellow]Database already exists:[/] {store.path}")


# ── Consent ──────────────────────────────────────────────────────────


@main.command()
@click.argument("user_id")
@click.option("--allow/--deny", default=True, help="Opt in (default) or out of roasts")
@click.pass_context
def consent(ctx: click.Context, user_id: str, allow: bool):
    """Opt USER_ID in to or out of receiving roasts."""
    services = _services(ctx)
    try:
        if allow:
            services.admin.opt_in(user_id)
        else:
            services.admin.opt_out(user_id)
    except RoastError as exc:
        _fail(exc.message)

    if allow:
        console.print(f"[green]v[/] User {user_id} opted in to receive roasts.")
    else:
        console.print(f"[green]v[/] User {user_id} opted out of roasts.")


# ── Group policy ─────────────────────────────────────────────────────


@main.command()
@click.argument("group_id")
@click.option("--actor", "-a", required=True, help="User performing the change (must be admin)")
@click.option("--safe-mode", type=click.Choice(["on", "off"]), default=None)
@click.option("--nuclear", type=click.Choice(["on", "off"]), default=None)
@click.option("--voice-mode", type=click.Choice(["silly", "robot", "deep", "sultry"]), default=None)
@click.pass_context
def policy(
    ctx: click.Context,
    group_id: str,
    actor: str,
    safe_mode: str | None,
    nuclear: str | None,
    voice_mode: str | None,
):
    """Show or change GROUP_ID's roast policy."""
    services = _services(ctx)
    try:
        if safe_mode is None and nuclear is None and voice_mode is None:
            current = services.store.get_group_policy(group_id)
        else:
            current = services.admin.update_policy(
                group_id,
                actor,
                safe_mode=_on_off(safe_mode),
                nuclear_ok=_on_off(nuclear),
                default_voice_mode=voice_mode,
            )
    except RoastError as exc:
        _fail(exc.message)

    table = Table(title=f"Policy for group {group_id}")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    table.add_row("Safe mode", "ENABLED" if current.safe_mode else "disabled")
    table.add_row("Nuclear roasts", "allowed" if current.nuclear_ok else "disabled")
    table.add_row("Default voice mode", current.default_voice_mode.value)
    console.print(table)


# ── Roast log ────────────────────────────────────────────────────────


@main.command(name="log")
@click.argument("group_id")
@click.option("--actor", "-a", required=True, help="User requesting the log (must be admin)")
@click.option("--limit", "-n", default=10, show_default=True)
@click.pass_context
def roast_log(ctx: click.Context, group_id: str, actor: str, limit: int):
    """Show GROUP_ID's recent roast activity."""
    services = _services(ctx)
    try:
        events = services.admin.roast_log(group_id, actor, limit)
    except RoastError as exc:
        _fail(exc.message)

    if not events:
        console.print("[yellow]No roast activity recorded for this group yet.[/]")
        return

    table = Table(title="Recent Roast Activity")
    table.add_column("When", style="dim")
    table.add_column("Target", style="cyan")
    table.add_column("Issuer")
    table.add_column("Tier")
    for e in events:
        when = datetime.fromtimestamp(e.timestamp / 1000).strftime("%Y-%m-%d %H:%M:%S")
        table.add_row(when, e.target_user_id, e.issuer_user_id, e.tier.value)
    console.print(table)


# ── Provider ─────────────────────────────────────────────────────────


@main.command()
@click.pass_context
def voices(ctx: click.Context):
    """List the voices available from the text-to-speech provider."""
    services = _services(ctx)
    try:
        found = services.provider.list_voices()
    except RoastError as exc:
        _fail(f"Error fetching voice list: {exc.message}")

    table = Table(title=f"Available voices ({len(found)})")
    table.add_column("Name", style="cyan")
    table.add_column("Voice ID")
    table.add_column("Category", style="dim")
    for v in found:
        table.add_row(v.name, v.voice_id, v.category)
    console.print(table)
    console.print("Set DEFAULT_VOICE_ID to change the default voice.")


@main.command()
@click.pass_context
def check(ctx: click.Context):
    """Check the corpus and the text-to-speech provider connection."""
    from roaster.models import Tier

    services = _services(ctx)

    for tier in Tier:
        try:
            count = len(services.content.lines_for_tier(tier))
            console.print(f"  [green]v[/] {tier.value}: {count} roasts")
        except RoastError as exc:
            console.print(f"  [red]x[/] {tier.value}: {exc.message}")

    try:
        count = services.provider.probe()
        console.print(f"  [green]v[/] Text-to-speech API working. Found {count} voices.")
    except RoastError as exc:
        console.print(f"  [yellow]![/] Text-to-speech API test failed: {exc.message}")
        console.print("    Voice generation may not work.")


# ── Roast ────────────────────────────────────────────────────────────


@main.command()
@click.argument("group_id")
@click.argument("issuer_id")
@click.argument("target_id")
@click.option("--reply-to", "-r", required=True, help="Message being replied to")
@click.option("--tier", "-t", default=None, help="tame, spicy or nuclear (default tame)")
@click.option("--mode", "-m", default=None, help="silly, robot, deep or sultry")
@click.option("--out", "-o", default="roast.ogg", show_default=True, help="Where to write the voice note")
@click.pass_context
def roast(
    ctx: click.Context,
    group_id: str,
    issuer_id: str,
    target_id: str,
    reply_to: str,
    tier: str | None,
    mode: str | None,
    out: str,
):
    """Run a roast end to end, writing the voice note to a local file."""
    from roaster.delivery.base import FileDeliverer
    from roaster.models import RoastCommand

    services = _services(ctx, deliverer=FileDeliverer(out))
    command = RoastCommand(
        group_id=group_id,
        issuer_id=issuer_id,
        target_id=target_id,
        reply_to_message_id=reply_to,
        tier=tier,
        voice_mode=mode,
    )

    console.print("\n[bold blue]Roaster[/] — Generating your voice roast...\n")
    try:
        outcome = services.orchestrator.run(command)
    except PersistenceAlarm as exc:
        _fail(f"Roast delivered to {out} but could not be recorded: {exc.cause}")

    trail = " -> ".join(s.value for s in outcome.trail)
    if outcome.succeeded:
        console.print(Panel(f"{outcome.line}\n\n[dim]{trail}[/]", title="Roast delivered"))
        console.print(f"[green]Voice note written to:[/] {out}")
    else:
        console.print(Panel(f"{outcome.message}\n\n[dim]{trail}[/]", title=f"Aborted: {outcome.reason}"))
        raise SystemExit(1)


# ── Audit ────────────────────────────────────────────────────────────


@main.command()
@click.option("--action", default=None, help="Filter by action, e.g. roast.aborted")
@click.option("--group", "group_id", default=None, help="Filter by group")
@click.option("--format", "fmt", type=click.Choice(["json", "csv"]), default="json")
@click.option("--limit", "-n", default=200, show_default=True)
@click.pass_context
def audit(ctx: click.Context, action: str | None, group_id: str | None, fmt: str, limit: int):
    """Export audit entries."""
    from roaster.security.audit_log import AuditLogger

    audit_logger = AuditLogger(_settings(ctx).audit_dir)
    click.echo(audit_logger.export_events(fmt, action=action, group_id=group_id, limit=limit))


if __name__ == "__main__":
    main()
