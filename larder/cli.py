"""Larder CLI: moderation tooling for the recipe site."""

import logging
from pathlib import Path

import click
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from larder import __version__
from larder.audit.models import LogAction
from larder.config import Settings, load_settings

console = Console()

_DEFAULT_SEED = {
    "owner": {"username": "Owner", "email": "owner@larder.local"},
    "accounts": [
        {"username": "Admin", "email": "admin@larder.local", "role": "admin"},
    ],
}


def _setup_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def _service():
    from larder.auth.store import SessionStore
    from larder.moderation.service import ModerationService
    from larder.storage.json_store import JsonStore

    settings = load_settings()
    _setup_logging(settings)
    store = JsonStore(str(settings.store_dir))
    sessions = SessionStore(str(settings.sessions_dir))
    return ModerationService(store, sessions, settings=settings), sessions, settings


def _check(result, done: str):
    """Print the outcome of a service call; exit non-zero on failure."""
    if not result.ok:
        console.print(f"[red]{result.kind.value}:[/] {result.reason}")
        raise SystemExit(1)
    console.print(f"[green]v[/] {done}")
    return result.value


def _fmt(value) -> str:
    if value is None:
        return "-"
    if hasattr(value, "strftime"):
        return value.strftime("%Y-%m-%d %H:%M")
    return str(value)


@click.group()
@click.version_option(version=__version__)
def main():
    """Larder moderation and account-status tooling.

    Every command that changes state acts on behalf of a user id given with
    --as, and is checked against that user's role.
    """


# ── Setup ────────────────────────────────────────────────────────────


@main.command()
@click.option("--file", "-f", "seed_file", default=None, type=click.Path(exists=True), help="YAML seed file")
def seed(seed_file: str | None):
    """Create the owner account and any staff accounts listed in a seed file.

    \b
    owner:
      username: Owner
      email: owner@example.com
    accounts:
      - {username: Admin, email: admin@example.com, role: admin}
    """
    service, _, _ = _service()

    if seed_file:
        data = yaml.safe_load(Path(seed_file).read_text()) or {}
    else:
        data = _DEFAULT_SEED

    owner_data = data.get("owner")
    if not owner_data:
        console.print("[red]Seed file must define an owner.[/]")
        raise SystemExit(1)

    owner = _check(
        service.bootstrap_owner(owner_data["username"], owner_data["email"]),
        f"Owner {owner_data['username']} created",
    )

    for account in data.get("accounts", []):
        user = _check(
            service.register_user(account["username"], account["email"], account.get("provider", "email")),
            f"Account {account['username']} created",
        )
        role = account.get("role", "user")
        if role != "user":
            _check(service.change_user_role(owner.id, user.id, role), f"{account['username']} is now {role}")

    console.print(f"\nOwner id: [bold]{owner.id}[/]")


@main.command()
@click.argument("user_id")
def session(user_id: str):
    """Issue a login session token for USER_ID (for API access)."""
    service, sessions, settings = _service()
    user = _check(service.check_login_allowed(user_id), "Account may sign in")
    _check(service.record_successful_login(user.id), "Login recorded")
    token = sessions.create_session(user.id, expires_in_hours=settings.session_ttl_hours)
    console.print(Panel(token.token, title=f"Session for {user.username}", subtitle=f"expires {token.expires_at}"))


# ── Users ────────────────────────────────────────────────────────────


@main.group()
def users():
    """Moderate user accounts."""


@users.command(name="list")
@click.option("--as", "actor_id", required=True, help="Acting user id")
@click.option("--query", "-q", default=None, help="Filter by username or email")
def list_users(actor_id: str, query: str | None):
    """List user accounts (moderators and above)."""
    service, _, _ = _service()
    result = service.list_users(actor_id, query)
    if not result.ok:
        console.print(f"[red]{result.kind.value}:[/] {result.reason}")
        raise SystemExit(1)

    table = Table(title=f"Users ({len(result.value)})")
    table.add_column("ID", style="dim")
    table.add_column("Username", style="cyan")
    table.add_column("Email")
    table.add_column("Role")
    table.add_column("Status")
    table.add_column("Warnings", justify="right")
    table.add_column("Suspended until")
    for u in result.value:
        table.add_row(
            u.id,
            u.username,
            u.email,
            u.role.value,
            u.status.value,
            str(u.warning_count),
            _fmt(u.suspension_expires_at),
        )
    console.print(table)


@users.command()
@click.argument("target_id")
@click.option("--as", "actor_id", required=True, help="Acting user id")
@click.option("--reason", "-r", required=True, help="Reason shown in the moderation log")
@click.option("--days", "-d", required=True, type=int, help="Suspension length in days")
def suspend(target_id: str, actor_id: str, reason: str, days: int):
    """Suspend TARGET_ID for a number of days."""
    service, _, _ = _service()
    user = _check(service.suspend_user(actor_id, target_id, reason, days), f"Suspended {target_id}")
    console.print(f"  until {_fmt(user.suspension_expires_at)}")


@users.command()
@click.argument("target_id")
@click.option("--as", "actor_id", required=True, help="Acting user id")
def unsuspend(target_id: str, actor_id: str):
    """Lift the suspension of TARGET_ID."""
    service, _, _ = _service()
    _check(service.unsuspend_user(actor_id, target_id), f"Lifted suspension of {target_id}")


@users.command()
@click.argument("target_id")
@click.option("--as", "actor_id", required=True, help="Acting user id")
@click.option("--reason", "-r", required=True, help="Reason shown in the moderation log")
def ban(target_id: str, actor_id: str, reason: str):
    """Ban TARGET_ID permanently and end their sessions."""
    service, _, _ = _service()
    _check(service.ban_user(actor_id, target_id, reason), f"Banned {target_id}")


@users.command()
@click.argument("target_id")
@click.option("--as", "actor_id", required=True, help="Acting user id")
@click.option("--reason", "-r", required=True, help="Reason shown in the moderation log")
def warn(target_id: str, actor_id: str, reason: str):
    """Record a warning against TARGET_ID."""
    service, _, _ = _service()
    user = _check(service.warn_user(actor_id, target_id, reason), f"Warned {target_id}")
    console.print(f"  warnings: {user.warning_count}")


@users.command()
@click.argument("target_id")
@click.argument("new_role", type=click.Choice(["user", "moderator", "admin", "owner"]))
@click.option("--as", "actor_id", required=True, help="Acting user id")
def role(target_id: str, new_role: str, actor_id: str):
    """Change the role of TARGET_ID."""
    service, _, _ = _service()
    _check(service.change_user_role(actor_id, target_id, new_role), f"{target_id} is now {new_role}")


# ── Recipes ──────────────────────────────────────────────────────────


@main.group()
def recipes():
    """Review submitted recipes."""


@recipes.command()
@click.argument("title")
@click.option("--as", "author_id", required=True, help="Author user id")
@click.option("--description", default="", help="Short description")
def submit(title: str, author_id: str, description: str):
    """Submit a recipe for review."""
    service, _, _ = _service()
    recipe = _check(service.submit_recipe(author_id, title, description), f"Submitted '{title}'")
    console.print(f"  id: {recipe.id}")


@recipes.command()
@click.option("--as", "actor_id", required=True, help="Acting user id")
def pending(actor_id: str):
    """List recipes waiting for review."""
    service, _, _ = _service()
    result = service.list_pending_recipes(actor_id)
    if not result.ok:
        console.print(f"[red]{result.kind.value}:[/] {result.reason}")
        raise SystemExit(1)

    if not result.value:
        console.print("[yellow]No recipes waiting for review.[/]")
        return

    table = Table(title=f"Pending recipes ({len(result.value)})")
    table.add_column("ID", style="dim")
    table.add_column("Title", style="cyan")
    table.add_column("Author")
    table.add_column("Submitted")
    for r in result.value:
        table.add_row(r.id, r.title, r.author_id, _fmt(r.created_at))
    console.print(table)


@recipes.command()
@click.argument("recipe_id")
@click.option("--as", "actor_id", required=True, help="Acting user id")
@click.option("--notes", "-n", default=None, help="Moderation notes")
def approve(recipe_id: str, actor_id: str, notes: str | None):
    """Approve and publish a pending recipe."""
    service, _, _ = _service()
    _check(service.approve_recipe(actor_id, recipe_id, notes), f"Approved {recipe_id}")


@recipes.command()
@click.argument("recipe_id")
@click.option("--as", "actor_id", required=True, help="Acting user id")
@click.option("--notes", "-n", default=None, help="Moderation notes")
def reject(recipe_id: str, actor_id: str, notes: str | None):
    """Reject a pending recipe."""
    service, _, _ = _service()
    _check(service.reject_recipe(actor_id, recipe_id, notes), f"Rejected {recipe_id}")


@recipes.command()
@click.argument("recipe_id")
@click.option("--as", "actor_id", required=True, help="Acting user id")
def delete(recipe_id: str, actor_id: str):
    """Delete a recipe."""
    service, _, _ = _service()
    _check(service.delete_recipe(actor_id, recipe_id), f"Deleted {recipe_id}")


# ── Log & stats ──────────────────────────────────────────────────────


@main.command(name="log")
@click.option("--as", "actor_id", required=True, help="Acting user id")
@click.option("--action", "-a", default=None, type=click.Choice([a.value for a in LogAction]), help="Only entries with this action")
@click.option("--target", "-t", "target_id", default=None, help="Only entries about this user or recipe")
@click.option("--limit", "-l", default=50, type=click.IntRange(min=1), help="Maximum number of entries")
@click.option("--format", "fmt", default="table", type=click.Choice(["table", "json", "csv"]))
def show_log(actor_id: str, action: str | None, target_id: str | None, limit: int, fmt: str):
    """Show the moderation log, newest first."""
    from larder.audit.log import export_entries
    from larder.audit.models import LogFilter

    service, _, _ = _service()
    log_filter = LogFilter(
        action=LogAction(action) if action else None,
        target_id=target_id,
        limit=limit,
        newest_first=True,
    )
    result = service.list_moderation_log(actor_id, log_filter)
    if not result.ok:
        console.print(f"[red]{result.kind.value}:[/] {result.reason}")
        raise SystemExit(1)

    if fmt != "table":
        click.echo(export_entries(result.value, fmt))
        return

    table = Table(title=f"Moderation log ({len(result.value)})")
    table.add_column("When", style="dim")
    table.add_column("Moderator", style="cyan")
    table.add_column("Action")
    table.add_column("Target")
    table.add_column("Reason")
    for e in result.value:
        table.add_row(
            _fmt(e.created_at),
            e.moderator_username,
            e.action.value,
            f"{e.target_type.value}:{e.target_id}",
            e.reason[:60],
        )
    console.print(table)


@main.command()
@click.option("--as", "actor_id", required=True, help="Acting user id")
def stats(actor_id: str):
    """Show moderation dashboard counters."""
    from dataclasses import asdict

    service, _, _ = _service()
    result = service.get_statistics(actor_id)
    if not result.ok:
        console.print(f"[red]{result.kind.value}:[/] {result.reason}")
        raise SystemExit(1)

    table = Table(title="Moderation statistics")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right", style="green")
    for name, value in asdict(result.value).items():
        table.add_row(name.replace("_", " "), str(value))
    console.print(table)


if __name__ == "__main__":
    main()
