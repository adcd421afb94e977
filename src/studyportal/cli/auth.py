"""Auth support CLI commands."""

from datetime import UTC, datetime

import typer
from rich.console import Console

from studyportal.api.deps import get_password_hasher, get_token_codec
from studyportal.config import settings
from studyportal.services.auth import build_magic_link
from studyportal.services.passwords import MIN_PASSWORD_LENGTH

console = Console()
app = typer.Typer(help="Token and password utilities")


@app.command("magic-link")
def magic_link(
    email: str = typer.Argument(..., help="Student email"),
    reset: bool = typer.Option(False, "--reset", help="Issue a password reset link"),
):
    """Print a sign-in link for EMAIL without sending any mail."""
    token = get_token_codec().generate(email)
    console.print(f"[green]Magic link for {email}:[/green]")
    console.print(build_magic_link(settings.app_url, token, reset=reset), soft_wrap=True)


@app.command("verify")
def verify(token: str = typer.Argument(..., help="Token to check")):
    """Check whether TOKEN is valid right now."""
    payload = get_token_codec().verify(token)
    if payload is None:
        console.print("[red]Invalid, expired or tampered token[/red]")
        raise typer.Exit(1)

    issued = datetime.fromtimestamp(payload.issued_at / 1000, tz=UTC)
    console.print(f"[green]Valid[/green] token for [cyan]{payload.email}[/cyan]")
    console.print(f"Issued at: {issued.isoformat()}")


@app.command("hash-password")
def hash_password(
    password: str = typer.Option(
        ..., prompt=True, hide_input=True, confirmation_prompt=True, help="Password to hash"
    ),
):
    """Print the stored form of a password (for seeding the directory)."""
    if len(password) < MIN_PASSWORD_LENGTH:
        console.print(f"[red]Password must be at least {MIN_PASSWORD_LENGTH} characters[/red]")
        raise typer.Exit(1)
    typer.echo(get_password_hasher().hash(password))
