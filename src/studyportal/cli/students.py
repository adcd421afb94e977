"""Student directory CLI commands."""

import asyncio

import typer
from rich.console import Console
from rich.table import Table

from studyportal.api.deps import get_directory
from studyportal.services.directory import DirectoryError
from studyportal.services.identity import IdentityResolver

console = Console()
app = typer.Typer(help="Student directory commands")


@app.command("lookup")
def lookup(email: str = typer.Argument(..., help="Student email")):
    """Show how EMAIL resolves for sign-in."""

    async def _lookup():
        directory = get_directory()
        try:
            outcome = await IdentityResolver(directory).resolve_active(email)
        finally:
            await directory.close()

        if outcome.student is None:
            console.print(f"[red]No student found for {email}[/red]")
            raise typer.Exit(1)

        student = outcome.student
        table = Table(title=f"Student {email}")
        table.add_column("Field", style="cyan")
        table.add_column("Value", style="green")
        table.add_row("ID", student.id)
        table.add_row("Name", student.name)
        table.add_row("Status", outcome.status.value)
        table.add_row("Password set", "Yes" if student.has_password else "No")
        table.add_row("Personal page", student.personal_page or "-")
        table.add_row("Progress", student.progress or "-")
        last_viewed = student.last_viewed_at.isoformat() if student.last_viewed_at else "-"
        table.add_row("Last viewed", last_viewed)
        console.print(table)

    asyncio.run(_lookup())


@app.command("ping")
def ping():
    """Check that the Notion directory is reachable."""

    async def _ping():
        directory = get_directory()
        try:
            await directory.ping()
        except DirectoryError as e:
            console.print(f"[red]Directory unreachable:[/red] {e}")
            raise typer.Exit(1) from e
        finally:
            await directory.close()
        console.print("[green]Notion directory connected[/green]")

    asyncio.run(_ping())
