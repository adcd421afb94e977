"""Operator commands for the portal."""

import typer
from rich.console import Console

from studyportal.cli.auth import app as auth_app
from studyportal.cli.students import app as students_app
from studyportal.config import settings

app = typer.Typer(name="studyportal", help="Study Portal operator tools", no_args_is_help=True)
app.add_typer(auth_app, name="auth", help="Login tokens and password hashes")
app.add_typer(students_app, name="students", help="Look up students in Notion")

console = Console()


@app.command()
def version():
    """Print the installed version."""
    from studyportal import __version__

    console.print(f"studyportal {__version__}")


@app.command()
def config():
    """Show the non-secret settings in effect."""
    console.print(f"environment   {settings.environment}")
    console.print(f"app url       {settings.app_url}")
    console.print(f"email backend {settings.email_backend}")
    console.print(f"notion key    {'set' if settings.notion_api_key else '[red]missing[/red]'}")
    console.print(f"sentry        {'on' if settings.sentry_dsn else 'off'}")


@app.command()
def serve(
    host: str = typer.Option(settings.host, help="Interface to bind"),
    port: int = typer.Option(settings.port, help="Port to listen on"),
    reload: bool = typer.Option(False, help="Restart on code changes"),
):
    """Run the web app under uvicorn."""
    import uvicorn

    from studyportal.logging import get_uvicorn_log_config

    uvicorn.run(
        "studyportal.main:app",
        host=host,
        port=port,
        reload=reload,
        log_config=get_uvicorn_log_config(),
    )


if __name__ == "__main__":
    app()
