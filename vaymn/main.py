import asyncio
import logging
import subprocess
import sys
import webbrowser
from functools import wraps
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Confirm

from vaymn.config import settings
from vaymn.library import Library
from vaymn.services.gemini_service import GeminiService
from vaymn.storage import SQLiteStorage, seed_demo_data
from vaymn.ui_helpers import print_books, print_roster, print_stats_result, print_users, set_output_mode
from vaymn.user import Role

APP_NAME = "VAYMN Library CLI"

console = Console()

app = typer.Typer(help=APP_NAME)

_PORTALS = {
    "student": Role.USER,
    "admin": Role.ADMIN,
}


def get_library() -> Library:
    """Library over the configured SQLite file, with Gemini enrichment."""
    return Library(SQLiteStorage(settings.db_file), enricher=GeminiService())


def _portal(name: str) -> Role:
    try:
        return _PORTALS[name.lower()]
    except KeyError:
        raise typer.BadParameter(f"Unknown portal '{name}'. Use: {', '.join(_PORTALS)}")


def report_errors(func):
    """Print library errors as one line and exit with status 1."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except (ValueError, LookupError, PermissionError) as e:
            console.print(f"[bold red]Error:[/] {escape(str(e))}")
            raise typer.Exit(code=1)
    return wrapper


@app.callback()
def _global_options(
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output format: plain | json | rich (default: plain)",
    )
):
    """Global CLI options (e.g. output mode)."""
    logging.basicConfig(level=settings.log_level)
    if output:
        set_output_mode(output)


# --- Session ---
@app.command("login")
@report_errors
def cli_login(
    library_id: str = typer.Argument(..., help="Library ID"),
    password: str = typer.Option(..., "--password", "-p", prompt=True, hide_input=True),
    portal: str = typer.Option("student", "--portal", help="student | admin"),
):
    """Log in through the student or the staff portal."""
    user = get_library().login(library_id, password, _portal(portal))
    console.print(f"[green]Welcome back, {escape(user.name)}[/]")


@app.command("signup")
@report_errors
def cli_signup(
    name: str = typer.Option(..., "--name", prompt=True),
    library_id: str = typer.Option(..., "--library-id", prompt=True),
    password: str = typer.Option(..., "--password", "-p", prompt=True, hide_input=True),
    portal: str = typer.Option("student", "--portal", help="student | admin"),
):
    """Create an account and log in with it."""
    role = _portal(portal)
    user = get_library().signup(name=name, library_id=library_id, password=password, role=role)
    console.print(f"[green]Welcome, {escape(user.name)}! Your {role.account_label} account is ready.[/]")


@app.command("logout")
def cli_logout():
    """End the current session."""
    get_library().logout()
    console.print("Logged out successfully.")


@app.command("whoami")
@report_errors
def cli_whoami():
    """Show the logged-in account."""
    user = get_library().require_user()
    console.print(f"{escape(user.name)} ({user.library_id}, {user.role.account_label})")


# --- Catalog ---
@app.command("books")
@report_errors
def cli_books(query: Optional[str] = typer.Argument(None, help="Matches title, author or genre")):
    """Browse the catalog."""
    lib = get_library()
    lib.require_user()
    now = lib.clock()
    print_books([lib.describe_book(b, now) for b in lib.list_books(query)])


@app.command("my-books")
@report_errors
def cli_my_books():
    """Books issued to you, with due dates and fines."""
    print_books(get_library().my_loans(), empty_message="You have no issued books.")


@app.command("issue")
@report_errors
def cli_issue(book_id: str):
    """Issue an available book to yourself."""
    book = get_library().issue_book(book_id)
    console.print(f"[green]'{escape(book.title)}' issued successfully! Please collect it from stand {book.stand_number}.[/]")


@app.command("return")
@report_errors
def cli_return(book_id: str):
    """Mark a book as returned (staff). Students are told where to bring it."""
    lib = get_library()
    user = lib.require_user()
    if user.role is Role.USER:
        console.print(f"[blue]{lib.request_return(book_id)}[/]")
        return
    book = lib.return_book(book_id)
    console.print(f"[green]'{escape(book.title)}' marked as returned.[/]")


@app.command("add-book")
@report_errors
def cli_add_book(
    title: str = typer.Option(..., "--title", prompt=True),
    stand_number: str = typer.Option(..., "--stand", prompt="Stand number"),
    author: Optional[str] = typer.Option(None, "--author"),
    genre: Optional[str] = typer.Option(None, "--genre"),
    description: Optional[str] = typer.Option(None, "--description"),
    cover: Optional[Path] = typer.Option(None, "--cover", exists=True, dir_okay=False, help="Cover image file"),
    smart: bool = typer.Option(False, "--smart-fill", help="Fill empty fields with AI suggestions"),
):
    """Add a book to the catalog (staff)."""
    lib = get_library()
    draft = {"title": title, "stand_number": stand_number, "author": author, "genre": genre,
             "description": description, "cover_url": None}
    if cover is not None:
        draft["cover_url"] = lib.upload_cover(cover.read_bytes())
    if smart:
        with console.status("[bold green]Asking for book details..."):
            result = asyncio.run(lib.smart_fill(draft))
        console.print(f"[dim]{result.message}[/]")
        draft = result.draft
    book = lib.add_book(**draft)
    console.print(Panel.fit(
        f"[bold]Title:[/] {escape(book.title)}\n"
        f"[bold]Author:[/] {escape(book.author)}\n"
        f"[bold]Genre:[/] {escape(book.genre)}\n"
        f"[bold]Stand:[/] {book.stand_number}\n"
        f"[bold]ID:[/] {book.id}",
        title="✅ Book added to catalog!",
        border_style="green"
    ))


@app.command("edit-book")
@report_errors
def cli_edit_book(
    book_id: str,
    title: Optional[str] = typer.Option(None, "--title"),
    stand_number: Optional[str] = typer.Option(None, "--stand"),
    author: Optional[str] = typer.Option(None, "--author"),
    genre: Optional[str] = typer.Option(None, "--genre"),
    description: Optional[str] = typer.Option(None, "--description"),
    cover: Optional[Path] = typer.Option(None, "--cover", exists=True, dir_okay=False),
):
    """Edit a book's catalog details (staff)."""
    lib = get_library()
    cover_url = lib.upload_cover(cover.read_bytes()) if cover is not None else None
    book = lib.update_book(book_id, title=title, stand_number=stand_number, author=author, genre=genre,
                           description=description, cover_url=cover_url)
    console.print(f"[green]'{escape(book.title)}' updated successfully![/]")


@app.command("remove-book")
@report_errors
def cli_remove_book(book_id: str, yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation")):
    """Delete a book from the catalog (staff)."""
    lib = get_library()
    book = lib.get_book(book_id)
    if not yes and not Confirm.ask(f"🗑️ Delete '{escape(book.title)}'?", default=False):
        console.print("[blue]Cancelled.[/]")
        return
    lib.delete_book(book_id)
    console.print(f"'{escape(book.title)}' deleted successfully.")


@app.command("smart-fill")
@report_errors
def cli_smart_fill(title: str):
    """Preview AI suggested details for a title (staff)."""
    lib = get_library()
    with console.status("[bold green]Asking for book details..."):
        result = asyncio.run(lib.smart_fill({"title": title}))
    console.print(result.message)
    for key in ("author", "genre", "description", "cover_url"):
        if result.draft.get(key):
            console.print(f"[bold]{key}:[/] {escape(str(result.draft[key]))}")


# --- Roster ---
@app.command("users")
@report_errors
def cli_users(portal: Optional[str] = typer.Option(None, "--role", help="student | admin")):
    """List accounts (staff)."""
    users = get_library().list_users(_portal(portal) if portal else None)
    print_users([u.to_public_dict() for u in users])


@app.command("students")
@report_errors
def cli_students():
    """Students with their issued books and total fines (staff)."""
    print_roster(get_library().student_roster())


@app.command("add-user")
@report_errors
def cli_add_user(
    name: str = typer.Option(..., "--name", prompt=True),
    library_id: str = typer.Option(..., "--library-id", prompt=True),
    password: str = typer.Option(..., "--password", "-p", prompt=True, hide_input=True),
    portal: str = typer.Option("student", "--role", help="student | admin"),
):
    """Create an account without logging in as it (staff)."""
    user = get_library().create_user(name=name, library_id=library_id, password=password, role=_portal(portal))
    console.print(f"[green]Account created successfully: {user.library_id} ({user.id})[/]")


@app.command("remove-user")
@report_errors
def cli_remove_user(user_id: str, yes: bool = typer.Option(False, "--yes", "-y")):
    """Delete an account (staff)."""
    lib = get_library()
    if not yes and not Confirm.ask(f"Delete account {user_id}?", default=False):
        console.print("[blue]Cancelled.[/]")
        return
    lib.delete_user(user_id)
    console.print("User account removed.")


# --- Maintenance ---
@app.command("stats")
def cli_stats():
    """Catalog and roster counts."""
    print_stats_result(get_library().get_statistics())


@app.command("seed")
def cli_seed():
    """Add the demo accounts and books to an empty store."""
    storage = SQLiteStorage(settings.db_file)
    if seed_demo_data(storage):
        console.print("[green]Demo data added.[/]")
    else:
        console.print("Store already has data, nothing to seed.")


@app.command("serve")
def cli_serve(
    host: Optional[str] = typer.Option(None, "--host"),
    port: Optional[int] = typer.Option(None, "--port"),
    reload: bool = typer.Option(False, "--reload"),
    open_browser: bool = typer.Option(False, "--open", help="Open the API docs in a browser"),
):
    """Start the HTTP API with uvicorn."""
    host = host or settings.api_host
    port = int(port or settings.api_port)
    url = f"http://{host}:{port}/docs"
    print(f"Starting API on {url}")
    if open_browser:
        webbrowser.open(url)
    args = [
        sys.executable,
        "-m", "uvicorn",
        "vaymn.api:app",
        "--host", host,
        "--port", str(port),
    ]
    if reload:
        args.append("--reload")
    try:
        subprocess.run(args, check=False)
    except FileNotFoundError:
        console.print("[bold red]Error:[/] `uvicorn` could not be started. Is it installed?")
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
