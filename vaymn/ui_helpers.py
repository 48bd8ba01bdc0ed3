import json
import os
from typing import Any, Dict, List

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

# Environment variable controlling the CLI output mode
# Allowed values: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "VAYMN_CLI_OUTPUT"

_console = Console()


def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in {"plain", "json", "rich"}:
        os.environ[OUTPUT_MODE_ENV] = mode


def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, "plain").lower()


def _loan_text(book: Dict[str, Any]) -> str:
    loan = book.get("loan")
    if not loan:
        return "Available"
    due = loan["due_date"][:10]
    if loan["is_overdue"]:
        return f"OVERDUE since {due}, fine ${loan['fine']}"
    return f"Issued, due {due}"


def print_books(books: List[Dict[str, Any]], empty_message: str = "No books found.") -> None:
    """Print described books (book fields plus 'loan') in the current output mode.
    - plain: 'id - Title by Author [stand] - status' lines
    - json: the records as a JSON array
    - rich: a Rich table
    """
    mode = get_output_mode()

    if mode == "json":
        print(json.dumps(books, ensure_ascii=False))
        return
    if not books:
        print(empty_message)
        return

    if mode == "rich":
        table = Table(title="📚 Books", show_lines=True, header_style="bold cyan")
        table.add_column("ID", style="magenta", no_wrap=True)
        table.add_column("Title", style="white")
        table.add_column("Author", style="white")
        table.add_column("Genre", style="white")
        table.add_column("Stand", style="cyan")
        table.add_column("Status")
        for b in books:
            status = _loan_text(b)
            style = "red" if b.get("loan") and b["loan"]["is_overdue"] else ("yellow" if b.get("loan") else "green")
            table.add_row(b["id"], b["title"], b["author"], b["genre"], b["stand_number"], f"[{style}]{status}[/]")
        _console.print(table)
    else:
        for b in books:
            print(f"{b['id']} - {b['title']} by {b['author']} [{b['stand_number']}] - {_loan_text(b)}")


def print_users(users: List[Dict[str, Any]]) -> None:
    mode = get_output_mode()

    if mode == "json":
        print(json.dumps(users, ensure_ascii=False))
        return
    if not users:
        print("No accounts found.")
        return

    if mode == "rich":
        table = Table(title="👥 Accounts", header_style="bold cyan")
        table.add_column("ID", style="magenta", no_wrap=True)
        table.add_column("Library ID", style="white")
        table.add_column("Name", style="white")
        table.add_column("Role", style="cyan")
        for u in users:
            table.add_row(u["id"], u["library_id"], u["name"], u["role"])
        _console.print(table)
    else:
        for u in users:
            print(f"{u['id']} - {u['name']} ({u['library_id']}, {u['role']})")


def print_roster(roster: List[Dict[str, Any]]) -> None:
    """Students with their issued books and total fine."""
    mode = get_output_mode()

    if mode == "json":
        print(json.dumps(roster, ensure_ascii=False))
        return
    if not roster:
        print("No students registered.")
        return

    if mode == "rich":
        table = Table(title="🎓 Students", show_lines=True, header_style="bold cyan")
        table.add_column("Student", style="white")
        table.add_column("Issued Books", style="white")
        table.add_column("Total Fine", justify="right")
        for entry in roster:
            user = entry["user"]
            titles = "\n".join(b["title"] for b in entry["issued_books"]) or "-"
            fine = entry["total_fine"]
            table.add_row(f"{user['name']}\n[dim]{user['library_id']}[/]", titles,
                          f"[red]${fine}[/]" if fine else "$0")
        _console.print(table)
    else:
        for entry in roster:
            user = entry["user"]
            print(f"{user['name']} ({user['library_id']}): {len(entry['issued_books'])} issued, fine ${entry['total_fine']}")


def print_stats_result(stats: Dict[str, Any]) -> None:
    mode = get_output_mode()

    if mode == "json":
        print(json.dumps(stats, ensure_ascii=False))
    elif mode == "rich":
        content = "\n".join(f"[bold]{key.replace('_', ' ').title()}:[/] {value}" for key, value in stats.items())
        _console.print(Panel.fit(content, title="📊 Stats", border_style="blue"))
    else:
        for key, value in stats.items():
            print(f"{key.replace('_', ' ').title()}: {value}")
