import json
from unittest.mock import MagicMock

import pytest
from typer.testing import CliRunner

import vaymn.main as cli
from vaymn.library import Library
from vaymn.main import app
from vaymn.storage import MemoryStorage
from vaymn.ui_helpers import OUTPUT_MODE_ENV

runner = CliRunner()


@pytest.fixture(autouse=True)
def library(monkeypatch, now):
    # Every command builds its Library over the same store, so the session carries over
    lib = Library(MemoryStorage(), clock=lambda: now, seed=True)
    monkeypatch.setattr(cli, "get_library", lambda: lib)
    monkeypatch.setenv(OUTPUT_MODE_ENV, "plain")
    return lib


def login(library_id, portal="student"):
    result = runner.invoke(app, ["login", library_id, "--password", "123", "--portal", portal])
    assert result.exit_code == 0, result.stdout
    return result


def test_login_greets_user():
    assert "Welcome back, John Doe" in login("user").stdout


def test_login_through_wrong_portal():
    result = runner.invoke(app, ["login", "user", "--password", "123", "--portal", "admin"])
    assert result.exit_code == 1
    assert "not authorized for Admin access" in result.stdout


def test_login_with_unknown_portal():
    result = runner.invoke(app, ["login", "user", "--password", "123", "--portal", "librarian"])
    assert result.exit_code != 0


def test_books_need_a_session():
    result = runner.invoke(app, ["books"])
    assert result.exit_code == 1
    assert "Please log in first." in result.stdout


def test_list_books():
    login("user")
    result = runner.invoke(app, ["books"])
    assert result.exit_code == 0
    lines = result.stdout.strip().splitlines()
    assert lines[0] == "b1 - The Great Gatsby by F. Scott Fitzgerald [A1] - Available"
    assert lines[2].startswith("b3 - Clean Code by Robert C. Martin [T5] - OVERDUE since ")
    assert lines[2].endswith("fine $35")


def test_search_books_as_json():
    login("user")
    result = runner.invoke(app, ["--output", "json", "books", "dystopian"])
    assert result.exit_code == 0
    books = json.loads(result.stdout.strip().splitlines()[-1])
    assert [b["title"] for b in books] == ["1984"]


def test_issue_and_my_books(library):
    login("user")
    result = runner.invoke(app, ["issue", "b1"])
    assert result.exit_code == 0
    assert "issued successfully" in result.stdout
    assert library.get_book("b1").issued_to_user_id == "user1"

    result = runner.invoke(app, ["my-books"])
    assert "b1 - The Great Gatsby" in result.stdout
    assert "b3 - Clean Code" in result.stdout


def test_issue_already_issued_book():
    login("user")
    result = runner.invoke(app, ["issue", "b3"])
    assert result.exit_code == 1
    assert "already issued" in result.stdout


def test_student_return_gets_instructions(library):
    login("user")
    result = runner.invoke(app, ["return", "b3"])
    assert result.exit_code == 0
    assert "librarian at the counter" in result.stdout
    assert library.get_book("b3").is_issued is True


def test_admin_return_marks_book_available(library):
    login("admin", portal="admin")
    result = runner.invoke(app, ["return", "b3"])
    assert result.exit_code == 0
    assert "marked as returned" in result.stdout
    assert library.get_book("b3").is_issued is False


def test_add_and_remove_book(library):
    login("admin", portal="admin")
    result = runner.invoke(app, ["add-book", "--title", "Dune", "--stand", "S1", "--author", "Frank Herbert"])
    assert result.exit_code == 0
    assert "Dune" in result.stdout
    book = library.list_books("dune")[0]

    result = runner.invoke(app, ["remove-book", book.id, "--yes"])
    assert result.exit_code == 0
    assert library.list_books("dune") == []


def test_remove_issued_book_fails():
    login("admin", portal="admin")
    result = runner.invoke(app, ["remove-book", "b3", "--yes"])
    assert result.exit_code == 1
    assert "Error" in result.stdout


def test_student_cannot_add_books():
    login("user")
    result = runner.invoke(app, ["add-book", "--title", "Dune", "--stand", "S1"])
    assert result.exit_code == 1


def test_students_roster():
    login("admin", portal="admin")
    result = runner.invoke(app, ["students"])
    assert result.exit_code == 0
    assert "John Doe (user): 1 issued, fine $35" in result.stdout


def test_add_user_and_list(library):
    login("admin", portal="admin")
    result = runner.invoke(app, ["add-user", "--name", "Jane", "--library-id", "jane", "--password", "pw"])
    assert result.exit_code == 0
    assert "Account created successfully" in result.stdout

    result = runner.invoke(app, ["users", "--role", "student"])
    assert "(jane, USER)" in result.stdout
    assert "(admin, ADMIN)" not in result.stdout


def test_duplicate_signup():
    result = runner.invoke(app, ["signup", "--name", "X", "--library-id", "admin", "--password", "pw"])
    assert result.exit_code == 1
    assert "Library ID already exists" in result.stdout


def test_logout(library):
    login("user")
    result = runner.invoke(app, ["logout"])
    assert "Logged out successfully." in result.stdout
    assert library.current_user() is None


def test_stats():
    result = runner.invoke(app, ["stats"])
    assert result.exit_code == 0
    assert "Total Books: 3" in result.stdout
    assert "Issued Books: 1" in result.stdout


def test_serve_runs_uvicorn(monkeypatch):
    run_mock = MagicMock()
    monkeypatch.setattr(cli.subprocess, "run", run_mock)

    result = runner.invoke(app, ["serve", "--host", "0.0.0.0", "--port", "9000"])

    assert result.exit_code == 0
    assert "Starting API on http://0.0.0.0:9000/docs" in result.stdout
    args = run_mock.call_args[0][0]
    assert "vaymn.api:app" in args
    assert args[args.index("--port") + 1] == "9000"
