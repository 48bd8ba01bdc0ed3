import io

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from vaymn.api import app, get_library
from vaymn.library import Library
from vaymn.services.gemini_service import BookDetails
from vaymn.storage import MemoryStorage


class StaticProvider:
    def is_available(self):
        return True

    async def generate_book_details(self, title):
        return BookDetails(author="Frank Herbert", genre="Science Fiction", description="Spice.")


@pytest.fixture
def library(now):
    return Library(MemoryStorage(), clock=lambda: now, enricher=StaticProvider(), seed=True)


@pytest.fixture
def client(library):
    app.dependency_overrides[get_library] = lambda: library
    yield TestClient(app)
    app.dependency_overrides.clear()


def login(client, library_id, portal):
    return client.post("/auth/login", json={"library_id": library_id, "password": "123", "portal": portal})


@pytest.fixture
def admin(client):
    assert login(client, "admin", "ADMIN").status_code == 200
    return client


@pytest.fixture
def student(client):
    assert login(client, "user", "USER").status_code == 200
    return client


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["total_books"] == 3
    assert data["ai_features"] is True


def test_health_without_enricher(now):
    app.dependency_overrides[get_library] = lambda: Library(MemoryStorage(), clock=lambda: now, seed=True)
    try:
        assert TestClient(app).get("/health").json()["ai_features"] is False
    finally:
        app.dependency_overrides.clear()


# ------------------------- Auth ------------------------- #
def test_login_returns_public_user(client):
    response = login(client, "user", "USER")
    assert response.status_code == 200
    assert response.json() == {"id": "user1", "library_id": "user", "name": "John Doe", "role": "USER"}


def test_login_wrong_password(client):
    response = client.post("/auth/login", json={"library_id": "user", "password": "nope", "portal": "USER"})
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid Library ID or Password."


def test_login_through_the_wrong_portal(client):
    response = login(client, "admin", "USER")
    assert response.status_code == 403
    assert response.json()["detail"] == "This account is not authorized for Student access."


def test_session_and_logout(student):
    assert student.get("/session").json()["library_id"] == "user"
    assert student.post("/auth/logout").status_code == 204
    assert student.get("/session").status_code == 401


def test_signup(client):
    response = client.post("/auth/signup", json={"name": "Jane", "library_id": "jane", "password": "pw"})
    assert response.status_code == 201
    assert response.json()["role"] == "USER"
    assert client.get("/session").json()["library_id"] == "jane"


def test_signup_with_duplicate_library_id(client):
    response = client.post("/auth/signup", json={"name": "X", "library_id": "admin", "password": "pw"})
    assert response.status_code == 409


def test_signup_with_missing_fields(client):
    response = client.post("/auth/signup", json={"name": "Jane"})
    assert response.status_code == 400
    assert response.json()["detail"] == "Please fill in all fields."


# ------------------------- Catalog ------------------------- #
def test_books_require_login(client):
    assert client.get("/books").status_code == 401


def test_search_books(student):
    response = student.get("/books", params={"q": "orwell"})
    assert [b["id"] for b in response.json()] == ["b2"]


def test_book_detail_includes_loan(student):
    data = student.get("/books/b3").json()
    assert data["loan"]["is_overdue"] is True
    assert data["loan"]["fine"] == 35


def test_unknown_book(student):
    assert student.get("/books/nope").status_code == 404


def test_issue_flow(student):
    response = student.post("/books/b1/issue")
    assert response.status_code == 200
    assert response.json()["issued_to_user_id"] == "user1"

    again = student.post("/books/b1/issue")
    assert again.status_code == 409

    my_books = student.get("/me/books").json()
    assert {b["id"] for b in my_books} == {"b1", "b3"}


def test_return_request(student):
    response = student.post("/books/b3/return-request")
    assert response.json()["message"] == "Please submit the book physically to the librarian at the counter."
    assert student.post("/books/b3/return").status_code == 403


def test_admin_return(admin):
    response = admin.post("/books/b3/return")
    assert response.status_code == 200
    assert response.json()["loan"] is None
    assert admin.post("/books/b3/return").status_code == 409


def test_admin_cannot_issue(admin):
    assert admin.post("/books/b1/issue").status_code == 403


def test_add_edit_delete_book(admin):
    created = admin.post("/books", json={"title": "Dune", "stand_number": "S1"})
    assert created.status_code == 201
    book = created.json()
    assert book["author"] == "Unknown"

    edited = admin.put(f"/books/{book['id']}", json={"author": "Frank Herbert"})
    assert edited.json()["author"] == "Frank Herbert"
    assert edited.json()["title"] == "Dune"

    assert admin.delete(f"/books/{book['id']}").status_code == 204
    assert admin.get(f"/books/{book['id']}").status_code == 404


def test_add_book_requires_stand_number(admin):
    response = admin.post("/books", json={"title": "Dune"})
    assert response.status_code == 400
    assert response.json()["detail"] == "Title and Stand Number are required."


def test_delete_issued_book(admin):
    assert admin.delete("/books/b3").status_code == 409


def test_smart_fill(admin):
    response = admin.post("/books/smart-fill", json={"title": "Dune", "genre": "Classics"})
    data = response.json()
    assert data["outcome"] == "FILLED"
    assert data["draft"]["author"] == "Frank Herbert"
    assert data["draft"]["genre"] == "Classics"


def test_cover_upload(admin):
    buffer = io.BytesIO()
    Image.new("RGB", (800, 400), color="blue").save(buffer, format="PNG")
    response = admin.post("/covers", content=buffer.getvalue(), headers={"Content-Type": "image/png"})
    assert response.status_code == 200
    assert response.json()["cover_url"].startswith("data:image/jpeg;base64,")


def test_cover_upload_rejects_garbage(admin):
    response = admin.post("/covers", content=b"garbage", headers={"Content-Type": "image/png"})
    assert response.status_code == 422


def test_cover_upload_rejects_oversized_image(admin, monkeypatch):
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 100)
    buffer = io.BytesIO()
    Image.new("1", (50, 50)).save(buffer, format="PNG")
    response = admin.post("/covers", content=buffer.getvalue(), headers={"Content-Type": "image/png"})
    assert response.status_code == 422
    assert response.json()["detail"] == "Failed to process image. Please try another."


# ------------------------- Roster ------------------------- #
def test_student_roster(admin):
    roster = admin.get("/users/students").json()
    assert roster[0]["user"]["library_id"] == "user"
    assert roster[0]["total_fine"] == 35


def test_user_management(admin):
    created = admin.post("/users", json={"name": "Jane", "library_id": "jane", "password": "pw", "role": "ADMIN"})
    assert created.status_code == 201
    user_id = created.json()["id"]
    assert "password" not in created.json()

    librarians = admin.get("/users", params={"role": "ADMIN"}).json()
    assert {u["library_id"] for u in librarians} == {"admin", "jane"}

    clash = admin.put(f"/users/{user_id}", json={"library_id": "user"})
    assert clash.status_code == 409

    assert admin.delete(f"/users/{user_id}").status_code == 204
    assert admin.delete(f"/users/{user_id}").status_code == 404


def test_students_cannot_manage_users(student):
    assert student.get("/users").status_code == 403


def test_dashboard(admin):
    data = admin.get("/dashboard").json()
    assert data["view"] == "admin"
    assert data["students"][0]["total_fine"] == 35
