import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from vaymn import accounts, lending
from vaymn.book import Book
from vaymn.config import settings
from vaymn.enrichment import BookDetailsProvider, SmartFillResult, smart_fill
from vaymn.images import resize_cover
from vaymn.storage import SQLiteStorage, Storage, seed_demo_data
from vaymn.user import Role, User

logger = logging.getLogger(__name__)


class NotAuthenticatedError(PermissionError):
    """No one is logged in."""


class AccessDeniedError(PermissionError):
    """The logged-in account's role may not perform this action."""


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Library:
    """Runs user actions against the store on behalf of the active session.

    Every action reads the collections it needs, applies one rule from
    :mod:`vaymn.lending` or :mod:`vaymn.accounts` to that copy and writes the
    whole collection back. The clock is read once per action.
    """

    def __init__(self, storage: Optional[Storage] = None, *, clock: Callable[[], datetime] = utcnow,
                 enricher: Optional[BookDetailsProvider] = None, seed: Optional[bool] = None) -> None:
        self.storage = storage if storage is not None else SQLiteStorage()
        self.clock = clock
        self.enricher = enricher
        if settings.seed_demo_data if seed is None else seed:
            seed_demo_data(self.storage, now=self.clock())

    # ------------------------- Session ------------------------- #
    def current_user(self) -> Optional[User]:
        return self.storage.get_session()

    def require_user(self, role: Optional[Role] = None) -> User:
        user = self.current_user()
        if user is None:
            raise NotAuthenticatedError("Please log in first.")
        if role is not None and user.role is not role:
            raise AccessDeniedError(f"Only {role.account_label.lower()} accounts can do this.")
        return user

    def login(self, library_id: str, password: str, portal: Role) -> User:
        user = accounts.authenticate(self.storage.get_users(), library_id, password, portal)
        self.storage.set_session(user)
        logger.info(f"{user.library_id} logged in through the {portal.portal_label} portal")
        return user

    def signup(self, *, name: str, library_id: str, password: str, role: Role = Role.USER) -> User:
        """Self-service account creation. The new account is logged in right away."""
        users = accounts.create_user(self.storage.get_users(), name=name, library_id=library_id,
                                     password=password, role=role)
        self.storage.save_users(users)
        user = users[-1]
        self.storage.set_session(user)
        return user

    def logout(self) -> None:
        self.storage.clear_session()
        logger.info("Logged out")

    # ------------------------- Catalog views ------------------------- #
    def list_books(self, query: Optional[str] = None) -> List[Book]:
        return lending.search_books(self.storage.get_books(), query)

    def get_book(self, book_id: str) -> Book:
        return lending.find_book(self.storage.get_books(), book_id)

    def describe_book(self, book: Book, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Book record plus its loan status (due date, overdue, fine) at ``now``."""
        status = lending.book_loan_status(book, now or self.clock())
        data = book.to_dict()
        data["loan"] = status.to_dict() if status else None
        return data

    def loans_of(self, user_id: str, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        now = now or self.clock()
        return [self.describe_book(b, now) for b in lending.books_issued_to(self.storage.get_books(), user_id)]

    def my_loans(self) -> List[Dict[str, Any]]:
        return self.loans_of(self.require_user().id)

    # ------------------------- Lending ------------------------- #
    def issue_book(self, book_id: str) -> Book:
        user = self.require_user(Role.USER)
        books = lending.issue_book(self.storage.get_books(), book_id, user.id, self.clock())
        self.storage.save_books(books)
        return lending.find_book(books, book_id)

    def request_return(self, book_id: str) -> str:
        """Students cannot return books themselves; tell them where to bring it."""
        user = self.require_user(Role.USER)
        book = self.get_book(book_id)
        if book.issued_to_user_id != user.id:
            raise lending.BookNotIssuedError(f"'{book.title}' is not issued to you.")
        return lending.RETURN_INSTRUCTIONS

    def return_book(self, book_id: str) -> Book:
        self.require_user(Role.ADMIN)
        books = lending.return_book(self.storage.get_books(), book_id)
        self.storage.save_books(books)
        return lending.find_book(books, book_id)

    # ------------------------- Catalog maintenance ------------------------- #
    def add_book(self, **fields: Optional[str]) -> Book:
        self.require_user(Role.ADMIN)
        books = lending.add_book(self.storage.get_books(), **fields)
        self.storage.save_books(books)
        return books[-1]

    def update_book(self, book_id: str, **changes: Optional[str]) -> Book:
        self.require_user(Role.ADMIN)
        books = lending.update_book(self.storage.get_books(), book_id, **changes)
        self.storage.save_books(books)
        return lending.find_book(books, book_id)

    def delete_book(self, book_id: str) -> None:
        self.require_user(Role.ADMIN)
        self.storage.save_books(lending.delete_book(self.storage.get_books(), book_id))

    async def smart_fill(self, draft: Dict[str, Any]) -> SmartFillResult:
        self.require_user(Role.ADMIN)
        return await smart_fill(draft, self.enricher)

    def upload_cover(self, data: bytes) -> str:
        self.require_user(Role.ADMIN)
        return resize_cover(data)

    # ------------------------- Roster ------------------------- #
    def list_users(self, role: Optional[Role] = None) -> List[User]:
        self.require_user(Role.ADMIN)
        users = self.storage.get_users()
        return accounts.users_with_role(users, role) if role else users

    def student_roster(self, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """Students with their issued books and the total fine they owe right now."""
        now = now or self.clock()
        books = self.storage.get_books()
        roster = []
        for student in self.list_users(Role.USER):
            roster.append({
                "user": student.to_public_dict(),
                "issued_books": [self.describe_book(b, now) for b in lending.books_issued_to(books, student.id)],
                "total_fine": lending.total_fine(books, student.id, now),
            })
        return roster

    def create_user(self, *, name: str, library_id: str, password: str, role: Role) -> User:
        """Admin-created account; the session stays with the admin."""
        self.require_user(Role.ADMIN)
        users = accounts.create_user(self.storage.get_users(), name=name, library_id=library_id,
                                     password=password, role=role)
        self.storage.save_users(users)
        return users[-1]

    def update_user(self, user_id: str, **changes: Any) -> User:
        session_user = self.require_user(Role.ADMIN)
        users = accounts.update_user(self.storage.get_users(), user_id, **changes)
        self.storage.save_users(users)
        updated = accounts.find_user(users, user_id)
        if updated.id == session_user.id:
            self.storage.set_session(updated)
        return updated

    def delete_user(self, user_id: str) -> None:
        session_user = self.require_user(Role.ADMIN)
        on_loan = lending.books_issued_to(self.storage.get_books(), user_id)
        if on_loan:
            logger.warning(f"Deleting user {user_id} with {len(on_loan)} book(s) still issued")
        self.storage.save_users(accounts.delete_user(self.storage.get_users(), user_id))
        if user_id == session_user.id:
            self.storage.clear_session()

    # ------------------------- Dashboards ------------------------- #
    def dashboard(self) -> Dict[str, Any]:
        """View state for the logged-in account; each role has its own dashboard."""
        user = self.require_user()
        builders = {
            Role.ADMIN: self._admin_dashboard,
            Role.USER: self._student_dashboard,
        }
        return builders[user.role](user, self.clock())

    def _student_dashboard(self, user: User, now: datetime) -> Dict[str, Any]:
        return {
            "view": "student",
            "user": user.to_public_dict(),
            "my_books": self.loans_of(user.id, now),
            "catalog": [self.describe_book(b, now) for b in self.storage.get_books()],
        }

    def _admin_dashboard(self, user: User, now: datetime) -> Dict[str, Any]:
        return {
            "view": "admin",
            "user": user.to_public_dict(),
            "books": [self.describe_book(b, now) for b in self.storage.get_books()],
            "students": self.student_roster(now),
            "librarians": [u.to_public_dict() for u in self.list_users(Role.ADMIN)],
        }

    def get_statistics(self) -> Dict[str, Any]:
        books = self.storage.get_books()
        users = self.storage.get_users()
        return {
            "total_books": len(books),
            "issued_books": sum(1 for b in books if b.is_issued),
            "students": len(accounts.users_with_role(users, Role.USER)),
            "librarians": len(accounts.users_with_role(users, Role.ADMIN)),
        }
