"""Catalog and lending rules.

Everything here works on plain lists of :class:`~vaymn.book.Book` and never
touches storage. Transitions return a new list and leave the input untouched,
so the caller decides when to persist. Anything that depends on the wall clock
takes ``now`` as an argument.
"""
import logging
import math
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Union

from vaymn.book import Book
from vaymn.config import settings
from vaymn.validators import TextValidator, require_fields

logger = logging.getLogger(__name__)

ONE_DAY = timedelta(days=1)

RETURN_INSTRUCTIONS = "Please submit the book physically to the librarian at the counter."

# Catalog fields an admin may edit. Lending fields only change through issue/return.
EDITABLE_FIELDS = ("title", "author", "genre", "cover_url", "stand_number", "description")


class LendingError(ValueError):
    """A lending transition is not allowed in the book's current state."""


class BookAlreadyIssuedError(LendingError):
    pass


class BookNotIssuedError(LendingError):
    pass


class BookOnLoanError(LendingError):
    pass


class BookNotFoundError(LookupError):
    pass


# ------------------------- Time helpers ------------------------- #
def parse_timestamp(value: Union[str, datetime]) -> datetime:
    """Parse an ISO-8601 timestamp into an aware UTC datetime. Naive values are taken as UTC."""
    if isinstance(value, datetime):
        parsed = value
    else:
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    return parse_timestamp(value).isoformat()


# ------------------------- Fines ------------------------- #
@dataclass
class LoanStatus:
    """Derived state of an issued book at a given moment."""
    due_date: datetime
    is_overdue: bool
    overdue_days: int
    fine: int

    def to_dict(self) -> dict:
        return {
            "due_date": self.due_date.isoformat(),
            "is_overdue": self.is_overdue,
            "overdue_days": self.overdue_days,
            "fine": self.fine,
        }


def due_date_for(issued_date: Union[str, datetime], loan_period_days: Optional[int] = None) -> datetime:
    days = settings.loan_period_days if loan_period_days is None else loan_period_days
    return parse_timestamp(issued_date) + timedelta(days=days)


def loan_status(issued_date: Union[str, datetime], now: datetime,
                loan_period_days: Optional[int] = None, fine_per_day: Optional[int] = None) -> LoanStatus:
    """Due date, overdue days and fine for a loan started at ``issued_date``.

    Any started day past the due date counts as a full overdue day.
    """
    rate = settings.fine_per_day if fine_per_day is None else fine_per_day
    due = due_date_for(issued_date, loan_period_days)
    now = parse_timestamp(now)
    if now > due:
        overdue_days = math.ceil((now - due) / ONE_DAY)
        return LoanStatus(due_date=due, is_overdue=True, overdue_days=overdue_days, fine=overdue_days * rate)
    return LoanStatus(due_date=due, is_overdue=False, overdue_days=0, fine=0)


def compute_fine(issued_date: Union[str, datetime], now: datetime,
                 loan_period_days: Optional[int] = None, fine_per_day: Optional[int] = None) -> int:
    return loan_status(issued_date, now, loan_period_days, fine_per_day).fine


def book_loan_status(book: Book, now: datetime) -> Optional[LoanStatus]:
    """Loan status of an issued book, None for available ones."""
    if not book.is_issued or not book.issued_date:
        return None
    return loan_status(book.issued_date, now)


def books_issued_to(books: List[Book], user_id: str) -> List[Book]:
    return [b for b in books if b.is_issued and b.issued_to_user_id == user_id]


def total_fine(books: List[Book], user_id: str, now: datetime) -> int:
    """Sum of the current fines over every book issued to ``user_id``."""
    return sum(compute_fine(b.issued_date, now) for b in books_issued_to(books, user_id) if b.issued_date)


# ------------------------- Search ------------------------- #
def search_books(books: List[Book], query: Optional[str]) -> List[Book]:
    """Case-insensitive substring match on title, author or genre. Keeps collection order."""
    needle = TextValidator.clean(query).lower()
    if not needle:
        return list(books)
    return [
        b for b in books
        if needle in b.title.lower() or needle in b.author.lower() or needle in b.genre.lower()
    ]


def find_book(books: List[Book], book_id: str) -> Book:
    for book in books:
        if book.id == book_id:
            return book
    raise BookNotFoundError(f"Book {book_id} not found.")


def _replace(books: List[Book], updated: Book) -> List[Book]:
    return [updated if b.id == updated.id else b for b in books]


# ------------------------- Lending transitions ------------------------- #
def issue_book(books: List[Book], book_id: str, user_id: str, now: datetime) -> List[Book]:
    """AVAILABLE -> ISSUED for ``user_id`` at ``now``."""
    book = find_book(books, book_id)
    if book.is_issued:
        raise BookAlreadyIssuedError(f"'{book.title}' is already issued.")
    issued = book.copy()
    issued.is_issued = True
    issued.issued_to_user_id = user_id
    issued.issued_date = format_timestamp(now)
    logger.info(f"Book {book_id} issued to user {user_id}")
    return _replace(books, issued)


def return_book(books: List[Book], book_id: str) -> List[Book]:
    """ISSUED -> AVAILABLE, whoever the book was issued to."""
    book = find_book(books, book_id)
    if not book.is_issued:
        raise BookNotIssuedError(f"'{book.title}' is not issued.")
    returned = book.copy()
    returned.is_issued = False
    returned.issued_to_user_id = None
    returned.issued_date = None
    logger.info(f"Book {book_id} returned (was issued to {book.issued_to_user_id})")
    return _replace(books, returned)


# ------------------------- Catalog maintenance ------------------------- #
def new_book_id() -> str:
    return f"b{uuid.uuid4().hex[:12]}"


def add_book(books: List[Book], *, title: Optional[str], stand_number: Optional[str],
             author: Optional[str] = None, genre: Optional[str] = None, cover_url: Optional[str] = None,
             description: Optional[str] = None, book_id: Optional[str] = None) -> List[Book]:
    require_fields({"title": title, "stand_number": stand_number}, ("title", "stand_number"),
                   "Title and Stand Number are required.")
    book = Book(
        id=book_id or new_book_id(),
        title=TextValidator.clean(title),
        author=TextValidator.clean(author) or "Unknown",
        genre=TextValidator.clean(genre) or "General",
        cover_url=TextValidator.clean(cover_url) or settings.placeholder_cover_url,
        stand_number=TextValidator.clean(stand_number),
        description=TextValidator.clean(description),
    )
    logger.info(f"Book {book.id} added: {book.title}")
    return [*books, book]


def update_book(books: List[Book], book_id: str, **changes: Optional[str]) -> List[Book]:
    """Edit catalog fields of a book. ``None`` values are left as they are.

    Editing is allowed while the book is on loan; the loan itself is untouched.
    """
    unknown = set(changes) - set(EDITABLE_FIELDS)
    if unknown:
        raise ValueError(f"Fields cannot be edited: {', '.join(sorted(unknown))}")

    book = find_book(books, book_id)
    data = book.to_dict()
    for name, value in changes.items():
        if value is not None:
            data[name] = value if name == "cover_url" else TextValidator.clean(value)
    require_fields(data, ("title", "stand_number"), "Title and Stand Number are required.")

    updated = Book.from_dict(data)
    logger.info(f"Book {book_id} updated")
    return _replace(books, updated)


def delete_book(books: List[Book], book_id: str) -> List[Book]:
    """Remove a book from the catalog. Books on loan must be returned first."""
    book = find_book(books, book_id)
    if book.is_issued:
        raise BookOnLoanError(f"'{book.title}' is currently issued. Mark it as returned before deleting.")
    logger.info(f"Book {book_id} deleted")
    return [b for b in books if b.id != book_id]
