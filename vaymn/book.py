from __future__ import annotations


class Book:
    """A single catalog entry together with its lending state."""

    def __init__(self, id: str, title: str, author: str, genre: str, cover_url: str, stand_number: str,
                 description: str = "",
                 # Lending state
                 is_issued: bool = False, issued_to_user_id: str | None = None,
                 issued_date: str | None = None) -> None:
        self.id = id
        self.title = title.strip()
        self.author = author.strip()
        self.genre = genre.strip()
        self.cover_url = cover_url
        self.stand_number = stand_number.strip()
        self.description = description or ""

        self.is_issued = is_issued
        self.issued_to_user_id = issued_to_user_id
        self.issued_date = issued_date

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.title} by {self.author} (Stand: {self.stand_number})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Book):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def copy(self) -> "Book":
        return Book.from_dict(self.to_dict())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "genre": self.genre,
            "cover_url": self.cover_url,
            "stand_number": self.stand_number,
            "description": self.description,
            # Lending state
            "is_issued": self.is_issued,
            "issued_to_user_id": self.issued_to_user_id,
            "issued_date": self.issued_date,
        }

    @staticmethod
    def from_dict(data: dict) -> "Book":
        return Book(
            id=data["id"],
            title=data["title"],
            author=data.get("author") or "",
            genre=data.get("genre") or "",
            cover_url=data.get("cover_url") or "",
            stand_number=data.get("stand_number") or "",
            description=data.get("description") or "",
            is_issued=bool(data.get("is_issued", False)),
            issued_to_user_id=data.get("issued_to_user_id"),
            issued_date=data.get("issued_date"),
        )
