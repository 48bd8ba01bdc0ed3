from __future__ import annotations

from enum import Enum


class Role(Enum):
    """Account roles. Every role maps to exactly one portal and one dashboard."""
    ADMIN = "ADMIN"
    USER = "USER"

    @property
    def portal_label(self) -> str:
        return _PORTAL_LABELS[self]

    @property
    def account_label(self) -> str:
        return _ACCOUNT_LABELS[self]


_PORTAL_LABELS = {
    Role.ADMIN: "Admin",
    Role.USER: "Student",
}

_ACCOUNT_LABELS = {
    Role.ADMIN: "Librarian",
    Role.USER: "Student",
}


class User:
    """A library account. Passwords are kept in plaintext, as the demo store is local only."""

    def __init__(self, id: str, library_id: str, password: str, name: str, role: Role) -> None:
        self.id = id
        self.library_id = library_id.strip()
        self.password = password
        self.name = name.strip()
        self.role = role

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.name} ({self.library_id}, {self.role.account_label})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, User):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN

    def copy(self) -> "User":
        return User.from_dict(self.to_dict())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "library_id": self.library_id,
            "password": self.password,
            "name": self.name,
            "role": self.role.value,
        }

    def to_public_dict(self) -> dict:
        """Same as to_dict without the password."""
        data = self.to_dict()
        data.pop("password")
        return data

    @staticmethod
    def from_dict(data: dict) -> "User":
        return User(
            id=data["id"],
            library_id=data["library_id"],
            password=data.get("password") or "",
            name=data.get("name") or "",
            role=Role(data.get("role", Role.USER.value)),
        )
