"""Account rules: role-scoped login and roster management.

Like :mod:`vaymn.lending`, these functions work on plain lists and return new
lists; persisting them (and the session) is the caller's job.
"""
import logging
import uuid
from typing import List, Optional

from vaymn.user import Role, User
from vaymn.validators import TextValidator, require_fields

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS_MESSAGE = "Invalid Library ID or Password."


class InvalidCredentialsError(LookupError):
    """Unknown library id or wrong password."""


class RoleMismatchError(PermissionError):
    """Valid credentials, but the account belongs to the other portal."""

    def __init__(self, user: User, portal: Role) -> None:
        super().__init__(f"This account is not authorized for {portal.portal_label} access.")
        self.user = user
        self.portal = portal


class DuplicateLibraryIdError(ValueError):
    pass


class UserNotFoundError(LookupError):
    pass


def find_user_by_library_id(users: List[User], library_id: str) -> Optional[User]:
    for user in users:
        if user.library_id == library_id:
            return user
    return None


def find_user(users: List[User], user_id: str) -> User:
    for user in users:
        if user.id == user_id:
            return user
    raise UserNotFoundError(f"User {user_id} not found.")


def users_with_role(users: List[User], role: Role) -> List[User]:
    return [u for u in users if u.role is role]


def authenticate(users: List[User], library_id: str, password: str, portal: Role) -> User:
    """Return the user for these credentials if the account belongs to ``portal``.

    Wrong credentials raise InvalidCredentialsError; right credentials on the
    wrong portal raise RoleMismatchError. An admin account cannot sign in
    through the student portal, nor the other way round.
    """
    user = find_user_by_library_id(users, TextValidator.clean(library_id))
    if user is None or user.password != password:
        logger.info(f"Failed login for library id {library_id!r}")
        raise InvalidCredentialsError(INVALID_CREDENTIALS_MESSAGE)
    if user.role is not portal:
        logger.info(f"Library id {library_id!r} ({user.role.value}) refused at the {portal.value} portal")
        raise RoleMismatchError(user, portal)
    return user


def _ensure_unique(users: List[User], library_id: str, exclude_user_id: Optional[str] = None) -> None:
    for user in users:
        if user.library_id == library_id and user.id != exclude_user_id:
            raise DuplicateLibraryIdError("Library ID already exists. Please choose another.")


def new_user_id() -> str:
    return f"u{uuid.uuid4().hex[:12]}"


def create_user(users: List[User], *, name: Optional[str], library_id: Optional[str],
                password: Optional[str], role: Role, user_id: Optional[str] = None) -> List[User]:
    """Append a new account. The library id must be unique across every role."""
    require_fields({"name": name, "library_id": library_id, "password": password},
                   ("name", "library_id", "password"), "Please fill in all fields.")
    library_id = TextValidator.clean(library_id)
    _ensure_unique(users, library_id)
    user = User(id=user_id or new_user_id(), library_id=library_id, password=password,
                name=TextValidator.clean(name), role=role)
    logger.info(f"{role.account_label} account created: {library_id}")
    return [*users, user]


def update_user(users: List[User], user_id: str, *, name: Optional[str] = None,
                library_id: Optional[str] = None, password: Optional[str] = None,
                role: Optional[Role] = None) -> List[User]:
    """Edit an account. ``None`` leaves a field unchanged; blank values are rejected.

    A changed library id is checked for uniqueness against the other accounts.
    """
    current = find_user(users, user_id)
    data = current.to_dict()
    if name is not None:
        data["name"] = TextValidator.clean(name)
    if library_id is not None:
        data["library_id"] = TextValidator.clean(library_id)
    if password is not None:
        data["password"] = password
    if role is not None:
        data["role"] = role.value
    require_fields(data, ("name", "library_id", "password"), "All fields are required.")

    if data["library_id"] != current.library_id:
        _ensure_unique(users, data["library_id"], exclude_user_id=user_id)

    updated = User.from_dict(data)
    logger.info(f"Account {user_id} updated")
    return [updated if u.id == user_id else u for u in users]


def delete_user(users: List[User], user_id: str) -> List[User]:
    find_user(users, user_id)
    logger.info(f"Account {user_id} deleted")
    return [u for u in users if u.id != user_id]
