import logging
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from vaymn import accounts, lending
from vaymn.config import settings
from vaymn.images import ImageProcessingError
from vaymn.library import AccessDeniedError, Library, NotAuthenticatedError
from vaymn.services.gemini_service import GeminiService
from vaymn.user import Role, User
from vaymn.validators import MissingFieldsError

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.app_name, version=settings.app_version)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

_library: Optional[Library] = None


def get_library() -> Library:
    """Dependency returning the process-wide Library (overridden in tests)."""
    global _library
    if _library is None:
        _library = Library(enricher=GeminiService())
    return _library


# --- Error mapping ---
# Most specific class wins, Starlette walks the exception's MRO.
_STATUS_BY_ERROR = {
    MissingFieldsError: 400,
    ValueError: 400,
    accounts.InvalidCredentialsError: 401,
    NotAuthenticatedError: 401,
    accounts.RoleMismatchError: 403,
    AccessDeniedError: 403,
    lending.BookNotFoundError: 404,
    accounts.UserNotFoundError: 404,
    accounts.DuplicateLibraryIdError: 409,
    lending.LendingError: 409,
    ImageProcessingError: 422,
}


def _make_handler(status_code: int):
    async def handler(request: Request, exc: Exception) -> JSONResponse:
        logger.debug(f"{request.method} {request.url.path} -> {status_code}: {exc}")
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})
    return handler


for _error, _status in _STATUS_BY_ERROR.items():
    app.add_exception_handler(_error, _make_handler(_status))


# --- Models ---
class UserModel(BaseModel):
    id: str
    library_id: str
    name: str
    role: Role


class LoginRequest(BaseModel):
    library_id: str
    password: str
    portal: Role = Field(description="Portal the user is signing in through")


class SignupRequest(BaseModel):
    name: str = ""
    library_id: str = ""
    password: str = ""
    role: Role = Role.USER


class UserCreateModel(BaseModel):
    name: str = ""
    library_id: str = ""
    password: str = ""
    role: Role = Role.USER


class UserUpdateModel(BaseModel):
    name: Optional[str] = None
    library_id: Optional[str] = None
    password: Optional[str] = None
    role: Optional[Role] = None


class LoanModel(BaseModel):
    due_date: str
    is_overdue: bool
    overdue_days: int
    fine: int


class BookModel(BaseModel):
    id: str
    title: str
    author: str
    genre: str
    cover_url: str
    stand_number: str
    description: str
    is_issued: bool
    issued_to_user_id: Optional[str] = None
    issued_date: Optional[str] = None
    loan: Optional[LoanModel] = None


class BookDraftModel(BaseModel):
    """Book form contents. Required fields are checked by the catalog rules."""
    title: Optional[str] = None
    author: Optional[str] = None
    genre: Optional[str] = None
    cover_url: Optional[str] = None
    stand_number: Optional[str] = None
    description: Optional[str] = None


class SmartFillResponse(BaseModel):
    draft: Dict[str, Any]
    outcome: str
    message: str


class RosterEntryModel(BaseModel):
    user: UserModel
    issued_books: List[BookModel]
    total_fine: int


class MessageModel(BaseModel):
    message: str


def _user_model(user: User) -> UserModel:
    return UserModel(**user.to_public_dict())


# --- Health ---
@app.get("/health")
def health(lib: Library = Depends(get_library)):
    stats = lib.get_statistics()
    return {
        "status": "healthy",
        "ai_features": lib.enricher is not None and lib.enricher.is_available(),
        **stats,
    }


# --- Auth & session ---
@app.post("/auth/login", response_model=UserModel)
def login(body: LoginRequest, lib: Library = Depends(get_library)):
    user = lib.login(body.library_id, body.password, body.portal)
    return _user_model(user)


@app.post("/auth/signup", response_model=UserModel, status_code=201)
def signup(body: SignupRequest, lib: Library = Depends(get_library)):
    user = lib.signup(name=body.name, library_id=body.library_id, password=body.password, role=body.role)
    return _user_model(user)


@app.post("/auth/logout", status_code=204)
def logout(lib: Library = Depends(get_library)):
    lib.logout()
    return Response(status_code=204)


@app.get("/session", response_model=UserModel)
def get_session(lib: Library = Depends(get_library)):
    return _user_model(lib.require_user())


@app.get("/dashboard")
def dashboard(lib: Library = Depends(get_library)):
    return lib.dashboard()


# --- Catalog ---
@app.get("/books", response_model=List[BookModel])
def list_books(q: Optional[str] = Query(None, description="Matches title, author or genre"),
               lib: Library = Depends(get_library)):
    lib.require_user()
    now = lib.clock()
    return [lib.describe_book(b, now) for b in lib.list_books(q)]


@app.post("/books", response_model=BookModel, status_code=201)
def add_book(body: BookDraftModel, lib: Library = Depends(get_library)):
    book = lib.add_book(**body.model_dump())
    return lib.describe_book(book)


@app.post("/books/smart-fill", response_model=SmartFillResponse)
async def smart_fill(body: BookDraftModel, lib: Library = Depends(get_library)):
    result = await lib.smart_fill(body.model_dump())
    return result.to_dict()


@app.get("/books/{book_id}", response_model=BookModel)
def get_book(book_id: str, lib: Library = Depends(get_library)):
    lib.require_user()
    return lib.describe_book(lib.get_book(book_id))


@app.put("/books/{book_id}", response_model=BookModel)
def update_book(book_id: str, body: BookDraftModel, lib: Library = Depends(get_library)):
    book = lib.update_book(book_id, **body.model_dump())
    return lib.describe_book(book)


@app.delete("/books/{book_id}", status_code=204)
def delete_book(book_id: str, lib: Library = Depends(get_library)):
    lib.delete_book(book_id)
    return Response(status_code=204)


@app.post("/books/{book_id}/issue", response_model=BookModel)
def issue_book(book_id: str, lib: Library = Depends(get_library)):
    book = lib.issue_book(book_id)
    return lib.describe_book(book)


@app.post("/books/{book_id}/return-request", response_model=MessageModel)
def request_return(book_id: str, lib: Library = Depends(get_library)):
    return MessageModel(message=lib.request_return(book_id))


@app.post("/books/{book_id}/return", response_model=BookModel)
def return_book(book_id: str, lib: Library = Depends(get_library)):
    book = lib.return_book(book_id)
    return lib.describe_book(book)


@app.get("/me/books", response_model=List[BookModel])
def my_books(lib: Library = Depends(get_library)):
    return lib.my_loans()


@app.post("/covers")
async def upload_cover(request: Request, lib: Library = Depends(get_library)):
    """Accept a raw image body and return it resized as an inline data URL."""
    data = await request.body()
    cover_url = lib.upload_cover(data)
    return {"cover_url": cover_url, "message": "Image uploaded successfully!"}


# --- Roster ---
@app.get("/users", response_model=List[UserModel])
def list_users(role: Optional[Role] = Query(None), lib: Library = Depends(get_library)):
    return [_user_model(u) for u in lib.list_users(role)]


@app.get("/users/students", response_model=List[RosterEntryModel])
def student_roster(lib: Library = Depends(get_library)):
    return lib.student_roster()


@app.post("/users", response_model=UserModel, status_code=201)
def create_user(body: UserCreateModel, lib: Library = Depends(get_library)):
    user = lib.create_user(name=body.name, library_id=body.library_id, password=body.password, role=body.role)
    return _user_model(user)


@app.put("/users/{user_id}", response_model=UserModel)
def update_user(user_id: str, body: UserUpdateModel, lib: Library = Depends(get_library)):
    user = lib.update_user(user_id, **body.model_dump())
    return _user_model(user)


@app.delete("/users/{user_id}", status_code=204)
def delete_user(user_id: str, lib: Library = Depends(get_library)):
    lib.delete_user(user_id)
    return Response(status_code=204)
