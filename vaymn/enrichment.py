"""Smart fill for the book form.

Enrichment is optional: the form works the same with no service configured,
with a failing service, or with one that has nothing to say.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Protocol

from vaymn.services.gemini_service import BookDetails
from vaymn.validators import TextValidator, require_fields

logger = logging.getLogger(__name__)

ENRICHABLE_FIELDS = ("author", "genre", "description", "cover_url")


class BookDetailsProvider(Protocol):
    def is_available(self) -> bool: ...

    async def generate_book_details(self, title: str) -> Optional[BookDetails]: ...


class SmartFillOutcome(Enum):
    FILLED = "FILLED"
    NO_DATA = "NO_DATA"
    UNAVAILABLE = "UNAVAILABLE"

    @property
    def message(self) -> str:
        return _OUTCOME_MESSAGES[self]


_OUTCOME_MESSAGES = {
    SmartFillOutcome.FILLED: "Book details auto-filled!",
    SmartFillOutcome.NO_DATA: "Could not fetch details. Please fill manually.",
    SmartFillOutcome.UNAVAILABLE: "AI Service unavailable. Please check configuration.",
}


@dataclass
class SmartFillResult:
    draft: Dict[str, Any]
    outcome: SmartFillOutcome

    @property
    def message(self) -> str:
        return self.outcome.message

    def to_dict(self) -> Dict[str, Any]:
        return {"draft": self.draft, "outcome": self.outcome.value, "message": self.message}


def merge_details(draft: Dict[str, Any], details: BookDetails) -> Dict[str, Any]:
    """Fill the draft's empty fields from ``details``. Fields already set in the draft win."""
    merged = dict(draft)
    suggested = details.to_dict()
    for name in ENRICHABLE_FIELDS:
        if TextValidator.is_blank(merged.get(name)) and not TextValidator.is_blank(suggested.get(name)):
            merged[name] = suggested[name]
    return merged


async def smart_fill(draft: Dict[str, Any], provider: Optional[BookDetailsProvider]) -> SmartFillResult:
    """Ask ``provider`` for details about the draft's title and merge them in.

    Raises MissingFieldsError when the draft has no title. Any other problem
    leaves the draft unchanged and is reported through the outcome.
    """
    require_fields(draft, ("title",), "Please enter a book title first.")
    unchanged = dict(draft)

    if provider is None or not provider.is_available():
        return SmartFillResult(draft=unchanged, outcome=SmartFillOutcome.UNAVAILABLE)

    try:
        details = await provider.generate_book_details(TextValidator.clean(draft["title"]))
    except Exception:
        logger.exception("Book details provider failed")
        return SmartFillResult(draft=unchanged, outcome=SmartFillOutcome.UNAVAILABLE)

    if details is None:
        return SmartFillResult(draft=unchanged, outcome=SmartFillOutcome.NO_DATA)
    return SmartFillResult(draft=merge_details(draft, details), outcome=SmartFillOutcome.FILLED)
