from typing import Iterable, List, Mapping, Optional


class TextValidator:
    """Small helpers for required text fields."""

    @staticmethod
    def is_blank(text: Optional[str]) -> bool:
        return text is None or not str(text).strip()

    @staticmethod
    def missing_fields(data: Mapping[str, Optional[str]], required: Iterable[str]) -> List[str]:
        """Names of required fields that are absent or blank, in the order given."""
        return [name for name in required if TextValidator.is_blank(data.get(name))]

    @staticmethod
    def clean(text: Optional[str]) -> str:
        if text is None:
            return ""
        return str(text).strip()


class MissingFieldsError(ValueError):
    """Raised when one or more required fields are blank."""

    def __init__(self, message: str, fields: List[str]) -> None:
        super().__init__(message)
        self.fields = fields


def require_fields(data: Mapping[str, Optional[str]], required: Iterable[str], message: str) -> None:
    missing = TextValidator.missing_fields(data, required)
    if missing:
        raise MissingFieldsError(message, missing)
