from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass
class APIError(Exception):
    status_code: int
    code: str
    message: str
    details: dict[str, Any] | None = None

    def __str__(self) -> str:
        return self.message


class InvalidInputError(APIError):
    """Malformed document bytes, image data or out-of-range indexes."""


class InvalidImageFormatError(InvalidInputError):
    pass


class StructuralConstraintError(APIError):
    """The mutation would leave the document in an invalid shape."""


class CannotDeleteLastPageError(StructuralConstraintError):
    pass


class ResourceUnavailableError(APIError):
    """Font or image bytes are missing or unreadable at embed time."""


class StorageError(APIError):
    pass


class SessionNotFoundError(APIError):
    pass


def invalid_input(code: str, message: str, **details: Any) -> InvalidInputError:
    return InvalidInputError(status_code=400, code=code, message=message, details=details or None)


def resource_unavailable(code: str, message: str, **details: Any) -> ResourceUnavailableError:
    return ResourceUnavailableError(status_code=422, code=code, message=message, details=details or None)
