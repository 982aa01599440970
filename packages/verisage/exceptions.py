"""Exception hierarchy for ``verisage``.

Every error raised on purpose by the package derives from
:class:`VerisageError`, so hosts can catch the whole family in one clause.
Each subclass also derives from the closest builtin (``ValueError``,
``OSError``, ``LookupError``) so generic handlers keep working.
"""

from __future__ import annotations

from typing import Any


class VerisageError(Exception):
    """Base exception for all verisage errors."""

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class InvalidMonthError(VerisageError, ValueError):
    """Month name is not one of the twelve canonical values."""

    def __init__(self, month: Any) -> None:
        super().__init__(f"Invalid month: {month!r}", details={"month": month})
        self.month = month


class SerializationIOError(VerisageError, OSError):
    """The export directory or batch file could not be created or written."""

    def __init__(self, message: str, *, path: str | None = None) -> None:
        super().__init__(message, details={"path": path})
        self.path = path


class EmptyBatchError(VerisageError, ValueError):
    """A bulk batch was requested with no eligible forms."""


class FormValidationError(VerisageError, ValueError):
    """A form submission or update failed validation.

    ``details["errors"]`` holds one human-readable message per problem.
    """

    def __init__(self, errors: list[str]) -> None:
        super().__init__("Validation error", details={"errors": list(errors)})
        self.errors = list(errors)


class FormNotFoundError(VerisageError, LookupError):
    def __init__(self, form_id: str) -> None:
        super().__init__(f"Form not found: {form_id}", details={"form_id": form_id})
        self.form_id = form_id


class FormStateError(VerisageError):
    """The requested lifecycle transition is not allowed for the form's status."""


__all__ = [
    "VerisageError",
    "InvalidMonthError",
    "SerializationIOError",
    "EmptyBatchError",
    "FormValidationError",
    "FormNotFoundError",
    "FormStateError",
]
