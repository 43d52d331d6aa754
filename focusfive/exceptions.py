"""
FocusFive error taxonomy.

Errors (raised):
- FocusFiveError: base for every known failure
- ParseError: malformed or oversized day text
- MetadataDegraded: missing/corrupt side-store, treated as empty
- SchemaVersionMismatch: side-store written by a newer schema
- WriteFailure: atomic write failed after bounded retries
- ValidationError: caller submitted data the model refuses

Warnings (collected, never raised):
- ParseWarning / TruncationWarning / ActionOverflowWarning
"""
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


class FocusFiveError(Exception):
    """Base class for all known FocusFive errors.

    Catching this handles every expected failure mode of the core.
    """

    def __init__(self, message: str, hint: Optional[str] = None):
        """
        Args:
            message: what went wrong
            hint: what the user can do about it
        """
        super().__init__(message)
        self.message = message
        self.hint = hint

    def get_user_message(self) -> str:
        """Return a user-facing message."""
        if self.hint:
            return f"{self.message}\nHint: {self.hint}"
        return self.message


class ParseError(FocusFiveError):
    """Day text could not be parsed.

    Recoverable: callers fall back to an empty Day for the date.
    """

    def __init__(self, message: str, line_number: Optional[int] = None):
        hint = "Expected a header like '# January 15, 2025 - Day 12' near the top of the file"
        if line_number is not None:
            message = f"line {line_number}: {message}"
        super().__init__(message, hint)
        self.line_number = line_number


class MetadataDegraded(FocusFiveError):
    """A structured side-store could not be read; it is treated as empty."""

    def __init__(self, path: Path, reason: str):
        super().__init__(f"Metadata degraded at {path}: {reason}", "The text record is still usable")
        self.path = path
        self.reason = reason


class SchemaVersionMismatch(MetadataDegraded):
    """Side-store written by a newer schema; only recognized fields are read."""

    def __init__(self, path: Path, found: object, supported: int):
        super().__init__(path, f"schema version {found!r} is newer than supported {supported}")
        self.found = found
        self.supported = supported


class WriteFailure(FocusFiveError):
    """Atomic write gave up; the destination still holds its prior content."""

    def __init__(self, path: Path, attempts: int, cause: Optional[BaseException] = None):
        reason = f": {cause}" if cause else ""
        super().__init__(
            f"Failed to write {path} after {attempts} attempt(s){reason}",
            "Check free disk space and directory permissions",
        )
        self.path = path
        self.attempts = attempts
        self.cause = cause


class ValidationError(FocusFiveError):
    """Input rejected by the data model."""

    def __init__(self, message: str):
        super().__init__(message, hint=None)


@dataclass
class ParseWarning:
    """Non-fatal problem found while parsing; attached to the parsed Day."""
    message: str
    line_number: Optional[int] = None

    def __str__(self) -> str:
        if self.line_number is not None:
            return f"line {self.line_number}: {self.message}"
        return self.message


@dataclass
class TruncationWarning(ParseWarning):
    field: str = "action"
    original_length: int = 0
    limit: int = 0


@dataclass
class ActionOverflowWarning(ParseWarning):
    category: str = ""
    dropped_text: str = ""
