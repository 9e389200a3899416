"""Error results for library operations and exceptions raised by storage."""
from dataclasses import dataclass, field
from typing import Any, List, Optional

# Error codes
MISSING = "MISSING"
BAD_TYPE = "BAD_TYPE"
BAD_REQ = "BAD_REQ"
DB = "DB"


@dataclass
class LibraryError:
    """A single problem with a request, tagged with its code."""
    message: str
    code: str = BAD_REQ
    field: Optional[str] = None
    
    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


@dataclass
class Result:
    """Outcome of an operation: a value, or one-or-more errors."""
    value: Any = None
    errors: List[LibraryError] = field(default_factory=list)
    
    @property
    def is_ok(self) -> bool:
        return not self.errors
    
    @property
    def codes(self) -> List[str]:
        return [error.code for error in self.errors]


def ok(value: Any = None) -> Result:
    return Result(value=value)


def err(message: str, code: str = BAD_REQ, field: Optional[str] = None) -> Result:
    return Result(errors=[LibraryError(message, code, field)])


class StoreError(Exception):
    """The catalog store could not complete an operation."""


class StoreConflict(Exception):
    """A guarded mutation was not applied because its condition failed."""


class BookExists(StoreConflict):
    """Another caller recorded the isbn first."""


class BookChanged(StoreConflict):
    """Stored descriptive fields no longer match the book being added."""


class NoCopiesAvailable(StoreConflict):
    """The copy counter is already zero."""


class AlreadyCheckedOut(StoreConflict):
    """The patron already has an open loan for the isbn."""


class NotCheckedOut(StoreConflict):
    """There is no open loan for the (isbn, patron) pair."""
