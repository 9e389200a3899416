"""Request validation for library commands."""
import re
from datetime import datetime
from typing import Annotated, Any, Dict, List, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from lending_library.errors import BAD_REQ, BAD_TYPE, MISSING, LibraryError, Result, err, ok

GUTENBERG_YEAR = 1448
ISBN_PATTERN = r"^\d{3}-\d{3}-\d{3}-\d$"
WORD_RE = re.compile(r"\w{2,}")

MSGS = {
    "isbn": 'isbn must be of the form "ddd-ddd-ddd-d"',
    "authors": "must have one or more authors",
    "non_empty": "must be non-empty",
}

TYPE_NAMES = {
    "string_type": "string",
    "int_type": "integer",
    "list_type": "list",
    "model_type": "mapping",
    "dict_type": "mapping",
}

NonEmptyStr = Annotated[str, Field(min_length=1)]


class AddBookRequest(BaseModel):
    """Fields of an addBook request."""
    model_config = ConfigDict(strict=True)

    isbn: str = Field(pattern=ISBN_PATTERN)
    title: NonEmptyStr
    authors: List[NonEmptyStr] = Field(min_length=1)
    pages: int = Field(gt=0)
    year: int
    publisher: NonEmptyStr
    nCopies: int = Field(default=1, gt=0)

    @field_validator("year")
    @classmethod
    def check_year(cls, v: int) -> int:
        if v < GUTENBERG_YEAR or v > datetime.now().year:
            raise ValueError(f"must be a past year on or after {GUTENBERG_YEAR}")
        return v


class FindBooksRequest(BaseModel):
    """Fields of a findBooks request."""
    model_config = ConfigDict(strict=True)

    search: str
    index: int = Field(default=0, ge=0)
    # absent means the library default; an explicit null is rejected
    count: int = Field(default=None, ge=0)

    @field_validator("search")
    @classmethod
    def check_search(cls, v: str) -> str:
        if not WORD_RE.search(v):
            raise ValueError("must contain at least one word with two or more characters")
        return v


class LendRequest(BaseModel):
    """Fields of a checkoutBook or returnBook request."""
    model_config = ConfigDict(strict=True)

    isbn: str = Field(pattern=ISBN_PATTERN)
    patronId: NonEmptyStr


VALIDATORS: Dict[str, Type[BaseModel]] = {
    "addBook": AddBookRequest,
    "findBooks": FindBooksRequest,
    "checkoutBook": LendRequest,
    "returnBook": LendRequest,
}


def validate(command: str, request: Any) -> Result:
    """
    Validate a raw request for a command.

    Args:
        command: One of addBook, findBooks, checkoutBook, returnBook
        request: Raw field mapping

    Returns:
        Result holding the validated request model, or every violation found
    """
    validator = VALIDATORS.get(command)
    if validator is None:
        return err(f"no validator for command {command}", BAD_REQ)

    try:
        return ok(validator.model_validate(request))
    except ValidationError as e:
        return Result(errors=[_to_library_error(detail) for detail in e.errors()])


def _to_library_error(detail: Dict[str, Any]) -> LibraryError:
    """Translate one pydantic error into a tagged library error."""
    loc = detail.get("loc") or ()
    field = str(loc[0]) if loc else None
    name = field or "request"
    kind = detail["type"]

    if kind == "missing":
        return LibraryError(f"{name} is required", MISSING, field)

    if kind in TYPE_NAMES:
        return LibraryError(f"{name} must have type {TYPE_NAMES[kind]}", BAD_TYPE, field)

    if kind.endswith("_type"):
        return LibraryError(f"{name} has the wrong type", BAD_TYPE, field)

    ctx = detail.get("ctx") or {}
    if kind == "string_pattern_mismatch" and field in MSGS:
        message = MSGS[field]
    elif kind == "string_too_short":
        message = f"{name} {MSGS['non_empty']}"
    elif kind == "too_short" and field == "authors":
        message = f"{name} {MSGS['authors']}"
    elif kind == "greater_than" and ctx.get("gt") == 0:
        message = f"{name} must be a positive integer"
    elif kind == "greater_than_equal" and ctx.get("ge") == 0:
        message = f"{name} must be a non-negative integer"
    elif kind == "value_error" and "error" in ctx:
        message = f"{name} {ctx['error']}"
    else:
        message = f"{name}: {detail['msg']}"

    return LibraryError(message, BAD_REQ, field)
