"""Lending library operations: add, find, checkout and return books."""
from datetime import datetime, timezone
from typing import Optional
import logging

from lending_library.errors import (
    BAD_REQ, DB, Result, ok, err,
    StoreError, BookExists, BookChanged,
    NoCopiesAvailable, AlreadyCheckedOut, NotCheckedOut,
)
from lending_library.models import Book, Loan
from lending_library.validation import WORD_RE, validate

logger = logging.getLogger(__name__)

DEFAULT_COUNT = 5

DESCRIPTIVE_FIELDS = ("title", "authors", "pages", "year", "publisher")


def compare_books(book0: Book, book1: Book) -> Optional[str]:
    """Return the first descriptive field where the books differ, or None."""
    for name in DESCRIPTIVE_FIELDS:
        if getattr(book0, name) != getattr(book1, name):
            return name
    return None


class LendingLibrary:
    """
    Business rules for a small lending library.

    All state lives in the catalog store; every operation takes a raw
    request mapping and returns a Result instead of raising.
    """

    def __init__(self, store, default_count: int = DEFAULT_COUNT):
        """
        Args:
            store: Catalog store (see database.CatalogStore)
            default_count: Result count for searches that give none
        """
        self.store = store
        self.default_count = default_count

    def clear(self) -> Result:
        """Clear out the underlying catalog."""
        try:
            self.store.clear()
        except StoreError as e:
            return err(f"failed to clear the catalog: {e}", DB)
        return ok()

    def add_book(self, req) -> Result:
        """
        Add one-or-more copies of a book.

        If the isbn is already in the catalog with the same descriptive
        fields, its copy count grows by req nCopies (default 1); if the
        fields differ the request is rejected with BAD_REQ.

        Returns:
            Result holding the stored Book
        """
        validation = validate("addBook", req)
        if not validation.is_ok:
            return validation
        fields = validation.value

        book = Book(
            isbn=fields.isbn,
            title=fields.title,
            authors=list(fields.authors),
            pages=fields.pages,
            year=fields.year,
            publisher=fields.publisher,
            n_copies=fields.nCopies,
        )

        try:
            existing = self.store.find_book(book.isbn)
            if existing is None:
                try:
                    return ok(self.store.insert_book(book))
                except BookExists:
                    # recorded concurrently; treat as a re-add
                    existing = self.store.find_book(book.isbn)
                    if existing is None:
                        return err(f"book {book.isbn} could not be recorded", DB, "isbn")
            return self._add_copies(existing, book)
        except StoreError as e:
            logger.error(f"addBook {book.isbn} failed: {e}")
            return err(f"failed to add book {book.isbn}: {e}", DB)

    def _add_copies(self, existing: Book, book: Book) -> Result:
        diff = compare_books(existing, book)
        if diff is not None:
            logger.info(f"Rejected inconsistent data for {book.isbn}: {diff}")
            return err(f"inconsistent book data: {diff} differs from the catalog", BAD_REQ, diff)
        try:
            return ok(self.store.increment_copies(book, book.n_copies))
        except BookChanged:
            return err("inconsistent book data: catalog entry does not match", BAD_REQ, "isbn")

    def find_books(self, req) -> Result:
        """
        Find books whose title or authors contain every word of req search.

        A word is a run of two or more word characters, matched
        case-insensitively.  Results are sorted by title and sliced to
        [index, index + count) by the store.

        Returns:
            Result holding a list of Book objects, possibly empty
        """
        validation = validate("findBooks", req)
        if not validation.is_ok:
            return validation
        fields = validation.value

        words = WORD_RE.findall(fields.search)
        if not words:
            return err("search must contain at least one word", BAD_REQ, "search")
        count = fields.count if fields.count is not None else self.default_count

        try:
            return ok(self.store.find_books(words, fields.index, count))
        except StoreError as e:
            logger.error(f"findBooks {words} failed: {e}")
            return err(f"failed to retrieve books: {e}", DB)

    def checkout_book(self, req) -> Result:
        """
        Check out a copy of book req isbn to patron req patronId.

        Errors:
            BAD_REQ: no such book, no copies available, or the patron
            already has the book checked out.
        """
        validation = validate("checkoutBook", req)
        if not validation.is_ok:
            return validation
        isbn, patron_id = validation.value.isbn, validation.value.patronId

        try:
            book = self.store.find_book(isbn)
            if book is None:
                return err(f"unknown book {isbn}", BAD_REQ, "isbn")
            if book.n_copies <= 0:
                return err(f"no copies available of book {isbn}", BAD_REQ, "isbn")
            if self.store.find_loan(isbn, patron_id) is not None:
                return _already_checked_out(isbn, patron_id)

            self.store.checkout(Loan(isbn, patron_id, datetime.now(timezone.utc)))
        except NoCopiesAvailable:
            return err(f"no copies available of book {isbn}", BAD_REQ, "isbn")
        except AlreadyCheckedOut:
            return _already_checked_out(isbn, patron_id)
        except StoreError as e:
            logger.error(f"checkoutBook {isbn} for {patron_id} failed: {e}")
            return err(f"failed to check out book {isbn}: {e}", DB)

        logger.info(f"Checked out {isbn} to {patron_id}")
        return ok()

    def return_book(self, req) -> Result:
        """
        Return the copy of book req isbn held by patron req patronId.

        Errors:
            BAD_REQ: no such book, or no checkout of it by the patron.
        """
        validation = validate("returnBook", req)
        if not validation.is_ok:
            return validation
        isbn, patron_id = validation.value.isbn, validation.value.patronId

        try:
            if self.store.find_book(isbn) is None:
                return err(f"unknown book {isbn}", BAD_REQ, "isbn")
            self.store.return_loan(isbn, patron_id)
        except NotCheckedOut:
            return err(f"book {isbn} is not checked out by {patron_id}", BAD_REQ, "patronId")
        except StoreError as e:
            logger.error(f"returnBook {isbn} for {patron_id} failed: {e}")
            return err(f"failed to return book {isbn}: {e}", DB)

        logger.info(f"Returned {isbn} from {patron_id}")
        return ok()


def _already_checked_out(isbn: str, patron_id: str) -> Result:
    return err(f"book {isbn} is already checked out by {patron_id}", BAD_REQ, "patronId")


def make_lending_library(store, default_count: int = DEFAULT_COUNT) -> LendingLibrary:
    return LendingLibrary(store, default_count)
