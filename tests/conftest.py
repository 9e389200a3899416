"""Shared fixtures: an in-memory catalog store and sample books."""
import threading
from dataclasses import replace

import pytest

from lending_library.errors import (
    BookExists, BookChanged, NoCopiesAvailable, AlreadyCheckedOut, NotCheckedOut,
)
from lending_library.library import LendingLibrary, compare_books


def _copy(book):
    return replace(book, authors=list(book.authors))


class InMemoryCatalogStore:
    """Stand-in for CatalogStore keeping the same atomic guarantees under a lock."""
    
    def __init__(self):
        self.books = []  # insertion order
        self.loans = {}
        self.lock = threading.Lock()
        self.closed = False
    
    def _get(self, isbn):
        return next((b for b in self.books if b.isbn == isbn), None)
    
    def find_book(self, isbn):
        with self.lock:
            book = self._get(isbn)
            return _copy(book) if book else None
    
    def insert_book(self, book):
        with self.lock:
            if self._get(book.isbn):
                raise BookExists(book.isbn)
            self.books.append(_copy(book))
            return _copy(book)
    
    def increment_copies(self, book, n_copies):
        with self.lock:
            stored = self._get(book.isbn)
            if stored is None or compare_books(stored, book) is not None:
                raise BookChanged(book.isbn)
            stored.n_copies += n_copies
            return _copy(stored)
    
    def find_books(self, words, index=0, count=5):
        def matches(book):
            title = book.title.lower()
            authors = [a.lower() for a in book.authors]
            return all(
                w.lower() in title or any(w.lower() in a for a in authors)
                for w in words
            )
        with self.lock:
            found = sorted((b for b in self.books if matches(b)), key=lambda b: b.title)
            return [_copy(b) for b in found[index:index + count]]
    
    def find_loan(self, isbn, patron_id):
        with self.lock:
            return self.loans.get((isbn, patron_id))
    
    def checkout(self, loan):
        with self.lock:
            book = self._get(loan.isbn)
            if book is None or book.n_copies <= 0:
                raise NoCopiesAvailable(loan.isbn)
            if (loan.isbn, loan.patron_id) in self.loans:
                raise AlreadyCheckedOut(loan.isbn, loan.patron_id)
            book.n_copies -= 1
            self.loans[(loan.isbn, loan.patron_id)] = loan
    
    def return_loan(self, isbn, patron_id):
        with self.lock:
            if self.loans.pop((isbn, patron_id), None) is None:
                raise NotCheckedOut(isbn, patron_id)
            self._get(isbn).n_copies += 1
    
    def clear(self):
        with self.lock:
            self.books.clear()
            self.loans.clear()
    
    def close(self):
        self.closed = True


BOOK_1 = {
    "isbn": "123-456-789-0",
    "title": "JS in Depth",
    "authors": ["Hints", "Jane Doe"],
    "pages": 320,
    "year": 2015,
    "publisher": "Acme Press",
    "nCopies": 1,
}


def make_book_request(i, **overrides):
    """A valid addBook request for the i-th sample book."""
    req = {
        "isbn": f"100-200-300-{i % 10}" if i < 10 else f"100-200-{300 + i}-{i % 10}",
        "title": f"Python Recipes Volume {i:02d}",
        "authors": [f"Author {i}"],
        "pages": 100 + i,
        "year": 2000 + i,
        "publisher": "Snake Books",
    }
    req.update(overrides)
    return req


@pytest.fixture
def book_request():
    return dict(BOOK_1, authors=list(BOOK_1["authors"]))


@pytest.fixture
def store():
    return InMemoryCatalogStore()


@pytest.fixture
def library(store):
    return LendingLibrary(store)
