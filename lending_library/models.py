"""Data models for books and loans."""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List


@dataclass
class Book:
    """Catalog entry for one isbn; n_copies counts copies on the shelf."""
    isbn: str
    title: str
    authors: List[str]
    pages: int
    year: int
    publisher: str
    n_copies: int = 1
    
    @property
    def authors_str(self) -> str:
        """Format authors as comma-separated string."""
        return ", ".join(self.authors) if self.authors else "Unknown"
    
    def to_dict(self) -> Dict[str, Any]:
        """Record form, keyed the way requests name the fields."""
        return {
            "isbn": self.isbn,
            "title": self.title,
            "authors": list(self.authors),
            "pages": self.pages,
            "year": self.year,
            "publisher": self.publisher,
            "nCopies": self.n_copies,
        }


@dataclass
class Loan:
    """One outstanding checkout of a book by a patron."""
    isbn: str
    patron_id: str
    checked_out_at: datetime
