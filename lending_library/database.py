"""Database layer for the book catalog and loans."""
import psycopg2
from psycopg2 import pool
from contextlib import contextmanager
from typing import Optional, List
import logging

from lending_library.errors import (
    StoreError, BookExists, BookChanged,
    NoCopiesAvailable, AlreadyCheckedOut, NotCheckedOut,
)
from lending_library.models import Book, Loan

logger = logging.getLogger(__name__)

BOOK_COLUMNS = "isbn, title, authors, pages, year, publisher, n_copies"

# One condition per search word: substring of the title or of some author
WORD_CONDITION = """(
    strpos(lower(title), lower(%s)) > 0
    OR EXISTS (
        SELECT 1 FROM unnest(authors) AS author
        WHERE strpos(lower(author), lower(%s)) > 0
    )
)"""


class CatalogStore:
    """PostgreSQL catalog store with connection pooling."""

    def __init__(self, connection_string: str, min_conn: int = 1, max_conn: int = 10):
        """
        Initialize database connection pool.

        Args:
            connection_string: PostgreSQL connection string
            min_conn: Minimum connections in pool
            max_conn: Maximum connections in pool
        """
        try:
            self.connection_pool = psycopg2.pool.ThreadedConnectionPool(
                min_conn,
                max_conn,
                connection_string
            )
        except psycopg2.Error as e:
            raise StoreError(f"Failed to create connection pool: {e}") from e

        logger.info("Database connection pool created successfully")

    @contextmanager
    def _cursor(self):
        """Run a block in one transaction: commit on success, rollback otherwise."""
        try:
            conn = self.connection_pool.getconn()
        except psycopg2.Error as e:
            logger.error(f"No database connection: {e}")
            raise StoreError(f"no database connection: {e}") from e

        try:
            with conn.cursor() as cur:
                yield cur
            conn.commit()
        except psycopg2.Error as e:
            self._rollback(conn)
            logger.error(f"Database error: {e}")
            raise StoreError(str(e)) from e
        except Exception:
            self._rollback(conn)
            raise
        finally:
            try:
                # dropped connections are discarded, not pooled
                self.connection_pool.putconn(conn, close=bool(conn.closed))
            except psycopg2.Error as e:
                logger.warning(f"Failed to return connection to pool: {e}")

    @staticmethod
    def _rollback(conn):
        if conn.closed:
            return
        try:
            conn.rollback()
        except psycopg2.Error as e:
            logger.warning(f"Rollback failed: {e}")

    def init_schema(self):
        """Create database tables if they don't exist."""
        with self._cursor() as cur:
            # Books table
            cur.execute("""
                CREATE TABLE IF NOT EXISTS books (
                    id SERIAL PRIMARY KEY,
                    isbn VARCHAR(13) NOT NULL UNIQUE,
                    title TEXT NOT NULL,
                    authors TEXT[] NOT NULL,
                    pages INTEGER NOT NULL,
                    year INTEGER NOT NULL,
                    publisher TEXT NOT NULL,
                    n_copies INTEGER NOT NULL DEFAULT 1 CHECK (n_copies >= 0),
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            # Patrons table
            cur.execute("""
                CREATE TABLE IF NOT EXISTS patrons (
                    patron_id TEXT PRIMARY KEY,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            # Loans table; at most one open loan per (isbn, patron)
            cur.execute("""
                CREATE TABLE IF NOT EXISTS loans (
                    id SERIAL PRIMARY KEY,
                    isbn VARCHAR(13) NOT NULL REFERENCES books (isbn),
                    patron_id TEXT NOT NULL,
                    checked_out_at TIMESTAMPTZ NOT NULL,
                    UNIQUE (isbn, patron_id)
                )
            """)

            # Indexes for performance
            cur.execute("""
                CREATE INDEX IF NOT EXISTS idx_books_title
                ON books (title COLLATE "C", id)
            """)

            cur.execute("""
                CREATE INDEX IF NOT EXISTS idx_loans_patron
                ON loans (patron_id)
            """)

        logger.info("Database schema initialized successfully")

    def find_book(self, isbn: str) -> Optional[Book]:
        """Get a book by isbn."""
        with self._cursor() as cur:
            cur.execute(f"SELECT {BOOK_COLUMNS} FROM books WHERE isbn = %s", (isbn,))
            row = cur.fetchone()
            return Book(*row) if row else None

    def insert_book(self, book: Book) -> Book:
        """
        Record a book not yet in the catalog.

        Args:
            book: Book with its initial copy count

        Returns:
            The stored book

        Raises:
            BookExists: another caller recorded the isbn first
        """
        with self._cursor() as cur:
            cur.execute(f"""
                INSERT INTO books (isbn, title, authors, pages, year, publisher, n_copies)
                VALUES (%s, %s, %s, %s, %s, %s, %s)
                ON CONFLICT (isbn) DO NOTHING
                RETURNING {BOOK_COLUMNS}
            """, (
                book.isbn, book.title, book.authors, book.pages,
                book.year, book.publisher, book.n_copies
            ))
            row = cur.fetchone()
            if row is None:
                raise BookExists(book.isbn)
            return Book(*row)

    def increment_copies(self, book: Book, n_copies: int) -> Book:
        """
        Add copies to a stored book whose descriptive fields equal book's.

        Args:
            book: Expected descriptive fields
            n_copies: Number of copies to add

        Returns:
            The stored book after the increment

        Raises:
            BookChanged: no stored book matches book's descriptive fields
        """
        with self._cursor() as cur:
            cur.execute(f"""
                UPDATE books SET n_copies = n_copies + %s
                WHERE isbn = %s AND title = %s AND authors = %s::text[]
                    AND pages = %s AND year = %s AND publisher = %s
                RETURNING {BOOK_COLUMNS}
            """, (
                n_copies, book.isbn, book.title, book.authors,
                book.pages, book.year, book.publisher
            ))
            row = cur.fetchone()
            if row is None:
                raise BookChanged(book.isbn)
            return Book(*row)

    def find_books(self, words: List[str], index: int = 0, count: int = 5) -> List[Book]:
        """
        Search books whose title or authors contain every word.

        Args:
            words: Search words, matched case-insensitively as substrings
            index: Number of leading matches to skip
            count: Maximum results

        Returns:
            Book objects sorted by title, then by insertion order
        """
        conditions = []
        params = []
        for word in words:
            conditions.append(WORD_CONDITION)
            params.extend([word, word])
        where = " AND ".join(conditions) or "TRUE"
        params.extend([index, count])

        with self._cursor() as cur:
            cur.execute(f"""
                SELECT {BOOK_COLUMNS}
                FROM books
                WHERE {where}
                ORDER BY title COLLATE "C", id
                OFFSET %s LIMIT %s
            """, params)
            rows = cur.fetchall()
            return [Book(*row) for row in rows]

    def find_loan(self, isbn: str, patron_id: str) -> Optional[Loan]:
        """Get the open loan of isbn by patron_id."""
        with self._cursor() as cur:
            cur.execute("""
                SELECT isbn, patron_id, checked_out_at
                FROM loans WHERE isbn = %s AND patron_id = %s
            """, (isbn, patron_id))
            row = cur.fetchone()
            return Loan(*row) if row else None

    def checkout(self, loan: Loan) -> None:
        """
        Take one copy off the shelf and record the loan, in one transaction.

        Raises:
            NoCopiesAvailable: the copy counter is zero
            AlreadyCheckedOut: the patron already holds a loan for the isbn
        """
        with self._cursor() as cur:
            cur.execute("""
                UPDATE books SET n_copies = n_copies - 1
                WHERE isbn = %s AND n_copies > 0
            """, (loan.isbn,))
            if cur.rowcount == 0:
                raise NoCopiesAvailable(loan.isbn)

            cur.execute("""
                INSERT INTO loans (isbn, patron_id, checked_out_at)
                VALUES (%s, %s, %s)
                ON CONFLICT (isbn, patron_id) DO NOTHING
            """, (loan.isbn, loan.patron_id, loan.checked_out_at))
            if cur.rowcount == 0:
                raise AlreadyCheckedOut(loan.isbn, loan.patron_id)

        logger.debug(f"Checked out {loan.isbn} to {loan.patron_id}")

    def return_loan(self, isbn: str, patron_id: str) -> None:
        """
        Delete the loan and put the copy back on the shelf, in one transaction.

        Raises:
            NotCheckedOut: there is no loan for (isbn, patron_id)
        """
        with self._cursor() as cur:
            cur.execute("""
                DELETE FROM loans WHERE isbn = %s AND patron_id = %s
            """, (isbn, patron_id))
            if cur.rowcount == 0:
                raise NotCheckedOut(isbn, patron_id)

            cur.execute("""
                UPDATE books SET n_copies = n_copies + 1 WHERE isbn = %s
            """, (isbn,))

        logger.debug(f"Returned {isbn} from {patron_id}")

    def clear(self) -> None:
        """Remove all loans, patrons and books."""
        with self._cursor() as cur:
            cur.execute("DELETE FROM loans")
            cur.execute("DELETE FROM patrons")
            cur.execute("DELETE FROM books")

        logger.info("Catalog cleared")

    def close(self):
        """Close all connections in the pool."""
        if self.connection_pool:
            self.connection_pool.closeall()
            logger.info("Database connection pool closed")

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
