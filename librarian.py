#!/usr/bin/env python3
"""Librarian CLI - lending library operations over the catalog database."""
import argparse
import sys
import json
from tabulate import tabulate
from lending_library.database import CatalogStore
from lending_library.errors import Result, StoreError
from lending_library.library import LendingLibrary
from lending_library.config import Config
import logging

logger = logging.getLogger(__name__)


def setup_database(config: Config) -> CatalogStore:
    """Initialize database."""
    db = CatalogStore(config.DATABASE_URL, config.DB_POOL_MIN, config.DB_POOL_MAX)
    db.init_schema()
    return db


def report_errors(result: Result) -> int:
    """Print each error of a failed result; return the exit status."""
    for error in result.errors:
        print(str(error), file=sys.stderr)
    return 1


def load_requests(path: str):
    """Read one book request, or a list of them, from a JSON file."""
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    return data if isinstance(data, list) else [data]


def add_books(args, library: LendingLibrary) -> int:
    """Add books from a JSON file or from command line flags."""
    if args.file:
        requests = load_requests(args.file)
    else:
        request = {
            "isbn": args.isbn,
            "title": args.title,
            "authors": args.author,
            "pages": args.pages,
            "year": args.year,
            "publisher": args.publisher,
        }
        if args.copies is not None:
            request["nCopies"] = args.copies
        # absent flags are missing fields, not nulls
        requests = [{k: v for k, v in request.items() if v is not None}]
    
    status = 0
    for request in requests:
        result = library.add_book(request)
        if result.is_ok:
            book = result.value
            logger.info(f"✅ {book.isbn}: {book.title} ({book.n_copies} copies)")
        else:
            status = report_errors(result)
    return status


def find_books(args, library: LendingLibrary) -> int:
    request = {"search": args.query, "index": args.index}
    if args.count is not None:
        request["count"] = args.count
    result = library.find_books(request)
    if not result.is_ok:
        return report_errors(result)
    display_books(result.value, args.format)
    return 0


def lend(args, library: LendingLibrary) -> int:
    """Check out or return a book."""
    request = {"isbn": args.isbn, "patronId": args.patron}
    if args.command == "checkout":
        result = library.checkout_book(request)
    else:
        result = library.return_book(request)
    if not result.is_ok:
        return report_errors(result)
    logger.info(f"✅ {args.command} {args.isbn} for {args.patron}")
    return 0


def display_books(books, format_type: str):
    """Display books in specified format."""
    if format_type == "table":
        headers = ["ISBN", "Title", "Authors", "Year", "Publisher", "Copies"]
        rows = [
            [
                book.isbn,
                book.title[:50] + "..." if len(book.title) > 50 else book.title,
                book.authors_str[:30] + "..." if len(book.authors_str) > 30 else book.authors_str,
                book.year,
                book.publisher,
                book.n_copies
            ]
            for book in books
        ]
        print("\n" + tabulate(rows, headers=headers, tablefmt="grid"))
    
    elif format_type == "json":
        print(json.dumps([book.to_dict() for book in books], indent=2))
    
    elif format_type == "compact":
        for i, book in enumerate(books, 1):
            print(f"{i}. {book.title} - {book.authors_str}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Librarian - lending library catalog and loans",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Load books from a JSON file
  %(prog)s add --file books.json
  
  # Search, skipping the first two matches
  %(prog)s find "js hints" --index 2 --count 3
  
  # Lend and return
  %(prog)s checkout 123-456-789-0 joe
  %(prog)s return 123-456-789-0 joe
        """
    )
    
    subparsers = parser.add_subparsers(dest="command", help="Command to execute")
    
    subparsers.add_parser("init", help="Create catalog tables")
    subparsers.add_parser("clear", help="Remove all books and loans")
    
    # Add command
    add_parser = subparsers.add_parser("add", help="Add copies of a book")
    add_parser.add_argument("--file", help="JSON file with a book or a list of books")
    add_parser.add_argument("--isbn", help="ISBN of the form ddd-ddd-ddd-d")
    add_parser.add_argument("--title")
    add_parser.add_argument("--author", action="append", help="Author (repeat for several)")
    add_parser.add_argument("--pages", type=int)
    add_parser.add_argument("--year", type=int)
    add_parser.add_argument("--publisher")
    add_parser.add_argument("--copies", type=int, help="Number of copies (default: 1)")
    
    # Find command
    find_parser = subparsers.add_parser("find", help="Search books by title and authors")
    find_parser.add_argument("query", help="Search words")
    find_parser.add_argument("--index", type=int, default=0, help="Matches to skip (default: 0)")
    find_parser.add_argument("--count", type=int, help="Max results")
    find_parser.add_argument("--format", choices=["table", "json", "compact"], default="table", help="Output format")
    
    # Lending commands
    for name, help_text in (("checkout", "Check out a book"), ("return", "Return a book")):
        lend_parser = subparsers.add_parser(name, help=help_text)
        lend_parser.add_argument("isbn", help="Book ISBN")
        lend_parser.add_argument("patron", help="Patron id")
    
    return parser


def main(argv=None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    
    if not args.command:
        parser.print_help()
        sys.exit(1)
    
    config = Config()
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )
    
    status = 0
    try:
        with setup_database(config) as db:
            library = LendingLibrary(db, default_count=config.DEFAULT_FIND_COUNT)
            
            if args.command == "add":
                status = add_books(args, library)
            elif args.command == "find":
                status = find_books(args, library)
            elif args.command in ("checkout", "return"):
                status = lend(args, library)
            elif args.command == "clear":
                result = library.clear()
                status = 0 if result.is_ok else report_errors(result)
    
    except KeyboardInterrupt:
        logger.info("\n⚠️  Interrupted by user")
        sys.exit(0)
    except (StoreError, OSError, ValueError) as e:
        logger.error(f"❌ Error: {e}", exc_info=True)
        sys.exit(1)
    
    sys.exit(status)


if __name__ == "__main__":
    main()
