#!/usr/bin/env python3
"""
Database Inspection Utility

Prints every stored book, newest first, followed by collection statistics.
"""

import asyncio
import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from utilities.logger import setup_logging, get_logger
from utilities.config import config
from catalog.database import MongoDBManager
from catalog.errors import StoreError

logger = get_logger(__name__)


def format_book_lines(index: int, book) -> list:
    """Lines describing one book in the listing."""
    description = book.description[:50]
    return [
        f"{index}. {book.title}",
        f"   Author: {book.author}",
        f"   Publish Year: {book.publish_year}",
        f"   Description: {description}...",
        f"   Created: {book.created_at.date().isoformat()}",
        f"   ID: {book.id}",
    ]


def format_stats_lines(stats: dict) -> list:
    """Lines describing the collection statistics."""
    return [
        f"Total Books: {stats['total_books']}",
        f"Database Size: {stats['data_size'] / 1024:.2f} KB",
        f"Average Document Size: {stats['average_document_size'] / 1024:.2f} KB",
        "",
        f"Books with Publish Year: {stats['books_with_publish_year']}",
        f"Books without Publish Year: {stats['books_without_publish_year']}",
    ]


async def check_database(db_manager: MongoDBManager) -> int:
    """Print books and statistics. Returns a process exit code."""
    try:
        await db_manager.connect()
        print("✅ Connected to MongoDB")

        repository = db_manager.get_repository()
        total = await repository.count()
        books = await repository.list_all()
        logger.info("Inspecting books collection", total=total)

        print(f"\n📚 Books in Database ({total}):")
        print("=====================")

        if not books:
            print("No books found in database.")
        for index, book in enumerate(books, 1):
            print()
            for line in format_book_lines(index, book):
                print(line)

        stats = await repository.stats()
        print("\n📊 Database Statistics:")
        print("======================")
        for line in format_stats_lines(stats):
            print(line)
        return 0

    except StoreError as e:
        logger.error("Database inspection failed", operation=e.operation, error=e.detail)
        print(f"❌ Error: {e.detail}")
        return 1
    finally:
        await db_manager.disconnect()
        print("\n👋 Database connection closed")


async def main():
    """Main function."""
    setup_logging(
        log_level=config.log_level,
        log_format=config.log_format,
        log_file=config.get_log_file_path(),
        debug=config.debug
    )

    db_manager = MongoDBManager(
        connection_url=config.mongodb_url,
        database_name=config.mongodb_database,
        collection_name=config.mongodb_collection,
        server_selection_timeout_ms=config.server_selection_timeout_ms
    )
    sys.exit(await check_database(db_manager))


if __name__ == "__main__":
    asyncio.run(main())
