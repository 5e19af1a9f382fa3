"""
Tests for the database inspection utility.
"""

import pytest
from unittest.mock import AsyncMock

from catalog.database import BookRepository
from catalog.errors import StoreError
from catalog.models import Book
from check_database import check_database, format_book_lines, format_stats_lines


@pytest.fixture
def stats():
    return {
        "total_books": 1,
        "data_size": 2048,
        "average_document_size": 512,
        "books_with_publish_year": 1,
        "books_without_publish_year": 0,
    }


def test_format_book_lines(sample_book_document):
    """Test the listing lines for one book."""
    lines = format_book_lines(1, Book.from_document(sample_book_document))

    assert lines[0] == "1. Foundation"
    assert lines[1] == "   Author: Isaac Asimov"
    assert lines[3] == "   Description: " + sample_book_document["description"][:50] + "..."
    assert lines[4] == "   Created: 2024-01-15"
    assert lines[5] == "   ID: 65a50b2f9d1e8a0012345678"


def test_format_stats_lines(stats):
    """Test the statistics lines."""
    lines = format_stats_lines(stats)

    assert "Database Size: 2.00 KB" in lines
    assert "Average Document Size: 0.50 KB" in lines
    assert "Books without Publish Year: 0" in lines


@pytest.mark.asyncio
async def test_check_database(mock_db_manager, sample_book_document, stats, capsys):
    """Test a full inspection run."""
    repository = AsyncMock(spec=BookRepository)
    repository.count.return_value = 1
    repository.list_all.return_value = [Book.from_document(sample_book_document)]
    repository.stats.return_value = stats
    mock_db_manager.get_repository.return_value = repository

    exit_code = await check_database(mock_db_manager)

    output = capsys.readouterr().out
    assert exit_code == 0
    assert "Books in Database (1):" in output
    assert "1. Foundation" in output
    assert "Total Books: 1" in output
    mock_db_manager.disconnect.assert_awaited_once()


@pytest.mark.asyncio
async def test_check_database_empty(mock_db_manager, stats, capsys):
    """Test inspecting an empty collection."""
    repository = AsyncMock(spec=BookRepository)
    repository.count.return_value = 0
    repository.list_all.return_value = []
    repository.stats.return_value = stats
    mock_db_manager.get_repository.return_value = repository

    await check_database(mock_db_manager)

    assert "No books found in database." in capsys.readouterr().out


@pytest.mark.asyncio
async def test_check_database_connection_failure(mock_db_manager, capsys):
    """Test that connection errors give a failing exit code."""
    mock_db_manager.connect.side_effect = StoreError("connect", "no servers")

    exit_code = await check_database(mock_db_manager)

    assert exit_code == 1
    assert "no servers" in capsys.readouterr().out
    mock_db_manager.disconnect.assert_awaited_once()
