"""
FastAPI RESTful API for the Book App.

This module provides a REST API for:
- Listing, fetching and searching books
- Creating, updating and deleting books with field validation
- Health and route index endpoints
"""
