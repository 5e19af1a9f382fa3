"""
FastAPI main application for the Book App API.
"""

import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, List, Optional

import structlog
from fastapi import APIRouter, Depends, FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.config import config as api_config
from api.models import (
    APIIndexResponse, BookDeleteResponse, HealthResponse, error_body
)
from catalog.database import BookRepository, MongoDBManager
from catalog.errors import BookNotFoundError, BookValidationError, MissingFieldsError, StoreError
from catalog.models import REQUIRED_MESSAGES, Book, BookFields
from utilities.config import config
from utilities.logger import bind_request_context, clear_request_context, setup_logging

# Setup logging
logger = structlog.get_logger(__name__)

STORE_ERROR_MESSAGES = {
    "list_all": "Error fetching books",
    "get_by_id": "Error fetching book",
    "create": "Error creating book",
    "update_by_id": "Error updating book",
    "delete_by_id": "Error deleting book",
    "search": "Error searching books",
}

BOOK_BODY = {
    "requestBody": {
        "required": True,
        "content": {"application/json": {"schema": BookFields.model_json_schema(by_alias=True)}},
    }
}


def get_database_manager(request: Request) -> Optional[MongoDBManager]:
    """Database manager created by the application lifespan, if any."""
    return getattr(request.app.state, "db_manager", None)


def get_book_repository(request: Request) -> BookRepository:
    """Repository for the current request."""
    db_manager = get_database_manager(request)
    if db_manager is None or not db_manager.is_connected:
        raise StoreError("connect", "Database service not available")
    return db_manager.get_repository()


async def read_json_body(request: Request) -> Any:
    """Decoded JSON body, or None when the body is empty or malformed."""
    try:
        return await request.json()
    except ValueError:
        return None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    setup_logging(
        log_level=config.log_level,
        log_format=config.log_format,
        log_file=config.get_log_file_path(),
        debug=config.debug
    )
    logger.info("Starting Book App API")

    db_manager = app.state.db_manager
    if db_manager is None:
        db_manager = MongoDBManager(
            connection_url=config.mongodb_url,
            database_name=config.mongodb_database,
            collection_name=config.mongodb_collection,
            server_selection_timeout_ms=config.server_selection_timeout_ms
        )
        app.state.db_manager = db_manager

    try:
        await db_manager.connect()
        logger.info("Database connection established")
    except StoreError as e:
        logger.error("Failed to connect to database", error=e.detail)
        raise

    yield

    logger.info("Shutting down Book App API")
    await db_manager.disconnect()


router = APIRouter(prefix="/books", tags=["Books"])


@router.get("", response_model=List[Book])
async def list_books(repository: BookRepository = Depends(get_book_repository)):
    """Get all books, newest first."""
    return await repository.list_all()


@router.get("/search", response_model=List[Book])
async def search_all_books(repository: BookRepository = Depends(get_book_repository)):
    """Search with an empty query, which matches every book."""
    return await repository.search("")


@router.get("/search/{query:path}", response_model=List[Book])
async def search_books(query: str, repository: BookRepository = Depends(get_book_repository)):
    """
    Search books by title, author, description or publish year.

    - **query**: Text matched case-insensitively as a substring
    """
    return await repository.search(query)


@router.get("/{book_id}", response_model=Book)
async def get_book(book_id: str, repository: BookRepository = Depends(get_book_repository)):
    """
    Get a single book by ID.

    - **book_id**: MongoDB ObjectId of the book
    """
    return await repository.get_by_id(book_id)


@router.post("", response_model=Book, status_code=status.HTTP_201_CREATED, openapi_extra=BOOK_BODY)
async def create_book(request: Request, repository: BookRepository = Depends(get_book_repository)):
    """Create a book. publishYear may be sent as a number or a numeric string."""
    payload = await read_json_body(request)
    return await repository.create(payload)


@router.put("/{book_id}", response_model=Book, openapi_extra=BOOK_BODY)
async def update_book(book_id: str, request: Request, repository: BookRepository = Depends(get_book_repository)):
    """Replace all content fields of a book."""
    payload = await read_json_body(request)
    return await repository.update_by_id(book_id, payload)


@router.delete("/{book_id}", response_model=BookDeleteResponse)
async def delete_book(book_id: str, repository: BookRepository = Depends(get_book_repository)):
    """Delete a book and return the removed record."""
    deleted = await repository.delete_by_id(book_id)
    return BookDeleteResponse(deleted_book=deleted)


def register_exception_handlers(app: FastAPI) -> None:
    """Map catalog errors to HTTP responses."""

    @app.exception_handler(MissingFieldsError)
    async def missing_fields_handler(request: Request, exc: MissingFieldsError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=error_body(str(exc), errors=[REQUIRED_MESSAGES[name] for name in exc.missing])
        )

    @app.exception_handler(BookValidationError)
    async def validation_handler(request: Request, exc: BookValidationError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=error_body("Validation error", errors=exc.errors)
        )

    @app.exception_handler(BookNotFoundError)
    async def not_found_handler(request: Request, exc: BookNotFoundError):
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content=error_body("Book not found")
        )

    @app.exception_handler(StoreError)
    async def store_error_handler(request: Request, exc: StoreError):
        logger.error("Store operation failed", operation=exc.operation, error=exc.detail)
        message = STORE_ERROR_MESSAGES.get(exc.operation, "Database service not available")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=error_body(message, error=exc.detail if app.state.debug else None)
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == status.HTTP_404_NOT_FOUND:
            content = error_body("Route not found", path=request.url.path)
        else:
            content = error_body(str(exc.detail))
        return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception", path=request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=error_body(
                "Something went wrong!",
                error=str(exc) if app.state.debug else "Internal server error"
            )
        )


def create_app(db_manager: Optional[MongoDBManager] = None, debug: Optional[bool] = None) -> FastAPI:
    """
    Build the application.

    Args:
        db_manager: Database manager to use; one is built from config on startup when omitted
        debug: Include internal error details in 500 responses
    """
    app = FastAPI(
        title=api_config.api_title,
        description=api_config.api_description,
        version=api_config.api_version,
        lifespan=lifespan
    )
    app.state.db_manager = db_manager
    app.state.debug = api_config.debug if debug is None else debug

    app.add_middleware(
        CORSMiddleware,
        allow_origins=api_config.cors_origins,
        allow_credentials=api_config.cors_allow_credentials,
        allow_methods=api_config.cors_allow_methods,
        allow_headers=api_config.cors_allow_headers,
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log every request with its status and duration."""
        bind_request_context(request.method, request.url.path)
        start = time.perf_counter()
        try:
            response = await call_next(request)
            logger.info(
                "Request handled",
                status_code=response.status_code,
                duration_ms=round((time.perf_counter() - start) * 1000, 2)
            )
            return response
        finally:
            clear_request_context()

    register_exception_handlers(app)

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check(db_manager: Optional[MongoDBManager] = Depends(get_database_manager)):
        """Health check endpoint."""
        connected = db_manager is not None and await db_manager.ping()
        return HealthResponse(
            status="OK",
            message="Book App Backend is running",
            timestamp=datetime.now(timezone.utc),
            database="Connected" if connected else "Disconnected"
        )

    @app.get("/", response_model=APIIndexResponse, tags=["Health"])
    async def api_index():
        """Describe the available routes."""
        return APIIndexResponse(
            message="Welcome to Book App API",
            version=api_config.api_version
        )

    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "api.main:app",
        host=api_config.host,
        port=api_config.port,
        reload=api_config.debug,
        log_level=api_config.log_level.lower()
    )
