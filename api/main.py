"""
FastAPI main application for the Book Catalog API.
"""

import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import Body, Depends, FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.config import config as api_config
from api.models import ErrorResponse, HealthResponse
from catalog.database import MongoBookRepository
from catalog.memory import InMemoryBookRepository
from catalog.service import BookService, FailureKind, OperationResult
from utilities.config import config
from utilities.logger import get_logger, setup_logging

logger = get_logger(__name__)

JSON_BODY_METHODS = ("POST", "PUT")
CONTENT_TYPE_MESSAGE = "Content-Type must be application/json"

FAILURE_STATUS = {
    FailureKind.INVALID_INPUT: status.HTTP_400_BAD_REQUEST,
    FailureKind.CONFLICT: status.HTTP_400_BAD_REQUEST,
    FailureKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
}

BOOK_EXAMPLE = {
    "isbn": "9780441172719",
    "title": "Dune",
    "author": "Frank Herbert",
    "year": 1965,
    "category": "Science Fiction",
}


def build_repository():
    """Create the repository selected by ``STORE_BACKEND``."""
    if config.uses_memory_store():
        return InMemoryBookRepository()
    return MongoBookRepository(
        connection_url=config.mongodb_url,
        database_name=config.mongodb_database,
        collection_name=config.mongodb_collection
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    setup_logging(
        log_level=config.log_level,
        log_format=config.log_format,
        log_file=config.get_log_file_path(),
        debug=config.debug
    )
    logger.info("Starting Book Catalog API", store_backend=config.store_backend)

    repository = build_repository()
    if isinstance(repository, MongoBookRepository):
        try:
            await repository.connect()
        except Exception as e:
            logger.error("Failed to connect to database", error=str(e))
            raise

    app.state.book_service = BookService(repository)

    yield

    logger.info("Shutting down Book Catalog API")
    if isinstance(repository, MongoBookRepository):
        await repository.disconnect()


app = FastAPI(
    title=api_config.api_title,
    description=api_config.api_description,
    version=api_config.api_version,
    docs_url=api_config.docs_url,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=api_config.cors_origins,
    allow_credentials=api_config.cors_allow_credentials,
    allow_methods=api_config.cors_allow_methods,
    allow_headers=api_config.cors_allow_headers,
)


def error_response(status_code: int, message: str, headers=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=message).model_dump(),
        headers=headers
    )


@app.middleware("http")
async def require_json_content_type(request: Request, call_next):
    """Reject POST and PUT requests that do not declare a JSON body."""
    if request.method in JSON_BODY_METHODS:
        media_type = request.headers.get("content-type", "").split(";")[0].strip().lower()
        if media_type != "application/json":
            return error_response(status.HTTP_400_BAD_REQUEST, CONTENT_TYPE_MESSAGE)
    return await call_next(request)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log every request with its outcome and duration."""
    started = time.perf_counter()
    response = await call_next(request)
    logger.info(
        "HTTP request",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round((time.perf_counter() - started) * 1000, 2)
    )
    return response


# Exception handlers
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request, exc: StarletteHTTPException):
    """Handle HTTP exceptions."""
    return error_response(exc.status_code, str(exc.detail), headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request, exc: RequestValidationError):
    """Report unreadable request bodies as client errors."""
    errors = exc.errors()
    reason = errors[0]["msg"] if errors else "malformed request"
    return error_response(status.HTTP_400_BAD_REQUEST, f"Invalid request body: {reason}")


@app.exception_handler(Exception)
async def general_exception_handler(request, exc: Exception):
    """Handle general exceptions."""
    logger.error("Unhandled exception", error=str(exc), path=request.url.path)
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))


def current_book_service(request: Request) -> Optional[BookService]:
    """Return the service created at startup, if any."""
    return getattr(request.app.state, "book_service", None)


def get_book_service(service: Optional[BookService] = Depends(current_book_service)) -> BookService:
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Database service not available"
        )
    return service


def unwrap(result: OperationResult):
    """Return the result's value or raise the HTTP error matching its failure."""
    if not result.ok:
        raise HTTPException(
            status_code=FAILURE_STATUS[result.failure.kind],
            detail=result.failure.message
        )
    return result.value


def store_error(action: str, exc: Exception, **context) -> HTTPException:
    logger.error(f"Failed to {action}", error=str(exc), **context)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=str(exc)
    )


# Health check endpoint
@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check(service: Optional[BookService] = Depends(current_book_service)):
    """Health check endpoint."""
    db_status = "unavailable"
    if service:
        try:
            await service.repository.ping()
            db_status = "healthy"
        except Exception as e:
            logger.error("Health check failed", error=str(e))
            db_status = "unhealthy"

    return HealthResponse(
        status="healthy" if db_status == "healthy" else "degraded",
        timestamp=datetime.now(timezone.utc),
        version=api_config.api_version,
        database_status=db_status
    )


# Books endpoints
@app.get("/books", tags=["Books"])
async def list_books(service: BookService = Depends(get_book_service)):
    """Get every book in the catalog."""
    try:
        books = unwrap(await service.list_books())
        return JSONResponse(content=[book.to_response() for book in books])
    except HTTPException:
        raise
    except Exception as e:
        raise store_error("list books", e)


@app.get("/books/search", tags=["Books"])
async def search_books(
    category: Optional[str] = None,
    service: BookService = Depends(get_book_service)
):
    """
    Search books by category.

    - **category**: Text contained in the category, case-insensitive
    """
    try:
        books = unwrap(await service.search_by_category(category))
        return JSONResponse(content=[book.to_response() for book in books])
    except HTTPException:
        raise
    except Exception as e:
        raise store_error("search books", e, category=category)


@app.get("/books/sort", tags=["Books"])
async def sort_books(
    by: Optional[str] = None,
    order: Optional[str] = None,
    service: BookService = Depends(get_book_service)
):
    """
    Get every book sorted on one field.

    - **by**: Sort field (title, year)
    - **order**: Sort order (asc, desc)
    """
    try:
        books = unwrap(await service.sort_books(by, order))
        return JSONResponse(content=[book.to_response() for book in books])
    except HTTPException:
        raise
    except Exception as e:
        raise store_error("sort books", e, sort_by=by, sort_order=order)


@app.get("/books/{isbn}", tags=["Books"])
async def get_book(isbn: str, service: BookService = Depends(get_book_service)):
    """Get a single book by ISBN."""
    try:
        book = unwrap(await service.get_book(isbn))
        return JSONResponse(content=book.to_response())
    except HTTPException:
        raise
    except Exception as e:
        raise store_error("get book", e, isbn=isbn)


@app.post("/books", status_code=status.HTTP_201_CREATED, tags=["Books"])
async def create_book(
    payload: Optional[Dict[str, Any]] = Body(None, examples=[BOOK_EXAMPLE]),
    service: BookService = Depends(get_book_service)
):
    """Add a book to the catalog. The ISBN must not be in use."""
    try:
        book = unwrap(await service.create_book(payload or {}))
        return JSONResponse(status_code=status.HTTP_201_CREATED, content=book.to_response())
    except HTTPException:
        raise
    except Exception as e:
        raise store_error("create book", e)


@app.put("/books/{isbn}", tags=["Books"])
async def update_book(
    isbn: str,
    payload: Optional[Dict[str, Any]] = Body(None, examples=[BOOK_EXAMPLE]),
    service: BookService = Depends(get_book_service)
):
    """Replace the title, author, year and category of a book."""
    try:
        book = unwrap(await service.update_book(isbn, payload or {}))
        return JSONResponse(content=book.to_response())
    except HTTPException:
        raise
    except Exception as e:
        raise store_error("update book", e, isbn=isbn)


@app.delete("/books/{isbn}", tags=["Books"])
async def delete_book(isbn: str, service: BookService = Depends(get_book_service)):
    """Remove a book and return it."""
    try:
        book = unwrap(await service.delete_book(isbn))
        return JSONResponse(content=book.to_response())
    except HTTPException:
        raise
    except Exception as e:
        raise store_error("delete book", e, isbn=isbn)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "api.main:app",
        host=api_config.host,
        port=api_config.port,
        reload=True,
        log_level="info"
    )
