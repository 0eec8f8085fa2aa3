"""
FastAPI application for Feed Query Service
"""
from fastapi import FastAPI, Depends, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging

from .config import settings
from .cache import cache
from .service_client import service_client
from .dependencies import get_current_user, get_token
from .service import FeedQueryService, get_feed_query_service
from .domain.exceptions import FeedQueryError
from .schemas import (
    User,
    FeedQueryRequest,
    FeedQueryResponse,
    HistoryResponse,
    CombinedOperationResponse,
    MessageResponse,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO if not settings.DEBUG else logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    # Startup
    logger.info("Starting Feed Query Service...")

    # Connect to Redis
    await cache.connect()
    logger.info("Redis cache initialized")

    # Start service client
    await service_client.start()
    logger.info("Service client initialized")

    logger.info(f"Feed Query Service started successfully on port {settings.PORT}")

    yield

    # Shutdown
    logger.info("Shutting down Feed Query Service...")

    # Stop service client
    await service_client.stop()

    # Disconnect Redis
    await cache.disconnect()

    logger.info("Feed Query Service shut down successfully")


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Instagram Feed Query Service - Combined search, filter and pagination for feeds",
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(FeedQueryError)
async def feed_query_exception_handler(request: Request, exc: FeedQueryError):
    return JSONResponse(
        status_code=exc.status,
        content={"code": exc.code, "message": exc.message},
    )


# Health check endpoint
@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION
    }


# Feed query endpoints
@app.post(
    "/api/v1/feed/query",
    response_model=FeedQueryResponse,
    tags=["Feed Query"],
    summary="Submit search and filters",
)
async def submit_query(
    request: FeedQueryRequest,
    page_size: int = Query(
        settings.DEFAULT_PAGE_SIZE,
        ge=1,
        le=settings.MAX_PAGE_SIZE,
        description="Items per page"
    ),
    current_user: User = Depends(get_current_user),
    token: str = Depends(get_token),
    service: FeedQueryService = Depends(get_feed_query_service),
):
    """
    Run a combined search/filter operation for the current user

    - Mode is derived from the query and filters (none, search-only, filter-only, search-and-filter)
    - Pagination restarts at page 1 whenever the result set changes
    - Responses superseded by a newer submission are discarded
    """
    snapshot = await service.submit(
        current_user.id,
        request.query,
        request.filters.model_dump(),
        token=token,
        page_size=page_size,
    )
    return FeedQueryResponse.from_snapshot(snapshot)


@app.post(
    "/api/v1/feed/query/more",
    response_model=FeedQueryResponse,
    tags=["Feed Query"],
    summary="Load the next page",
)
async def load_more(
    current_user: User = Depends(get_current_user),
    token: str = Depends(get_token),
    service: FeedQueryService = Depends(get_feed_query_service),
):
    """
    Advance pagination by one page

    Does nothing when there are no more posts.
    """
    snapshot = await service.load_more(current_user.id, token=token)
    return FeedQueryResponse.from_snapshot(snapshot)


@app.post(
    "/api/v1/feed/query/retry",
    response_model=FeedQueryResponse,
    tags=["Feed Query"],
    summary="Retry after a failure",
)
async def retry_query(
    current_user: User = Depends(get_current_user),
    token: str = Depends(get_token),
    service: FeedQueryService = Depends(get_feed_query_service),
):
    snapshot = await service.retry(current_user.id, token=token)
    return FeedQueryResponse.from_snapshot(snapshot)


@app.get(
    "/api/v1/feed/query",
    response_model=FeedQueryResponse,
    tags=["Feed Query"],
    summary="Get current view",
)
async def get_query_state(
    current_user: User = Depends(get_current_user),
    service: FeedQueryService = Depends(get_feed_query_service),
):
    return FeedQueryResponse.from_snapshot(service.snapshot(current_user.id))


@app.get(
    "/api/v1/feed/query/history",
    response_model=HistoryResponse,
    tags=["Feed Query"],
    summary="Get recent combine operations",
)
async def get_query_history(
    current_user: User = Depends(get_current_user),
    service: FeedQueryService = Depends(get_feed_query_service),
):
    return HistoryResponse(
        operations=[
            CombinedOperationResponse.from_domain(result)
            for result in service.history(current_user.id)
        ]
    )


@app.delete(
    "/api/v1/feed/query",
    response_model=MessageResponse,
    tags=["Feed Query"],
    summary="Clear search and filters",
)
async def clear_query(
    current_user: User = Depends(get_current_user),
    service: FeedQueryService = Depends(get_feed_query_service),
):
    if service.clear(current_user.id):
        return MessageResponse(message="Feed query cleared")
    return MessageResponse(message="Nothing to clear")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "feed_query_service.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
    )
