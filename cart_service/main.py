"""
Cart Service Application

Per-tenant, per-user shopping carts kept in a TTL cache.
"""

import os
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from dotenv import load_dotenv

from .core.config import settings
from .core.exceptions import CartServiceError
from .models.cart import ErrorDetail, ErrorResponse
from .routes import cart_router
from .routes import cart as cart_routes

# Load environment variables
load_dotenv(os.path.join(os.path.dirname(__file__), "..", "config", ".env"))

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    logger.info("Cart Service starting up...")
    logger.info(f"Cache backend: {settings.cache_backend}")
    logger.info(f"Catalog URL: {settings.catalog_service_url}")
    logger.info(f"Cart TTL: {settings.cart_ttl_seconds}s")

    yield

    logger.info("Cart Service shutting down...")
    if cart_routes.cart_service:
        await cart_routes.cart_service.close()
        cart_routes.cart_service = None


def _error_response(status_code: int, code: str, message: str) -> JSONResponse:
    payload = ErrorResponse(error=ErrorDetail(code=code, message=message))
    return JSONResponse(status_code=status_code, content=payload.model_dump())


async def cart_error_handler(request: Request, exc: CartServiceError) -> JSONResponse:
    """Render cart service errors as the error payload"""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return _error_response(exc.status_code, exc.code, exc.message)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies are bad requests"""
    errors = exc.errors()
    message = "; ".join(
        f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg')}"
        for error in errors
    )
    return _error_response(400, "VALIDATION_ERROR", message or "Invalid request")


def create_app() -> FastAPI:
    """Create the FastAPI application"""
    app = FastAPI(
        title=settings.app_name,
        description="Shopping cart service backed by a TTL cache",
        version="1.0.0",
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # In production, restrict this
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(CartServiceError, cart_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    app.include_router(cart_router, prefix="/api/v1/cart")
    app.include_router(cart_router, prefix="/cart", include_in_schema=False)

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "cart-service",
            "cache_backend": settings.cache_backend,
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "cart_service.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
