"""
Gold Platform API Application Factory
"""

import logging

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..errors import GoldPlatformError
from .pricing import router as pricing_router
from .kyc import router as kyc_router

logger = logging.getLogger("gold_platform.api")


# Error kind to HTTP status
ERROR_STATUS_CODES = {
    "invalid_currency": 400,
    "invalid_amount": 400,
    "invalid_delivery_type": 400,
    "invalid_document": 400,
    "unauthorized": 403,
    "not_found": 404,
    "concurrency_conflict": 409,
    "invalid_transition": 409,
    "case_already_exists": 409,
    "rate_unavailable": 503,
}


def _error_response(status_code: int, kind: str, detail) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": kind, "detail": detail})


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title="Gold Platform Core API",
        description="Gold pricing, currency conversion and KYC workflow",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(GoldPlatformError)
    async def handle_domain_error(request: Request, exc: GoldPlatformError):
        status_code = ERROR_STATUS_CODES.get(exc.kind, 500)
        if status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return _error_response(status_code, exc.kind, exc.message)

    @app.exception_handler(ValueError)
    async def handle_value_error(request: Request, exc: ValueError):
        return _error_response(400, "invalid_input", str(exc))

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        return _error_response(400, "invalid_input", str(exc))

    # Include routers
    app.include_router(pricing_router, tags=["Pricing"])
    app.include_router(kyc_router, prefix="/kyc", tags=["KYC"])

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "gold_platform_api",
            "version": __version__
        }

    # Root endpoint
    @app.get("/")
    async def get_api_info():
        """Get API information"""
        return {
            "name": "Gold Platform Core API",
            "version": __version__,
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "rates": "/rates",
                "gold": "/gold",
                "fees": "/fees",
                "kyc": "/kyc",
            }
        }

    return app


app = create_app()


def run_server(host: str = "0.0.0.0", port: int = 8091, debug: bool = False):
    """Run the FastAPI server"""
    uvicorn.run(
        "gold_platform.api:app",
        host=host,
        port=port,
        reload=debug,
        log_level="info"
    )
