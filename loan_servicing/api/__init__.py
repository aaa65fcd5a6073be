"""
Loan Servicing API Application Factory
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .dependencies import LoanServicingSystem
from .loans import router as loans_router
from .admin import router as admin_router
from .realtime import router as realtime_router
from ..config import LoanServicingConfig, get_config
from ..errors import LoanServicingError
from ..logging_config import setup_logging

logger = logging.getLogger("loan_servicing.api")


def create_app(system: Optional[LoanServicingSystem] = None,
               config: Optional[LoanServicingConfig] = None) -> FastAPI:
    """Create and configure the FastAPI application"""
    config = config or (system.config if system else get_config())
    setup_logging(config.log_level, config.log_format)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        app.state.system.close()

    app = FastAPI(
        title="Loan Servicing API",
        description="Loan amortization schedules, status decisions and realtime status events",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )
    app.state.system = system or LoanServicingSystem(config)

    # Explicit allow-list only; unknown origins are refused
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.cors_allowed_origins),
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    @app.exception_handler(LoanServicingError)
    async def handle_domain_error(request: Request, exc: LoanServicingError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        if errors:
            location = ".".join(str(part) for part in errors[0].get("loc", ()) if part != "body")
            message = f"{location}: {errors[0].get('msg')}" if location else errors[0].get("msg")
        else:
            message = "Invalid request"
        return JSONResponse(status_code=400, content={
            "type": "validation_error", "message": message, "status": 400
        })

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(status_code=500, content={
            "type": "server_error", "message": "Server error", "status": 500
        })

    app.include_router(loans_router, prefix="/loans", tags=["Loans"])
    app.include_router(admin_router, prefix="/admin", tags=["Admin"])
    app.include_router(realtime_router, tags=["Realtime"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {"status": "healthy", "service": "loan_servicing_api", "version": "1.0.0"}

    @app.get("/")
    async def get_api_info():
        """Get API information"""
        return {
            "name": "Loan Servicing API",
            "version": "1.0.0",
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "loans": "/loans",
                "admin": "/admin",
                "realtime": "/ws",
            }
        }

    return app


def run_server(host: Optional[str] = None, port: Optional[int] = None, debug: bool = False):
    """Run the API server with uvicorn"""
    config = get_config()
    uvicorn.run(
        "loan_servicing.api:create_app",
        factory=True,
        host=host or config.api_host,
        port=port or config.api_port,
        reload=debug,
        log_level=config.log_level.lower()
    )
