import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from portfolio_authz.config import settings
from portfolio_authz.core.exceptions import (
    PortfolioAuthzException,
    UnauthorizedException,
    NotFoundException,
    ForbiddenException,
    ValidationException,
)
from portfolio_authz.core.logging_config import setup_logging
from portfolio_authz.routes import member_routes, portfolio_routes

setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    docs_url="/docs" if settings.DEBUG else None,  # Disable in production
    redoc_url="/redoc" if settings.DEBUG else None,
)

# CORS middleware
cors_origins = settings.cors_origins_list
if cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
        allow_methods=["*"],
        allow_headers=["*"],
    )


def _error_content(exc: PortfolioAuthzException) -> dict:
    content = {"detail": str(exc)}
    if exc.error_code is not None:
        content["errorCode"] = getattr(exc.error_code, "value", exc.error_code)
    return content


# Exception handlers
@app.exception_handler(UnauthorizedException)
async def unauthorized_exception_handler(request: Request, exc: UnauthorizedException):
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content=_error_content(exc),
        headers={"WWW-Authenticate": "Bearer"},
    )


@app.exception_handler(NotFoundException)
async def not_found_exception_handler(request: Request, exc: NotFoundException):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content=_error_content(exc))


@app.exception_handler(ForbiddenException)
async def forbidden_exception_handler(request: Request, exc: ForbiddenException):
    return JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content=_error_content(exc))


@app.exception_handler(ValidationException)
async def validation_exception_handler(request: Request, exc: ValidationException):
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=_error_content(exc))


# Health check endpoint
@app.get("/health")
async def health_check():
    return {"status": "healthy", "version": settings.APP_VERSION}


# Include routers
app.include_router(portfolio_routes.router, prefix="/api/portfolios", tags=["Portfolios"])
app.include_router(member_routes.router, prefix="/api/portfolios", tags=["Members"])

logger.info("%s %s ready", settings.APP_NAME, settings.APP_VERSION)
