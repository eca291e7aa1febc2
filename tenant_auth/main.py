from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from tenant_auth.config import settings
from tenant_auth.core.exceptions import (
    ConflictException,
    ForbiddenException,
    NotFoundException,
    RateLimitException,
    UnauthorizedException,
    ValidationException,
)
from tenant_auth.core.rbac import DEFAULT_PERMISSIONS
from tenant_auth.database import SessionLocal, init_db
from tenant_auth.logging import get_logger, set_correlation_id
from tenant_auth.repositories.permission_repository import PermissionRepository
from tenant_auth.routes import (
    audit_routes,
    auth_routes,
    invitation_routes,
    permission_routes,
    role_routes,
    security_routes,
    session_routes,
    tenant_routes,
    two_factor_routes,
    user_routes,
)

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    db = SessionLocal()
    try:
        created = PermissionRepository(db).seed_catalog(DEFAULT_PERMISSIONS)
    finally:
        db.close()
    logger.info("startup_complete", app=settings.APP_NAME, version=settings.APP_VERSION, permissions_seeded=created)
    yield


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    docs_url="/docs" if settings.DEBUG else None,  # Disable in production
    redoc_url="/redoc" if settings.DEBUG else None,
    lifespan=lifespan,
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


@app.middleware("http")
async def correlation_id_middleware(request: Request, call_next):
    correlation_id = set_correlation_id(request.headers.get("x-request-id"))
    response = await call_next(request)
    response.headers["X-Request-ID"] = correlation_id
    return response


# Exception handlers
@app.exception_handler(UnauthorizedException)
async def unauthorized_exception_handler(request: Request, exc: UnauthorizedException):
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content={"detail": str(exc)},
        headers={"WWW-Authenticate": "Bearer"},
    )


@app.exception_handler(NotFoundException)
async def not_found_exception_handler(request: Request, exc: NotFoundException):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(ForbiddenException)
async def forbidden_exception_handler(request: Request, exc: ForbiddenException):
    return JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content={"detail": str(exc)})


@app.exception_handler(ValidationException)
async def validation_exception_handler(request: Request, exc: ValidationException):
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})


@app.exception_handler(ConflictException)
async def conflict_exception_handler(request: Request, exc: ConflictException):
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})


@app.exception_handler(RateLimitException)
async def rate_limit_exception_handler(request: Request, exc: RateLimitException):
    return JSONResponse(status_code=status.HTTP_429_TOO_MANY_REQUESTS, content={"detail": str(exc)})


# Health check endpoint
@app.get("/health")
async def health_check():
    return {"status": "healthy", "version": settings.APP_VERSION}


# Root endpoint
@app.get("/")
async def root():
    return {
        "message": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "docs": "/docs" if settings.DEBUG else "Documentation disabled in production",
    }


# Include routers
app.include_router(auth_routes.router, prefix="/api/auth", tags=["Authentication"])
app.include_router(user_routes.router, prefix="/api/users", tags=["Users"])
app.include_router(role_routes.router, prefix="/api/roles", tags=["Roles"])
app.include_router(permission_routes.router, prefix="/api/permissions", tags=["Permissions"])
app.include_router(session_routes.router, prefix="/api/sessions", tags=["Sessions"])
app.include_router(two_factor_routes.router, prefix="/api/2fa", tags=["Two-Factor Authentication"])
app.include_router(invitation_routes.router, prefix="/api/invitations", tags=["Invitations"])
app.include_router(audit_routes.router, prefix="/api/audit-logs", tags=["Audit Logs"])
app.include_router(security_routes.router, prefix="/api/security", tags=["Security"])
app.include_router(tenant_routes.router, prefix="/api/tenants", tags=["Tenants"])
