import logging
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded

from swarm_api.config import settings
from swarm_api.core.exceptions import (
    AccessDeniedError,
    CompanyContextRequiredError,
    ConfigurationError,
    LastAdminError,
    SecurityError,
    UpstreamUnavailableError,
)
from swarm_api.modules.auth import routes as auth_routes
from swarm_api.modules.companies import routes as companies_routes
from swarm_api.modules.agents import routes as agents_routes
from swarm_api.modules.agent_logs import routes as agent_logs_routes
from swarm_api.modules.organizations import routes as organizations_routes
from swarm_api.modules.rbac import routes as rbac_routes

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%SZ",
)
logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit])
app = FastAPI(
    title=settings.app_name,
    debug=settings.debug,
    redirect_slashes=False,
)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(AccessDeniedError)
async def access_denied_handler(request: Request, exc: AccessDeniedError):
    # Reason and context stay server-side
    return JSONResponse(status_code=403, content={"detail": "Access denied"})


@app.exception_handler(CompanyContextRequiredError)
async def company_context_required_handler(request: Request, exc: CompanyContextRequiredError):
    return JSONResponse(status_code=401, content={"detail": exc.message})


@app.exception_handler(LastAdminError)
async def last_admin_handler(request: Request, exc: LastAdminError):
    return JSONResponse(status_code=409, content={"detail": exc.message})


@app.exception_handler(SecurityError)
async def security_error_handler(request: Request, exc: SecurityError):
    return JSONResponse(status_code=403, content={"detail": "Access denied"})


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    if settings.is_production:
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})
    return JSONResponse(status_code=500, content={"detail": str(exc)})


@app.exception_handler(UpstreamUnavailableError)
async def upstream_unavailable_handler(request: Request, exc: UpstreamUnavailableError):
    logger.error("Upstream unavailable on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=503, content={"detail": "Service temporarily unavailable"})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception: %s", exc)
    if settings.is_production:
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})
    return JSONResponse(status_code=500, content={"detail": str(exc)})


class SecurityHeadersMiddleware:
    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        async def send_with_headers(message):
            if message["type"] == "http.response.start":
                message.setdefault("headers", [])
                message["headers"].extend([
                    (b"X-Content-Type-Options", b"nosniff"),
                    (b"X-Frame-Options", b"DENY"),
                    (b"X-XSS-Protection", b"1; mode=block"),
                ])
            await send(message)

        await self.app(scope, receive, send_with_headers)


app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include module routes
app.include_router(auth_routes.router, prefix="/api/v1")
app.include_router(companies_routes.router, prefix="/api/v1")
app.include_router(agents_routes.router, prefix="/api/v1")
app.include_router(agent_logs_routes.router, prefix="/api/v1")
app.include_router(organizations_routes.router, prefix="/api/v1")
app.include_router(rbac_routes.router, prefix="/api/v1")


@app.on_event("startup")
async def startup_event():
    logger.info(
        "Application startup (environment=%s, permission cache TTL=%ss, audit sink=%s)",
        settings.environment, settings.permission_cache_ttl_seconds, settings.audit_sink,
    )


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Application shutdown")


@app.get("/")
async def root():
    return {"message": "Welcome to swarm-api", "status": "healthy"}


@app.get("/health")
@limiter.exempt
async def health():
    return {"status": "healthy"}


@app.get("/ready")
@limiter.exempt
async def ready():
    """Readiness probe: extend here with Supabase checks if needed."""
    return {"status": "ready"}
