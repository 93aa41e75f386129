"""
GitHub Stats Proxy - FastAPI Application

Caching proxy in front of the GitHub REST API with an aggregated
per-user statistics endpoint.
"""

import logging
import time
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from github_stats_proxy import __version__
from github_stats_proxy.cache import ResponseCache
from github_stats_proxy.config import Settings, settings as default_settings
from github_stats_proxy.errors import UpstreamError
from github_stats_proxy.github_client import GitHubClient
from github_stats_proxy.services import ProxyService, StatsService, utc_timestamp

logger = logging.getLogger(__name__)

AVAILABLE_ENDPOINTS = [
    "GET /health",
    "GET /api",
    "GET /api/github/v2?endpoint=<github-path>",
    "GET /api/github/v2/stats?username=<username>",
    "GET /api/github/v2/cache/status",
]


def _flag(value: str | None) -> bool:
    return value == "true"


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# ============================================================================
# Middleware
# ============================================================================

class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs each request and its completion status and duration."""

    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        logger.info("Incoming %s %s", request.method, request.url.path)

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "%s %s - %d - %.0fms",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
        )
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds browser hardening headers to every response."""

    headers = {
        "X-Content-Type-Options": "nosniff",
        "X-Frame-Options": "SAMEORIGIN",
        "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
        "Referrer-Policy": "no-referrer",
    }

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        for name, value in self.headers.items():
            response.headers.setdefault(name, value)
        return response


# ============================================================================
# Dependencies
# ============================================================================

def get_cache(request: Request) -> ResponseCache:
    return request.app.state.cache


def get_proxy_service(request: Request) -> ProxyService:
    return request.app.state.proxy_service


def get_stats_service(request: Request) -> StatsService:
    return request.app.state.stats_service


# ============================================================================
# Application Setup
# ============================================================================

def create_app(
    settings: Settings | None = None,
    github: GitHubClient | None = None,
) -> FastAPI:
    """
    Build the application with its own cache and services.

    Args:
        settings: Configuration (module settings if not given)
        github: Upstream client (built from settings if not given)

    Returns:
        Configured FastAPI application
    """
    settings = settings or default_settings
    github = github or GitHubClient(settings)
    started_at = time.time()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        logger.info("Starting GitHub Stats Proxy v%s (%s)", __version__, settings.environment)
        logger.info(
            "GitHub token: %s",
            "configured" if settings.github_token else "not configured (rate limited)",
        )
        logger.info(
            "Cache TTL: %ss endpoints, %ss stats, max %d entries",
            settings.cache_ttl_seconds,
            settings.stats_cache_ttl_seconds,
            settings.cache_max_entries,
        )

        yield

        # Cleanup
        await github.close()
        logger.info("Shutdown complete")

    app = FastAPI(
        title="GitHub Stats Proxy",
        description="GitHub API proxy with caching, retries and aggregated user statistics",
        version=__version__,
        lifespan=lifespan,
    )

    cache = ResponseCache(
        ttl_seconds=settings.cache_ttl_seconds,
        stats_ttl_seconds=settings.stats_cache_ttl_seconds,
        max_entries=settings.cache_max_entries,
        max_bytes=settings.cache_max_bytes,
    )
    app.state.settings = settings
    app.state.cache = cache
    app.state.github = github
    app.state.proxy_service = ProxyService(cache, github)
    app.state.stats_service = StatsService(cache, github)

    # Add middleware
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ========================================================================
    # Endpoints
    # ========================================================================

    @app.get("/health")
    async def health_check():
        """Health check for monitoring and load balancers."""
        return {
            "status": "OK",
            "timestamp": utc_timestamp(),
            "uptime": int(time.time() - started_at),
            "version": __version__,
            "environment": settings.environment,
        }

    @app.get("/api")
    async def api_info():
        """Service description and endpoint index."""
        return {
            "name": "GitHub Stats Proxy",
            "version": __version__,
            "endpoints": {
                "health": "GET /health",
                "github": {
                    "proxy": "GET /api/github/v2?endpoint=<github-path>&cache=<true|false>",
                    "stats": "GET /api/github/v2/stats?username=<username>&force=<true|false>",
                    "cache": {
                        "status": "GET /api/github/v2/cache/status",
                        "clear": "DELETE /api/github/v2/cache",
                        "clearEndpoint": "DELETE /api/github/v2/cache/<endpoint>",
                    },
                },
            },
        }

    @app.get("/api/github/v2")
    @app.get("/api/github/v2/")
    async def proxy_endpoint(
        endpoint: str | None = None,
        cache: str | None = None,
        service: ProxyService = Depends(get_proxy_service),
    ):
        """Proxy any GitHub API endpoint, optionally cached."""
        return await service.handle(endpoint, use_cache=_flag(cache))

    @app.get("/api/github/v2/stats")
    async def stats_by_query(
        username: str | None = None,
        force: str | None = None,
        service: StatsService = Depends(get_stats_service),
    ):
        """Aggregated statistics for ?username=."""
        return await service.handle(username, force_refresh=_flag(force))

    @app.get("/api/github/v2/stats/{username}")
    async def stats_by_path(
        username: str,
        force: str | None = None,
        service: StatsService = Depends(get_stats_service),
    ):
        """Aggregated statistics for a username in the path."""
        return await service.handle(username, force_refresh=_flag(force))

    @app.get("/api/github/v2/cache/status")
    async def cache_status(cache: ResponseCache = Depends(get_cache)):
        return cache.status()

    @app.delete("/api/github/v2/cache")
    async def clear_cache(cache: ResponseCache = Depends(get_cache)):
        cleared = cache.clear()
        logger.info("Cache cleared (%d entries)", cleared)
        return {"message": "Cache cleared successfully", "entriesCleared": cleared}

    @app.delete("/api/github/v2/cache/{key:path}")
    async def clear_cache_entry(key: str, cache: ResponseCache = Depends(get_cache)):
        key = ResponseCache.normalize_key(key)
        if not cache.delete(key):
            return JSONResponse(
                status_code=404,
                content={"error": f"No cache entry found for endpoint: {key}"},
            )
        return {"message": f"Cache cleared for endpoint: {key}"}

    # ========================================================================
    # Error Handlers
    # ========================================================================

    @app.exception_handler(UpstreamError)
    async def upstream_error_handler(request: Request, exc: UpstreamError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return JSONResponse(
                status_code=404,
                content={
                    "error": "Route not found",
                    "path": request.url.path,
                    "method": request.method,
                    "suggestion": "Check the API documentation at /api for available endpoints",
                    "availableEndpoints": AVAILABLE_ENDPOINTS,
                },
            )
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        content = {
            "error": "Internal server error",
            "timestamp": utc_timestamp(),
            "requestId": request.headers.get("x-request-id", "unknown"),
        }
        if not settings.is_production:
            content["details"] = str(exc)
        return JSONResponse(status_code=500, content=content)

    return app


app = create_app()


# ============================================================================
# Main
# ============================================================================

def main():
    """Entry point for running the server."""
    import uvicorn

    configure_logging(default_settings.log_level)
    uvicorn.run(app, host=default_settings.host, port=default_settings.port)


if __name__ == "__main__":
    main()
