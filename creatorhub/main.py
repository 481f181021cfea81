"""FastAPI application entrypoint.

Configures CORS, includes routers, renders domain errors and exposes a
healthcheck endpoint.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.utils import get_openapi
from fastapi.responses import JSONResponse
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

from .deps import get_settings
from .errors import ErrorCategory, ErrorCode, ServiceError
from .routers import ad_revenue as ad_revenue_router
from .routers import affiliates as affiliates_router
from .routers import analytics as analytics_router
from .routers import articles as articles_router
from .routers import email_campaigns as email_campaigns_router
from .routers import subscribers as subscribers_router
from .routers import subscriptions as subscriptions_router
from .routers import webhooks as webhooks_router
from .telemetry.sentry import capture_exception, init_sentry
from . import schemas

# Import models so Alembic can discover metadata
from . import models  # noqa: F401


PUBLIC_ENDPOINTS = ("/health", "/webhooks/", "/r/")


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ServiceError)
    async def service_error_handler(request: Request, exc: ServiceError):
        if exc.status_code >= 500:
            provider_message = getattr(exc, "provider_message", "")
            logger.error("%s %s failed: %s %s", request.method, request.url.path, exc, provider_message)
            capture_exception(exc, extra={"path": request.url.path, "code": exc.code.value})
        else:
            logger.info("%s %s -> %d %s", request.method, request.url.path, exc.status_code, exc.code.value)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        capture_exception(exc, extra={"path": request.url.path})
        return JSONResponse(
            status_code=500,
            content={
                "detail": "Internal server error",
                "code": ErrorCode.INTERNAL_ERROR.value,
                "category": ErrorCategory.UNKNOWN.value,
            },
        )


def create_app() -> FastAPI:
    settings = get_settings()
    if init_sentry(settings.SENTRY_DSN, settings.ENVIRONMENT):
        logger.info("[STARTUP] Sentry error tracking enabled (%s)", settings.ENVIRONMENT)

    app = FastAPI(
        title="creatorhub API",
        description="""
        creatorhub is the backend of a creator monetization platform.

        This API provides endpoints for:
        - Articles and per-article performance tracking
        - Ad network revenue reports
        - Affiliate links, click redirects and conversions
        - Newsletter subscribers and email campaigns (Resend)
        - Paid subscription plans and checkout (Polar)
        - Cross-domain analytics dashboards

        The API uses JWT-based authentication with HTTP-only cookies.
        Public endpoints: health, webhooks, article tracking, subscriber
        signup/unsubscribe, plan catalogue and the /r/{tracking_code} redirect.
        """,
        version="1.0.0",
        servers=[
            {
                "url": "http://localhost:8000",
                "description": "Development server"
            },
        ]
    )

    # Trust X-Forwarded-* so request.client reflects the visitor behind the proxy
    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts="*")

    origins = [origin.strip() for origin in settings.BACKEND_CORS_ORIGINS.split(",") if origin.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _register_exception_handlers(app)

    app.include_router(articles_router.router)
    app.include_router(ad_revenue_router.router)
    app.include_router(affiliates_router.router)
    app.include_router(affiliates_router.redirect_router)  # Public /r/{tracking_code}
    app.include_router(analytics_router.router)
    app.include_router(email_campaigns_router.router)
    app.include_router(subscribers_router.router)
    app.include_router(subscriptions_router.plans_router)
    app.include_router(subscriptions_router.router)
    app.include_router(webhooks_router.router)

    @app.get(
        "/health",
        response_model=schemas.HealthResponse,
        tags=["Health"],
        summary="Health check",
        description="Unauthenticated liveness check for load balancers.",
    )
    def health():
        return schemas.HealthResponse(status="ok")

    def custom_openapi():
        if app.openapi_schema:
            return app.openapi_schema

        openapi_schema = get_openapi(
            title=app.title,
            version=app.version,
            description=app.description,
            routes=app.routes,
            servers=app.servers
        )

        openapi_schema["components"]["securitySchemes"] = {
            "cookieAuth": {
                "type": "apiKey",
                "in": "cookie",
                "name": "access_token",
                "description": "JWT token stored in HTTP-only cookie. Format: 'Bearer <token>'"
            }
        }

        for path in openapi_schema["paths"]:
            if path.startswith(PUBLIC_ENDPOINTS):
                continue
            for method in openapi_schema["paths"][path]:
                if "security" not in openapi_schema["paths"][path][method]:
                    openapi_schema["paths"][path][method]["security"] = [
                        {"cookieAuth": []}
                    ]

        app.openapi_schema = openapi_schema
        return app.openapi_schema

    app.openapi = custom_openapi
    return app


app = create_app()
