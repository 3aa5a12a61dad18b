# app/main.py
from fastapi import FastAPI, Request
from fastapi.openapi.utils import get_openapi
from fastapi.responses import JSONResponse

from app.api.deliverables import router as deliverables_router
from app.api.errors import register_error_handlers
from app.api.health import router as health_router
from app.api.integrity import router as integrity_router
from app.api.notifications import router as notifications_router
from app.api.projects import router as projects_router
from app.core.config import settings
from app.core.logging_config import configure_logging

configure_logging(settings.log_level)

# Auth context is headers-only: X-Role + X-Actor-User-Id.
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    description=settings.api_description,
)

register_error_handlers(app)

OPEN_PATHS = {"/docs", "/openapi.json", "/redoc", "/favicon.ico", "/health"}


@app.middleware("http")
async def require_x_role(request: Request, call_next):
    if request.url.path in OPEN_PATHS:
        return await call_next(request)

    x_role = request.headers.get("X-Role")
    if not x_role or not x_role.strip():
        return JSONResponse(
            status_code=401,
            content={"detail": "Missing X-Role header"},
        )

    return await call_next(request)


def custom_openapi():
    if app.openapi_schema:
        return app.openapi_schema

    schema = get_openapi(
        title=app.title,
        version=app.version,
        description=app.description,
        routes=app.routes,
    )

    schema.setdefault("components", {}).setdefault("securitySchemes", {})
    schemes = schema["components"]["securitySchemes"]

    schemes["XRole"] = {
        "type": "apiKey",
        "in": "header",
        "name": "X-Role",
        "description": "Caller role: admin, client or system.",
    }

    schemes["XActorUserId"] = {
        "type": "apiKey",
        "in": "header",
        "name": "X-Actor-User-Id",
        "description": "Actor user id (UUID). Required for protected endpoints.",
    }

    # Both headers are required for protected endpoints.
    schema["security"] = [{"XRole": [], "XActorUserId": []}]

    for path in ["/health"]:
        if path in schema.get("paths", {}):
            for _method, op in schema["paths"][path].items():
                if isinstance(op, dict):
                    op["security"] = []

    app.openapi_schema = schema
    return app.openapi_schema


app.openapi = custom_openapi

app.include_router(health_router, tags=["health"])
app.include_router(projects_router)
app.include_router(deliverables_router)
app.include_router(integrity_router)
app.include_router(notifications_router)
