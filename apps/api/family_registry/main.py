import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.docs import get_swagger_ui_html
from fastapi.responses import JSONResponse

from family_registry.core.config import settings
from family_registry.core.errors import StoreTimeoutError, StoreUnavailableError
from family_registry.routers import admin, audit, auth, documents, family_tree, health, members, notifications

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title="Family Registry API",
    version="1.0.0",
    description="API for family trees, membership verification, notifications and documents.",
    # Served under a path prefix at the edge; see the custom /docs route below.
    docs_url=None,
    root_path=settings.root_path,
)


@app.get("/docs", include_in_schema=False)
def swagger_ui():
    prefix = (settings.root_path or "").rstrip("/")
    openapi_url = f"{prefix}{app.openapi_url}"
    return get_swagger_ui_html(openapi_url=openapi_url, title=f"{app.title} - Docs")


@app.exception_handler(StoreTimeoutError)
def store_timeout_handler(request: Request, exc: StoreTimeoutError):
    return JSONResponse(status_code=503, content={"detail": "the service timed out, please retry", "retryable": True})


@app.exception_handler(StoreUnavailableError)
def store_unavailable_handler(request: Request, exc: StoreUnavailableError):
    return JSONResponse(status_code=503, content={"detail": "the service is temporarily unavailable"})


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(auth.router)
app.include_router(members.router)
app.include_router(family_tree.router)
app.include_router(family_tree.connections_router)
app.include_router(notifications.router)
app.include_router(documents.router)
app.include_router(admin.router)
app.include_router(audit.router)
