from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from flowerpots import __version__
from flowerpots.config import Config, load_config
from flowerpots.context import AppContext
from flowerpots.db import init_db
from flowerpots.errors import ApiError
from flowerpots.mail import Mailer, build_mailer
from flowerpots.storage.blobs import BlobStore, build_blob_store

from . import admin, auth, care, catalog, pots, timelines, uploads


def _debug(msg: str) -> None:
    print(f"[api] {msg}")


_FROM_CONFIG: Any = object()


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    loc = [str(p) for p in first.get("loc", ()) if p not in ("body", "query", "path", "header")]
    where = ".".join(loc)
    msg = str(first.get("msg") or "invalid value")
    return f"Invalid request: {where}: {msg}" if where else f"Invalid request: {msg}"


def _install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ApiError)
    async def _api_error(request: Request, exc: ApiError) -> JSONResponse:
        if exc.status_code >= 500:
            _debug(f"{request.method} {request.url.path} status={exc.status_code} error={exc.message!r}")
        return _error(exc.status_code, exc.message)

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return _error(exc.status_code, str(exc.detail or "Request failed"))

    @app.exception_handler(RequestValidationError)
    async def _invalid_request(request: Request, exc: RequestValidationError) -> JSONResponse:
        return _error(400, _validation_message(exc))

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception) -> JSONResponse:
        # Details stay in the log; clients only get a generic message.
        _debug(f"{request.method} {request.url.path} unhandled error={exc!r}")
        return _error(500, "Internal server error")


def create_app(
    cfg: Optional[Config] = None,
    *,
    blobs: Optional[BlobStore] = _FROM_CONFIG,
    mailer: Optional[Mailer] = None,
) -> FastAPI:
    """Build the API around one explicit context.

    `blobs` defaults to the store named by the config; pass None to run without one.
    """
    cfg = cfg or load_config()
    if blobs is _FROM_CONFIG:
        blobs = build_blob_store(cfg)
    ctx = AppContext(cfg=cfg, blobs=blobs, mailer=mailer or build_mailer(cfg))

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # Ensure schema exists.
        init_db(cfg.DB_DSN)
        _debug(f"ready blob_store={type(blobs).__name__ if blobs is not None else 'none'}")
        yield

    docs = cfg.ENABLE_DOCS
    app = FastAPI(
        title="My Flower Pots API",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if docs else None,
        redoc_url="/redoc" if docs else None,
        openapi_url="/openapi.json" if docs else None,
    )
    app.state.ctx = ctx
    app.state.cfg = cfg

    # CORS is mainly needed for local development (frontend dev server -> API).
    if cfg.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=cfg.cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    _install_error_handlers(app)

    @app.get("/health")
    def health() -> Dict[str, Any]:
        return {"status": "ok", "version": __version__}

    app.include_router(auth.router)
    app.include_router(pots.router)
    app.include_router(care.router)
    app.include_router(timelines.router)
    app.include_router(uploads.router)
    app.include_router(catalog.router)
    app.include_router(admin.router)
    return app


app = create_app()
