import logging
import uuid

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from starlette.datastructures import MutableHeaders
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from clipfetch.api import download, health, info
from clipfetch.config.settings import config
from clipfetch.core.errors import ClipFetchError, ResponseAborted
from clipfetch.core.logging import log_error, log_with_context, setup_logging
from clipfetch.core.state import state
from clipfetch.i18n import i18n
from clipfetch.infra.redis import close_redis, init_redis
from clipfetch.utils.locale import get_locale

setup_logging()


class RequestIdMiddleware:
    """Tag each HTTP request with an id (request.state.request_id, X-Request-ID)"""

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request_id = uuid.uuid4().hex[:12]
        scope.setdefault("state", {})["request_id"] = request_id

        async def send_with_request_id(message: Message) -> None:
            if message["type"] == "http.response.start":
                MutableHeaders(scope=message).append("X-Request-ID", request_id)
            await send(message)

        await self.app(scope, receive, send_with_request_id)


app = FastAPI(
    title=config.api.title,
    description=config.api.description,
    version=config.api.version,
    docs_url="/docs" if config.api.debug else None,
    redoc_url=None
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.api.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition", "X-Request-ID"],
)
app.add_middleware(RequestIdMiddleware)

# Routes
app.include_router(health.router, tags=["Health"])
app.include_router(info.router, tags=["Info"])
app.include_router(download.router, tags=["Download"])


def _translate(request: Request, key: str, **params) -> str:
    locale = get_locale(request.headers.get("accept-language"))
    return i18n.get(key, locale=locale, **params)


@app.exception_handler(ClipFetchError)
async def clipfetch_error_handler(request: Request, exc: ClipFetchError):
    message = _translate(request, exc.message_key, **exc.params)
    level = logging.ERROR if exc.status_code >= 500 else logging.INFO
    log_with_context(request, level, f"{type(exc).__name__} ({exc.status_code}): {message}")
    return JSONResponse(status_code=exc.status_code, content={"error": message})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None)
    )


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    reason = errors[0].get("msg", "invalid input") if errors else "invalid input"
    return JSONResponse(
        status_code=400,
        content={"error": _translate(request, "error.invalid_request", reason=reason)}
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    if isinstance(exc, ResponseAborted):
        # Already logged; the response has started, so this body is never sent
        return Response(status_code=500)
    log_error(request, f"Unhandled error: {type(exc).__name__}: {exc}")
    return JSONResponse(status_code=500, content={"error": _translate(request, "error.internal")})


@app.on_event("startup")
async def startup_event():
    state.redis = await init_redis()


@app.on_event("shutdown")
async def shutdown_event():
    await close_redis()
