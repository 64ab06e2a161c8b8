"""
Mabar Queue API - FastAPI application

Paid "play with the streamer" queue: Midtrans payments, webhook and poll
reconciliation, queue operations, game sessions and donor/MVP aggregates.
"""
import logging
import time
import uuid

import jwt
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.utils import get_openapi
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

load_dotenv(override=False)

import config
from app.routers.donors import api as donors_api
from app.routers.payments import api as payments_api
from app.routers.queue import api as queue_api
from app.routers.sessions import api as sessions_api
from core.errors import MabarError, SessionValidationError
from core.logging import configure_logging, request_id_var
from workers.status_poller import start_status_poller, stop_status_poller

log_level = configure_logging(environment=config.ENVIRONMENT, log_level=config.LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=config.APP_NAME,
    description="Payment and queue reconciliation backend for streamer mabar sessions",
    version=config.APP_VERSION,
    swagger_ui_parameters={
        "defaultModelsExpandDepth": -1,
        "docExpansion": "none",
        "displayRequestDuration": True,
        "filter": True,
    },
)


def custom_openapi():
    if app.openapi_schema:
        return app.openapi_schema
    openapi_schema = get_openapi(
        title=config.APP_NAME,
        version=config.APP_VERSION,
        description="""
        Mabar Queue API

        ## Authentication
        Operator endpoints require a Bearer JWT whose `sub` is the streamer id.
        Registration, status lookups and the Midtrans webhook are public.

        Format: `Authorization: Bearer <access_token>`
        """,
        routes=app.routes,
    )
    openapi_schema.setdefault("components", {})["securitySchemes"] = {
        "bearerAuth": {
            "type": "http",
            "scheme": "bearer",
            "bearerFormat": "JWT",
        }
    }
    app.openapi_schema = openapi_schema
    return openapi_schema


app.openapi = custom_openapi


def _streamer_from_header(auth_header):
    """Best-effort streamer id for request logs; never rejects."""
    if not auth_header or not config.JWT_SECRET_KEY:
        return None
    token = auth_header.split(" ", 1)[1].strip() if " " in auth_header else auth_header
    try:
        claims = jwt.decode(token, config.JWT_SECRET_KEY, algorithms=[config.JWT_ALGORITHM])
    except jwt.PyJWTError:
        return None
    sub = claims.get("sub")
    return str(sub)[:12] if sub else None


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())[:8]
        token = request_id_var.set(request_id)
        request.state.request_id = request_id
        start_time = time.time()

        streamer_id = _streamer_from_header(request.headers.get("authorization"))
        query_str = f"?{request.url.query}" if request.query_params else ""
        logger.info(
            "REQUEST | method=%s | path=%s%s | streamer=%s | ip=%s",
            request.method, request.url.path, query_str, streamer_id or "anonymous",
            request.client.host if request.client else "unknown",
        )

        try:
            response = await call_next(request)
            process_time = time.time() - start_time
            logger.info(
                "RESPONSE | method=%s | path=%s | status=%s | time=%.3fs",
                request.method, request.url.path, response.status_code, process_time,
            )
            response.headers["X-Request-ID"] = request_id
            return response
        except Exception as e:
            process_time = time.time() - start_time
            logger.error(
                "ERROR | method=%s | path=%s | error=%s: %s | time=%.3fs",
                request.method, request.url.path, type(e).__name__, e, process_time,
                exc_info=True,
            )
            raise
        finally:
            request_id_var.reset(token)


app.add_middleware(RequestLoggingMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*", "Authorization", "Content-Type", "Accept", "Origin", "X-Requested-With"],
)


@app.exception_handler(MabarError)
async def mabar_error_handler(request: Request, exc: MabarError):
    body = {"success": False, "error": exc.message, "code": exc.code}
    if isinstance(exc, SessionValidationError):
        body["player_names"] = exc.player_names
    if exc.status_code >= 500:
        logger.error("%s | path=%s | %s", exc.code.upper(), request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=body)


@app.on_event("startup")
async def startup_event():
    logger.info("%s %s started (%s)", config.APP_NAME, config.APP_VERSION, config.ENVIRONMENT)
    if config.STATUS_POLLER_ENABLED and not config.TESTING:
        start_status_poller()
    else:
        logger.info("In-process status poller disabled - use /api/v1/internal/poll-payments or the cron script")


@app.on_event("shutdown")
async def shutdown_event():
    stop_status_poller()


@app.get("/")
async def read_root():
    """
    Root endpoint to check if the server is running.
    """
    return {
        "status": "online",
        "message": f"Welcome to {config.APP_NAME}!",
        "version": config.APP_VERSION,
        "environment": config.ENVIRONMENT,
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


app.include_router(payments_api.router, prefix="/api/v1")
app.include_router(queue_api.router, prefix="/api/v1")
app.include_router(sessions_api.router, prefix="/api/v1")
app.include_router(donors_api.router, prefix="/api/v1")
