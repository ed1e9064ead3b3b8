"""
Todo API — multi-tenant todo items in DynamoDB behind Cognito bearer auth.
Single route "/" dispatched by method; OPTIONS answered by the CORS layer.
Port 8080 by default.
"""
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import PlainTextResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from todo_api.auth import Authenticator, auth_middleware
from todo_api.config import Settings
from todo_api.errors import MethodNotSupportedError, RequestDecodeError, TodoApiError
from todo_api.jwks import KeySetFetcher, build_fetcher
from todo_api.store import DynamoTodoStore, InMemoryTodoStore, TodoStore
from todo_api.todos import router as todos_router

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": "Authorization, Content-Type, X-Tenant-ID",
}


def build_store(settings: Settings) -> TodoStore:
    if settings.store_backend == "memory":
        logger.warning("Using in-memory todo store; data is lost on restart")
        return InMemoryTodoStore()
    if settings.store_backend != "dynamodb":
        raise ValueError(f"Unknown TODO_STORE backend: {settings.store_backend!r}")
    return DynamoTodoStore.from_settings(
        settings.table_name,
        settings.region,
        endpoint_url=settings.dynamodb_endpoint_url,
        timeout=settings.dynamodb_timeout,
    )


def _error_response(exc: TodoApiError) -> PlainTextResponse:
    return PlainTextResponse(exc.message, status_code=exc.status_code)


async def cors_middleware(request: Request, call_next):
    """Outermost layer: answer pre-flight and stamp CORS headers on every response."""
    if request.method == "OPTIONS":
        response = Response(status_code=200)
    else:
        try:
            response = await call_next(request)
        except Exception:
            logger.exception("Unhandled error on %s %s", request.method, request.url.path)
            response = _error_response(TodoApiError())
    response.headers.update(CORS_HEADERS)
    return response


def create_app(
    settings: Settings | None = None,
    store: TodoStore | None = None,
    fetcher: KeySetFetcher | None = None,
) -> FastAPI:
    """
    Build the ASGI app. Collaborators default to what settings describe;
    tests pass an in-memory store and a stub fetcher instead.
    """
    settings = settings or Settings.from_env()
    app = FastAPI(title="Todo API", version="0.1.0")
    app.state.settings = settings
    app.state.store = store if store is not None else build_store(settings)
    app.state.authenticator = Authenticator(
        fetcher
        or build_fetcher(
            settings.jwks_url,
            settings.jwks_timeout,
            settings.jwks_cache_ttl,
            settings.jwks_min_refresh_interval,
        ),
        audience=settings.client_id,
        algorithms=settings.algorithms,
    )

    # Last added runs first: CORS wraps auth.
    app.middleware("http")(auth_middleware)
    app.middleware("http")(cors_middleware)

    @app.exception_handler(TodoApiError)
    async def handle_api_error(request: Request, exc: TodoApiError):
        return _error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        detail = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg', '')}" for err in exc.errors()
        )
        return _error_response(RequestDecodeError(detail or None))

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 405:
            response = _error_response(MethodNotSupportedError())
            if exc.headers:
                response.headers.update(exc.headers)
            return response
        return PlainTextResponse(str(exc.detail), status_code=exc.status_code, headers=exc.headers)

    @app.get("/health")
    def health():
        """Health check endpoint."""
        return {"status": "ok", "service": "todo_api"}

    app.include_router(todos_router, tags=["todos"])
    return app


if __name__ == "__main__":
    import uvicorn

    from todo_api.config import LOG_LEVEL, PORT

    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run(create_app(), host="0.0.0.0", port=PORT)
