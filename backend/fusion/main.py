# backend/fusion/main.py
import logging
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from fusion.api.routers.accounts import router as accounts_router
from fusion.api.routers.admin_auth import router as admin_auth_router
from fusion.api.routers.admin_mfa import router as admin_mfa_router
from fusion.api.routers.api_keys import router as api_keys_router
from fusion.api.routers.organizations import router as organizations_router
from fusion.api.routers.webhooks import router as webhooks_router
from fusion.core.config import settings
from fusion.core.log_utils import sanitize_for_log
from fusion.core.rate_limit import limiter

# Import all models to ensure they are registered in the registry
from fusion.db import base  # noqa: F401
from fusion.db.session import check_database_connection, lifespan_db_manager
from fusion.exceptions import FusionError

# Configure basic logging (ensure this is done early)
logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

CORS_ALLOW_METHODS = ["GET", "POST", "OPTIONS"]
CORS_ALLOW_HEADERS = ["Content-Type", "Authorization", "X-API-Key"]


# --- Lifespan Management ---
@asynccontextmanager
async def lifespan(_app_instance: FastAPI):
    logger.info(f"Starting up {settings.APP_NAME} v{settings.APP_VERSION}...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")

    try:
        await lifespan_db_manager("startup")
        logger.info("LIFESPAN_HOOK: Database resources initialized via lifespan_db_manager.")
    except Exception as e:
        logger.critical(
            f"LIFESPAN_HOOK: CRITICAL - Failed to initialize database resources: {e}", exc_info=True
        )
        raise

    yield

    logger.info(f"Shutting down {settings.APP_NAME}...")
    try:
        await lifespan_db_manager("shutdown")
        logger.info("LIFESPAN_HOOK: Database resources disposed via lifespan_db_manager.")
    except Exception as e:
        logger.error(f"LIFESPAN_HOOK: Error during database resource disposal: {e}", exc_info=True)


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description=settings.APP_DESCRIPTION,
    lifespan=lifespan,
    openapi_url=f"{settings.API_PREFIX}/openapi.json",
    docs_url=f"{settings.API_PREFIX}/docs",
    redoc_url=f"{settings.API_PREFIX}/redoc",
)

# --- Rate Limiting Setup ---
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

# --- Middleware ---
if settings.BACKEND_CORS_ORIGINS:
    origins = [
        str(origin).strip("/") for origin in settings.BACKEND_CORS_ORIGINS if str(origin).strip("/")
    ]
    if origins:
        # Browsers reject credentialed requests against a wildcard origin
        allow_all = "*" in origins
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"] if allow_all else origins,
            allow_credentials=not allow_all,
            allow_methods=CORS_ALLOW_METHODS,
            allow_headers=CORS_ALLOW_HEADERS,
        )
        logger.info(f"CORS enabled for origins: {origins}")
    else:
        logger.warning("BACKEND_CORS_ORIGINS configured but resulted in an empty list.")
else:
    logger.info("CORS disabled (BACKEND_CORS_ORIGINS not configured).")


# --- Exception Handlers ---
@app.exception_handler(FusionError)
async def fusion_error_handler(request: Request, exc: FusionError):
    log_message = (
        f"{type(exc).__name__}: Status={exc.status_code}, Error='{exc.message}' "
        f"for {request.method} {request.url.path}"
    )
    if exc.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        logger.error(log_message)
    else:
        logger.info(log_message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    fields = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
            "message": err.get("msg", "Invalid value"),
        }
        for err in exc.errors()
    ]
    logger.warning(
        f"Request validation error: {request.method} {request.url.path} - "
        f"{sanitize_for_log(str(fields), 500)}"
    )
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "Invalid request body", "fields": fields},
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler_custom(request: Request, exc: StarletteHTTPException):
    log_message = (
        f"HTTPException: Status={exc.status_code}, Detail='{exc.detail}' "
        f"for {request.method} {request.url.path}"
    )
    if exc.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        logger.error(log_message, exc_info=True)
    else:
        logger.warning(log_message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def generic_exception_handler_custom(request: Request, exc: Exception):
    logger.error(
        f"Unhandled exception during request: {request.method} {request.url.path}", exc_info=exc
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error"},
    )


# --- API Router Definition and Inclusions ---
api_router = APIRouter()
api_router.include_router(api_keys_router)
api_router.include_router(webhooks_router)
api_router.include_router(admin_mfa_router)
api_router.include_router(admin_auth_router)
api_router.include_router(organizations_router)
api_router.include_router(accounts_router)


@api_router.get(
    "/healthz",
    tags=["Health Checks"],
    summary="Detailed API and Dependencies Health Check",
    status_code=status.HTTP_200_OK,
)
async def health_check_detailed():
    db_status = "connected" if await check_database_connection() else "unavailable"
    dependencies_status = {"database": db_status}
    if db_status == "connected":
        return {"status": "ok", "dependencies": dependencies_status}
    logger.error(f"API health check (detailed) failed. Dependencies: {dependencies_status}")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"status": "degraded", "dependencies": dependencies_status},
    )


async def cors_options() -> Response:
    # CORSMiddleware only answers full preflights; bare OPTIONS lands here
    return Response(
        status_code=status.HTTP_204_NO_CONTENT,
        headers={
            "Access-Control-Allow-Origin": "*",
            "Access-Control-Allow-Methods": ", ".join(CORS_ALLOW_METHODS),
            "Access-Control-Allow-Headers": ", ".join(CORS_ALLOW_HEADERS),
        },
    )


for api_path in sorted({route.path for route in api_router.routes}):
    api_router.add_api_route(
        api_path, cors_options, methods=["OPTIONS"], include_in_schema=False
    )

app.include_router(api_router, prefix=settings.API_PREFIX)


# --- Health Check Endpoint (at app root) ---
@app.get(
    "/health",
    tags=["System Health"],
    summary="Basic System Liveness Check",
    status_code=status.HTTP_200_OK,
    include_in_schema=False,
)
async def health_check_basic_system():
    return {"status": "healthy"}


# --- Main entry point for Uvicorn direct run ---
if __name__ == "__main__":
    import uvicorn

    logger.info(f"Starting Uvicorn server directly for {settings.APP_NAME} (local debugging)...")
    uvicorn.run(
        "fusion.main:app",
        host=settings.SERVER_HOST,
        port=settings.SERVER_PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )
