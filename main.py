import os
import time
import uuid
from datetime import datetime, timezone
from typing import List, Optional
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from dotenv import load_dotenv
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from models import UserStore
from schemas import HealthResponse, UserCreate, UserResponse, UserUpdate

# Chargement des variables d'environnement
load_dotenv()

SERVICE_NAME = "users-api"
VERSION = "1.0.0"

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 3000))
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", "logs.json")

# Config logging JSON (niveaux INFO, WARNING, ERROR)
logger.remove()  # Supprime le handler par défaut
logger.add(
    sink=LOG_FILE,
    format="{time:YYYY-MM-DDTHH:mm:ss.SSSZ} | {level} | {message} | {extra}",
    level=LOG_LEVEL,
    serialize=True,  # Format JSON
    rotation="1 day",  # Rotation quotidienne
)

# Prometheus metrics
REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["service", "method", "endpoint", "status"]
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["service", "method", "endpoint"]
)
ERROR_COUNT = Counter(
    "http_errors_total",
    "Total HTTP errors",
    ["service", "endpoint", "error_type"]
)

router = APIRouter(prefix="/users", tags=["users"])


def get_store(request: Request) -> UserStore:
    return request.app.state.store


def not_found(user_id: str) -> HTTPException:
    logger.warning(f"User {user_id} not found")
    ERROR_COUNT.labels(service=SERVICE_NAME, endpoint="/users/{user_id}", error_type="not_found").inc()
    return HTTPException(status_code=404, detail=f"User with ID {user_id} not found")


@router.post("", response_model=UserResponse, status_code=201)
async def create_user(user: UserCreate, store: UserStore = Depends(get_store)):
    logger.info(f"Creating user: {user.email}")
    new_user = store.create(user.email, user.first_name, user.last_name)
    logger.info(f"User created with ID {new_user.id}")
    return new_user


@router.get("", response_model=List[UserResponse])
async def get_users(store: UserStore = Depends(get_store)):
    logger.info("Fetching all users")
    return store.find_all()


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(user_id: str, store: UserStore = Depends(get_store)):
    logger.info(f"Fetching user {user_id}")
    user = store.find_by_id(user_id)
    if user is None:
        raise not_found(user_id)
    return user


@router.patch("/{user_id}", response_model=UserResponse)
@router.put("/{user_id}", response_model=UserResponse)
async def update_user(user_id: str, changes: UserUpdate, store: UserStore = Depends(get_store)):
    logger.info(f"Updating user {user_id}")
    user = store.update(user_id, changes)
    if user is None:
        raise not_found(user_id)
    return user


@router.delete("/{user_id}", status_code=204, response_class=Response)
async def delete_user(user_id: str, store: UserStore = Depends(get_store)):
    logger.info(f"Deleting user {user_id}")
    if not store.delete(user_id):
        raise not_found(user_id)
    return Response(status_code=204)


def error_field(loc) -> str:
    # ("body", "firstName") -> "firstName" ; ("body",) -> "body"
    parts = [str(part) for part in loc[1:]] if loc and loc[0] == "body" else [str(part) for part in loc]
    return ".".join(parts) or "body"


def internal_error(request: Request, exc: Exception) -> JSONResponse:
    """Generic 500: the cause is logged, never returned to the client."""
    logger.opt(exception=exc).error(f"Unhandled error on {request.method} {request.url.path}")
    ERROR_COUNT.labels(service=SERVICE_NAME, endpoint=request.url.path, error_type="internal").inc()
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def create_app(store: Optional[UserStore] = None, environment: Optional[str] = None) -> FastAPI:
    """Build the API around its own user store.

    Each call gets a fresh seeded store unless one is passed in, so tests
    never share state.
    """
    app = FastAPI(
        title="Users API",
        description="A demonstration REST API for user records",
        version="1.0",
        docs_url="/api",
        openapi_url="/api-json",
        redoc_url=None,
        openapi_tags=[{"name": "users"}, {"name": "health"}],
    )
    app.state.store = store if store is not None else UserStore()
    app.state.environment = environment or ENVIRONMENT

    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])

    # Middleware pour logger les requests avec correlation ID (observabilité)
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        # Generate or propagate correlation ID (trace-id)
        trace_id = request.headers.get("X-Trace-ID", str(uuid.uuid4()))
        start_time = time.time()

        # Bind trace_id to logger context
        with logger.contextualize(trace_id=trace_id, service=SERVICE_NAME):
            logger.info(
                f"Request: {request.method} {request.url.path}",
                extra={"method": request.method, "url": str(request.url), "trace_id": trace_id}
            )

            try:
                response = await call_next(request)
            except Exception as exc:
                # Réponse 500 produite ici pour garder métriques et X-Trace-ID
                response = internal_error(request, exc)

            latency = time.time() - start_time
            REQUEST_COUNT.labels(
                service=SERVICE_NAME,
                method=request.method,
                endpoint=request.url.path,
                status=response.status_code
            ).inc()
            REQUEST_LATENCY.labels(
                service=SERVICE_NAME,
                method=request.method,
                endpoint=request.url.path
            ).observe(latency)

            logger.info(
                f"Response status: {response.status_code}",
                extra={"status": response.status_code, "latency": latency, "trace_id": trace_id}
            )

            response.headers["X-Trace-ID"] = trace_id
            return response

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        # Tous les champs invalides, pas seulement le premier
        errors = [
            {"field": error_field(err["loc"]), "message": err["msg"]}
            for err in exc.errors()
        ]
        logger.warning(f"Validation failed on {request.url.path}", extra={"errors": errors})
        ERROR_COUNT.labels(service=SERVICE_NAME, endpoint=request.url.path, error_type="validation").inc()
        return JSONResponse(status_code=400, content={"detail": errors})

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception):
        return internal_error(request, exc)

    @app.get("/metrics", include_in_schema=False)
    async def metrics():
        """Endpoint /metrics compatible Prometheus"""
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    @app.get("/health", response_model=HealthResponse, tags=["health"])
    async def health(request: Request):
        """Liveness only: no dependency is checked."""
        timestamp = datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
        return {
            "status": "ok",
            "timestamp": timestamp,
            "environment": request.app.state.environment,
            "version": VERSION,
        }

    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    logger.info(f"Starting Users API on port {PORT}")
    logger.info(f"Swagger documentation available at http://localhost:{PORT}/api")
    import uvicorn
    uvicorn.run(app, host=HOST, port=PORT)
