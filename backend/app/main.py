# app/main.py
import logging
import psutil # For system metrics in health check
import time   # For uptime calculation
from fastapi import FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from typing import Dict, Any
from datetime import datetime, timedelta, timezone

from app.core.config import settings, PROJECT_NAME, API_PREFIX, VERSION
from app.core.exceptions import KudosError
from app.db.database import connect_to_mongo, close_mongo_connection, check_database_health, get_database
from app.db.init_db import init_db_indexes
from app.db.seed import seed_database

from app.api.endpoints.users import router as users_router
from app.api.endpoints.kudos import router as kudos_router

logger = logging.getLogger(__name__)

# Track application start time for uptime calculation
APP_START_TIME = time.time()

app = FastAPI(
    title=PROJECT_NAME,
    version=VERSION,
    description="Send and moderate kudos between colleagues",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Exception Handlers ---
@app.exception_handler(KudosError)
async def kudos_error_handler(request: Request, exc: KudosError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.warning(f"{request.method} {request.url.path} rejected ({exc.status_code}): {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    # Malformed bodies and query values are validation failures like any other
    logger.warning(f"{request.method} {request.url.path} rejected (400): {exc.errors()}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": jsonable_errors(exc)},
    )

def jsonable_errors(exc: RequestValidationError):
    return [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg", ""), "type": error.get("type", "")}
        for error in exc.errors()
    ]

# --- Event Handlers for DB Connection and Seeding ---
@app.on_event("startup")
async def startup_event():
    """Connect to MongoDB, ensure indexes and seed baseline data."""
    logger.info("Executing startup event: Connecting to database...")
    connected = await connect_to_mongo()
    if not connected:
        logger.critical("FATAL: Database connection failed on startup. Application might not function correctly.")
        return

    logger.info("Startup event: Database connection successful.")
    db_instance = get_database()
    if db_instance is None:
        logger.error("Could not get database instance to ensure indexes.")
        return

    await init_db_indexes(db_instance)
    await seed_database(db_instance, include_sample_kudos=not settings.is_production)
    logger.info(f"Startup complete (environment={settings.ENVIRONMENT}, dry_run={settings.KUDOS_DRY_RUN}).")

@app.on_event("shutdown")
async def shutdown_event():
    """Disconnect from MongoDB on application shutdown."""
    logger.info("Executing shutdown event: Disconnecting from database...")
    await close_mongo_connection()

# --- Health Endpoints ---
@app.get("/health", status_code=200, tags=["Health Check"])
async def health_check() -> Dict[str, Any]:
    """
    Health check endpoint that reports:
    - Application status and metrics (uptime, memory)
    - Database connectivity and collections
    """
    db_health = await check_database_health()

    process = psutil.Process()
    memory_info = process.memory_info()

    uptime_seconds = time.time() - APP_START_TIME
    uptime = str(timedelta(seconds=int(uptime_seconds)))

    health_info = {
        "status": "OK",
        "application": {
            "name": PROJECT_NAME,
            "version": VERSION,
            "environment": settings.ENVIRONMENT,
            "dry_run": settings.KUDOS_DRY_RUN,
            "status": "OK",
            "uptime": uptime,
            "memory_usage": {
                "rss_bytes": memory_info.rss,
                "vms_bytes": memory_info.vms,
                "percent": f"{process.memory_percent():.2f}%"
            }
        },
        "database": db_health,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }

    if db_health.get("status") in ("ERROR", "WARNING"):
        health_info["status"] = db_health["status"]

    return health_info

# --- Liveness and Readiness Probes ---
@app.get("/healthz", tags=["Probes"], status_code=status.HTTP_200_OK)
async def liveness_probe():
    """Liveness probe: the process is running and responsive."""
    return {"status": "live"}

@app.get("/readyz", tags=["Probes"])
async def readiness_probe(response: Response):
    """Readiness probe: the database answers."""
    db_health = await check_database_health()
    if db_health.get("status") == "OK":
        response.status_code = status.HTTP_200_OK
        return {"status": "ready", "database": db_health}
    response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return {"status": "not_ready", "database": db_health}

# --- Include API Routers ---
app.include_router(users_router, prefix=API_PREFIX)
app.include_router(kudos_router, prefix=API_PREFIX)
