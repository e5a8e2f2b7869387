import logging
import subprocess
import sys
from contextlib import asynccontextmanager
from pathlib import Path

import click
import uvicorn
from alembic import command
from alembic.config import Config
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from sqlalchemy.exc import SQLAlchemyError

from app import models  # noqa: F401  registers every table on Base.metadata
from app.core.config import settings
from app.core.database import AsyncSessionLocal, Base, check_database_connection, engine
from app.core.exceptions import DBException, LessonLockedError
from app.core.init import initialize_application
from app.core.limiter import custom_rate_limit_exceeded_handler, limiter
from app.routers import routes

BASE_DIR = Path(__file__).parent
LOG_FILE = BASE_DIR / settings.log_file


def setup_logging():
    LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
    level = logging.DEBUG if settings.debug else getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - [%(name)s:%(lineno)d] %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(LOG_FILE, encoding="utf-8"),
        ],
        force=True,
    )
    for noisy in ("sqlalchemy.engine", "uvicorn.access", "aiosqlite"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
    return logging.getLogger("drip_courses")


logger = setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    if not await check_database_connection():
        raise RuntimeError("Database is not reachable")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async with AsyncSessionLocal() as db:
        await initialize_application(db)
    logger.info(f"Drip schedule counts days in UTC{settings.business_utc_offset_hours:+d}")

    yield

    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    description=settings.app_description,
    version=settings.app_version,
    docs_url="/docs" if settings.debug else None,
    redoc_url=None,
    openapi_url="/openapi.json" if settings.debug else None,
    debug=settings.debug,
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(DBException)
async def db_exception_handler(request: Request, exc: DBException):
    """Store and domain errors become {"error", "type"} bodies; locked lessons add their availability."""
    level = logging.ERROR if exc.status_code >= 500 else logging.INFO
    logger.log(level, f"{exc.error_type} on {request.url.path}: {exc.message}")

    content = {"error": exc.message, "type": exc.error_type}
    if isinstance(exc, LessonLockedError):
        content["availability"] = exc.availability
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content={
            "error": "Validation error",
            "type": "validation_error",
            "details": jsonable_encoder(exc.errors()),
        },
    )


@app.exception_handler(SQLAlchemyError)
async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError):
    # Raised outside @db_exception, e.g. while a dependency loads the user
    logger.error(f"Unhandled store error on {request.url.path}", exc_info=True)
    return JSONResponse(
        status_code=503,
        content={"error": "Database error occurred", "type": "store_unavailable"},
    )


app.add_exception_handler(RateLimitExceeded, custom_rate_limit_exceeded_handler)


@app.get("/")
async def root():
    return {"app_name": settings.app_name, "version": settings.app_version, "status": "healthy"}


@app.get("/health")
@limiter.limit("10/minute")
async def health_check(request: Request):
    database_ok = await check_database_connection()
    return {
        "status": "healthy" if database_ok else "degraded",
        "database": "healthy" if database_ok else "unhealthy",
    }


for router in routes:
    app.include_router(router)


# ==================== CLI ====================


@click.group()
def cli():
    """Drip courses service management."""


def run_migrations():
    command.upgrade(Config(str(BASE_DIR / "alembic.ini")), "head")
    logger.info("Migrations applied")


@cli.command()
def migrate():
    """Apply database migrations up to head."""
    run_migrations()


@cli.command()
@click.option("--host", default="127.0.0.1")
@click.option("--port", default=8000)
@click.option("--reload", is_flag=True)
def dev(host: str, port: int, reload: bool):
    """Run the development server with Uvicorn."""
    uvicorn.run("main:app", host=host, port=port, reload=reload, log_level="debug")


@cli.command()
@click.option("--host", default="0.0.0.0")
@click.option("--port", default=8000)
@click.option("--workers", default=4)
def prod(host: str, port: int, workers: int):
    """Migrate, then serve with Gunicorn and Uvicorn workers."""
    run_migrations()
    cmd = [
        "gunicorn", "main:app",
        "--worker-class", "uvicorn.workers.UvicornWorker",
        "--workers", str(workers),
        "--bind", f"{host}:{port}",
        "--access-logfile", "-",
    ]
    try:
        subprocess.run(cmd, check=True)
    except (subprocess.CalledProcessError, FileNotFoundError) as e:
        raise click.ClickException(f"Gunicorn failed: {e}")


@cli.command()
def info():
    """Show the settings the service would start with."""
    click.echo(f"{settings.app_name} {settings.app_version}")
    click.echo(f"Debug: {settings.debug}")
    click.echo(f"Business day offset: UTC{settings.business_utc_offset_hours:+d}")
    click.echo(f"Log file: {LOG_FILE}")


if __name__ == "__main__":
    cli()
