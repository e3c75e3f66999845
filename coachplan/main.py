import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from loguru import logger

from coachplan import __version__
from coachplan.api.assignments import router as assignments_router
from coachplan.api.errors import register_exception_handlers
from coachplan.api.workouts import router as workouts_router
from coachplan.config.settings import settings
from coachplan.core.logger import setup_logger
from coachplan.db.session import init_db

# Initialize logger
setup_logger(level=settings.log_level, log_file=settings.log_file)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """Ensure database tables exist before serving requests.

    Note: FastAPI requires async for lifespan context manager,
    even if no await operations are used.
    """
    logger.info("Ensuring database tables exist")
    init_db()

    await asyncio.sleep(0)
    yield

    logger.info("Shutting down coachplan API")


def create_app() -> FastAPI:
    app = FastAPI(title="Coachplan", version=__version__, lifespan=lifespan)

    app.include_router(assignments_router)
    app.include_router(workouts_router)
    register_exception_handlers(app)

    @app.get("/health")
    def health():
        return {"status": "ok", "version": __version__}

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all HTTP requests."""
        logger.debug(f"Request: {request.method} {request.url.path}")
        response = await call_next(request)
        logger.debug(f"Response: {response.status_code} for {request.method} {request.url.path}")
        return response

    logger.info("FastAPI application initialized")
    return app


app = create_app()
