"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from questhub.companies.router import router as companies_router
from questhub.config import get_settings
from questhub.database import close_db, init_db
from questhub.enrollments.router import router as enrollments_router
from questhub.health.router import router as health_router
from questhub.invites.router import router as invites_router
from questhub.middleware import setup_middleware
from questhub.notifications.router import router as notifications_router
from questhub.points.router import router as points_router
from questhub.redis_client import close_redis, init_redis
from questhub.submissions.router import router as submissions_router
from questhub.tasks.router import router as tasks_router
from questhub.users.router import router as users_router


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url)

    yield

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="QuestHub API",
        description="Quests, step reviews and points for teams",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(users_router)
    app.include_router(companies_router)
    app.include_router(tasks_router)
    app.include_router(enrollments_router)
    app.include_router(submissions_router)
    app.include_router(points_router)
    app.include_router(notifications_router)
    app.include_router(invites_router)

    return app


app = create_app()
