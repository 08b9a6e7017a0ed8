"""
Application factory, lifespan and health check.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from sqlalchemy import text
import idp.database.orms  # noqa
from idp.cleanup import CleanupJob
from idp.config import settings
from idp.database import Base, engine, get_session
from idp.database.seed import seed_demo_data
from idp.debug.broker import DebugEventBroker
from idp.exceptions import register_exception_handlers
from idp.federation.router import router as federation_router
from idp.oauth.router import router as oauth_router
from idp.user.router import router as user_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.is_production:
        settings.validate_for_production()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Initialized the database...")
    if settings.seed_demo_data and not settings.is_production:
        async with get_session() as session:
            await seed_demo_data(session)
            await session.commit()
    cleanup_job = CleanupJob(interval=settings.cleanup_interval_seconds)
    cleanup_job.start()
    logger.success(f"Identity provider ready at {settings.issuer} ({settings.environment})")
    yield
    cleanup_job.stop()
    await engine.dispose()


def create_app() -> FastAPI:
    app = FastAPI(title="SSO Identity Provider", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)

    app.include_router(oauth_router, tags=["oauth"])
    app.include_router(federation_router, prefix="/auth/federated", tags=["federation"])
    app.include_router(user_router, prefix="/api", tags=["users"])

    app.state.debug_broker = DebugEventBroker()
    if not settings.is_production:
        from idp.debug.router import router as debug_router

        app.include_router(debug_router, tags=["debug"])

    @app.get("/health")
    async def health():
        try:
            async with get_session() as session:
                await session.execute(text("SELECT 1"))
        except Exception as exc:
            logger.error(f"Health check failed: {exc}")
            return JSONResponse(
                status_code=503, content={"status": "error", "database": "disconnected"}
            )
        return {"status": "ok", "database": "connected"}

    return app


app = create_app()
