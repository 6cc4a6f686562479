from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from authgate.api.csrf import CSRF_HEADER, CSRFGuard
from authgate.api.guards import GuardChain, GuardMiddleware, SessionGuard
from authgate.api.routes import account, auth
from authgate.core.config import settings
from authgate.core.database import engine, Base
from authgate.core.errors import register_exception_handlers
from authgate.core.logging import configure_logging
from authgate.core.rate_limit import limiter
from authgate.core.scheduler import start_scheduler, stop_scheduler


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage app lifecycle events.

    Startup: start the scheduler that runs deferred verification clears
    Shutdown: stop it, dropping clears that have not run yet
    """
    start_scheduler()
    yield
    stop_scheduler()


def create_app() -> FastAPI:
    configure_logging()

    # Creates tables that don't exist yet; schema changes need a migration
    Base.metadata.create_all(bind=engine)

    app = FastAPI(
        title="authgate API",
        description="Credential, token and session core",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.state.limiter = limiter
    register_exception_handlers(app)

    # Guards run in list order for every request: session cookies, then CSRF
    guard_chain = GuardChain([SessionGuard(), CSRFGuard()])
    app.state.guard_chain = guard_chain
    app.add_middleware(GuardMiddleware, chain=guard_chain)

    # Added last so it wraps the guard chain and answers preflights itself
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.CORS_ORIGIN],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=[
            "Content-Type",
            "Authorization",
            CSRF_HEADER,
            "X-XSRF-Token",
            "X-Requested-With",
            "Accept",
        ],
        expose_headers=[CSRF_HEADER],
    )

    app.include_router(auth.router)
    app.include_router(account.router)

    @app.get("/")
    async def root():
        """Root endpoint - API information"""
        return {"message": "authgate API", "version": "1.0.0"}

    @app.get("/health")
    async def health():
        """Health check endpoint - used by monitoring/deployment tools"""
        return {"status": "healthy"}

    return app


app = create_app()
