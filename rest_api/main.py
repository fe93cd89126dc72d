"""
REST API main application.
Entry point for the FastAPI server hosting both the REST routers and the
realtime sync gateway.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from shared.config.logging import setup_logging, rest_api_logger as logger
from shared.config.settings import Settings, get_settings
from shared.infrastructure.correlation import REQUEST_ID_HEADER, CorrelationIdMiddleware
from shared.security.auth import JWTTokenVerifier, TokenVerifier
from rest_api.routers import budgets_router, savings_goals_router, transactions_router
from rest_api.store import InMemoryRecordStore, RecordStore
from ws_gateway.connection_manager import ConnectionManager
from ws_gateway.main import gateway_lifespan, router as ws_router


def _check_configuration(settings: Settings) -> None:
    """Refuse to start in production with insecure configuration."""
    problems = settings.validate_production_secrets()
    if not problems:
        return
    for problem in problems:
        logger.error("Configuration error", problem=problem)
    raise RuntimeError(f"Insecure production configuration: {'; '.join(problems)}")


def create_app(
    settings: Settings | None = None,
    store: RecordStore | None = None,
    verifier: TokenVerifier | None = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Defaults to the cached environment settings.
        store: Record store collaborator. Defaults to an in-memory store.
        verifier: Token verifier shared by REST auth and the realtime
            handshake. Defaults to JWT verification with the configured secret.
    """
    settings = settings or get_settings()
    store = store if store is not None else InMemoryRecordStore()
    verifier = verifier or JWTTokenVerifier(
        secret=settings.jwt_secret,
        issuer=settings.jwt_issuer,
        audience=settings.jwt_audience,
    )
    manager = ConnectionManager(
        verifier,
        heartbeat_interval=settings.ws_heartbeat_interval,
        send_timeout=settings.ws_send_timeout,
        max_message_size=settings.ws_max_message_size,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging()
        _check_configuration(settings)
        logger.info("Starting REST API", port=settings.rest_api_port, env=settings.environment)

        async with gateway_lifespan(manager):
            yield

        logger.info("Shutting down REST API")

    app = FastAPI(
        title="FinTrack API",
        description="Personal finance tracker with realtime sync",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.store = store
    app.state.verifier = verifier
    app.state.manager = manager

    app.add_middleware(CorrelationIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[REQUEST_ID_HEADER],
    )

    @app.get("/health")
    def health_check():
        """Basic health check endpoint."""
        return {
            "status": "healthy",
            "service": "rest-api",
            "environment": settings.environment,
            "connections": len(manager.registry),
        }

    app.include_router(transactions_router)
    app.include_router(budgets_router)
    app.include_router(savings_goals_router)
    app.include_router(ws_router)

    return app


app = create_app()
