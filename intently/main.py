#!/usr/bin/env python3
"""
Intently - Manager Entry Point

This is the thin orchestration layer that:
1. Loads configuration
2. Initializes modules
3. Runs the API server

All business logic is in the modules, following black box principles.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import List, Optional

import redis.asyncio as redis
import uvicorn
from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from intently import __version__
from intently.config.provider import ConfigProvider, EnvConfigProvider
from intently.logging_config import configure_logging, get_logging_config

# Import modules through their black box interfaces
from intently.modules.api import (
    CreateStrategyRequest,
    ErrorResponse,
    HealthResponse,
    IntentListResponse,
    IntentResponse,
    StrategyListResponse,
    StrategyResponse,
)
from intently.modules.directory import PodDirectory
from intently.modules.distribution import IntentDistributionEngine
from intently.modules.domain import IntentState, Operator
from intently.modules.errors import DeliveryError, IntentlyError, StateUpdateError
from intently.modules.storage import RedisRepository, StorageModule
from intently.modules.transport import AgentClient

logger = logging.getLogger(__name__)


def create_app(
    config_provider: Optional[ConfigProvider] = None,
    engine: Optional[IntentDistributionEngine] = None,
    redis_client: Optional[redis.Redis] = None,
    directory: Optional[PodDirectory] = None,
) -> FastAPI:
    """
    Build the manager application.

    Collaborators passed in are used as-is; anything missing is built from
    configuration when the application starts.

    Args:
        config_provider: Configuration source (environment by default)
        engine: Pre-built distribution engine
        redis_client: Pre-built Redis client, used by /health
        directory: Pre-built pod directory, used by /health
    """
    config_provider = config_provider or EnvConfigProvider()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Manage application lifecycle - initialize and cleanup resources.
        """
        if app.state.engine is not None:
            yield
            return

        # Startup
        logger.info("Starting Intently manager...")

        storage = StorageModule(config_provider.get_redis_config())
        app.state.redis = await storage.connect()

        kube_config = config_provider.get_kubernetes_config()
        directory = None
        try:
            directory = PodDirectory.from_config(kube_config)
            directory.start()
        except Exception:
            logger.error("Pod directory failed to start, releasing resources")
            if directory is not None:
                directory.stop()
            await storage.disconnect()
            app.state.redis = None
            raise
        app.state.directory = directory

        synced = await asyncio.to_thread(app.state.directory.wait_for_sync, kube_config.sync_timeout)
        if not synced:
            logger.warning(
                f"Pod cache not synced after {kube_config.sync_timeout}s, "
                "queries go to the cluster API until it is"
            )

        dist_config = config_provider.get_distribution_config()
        transport = AgentClient(timeout=dist_config.send_timeout)
        app.state.engine = IntentDistributionEngine(
            directory=app.state.directory,
            repository=RedisRepository(app.state.redis),
            transport=transport,
            config=dist_config,
        )

        logger.info(f"Intently manager started, agent label {dist_config.agent_label.to_requirement()}")

        yield

        # Shutdown
        logger.info("Shutting down Intently manager...")
        app.state.directory.stop()
        await transport.close()
        await storage.disconnect()
        app.state.engine = None
        logger.info("Intently manager shutdown complete")

    app = FastAPI(
        title="Intently API",
        description="Intently - scheduling intents for Kubernetes workloads",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.engine = engine
    app.state.redis = redis_client
    app.state.directory = directory

    # Dependency injection helpers

    def get_engine(request: Request) -> IntentDistributionEngine:
        engine = request.app.state.engine
        if engine is None:
            raise HTTPException(503, "Service not initialized")
        return engine

    def get_operator(
        x_operator_id: Optional[str] = Header(None, description="Operator identity (UUID)")
    ) -> Operator:
        """Operator identity from the request header; validated by the engine."""
        return Operator(uid=(x_operator_id or "").strip())

    # Strategy Endpoints

    @app.post("/api/v1/strategies", response_model=StrategyResponse, status_code=201)
    async def create_strategy(
        request: CreateStrategyRequest,
        operator: Operator = Depends(get_operator),
        engine: IntentDistributionEngine = Depends(get_engine),
    ):
        """
        Create a strategy and distribute its intents to node agents.

        Returns:
            201: Strategy created (intents persisted; delivered where an agent exists)
            400: Invalid operator, selector or regex
            404: No pods match
            502: An agent rejected or did not receive its batch
            503: Cluster API or storage unavailable
        """
        strategy = await engine.create_strategy(operator, request.to_domain())
        logger.info(f"Strategy {strategy.id} created by operator {strategy.creator_id}")
        return StrategyResponse.from_domain(strategy)

    @app.get("/api/v1/strategies/self", response_model=StrategyListResponse)
    async def list_own_strategies(
        operator: Operator = Depends(get_operator),
        engine: IntentDistributionEngine = Depends(get_engine),
    ):
        strategies = await engine.list_strategies(operator)
        return StrategyListResponse(
            strategies=[StrategyResponse.from_domain(s) for s in strategies],
            count=len(strategies),
        )

    @app.get("/api/v1/intents/self", response_model=IntentListResponse)
    async def list_own_intents(
        strategy_id: Optional[List[str]] = Query(None, description="Restrict to strategies"),
        state: Optional[List[IntentState]] = Query(None, description="Restrict to states"),
        operator: Operator = Depends(get_operator),
        engine: IntentDistributionEngine = Depends(get_engine),
    ):
        intents = await engine.list_intents(
            operator, strategy_ids=strategy_id or (), states=state or ()
        )
        return IntentListResponse(
            intents=[IntentResponse.from_domain(i) for i in intents],
            count=len(intents),
        )

    # Health/Monitoring Endpoints

    @app.get("/healthz")
    async def healthz():
        """
        Minimal health check endpoint for Kubernetes readiness/liveness probes.

        Returns:
            200: Service is running
        """
        return {"status": "ok"}

    @app.get("/health", response_model=HealthResponse)
    async def health_check(request: Request):
        """
        Health check covering Redis and the pod cache.

        Returns:
            200: Service healthy (or degraded while the pod cache warms up)
            503: Service unhealthy
        """
        redis_client = request.app.state.redis
        directory = request.app.state.directory

        redis_status = "disconnected"
        if redis_client is not None:
            try:
                await redis_client.ping()
                redis_status = "connected"
            except redis.RedisError as e:
                logger.error(f"Health check failed: {e}")

        if directory is None:
            directory_status = "not initialized"
        else:
            directory_status = "synced" if directory.has_synced else "syncing"

        if redis_status != "connected" or request.app.state.engine is None:
            body = HealthResponse(status="unhealthy", redis=redis_status, directory=directory_status)
            return JSONResponse(status_code=503, content=body.model_dump())

        status = "healthy" if directory_status == "synced" else "degraded"
        return HealthResponse(status=status, redis=redis_status, directory=directory_status)

    @app.get("/version")
    async def version():
        return {"version": __version__}

    # Error handlers

    @app.exception_handler(IntentlyError)
    async def intently_error_handler(request: Request, exc: IntentlyError):
        """Map module errors to their HTTP status."""
        details = None
        if isinstance(exc, StateUpdateError):
            details = {"host": exc.host, "intent_ids": exc.intent_ids}
        elif isinstance(exc, DeliveryError):
            details = {"host": exc.host, "status": exc.status}

        if exc.status_code >= 500:
            logger.error(f"{type(exc).__name__}: {exc.message}")
        else:
            logger.info(f"{type(exc).__name__}: {exc.message}")

        body = ErrorResponse(error=exc.message, details=details)
        return JSONResponse(status_code=exc.status_code, content=body.model_dump(mode="json"))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        """Handle validation errors."""
        errors = [{"loc": list(e["loc"]), "msg": e["msg"]} for e in exc.errors()]
        logger.error(f"Validation error: {errors}")
        body = ErrorResponse(error="Invalid request payload", details={"errors": errors})
        return JSONResponse(status_code=400, content=body.model_dump(mode="json"))

    @app.exception_handler(redis.ConnectionError)
    async def redis_error_handler(request: Request, exc: redis.ConnectionError):
        """Handle Redis connection errors."""
        logger.error(f"Redis connection error: {exc}")
        body = ErrorResponse(error="Database connection failed")
        return JSONResponse(status_code=503, content=body.model_dump(mode="json"))

    return app


app = create_app()


def run() -> None:
    """
    Console entry point for the manager.

    uvicorn imports ``intently.main:app``, which reads its configuration
    from the environment, so the server settings come from there too.
    """
    config_provider = EnvConfigProvider()
    server_config = config_provider.get_server_config()
    log_level = config_provider.get_logging_config().level

    configure_logging(log_level)
    uvicorn.run(
        "intently.main:app",
        host=server_config.host,
        port=server_config.port,
        log_level=log_level.lower(),
        reload=server_config.debug,
        log_config=get_logging_config(log_level),
    )


if __name__ == "__main__":
    run()
