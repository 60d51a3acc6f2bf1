"""
Node agent HTTP server.

Receives intent batches from the manager and reports which local pods
they resolve to. Applying intents to processes happens outside this
service.
"""

import asyncio
import logging
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ... import __version__
from ...config.provider import ConfigProvider, EnvConfigProvider
from ...logging_config import configure_logging, get_logging_config
from ..api import ErrorResponse, HandleIntentsRequest, PodProcessesModel, SuccessResponse
from ..errors import IntentlyError
from .resolver import ProcessResolver

logger = logging.getLogger(__name__)


def create_agent_app(resolver: ProcessResolver) -> FastAPI:
    """
    Build the agent application around a resolver.

    Args:
        resolver: Process table scanner for this node
    """
    app = FastAPI(
        title="Intently Agent",
        description="Intently node agent - receives scheduling intents",
        version=__version__,
    )

    @app.post("/api/v1/intents", response_model=SuccessResponse)
    async def handle_intents(request: HandleIntentsRequest):
        """
        Accept a batch of intents.

        The batch is validated as a whole; a single malformed intent rejects
        all of them with 400.
        """
        snapshots = await asyncio.to_thread(resolver.scan)
        local_pods = {s.pod_uid for s in snapshots}
        resolved = [i for i in request.intents if i.pod_id in local_pods]

        logger.info(
            f"Received {len(request.intents)} intents, "
            f"{len(resolved)} match pods running on this node"
        )
        for intent in request.intents:
            if intent.pod_id not in local_pods:
                logger.debug(f"Intent for pod {intent.namespace}/{intent.pod_id} has no local processes")

        return SuccessResponse(data={"received": len(request.intents), "resolved": len(resolved)})

    @app.get("/api/v1/pods", response_model=SuccessResponse)
    async def list_pods():
        """Current pod to process mapping on this node."""
        snapshots = await asyncio.to_thread(resolver.scan)
        return SuccessResponse(data=[PodProcessesModel.from_domain(s) for s in snapshots])

    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "proc_root": resolver.proc_root, "version": __version__}

    @app.get("/version")
    async def version():
        return {"version": __version__}

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = [{"loc": list(e["loc"]), "msg": e["msg"]} for e in exc.errors()]
        logger.warning(f"Rejected intent batch: {errors}")
        body = ErrorResponse(error="Invalid request payload", details={"errors": errors})
        return JSONResponse(status_code=400, content=body.model_dump(mode="json"))

    @app.exception_handler(IntentlyError)
    async def intently_error_handler(request: Request, exc: IntentlyError):
        logger.error(f"{type(exc).__name__}: {exc.message}")
        body = ErrorResponse(error=exc.message)
        return JSONResponse(status_code=exc.status_code, content=body.model_dump(mode="json"))

    return app


def run(config_provider: Optional[ConfigProvider] = None) -> None:
    """Console entry point for the node agent."""
    config_provider = config_provider or EnvConfigProvider()
    agent_config = config_provider.get_agent_config()
    log_level = config_provider.get_logging_config().level

    configure_logging(log_level)
    resolver = ProcessResolver(agent_config.proc_root, agent_config.cgroup_marker)
    logger.info(f"Starting Intently agent on {agent_config.host}:{agent_config.port}")

    uvicorn.run(
        create_agent_app(resolver),
        host=agent_config.host,
        port=agent_config.port,
        log_level=log_level.lower(),
        log_config=get_logging_config(log_level),
    )


if __name__ == "__main__":
    run()
