import logging

from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
import uvicorn

from app.container import get_database, setup_container
from app.routers.default import router as default_router
from app.routers.health import router as health_router
from app.routers.subscription_router import router as subscription_router
from app.routers.claim_response_router import router as claim_response_router
from app.config import get_config
from app.services.subscription.exceptions import StoreError
from app.stats import StatsdMiddleware, setup_stats

logger = logging.getLogger(__name__)


def get_uvicorn_params() -> dict[str, Any]:
    config = get_config()
    kwargs = {
        "host": config.uvicorn.host,
        "port": config.uvicorn.port,
        "reload": config.uvicorn.reload,
        "reload_delay": config.uvicorn.reload_delay,
        "reload_dirs": config.uvicorn.reload_dirs,
    }
    if (
        config.uvicorn.use_ssl
        and config.uvicorn.ssl_base_dir is not None
        and config.uvicorn.ssl_cert_file is not None
        and config.uvicorn.ssl_key_file is not None
    ):
        kwargs["ssl_keyfile"] = (
            config.uvicorn.ssl_base_dir + "/" + config.uvicorn.ssl_key_file
        )
        kwargs["ssl_certfile"] = (
            config.uvicorn.ssl_base_dir + "/" + config.uvicorn.ssl_cert_file
        )

    return kwargs


def run() -> None:
    uvicorn.run("app.application:create_fastapi_app", **get_uvicorn_params())


def create_fastapi_app() -> FastAPI:
    if get_config().stats.enabled:
        setup_stats()

    application_init()
    return setup_fastapi()


def application_init() -> None:
    setup_logging()
    setup_container()
    if get_config().database.create_tables:
        get_database().generate_tables()


def setup_logging() -> None:
    loglevel = logging.getLevelName(get_config().app.loglevel.value.upper())

    if isinstance(loglevel, str):
        raise ValueError(f"Invalid loglevel {loglevel.upper()}")
    logging.basicConfig(
        level=loglevel,
        datefmt="%m/%d/%Y %I:%M:%S %p",
    )


async def store_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Subscription store failure on {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"detail": "Subscription store unavailable"})


def setup_fastapi() -> FastAPI:
    config = get_config()

    fastapi = (
        FastAPI(docs_url=config.uvicorn.docs_url, redoc_url=config.uvicorn.redoc_url)
        if config.uvicorn.swagger_enabled
        else FastAPI(docs_url=None, redoc_url=None)
    )

    routers = [
        default_router,
        health_router,
        subscription_router,
        claim_response_router,
    ]
    for router in routers:
        fastapi.include_router(router)

    fastapi.add_exception_handler(StoreError, store_error_handler)

    if config.stats.enabled:
        fastapi.add_middleware(StatsdMiddleware, module_name=config.stats.module_name or "default")

    return fastapi
