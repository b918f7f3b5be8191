"""
Service Factory Module

Common FastAPI service creation utilities: CORS, request logging
and the uvicorn runner.
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import Any, Callable, Dict, List, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from shared.config.settings import get_settings

logger = logging.getLogger(__name__)


class ServiceInfo:
    """Service configuration container"""

    def __init__(
        self,
        name: str,
        title: str,
        description: str,
        version: str = "1.0.0",
        port: int = 8000,
        host: str = "localhost",
        tags: Optional[List[Dict[str, str]]] = None
    ):
        self.name = name
        self.title = title
        self.description = description
        self.version = version
        self.port = port
        self.host = host
        self.tags = tags or []


def create_fastapi_service(
    service_info: ServiceInfo,
    custom_lifespan: Optional[Callable] = None,
    include_logging_middleware: bool = True,
) -> FastAPI:
    """
    Create a standardized FastAPI application with common configurations.

    Args:
        service_info: Service configuration
        custom_lifespan: Optional custom lifespan function
        include_logging_middleware: Whether to include request logging middleware

    Returns:
        Configured FastAPI application
    """

    if custom_lifespan:
        lifespan_func = custom_lifespan
    else:
        @asynccontextmanager
        async def default_lifespan(app: FastAPI):
            logger.info(f"{service_info.name} service starting")
            yield
            logger.info(f"{service_info.name} service stopped")
        lifespan_func = default_lifespan

    openapi_tags = [
        {"name": "Health", "description": "Health check and service status"}
    ]
    openapi_tags.extend(service_info.tags)

    app = FastAPI(
        title=service_info.title,
        description=service_info.description,
        version=service_info.version,
        lifespan=lifespan_func,
        openapi_tags=openapi_tags
    )

    _configure_cors(app)

    if include_logging_middleware:
        _add_logging_middleware(app)

    logger.info(f"{service_info.name} FastAPI app created")

    return app


def _configure_cors(app: FastAPI) -> None:
    """Configure CORS middleware from settings"""
    origins = get_settings().service.cors_origin_list
    if not origins:
        logger.info("CORS disabled")
        return

    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    logger.info(f"CORS enabled with origins: {origins}")


def _add_logging_middleware(app: FastAPI) -> None:
    """Add request logging middleware"""
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start_time = time.time()
        response = await call_next(request)
        process_time = time.time() - start_time
        logger.info(
            f'Request: {request.method} {request.url.path} - Response: {response.status_code} - Time: {process_time:.4f}s'
        )
        return response


def create_uvicorn_config(service_info: ServiceInfo, reload: bool = True) -> Dict[str, Any]:
    """Create standardized uvicorn configuration."""
    return {
        "host": service_info.host,
        "port": service_info.port,
        "reload": reload,
        "log_level": get_settings().service.log_level.lower(),
    }


def run_service(
    app: FastAPI,
    service_info: ServiceInfo,
    app_module_path: str,
    reload: bool = True
) -> None:
    """
    Run the service with standardized uvicorn configuration.

    Args:
        app: FastAPI application instance
        service_info: Service configuration
        app_module_path: Module path for uvicorn (e.g., "mirror.main:app")
        reload: Enable auto-reload for development
    """
    config = create_uvicorn_config(service_info, reload)
    logger.info(f"Starting {service_info.name} on {service_info.host}:{service_info.port}")
    uvicorn.run(app_module_path, **config)


MIRROR_SERVICE_INFO = ServiceInfo(
    name="mirror",
    title="Mirror Template Service",
    description="Learns spreadsheet layouts and renders filled copies of them",
    version="0.1.0",
    port=get_settings().service.port,
    host=get_settings().service.host,
    tags=[
        {"name": "Mirror Templates", "description": "Learn, confirm, apply and download templates"},
    ]
)
