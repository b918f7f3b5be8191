"""
Mirror Template Service
Learns spreadsheet form layouts and renders filled copies of them.

Port: 8004
"""

from dotenv import load_dotenv

load_dotenv()  # Load .env file

from contextlib import asynccontextmanager
from typing import Any, Dict

from fastapi import FastAPI

from shared.config.settings import get_settings
from shared.middleware.error_handler import setup_error_handlers
from shared.models.responses import ApiResponse
from shared.services.service_factory import MIRROR_SERVICE_INFO, create_fastapi_service, run_service
from shared.utils.app_logger import configure_logging, get_mirror_logger

from mirror.routers.mirror_router import router as mirror_router
from mirror.services.definition_cache import DefinitionCache
from mirror.services.definition_store import DefinitionStore
from mirror.services.mirror_service import MirrorTemplateService

configure_logging(get_settings().service.log_level)
logger = get_mirror_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """애플리케이션 시작/종료 이벤트"""
    settings = get_settings()
    logger.info(f"Mirror service starting ({settings.environment.value})")

    store = DefinitionStore(settings.storage.definitions_db_path)
    await store.initialize()
    cache = DefinitionCache(settings.cache.cache_capacity)

    app.state.definition_store = store
    app.state.definition_cache = cache
    app.state.mirror_service = MirrorTemplateService(store, cache, settings)

    yield

    await store.close()
    logger.info("Mirror service stopped")


app = create_fastapi_service(
    service_info=MIRROR_SERVICE_INFO,
    custom_lifespan=lifespan,
    include_logging_middleware=True,
)

setup_error_handlers(app)

app.include_router(mirror_router, prefix="/api/v1")


@app.get("/", tags=["Health"])
async def root() -> Dict[str, Any]:
    """루트 엔드포인트"""
    return {
        "service": "mirror",
        "version": MIRROR_SERVICE_INFO.version,
        "status": "running",
        "description": MIRROR_SERVICE_INFO.description,
        "endpoints": {
            "health": "/health",
            "learn": "/api/v1/mirror/templates/learn",
            "confirm": "/api/v1/mirror/templates/confirm",
            "apply": "/api/v1/mirror/templates/apply",
            "download": "/api/v1/mirror/templates/download/{name}",
            "docs": "/docs",
        },
    }


@app.get("/health", tags=["Health"])
async def health_check() -> Dict[str, Any]:
    """서비스 상태 확인"""
    return ApiResponse.health_check(
        service_name="mirror", version=MIRROR_SERVICE_INFO.version, description=MIRROR_SERVICE_INFO.description
    ).to_dict()


if __name__ == "__main__":
    run_service(app, MIRROR_SERVICE_INFO, "mirror.main:app")
