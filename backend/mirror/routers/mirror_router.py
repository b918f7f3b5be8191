"""
Mirror template router
Learn / confirm / apply / download endpoints.
"""

import asyncio
import uuid
from pathlib import Path
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, File, HTTPException, Request, UploadFile, status
from fastapi.responses import FileResponse

from shared.config.settings import get_settings
from shared.models.mirror_template import ApplyResult, ConfirmResult, LearnResult
from shared.utils.app_logger import get_logger

from mirror.services.mirror_service import MirrorTemplateService

logger = get_logger(__name__)

router = APIRouter(prefix="/mirror/templates", tags=["Mirror Templates"])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def get_mirror_service(request: Request) -> MirrorTemplateService:
    """서비스 의존성 (lifespan에서 app.state에 등록)"""
    service = getattr(request.app.state, "mirror_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Mirror service is not initialized",
        )
    return service


def _write_upload(content: bytes, suffix: str) -> Path:
    upload_dir = Path(get_settings().storage.upload_dir)
    upload_dir.mkdir(parents=True, exist_ok=True)
    path = upload_dir / f"{uuid.uuid4().hex}{suffix}"
    path.write_bytes(content)
    return path


@router.post("/learn", response_model=LearnResult, response_model_by_alias=True)
async def learn_template(
    file: UploadFile = File(...),
    service: MirrorTemplateService = Depends(get_mirror_service),
) -> LearnResult:
    """
    업로드된 Excel(.xlsx/.xlsm) 양식에서 초안 정의를 학습합니다.

    - 라벨/값 셀 탐지, 영역(헤더/장비/서브시트) 분리
    - 필드 타입 추론 (string/number/bool/date/enum)
    - 기존 템플릿과의 fingerprint 매칭 결과 포함
    """
    filename = file.filename or ""
    suffix = Path(filename).suffix.lower()
    if suffix not in (".xlsx", ".xlsm"):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only .xlsx/.xlsm files are supported",
        )

    content = await file.read()
    if not content:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Empty file")

    upload_path = await asyncio.to_thread(_write_upload, content, suffix)
    logger.info(f"Learning layout from {filename} ({len(content)} bytes)")
    return await service.learn(upload_path)


@router.post("/confirm", response_model=ConfirmResult, response_model_by_alias=True)
async def confirm_template(
    payload: Dict[str, Any] = Body(...),
    service: MirrorTemplateService = Depends(get_mirror_service),
) -> ConfirmResult:
    """검토된 정의를 저장합니다 (같은 id는 덮어쓰기)."""
    return await service.confirm(payload)


@router.post("/apply", response_model=ApplyResult, response_model_by_alias=True)
async def apply_template(
    payload: Dict[str, Any] = Body(...),
    service: MirrorTemplateService = Depends(get_mirror_service),
) -> ApplyResult:
    """저장된 정의에 값을 채워 새 워크북을 생성합니다."""
    return await service.apply(payload)


@router.get("/download/{name}")
async def download_template(
    name: str,
    service: MirrorTemplateService = Depends(get_mirror_service),
) -> FileResponse:
    path = await service.download(name)
    return FileResponse(path, media_type=XLSX_MEDIA_TYPE, filename=path.name)
