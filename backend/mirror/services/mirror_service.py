"""
Mirror template orchestrator.

Exposes the pipeline as four operations:
- learn(upload_path)  -> draft definition + detected labels (+ known template matches)
- confirm(payload)    -> persist a reviewed definition
- apply(payload)      -> render a definition with caller values
- download(name)      -> path of a generated workbook

The store is the source of truth; the LRU cache only holds copies. A confirm
and an apply racing on the same id may see either version of the definition.
"""

import asyncio
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError

from shared.config.settings import ApplicationSettings, get_settings
from shared.exceptions.mirror import (
    LearnFailure,
    MirrorFailure,
    NotFoundFailure,
    RenderFailure,
    ValidationFailure,
)
from shared.models.mirror_template import (
    ApplyRequest,
    ApplyResult,
    ConfirmResult,
    FieldDef,
    Fingerprint,
    LearnResult,
    SheetDefinition,
    TemplateMatch,
)
from shared.utils.app_logger import get_logger

from mirror.services.definition_cache import DefinitionCache
from mirror.services.definition_store import DefinitionStore
from mirror.services.fingerprint import compute_fingerprint
from mirror.services.layout_classifier import LayoutClassifier
from mirror.services.layout_learner import LayoutLearner
from mirror.services.template_matcher import find_matches
from mirror.services.value_coercion import coerce_values
from mirror.services.workbook_renderer import WorkbookRenderer, build_file_name

logger = get_logger(__name__)


def dedupe_same_row_labels(fields: List[FieldDef]) -> List[FieldDef]:
    """
    Keep one field per (row, case-insensitive label): the left-most one.

    Surviving fields keep their original order.
    """
    winners: Dict[tuple, FieldDef] = {}
    for field in fields:
        key = (field.row, field.label.strip().lower())
        current = winners.get(key)
        if current is None or field.label_col < current.label_col:
            winners[key] = field
    keep = {id(f) for f in winners.values()}
    return [f for f in fields if id(f) in keep]


def _validation_message(e: ValidationError) -> str:
    first = e.errors()[0] if e.errors() else {}
    loc = ".".join(str(p) for p in first.get("loc", ()))
    return f"{loc}: {first.get('msg', 'invalid value')}" if loc else str(first.get("msg", e))


class MirrorTemplateService:
    def __init__(
        self,
        store: DefinitionStore,
        cache: Optional[DefinitionCache] = None,
        settings: Optional[ApplicationSettings] = None,
    ):
        self.settings = settings or get_settings()
        self.store = store
        self.cache = cache or DefinitionCache(self.settings.cache.cache_capacity)
        self.learner = LayoutLearner(self.settings.layout)
        self.classifier = LayoutClassifier(self.settings.render)
        self.renderer = WorkbookRenderer(self.settings.render.default_column_width)

    @property
    def output_dir(self) -> Path:
        return Path(self.settings.storage.output_dir).resolve()

    # ---------------------------
    # learn
    # ---------------------------

    async def learn(self, upload_path: Union[str, Path]) -> LearnResult:
        """Learn a draft definition from an uploaded file; the upload is always deleted."""
        path = Path(upload_path)
        try:
            layout = await asyncio.to_thread(self.learner.learn_path, path)
            draft = self.classifier.classify(layout)
            draft.fingerprint = compute_fingerprint(layout, self.settings.layout)
            matches = await self.find_matches(draft.fingerprint)
        except MirrorFailure:
            raise
        except Exception as e:
            logger.error(f"Learning {path.name} failed: {e}")
            raise LearnFailure("Failed to learn layout", detail=str(e)) from e
        finally:
            self._discard_upload(path)

        logger.info(
            f"Learned draft {draft.id} from {path.name}: {len(draft.fields)} fields, {len(matches)} matches"
        )
        return LearnResult(draft_schema=draft, detected_labels=layout.detected_labels, matches=matches)

    @staticmethod
    def _discard_upload(path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            # Cleanup is best effort and never fails the operation
            logger.warning(f"Could not delete upload {path}: {e}")

    async def find_matches(self, fingerprint: Fingerprint) -> List[TemplateMatch]:
        if not self.settings.layout.match_enabled:
            return []
        candidates = await self.store.list_fingerprints()
        return find_matches(fingerprint, candidates, self.settings.layout.match_label_threshold)

    # ---------------------------
    # confirm
    # ---------------------------

    async def confirm(self, payload: Union[SheetDefinition, Dict[str, Any]]) -> ConfirmResult:
        definition = self._parse_definition(payload)

        before = len(definition.fields)
        definition.fields = dedupe_same_row_labels(definition.fields)
        if len(definition.fields) != before:
            logger.info(f"Dropped {before - len(definition.fields)} duplicate fields from {definition.id}")

        keys = [f.key for f in definition.fields]
        if len(keys) != len(set(keys)):
            raise ValidationFailure("Field keys must be unique", field="fields")

        await self.store.upsert(definition)
        self.cache.put(definition)

        logger.info(f"Confirmed definition {definition.id}")
        return ConfirmResult(ok=True, id=definition.id)

    @staticmethod
    def _parse_definition(payload: Union[SheetDefinition, Dict[str, Any]]) -> SheetDefinition:
        if isinstance(payload, SheetDefinition):
            return payload.model_copy(deep=True)
        if not isinstance(payload, dict):
            raise ValidationFailure("Definition payload must be an object")
        if not str(payload.get("id") or "").strip():
            raise ValidationFailure("Definition id is required", field="id")
        try:
            return SheetDefinition.model_validate(payload)
        except ValidationError as e:
            raise ValidationFailure(f"Invalid definition: {_validation_message(e)}") from e

    # ---------------------------
    # apply
    # ---------------------------

    async def get_definition(self, definition_id: str) -> SheetDefinition:
        """Cache first, then the store (warming the cache)."""
        definition = self.cache.get(definition_id)
        if definition is not None:
            return definition

        definition = await self.store.get(definition_id)
        if definition is None:
            raise NotFoundFailure("template not found", resource="template", identifier=definition_id)
        self.cache.put(definition)
        return definition

    async def apply(self, payload: Union[ApplyRequest, Dict[str, Any]]) -> ApplyResult:
        request = self._parse_apply(payload)
        definition = await self.get_definition(request.id)

        values, warnings = coerce_values(definition, request.values)
        for warning in warnings:
            logger.warning(f"apply {definition.id}: {warning}")

        file_name = build_file_name(definition, values, self.settings.storage.output_naming)
        try:
            path = await asyncio.to_thread(
                self.renderer.render, definition, values, self.output_dir, file_name
            )
        except Exception as e:
            logger.error(f"Rendering {definition.id} failed: {e}")
            raise RenderFailure(str(e), definition_id=definition.id) from e

        prefix = self.settings.service.download_route_prefix.rstrip("/")
        return ApplyResult(
            ok=True,
            file_name=path.name,
            download_path=f"{prefix}/{path.name}",
            warnings=warnings,
        )

    @staticmethod
    def _parse_apply(payload: Union[ApplyRequest, Dict[str, Any]]) -> ApplyRequest:
        if isinstance(payload, ApplyRequest):
            return payload
        if not isinstance(payload, dict):
            raise ValidationFailure("Apply payload must be an object")
        if not str(payload.get("id") or "").strip():
            raise ValidationFailure("Template id is required", field="id")
        if payload.get("values") is not None and not isinstance(payload.get("values"), dict):
            raise ValidationFailure("values must be an object", field="values")
        try:
            return ApplyRequest.model_validate(payload)
        except ValidationError as e:
            raise ValidationFailure(f"Invalid apply request: {_validation_message(e)}") from e

    # ---------------------------
    # download
    # ---------------------------

    async def download(self, name: str) -> Path:
        """Path of a generated file; only bare names inside the output directory are accepted."""
        if not name or name in (".", "..") or "/" in name or "\\" in name or "\x00" in name:
            raise ValidationFailure("Invalid file name", field="name")

        base = self.output_dir
        target = (base / name).resolve()
        if target.parent != base:
            raise ValidationFailure("Invalid file name", field="name")
        if not target.is_file():
            raise NotFoundFailure("file not found", resource="file", identifier=name)
        return target
