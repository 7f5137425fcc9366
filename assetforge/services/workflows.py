"""Start durable generation workflows for placeholder assets.

Dispatch is fire-and-start: a placeholder is created, the workflow engine is
handed a fully resolved input payload plus the completion route for the
asset's family, and the returned handle is recorded on the asset.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx
from sqlalchemy.orm import Session

from ..core.config import Settings, get_settings
from ..core.errors import AssetNotFoundError, AssetRuleViolation, WorkflowDispatchError
from ..models.asset import Asset
from . import assets as lifecycle
from .enhancement import PromptEnhancer, enhance_prompt
from .progress import begin_auto_gen_run
from .side_effects import best_effort

logger = logging.getLogger(__name__)

ALLOWED_ASPECT_RATIOS = (
    "match_input_image",
    "1:1",
    "4:3",
    "3:4",
    "16:9",
    "9:16",
    "3:2",
    "2:3",
    "21:9",
)

WORKFLOW_DEFINITIONS = {
    "image": "generate-image",
    "video": "generate-video",
    "3d": "generate-3d-model",
}


class WorkflowEngine(Protocol):
    def start(
        self,
        definition: str,
        payload: dict[str, Any],
        completion_route: str,
        context: dict[str, Any],
    ) -> str: ...


class HttpWorkflowEngine:
    def __init__(self, base_url: str, timeout: float = 10.0, client: httpx.Client | None = None):
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.Client(timeout=timeout)

    def start(self, definition, payload, completion_route, context) -> str:
        body = {
            "workflow": definition,
            "input": payload,
            "onComplete": {"url": completion_route, "context": context},
        }
        try:
            response = self._client.post(f"{self.base_url}/workflows", json=body)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise WorkflowDispatchError(f"Failed to start workflow: {exc}") from exc
        workflow_id = response.json().get("workflowId")
        if not workflow_id:
            raise WorkflowDispatchError("Workflow engine returned no workflow id")
        return str(workflow_id)


class UnconfiguredWorkflowEngine:
    def start(self, definition, payload, completion_route, context) -> str:
        raise WorkflowDispatchError("Workflow engine is not configured")


def get_workflow_engine() -> WorkflowEngine:
    settings = get_settings()
    if not settings.workflow_engine_url:
        return UnconfiguredWorkflowEngine()
    return HttpWorkflowEngine(settings.workflow_engine_url)


def completion_route(family: str, settings: Settings | None = None) -> str:
    settings = settings or get_settings()
    return f"{settings.public_base_url.rstrip('/')}{settings.api_prefix}/internal/workflows/{family}/complete"


def normalize_aspect_ratio(value: str | None, has_references: bool) -> str:
    if not value:
        return "match_input_image" if has_references else "1:1"
    if value not in ALLOWED_ASPECT_RATIOS:
        raise AssetRuleViolation(f"Unsupported aspect ratio: {value}")
    return value


def resolve_reference_urls(db: Session, reference_ids: list[str]) -> list[str]:
    urls = []
    for reference_id in reference_ids:
        reference = db.get(Asset, reference_id)
        if reference is None:
            raise AssetNotFoundError(f"Reference asset {reference_id} not found")
        url = reference.url or reference.temp_image_url
        if not url:
            raise AssetRuleViolation(f"Reference asset {reference_id} has no content yet")
        urls.append(url)
    return urls


@dataclass
class GenerationRequest:
    owner_id: str
    asset_group: str
    prompt: str
    family: str = "image"
    version_id: str | None = None
    product_id: str | None = None
    organization_id: str | None = None
    reference_ids: list[str] = field(default_factory=list)
    reference_urls: list[str] = field(default_factory=list)
    aspect_ratio: str | None = None
    target_width: int | None = None
    target_height: int | None = None
    temp_image_url: str | None = None
    related_aesthetic_asset_id: str | None = None
    auto_gen_run_id: str | None = None
    model: str | None = None
    enhance_prompt: bool = False
    options: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class DispatchResult:
    asset_id: str
    workflow_id: str


def build_input_payload(
    db: Session,
    request: GenerationRequest,
    enhancer: PromptEnhancer | None = None,
) -> dict[str, Any]:
    reference_urls = [*request.reference_urls, *resolve_reference_urls(db, request.reference_ids)]
    prompt = request.prompt
    if request.enhance_prompt:
        prompt = enhance_prompt(prompt, enhancer)
    payload: dict[str, Any] = {
        "prompt": prompt,
        "referenceUrls": reference_urls,
        "aspectRatio": normalize_aspect_ratio(request.aspect_ratio, bool(reference_urls)),
    }
    if request.target_width:
        payload["width"] = request.target_width
    if request.target_height:
        payload["height"] = request.target_height
    if request.model:
        payload["model"] = request.model
    payload.update(request.options)
    return payload


def _dispatch(engine: WorkflowEngine, family: str, payload: dict[str, Any], context: dict[str, Any]) -> str:
    if family not in WORKFLOW_DEFINITIONS:
        raise AssetRuleViolation(f"Unsupported generation family: {family}")
    return engine.start(WORKFLOW_DEFINITIONS[family], payload, completion_route(family), context)


def start_asset_generation(
    db: Session,
    request: GenerationRequest,
    engine: WorkflowEngine,
    enhancer: PromptEnhancer | None = None,
) -> DispatchResult:
    if request.family not in WORKFLOW_DEFINITIONS:
        raise AssetRuleViolation(f"Unsupported generation family: {request.family}")
    payload = build_input_payload(db, request, enhancer)

    asset = lifecycle.create_placeholder(
        db,
        owner_id=request.owner_id,
        asset_group=request.asset_group,
        version_id=request.version_id,
        product_id=request.product_id,
        organization_id=request.organization_id,
        type=request.family,
        prompt=payload["prompt"],
        temp_image_url=request.temp_image_url,
        reference_ids=request.reference_ids,
        related_aesthetic_asset_id=request.related_aesthetic_asset_id,
        target_width=request.target_width,
        target_height=request.target_height,
        auto_gen_run_id=request.auto_gen_run_id,
    )

    try:
        workflow_id = _dispatch(engine, request.family, payload, {"asset_id": asset.id})
    except Exception as exc:
        message = str(exc) or "Failed to start workflow"
        logger.warning("Dispatch failed for asset %s: %s", asset.id, message)
        lifecycle.fail_asset(db, asset.id, message)
        raise WorkflowDispatchError(message) from exc

    best_effort("record workflow id", lifecycle.set_workflow_id, db, asset.id, workflow_id, session=db)
    if request.family == "video":
        best_effort(
            "video batch job",
            begin_auto_gen_run,
            db,
            asset.version_id,
            workflow_id,
            request.owner_id,
            organization_id=request.organization_id,
            kind="video",
            source="workflow",
            prompt=payload["prompt"],
            track_on_version=False,
            session=db,
        )
    logger.info("Started %s workflow %s for asset %s", request.family, workflow_id, asset.id)
    return DispatchResult(asset_id=asset.id, workflow_id=workflow_id)


def regenerate_asset(
    db: Session,
    asset_id: str,
    engine: WorkflowEngine,
    prompt: str | None = None,
    aspect_ratio: str | None = None,
    options: dict[str, Any] | None = None,
) -> DispatchResult:
    """Re-run generation in place; a dispatch failure restores the previous content."""
    asset = lifecycle.get_asset(db, asset_id)
    family = asset.type
    metadata = asset.metadata_json or {}
    request = GenerationRequest(
        owner_id=asset.owner_id,
        asset_group=asset.asset_group,
        prompt=prompt or asset.prompt or "",
        family=family,
        reference_ids=list(asset.reference_ids or []),
        aspect_ratio=aspect_ratio,
        target_width=metadata.get("width"),
        target_height=metadata.get("height"),
        options=dict(options or {}),
    )
    payload = build_input_payload(db, request)
    had_content = bool(asset.url or asset.storage_key or asset.storage_id)

    lifecycle.mark_pending(db, asset_id)
    if prompt:
        asset.prompt = prompt
        db.commit()

    try:
        workflow_id = _dispatch(engine, family, payload, {"asset_id": asset_id, "edit_type": "regenerate"})
    except Exception as exc:
        message = str(exc) or "Failed to start workflow"
        if had_content:
            lifecycle.revert_to_completed(db, asset_id, message)
        else:
            lifecycle.fail_asset(db, asset_id, message)
        raise WorkflowDispatchError(message) from exc

    best_effort("record workflow id", lifecycle.set_workflow_id, db, asset_id, workflow_id, session=db)
    return DispatchResult(asset_id=asset_id, workflow_id=workflow_id)
