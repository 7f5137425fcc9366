"""Normalize provider result payloads into a single tagged shape.

Each generation family returns content in its own layout, and older workers
still report the legacy storage scheme. The reconciler only ever sees a
``ParsedResult``.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

from .media_storage import ContentLocator

ResultKind = Literal["current", "legacy", "unrecognized"]

PRIMARY_MODEL_EXTENSION = ".glb"


@dataclass(frozen=True)
class ParsedResult:
    kind: ResultKind
    locator: ContentLocator = field(default_factory=ContentLocator)
    metadata: dict[str, Any] = field(default_factory=dict)
    alternate_storage_keys: list[str] = field(default_factory=list)
    reason: str | None = None

    @property
    def url(self) -> str | None:
        return self.locator.url

    @property
    def recognized(self) -> bool:
        return self.kind != "unrecognized"


def positive_int(value: Any) -> int | None:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def _metadata(payload: dict[str, Any]) -> dict[str, Any]:
    metadata: dict[str, Any] = {}
    for source, target in (("width", "width"), ("height", "height"), ("fileSize", "file_size")):
        number = positive_int(payload.get(source))
        if number is not None:
            metadata[target] = number
    if payload.get("mimeType"):
        metadata["mime_type"] = str(payload["mimeType"])
    if payload.get("duration") is not None:
        try:
            metadata["duration"] = float(payload["duration"])
        except (TypeError, ValueError):
            pass
    return metadata


def _locate(payload: dict[str, Any]) -> tuple[ResultKind, ContentLocator]:
    if payload.get("storageKey") and payload.get("url"):
        return "current", ContentLocator(url=payload["url"], storage_key=payload["storageKey"])
    if payload.get("storageId") and payload.get("storageUrl"):
        return "legacy", ContentLocator(url=payload["storageUrl"], storage_id=payload["storageId"])
    return "unrecognized", ContentLocator()


def parse_image_result(payload: dict[str, Any] | None) -> ParsedResult:
    payload = payload or {}
    kind, locator = _locate(payload)
    if kind == "unrecognized":
        return ParsedResult(kind, reason="missing storageKey/url and storageId/storageUrl")

    # Multi-image results keep their extra outputs as alternates.
    alternates = [
        image["storageKey"]
        for image in payload.get("images") or []
        if isinstance(image, dict) and image.get("storageKey") and image["storageKey"] != locator.storage_key
    ]
    return ParsedResult(kind, locator, _metadata(payload), alternates)


def parse_video_result(payload: dict[str, Any] | None) -> ParsedResult:
    payload = payload or {}
    kind, locator = _locate(payload)
    if kind == "unrecognized":
        return ParsedResult(kind, reason="missing storageKey/url and storageId/storageUrl")
    metadata = _metadata(payload)
    metadata.setdefault("mime_type", "video/mp4")
    return ParsedResult(kind, locator, metadata)


def _primary_file(files: list[dict[str, Any]]) -> dict[str, Any]:
    for item in files:
        name = str(item.get("fileName") or item.get("filename") or "")
        if name.lower().endswith(PRIMARY_MODEL_EXTENSION):
            return item
    return files[0]


def parse_3d_result(payload: dict[str, Any] | None) -> ParsedResult:
    payload = payload or {}
    files = [item for item in payload.get("files") or [] if isinstance(item, dict)]
    if not files:
        return ParsedResult("unrecognized", reason="no files")

    primary = _primary_file(files)
    url = primary.get("url") or primary.get("storageUrl")
    if not url:
        return ParsedResult("unrecognized", reason="primary file has no url")

    if primary.get("storageKey"):
        kind: ResultKind = "current"
        locator = ContentLocator(url=url, storage_key=primary["storageKey"])
    elif primary.get("storageId"):
        kind = "legacy"
        locator = ContentLocator(url=url, storage_id=primary["storageId"])
    else:
        kind = "current"
        locator = ContentLocator(url=url)

    metadata = _metadata(primary)
    metadata.setdefault("mime_type", "model/gltf-binary")
    metadata["files"] = [
        {key: item[key] for key in ("fileName", "url", "storageKey", "storageId", "fileSize") if item.get(key)}
        for item in files
    ]
    alternates = [item["storageKey"] for item in files if item is not primary and item.get("storageKey")]
    return ParsedResult(kind, locator, metadata, alternates)
