"""Version history ledger for asset content.

History only records replacements: the outgoing locator is archived when an
incoming locator differs from the current one by identity. The very first
fill of a placeholder never produces an entry.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from ..core.errors import AssetRuleViolation
from .media_storage import ContentLocator


@dataclass(frozen=True)
class RestoredContent:
    locator: ContentLocator
    metadata: dict[str, Any]
    history: list[dict[str, Any]]


def current_locator(asset) -> ContentLocator:
    return ContentLocator(url=asset.url, storage_key=asset.storage_key, storage_id=asset.storage_id)


def entry_locator(entry: dict[str, Any]) -> ContentLocator:
    return ContentLocator(
        url=entry.get("url"),
        storage_key=entry.get("storage_key"),
        storage_id=entry.get("storage_id"),
    )


def build_entry(
    locator: ContentLocator,
    metadata: dict[str, Any] | None,
    replaced_at: datetime,
    edit_type: str | None = None,
) -> dict[str, Any]:
    entry: dict[str, Any] = {
        "metadata": dict(metadata or {}),
        "replaced_at": replaced_at.isoformat(),
    }
    if locator.storage_key:
        entry["storage_key"] = locator.storage_key
    if locator.storage_id:
        entry["storage_id"] = locator.storage_id
    if locator.url:
        entry["url"] = locator.url
    if edit_type:
        entry["edit_type"] = edit_type
    return entry


def _matches(entry: dict[str, Any], target: ContentLocator) -> bool:
    if target.storage_key and entry.get("storage_key"):
        return entry["storage_key"] == target.storage_key
    if target.storage_id and entry.get("storage_id"):
        return entry["storage_id"] == target.storage_id
    if not target.storage_key and not target.storage_id and target.url:
        return entry.get("url") == target.url and not entry.get("storage_key") and not entry.get("storage_id")
    return False


def compute_updated_history(
    asset,
    new_locator: ContentLocator,
    edit_type: str | None = None,
    now: datetime | None = None,
) -> list[dict[str, Any]] | None:
    """Return the history list after replacing content, or None for no change."""
    current = current_locator(asset)
    current_identity = current.identity()
    if current_identity is None:
        return None
    if current_identity == new_locator.identity():
        return None

    entry = build_entry(current, asset.metadata_json, now or datetime.utcnow(), edit_type)
    return [*list(asset.version_history or []), entry]


def restore_from_history(asset, target: ContentLocator, now: datetime | None = None) -> RestoredContent:
    if target.is_empty:
        raise AssetRuleViolation("A storage key or storage handle is required to restore")
    current = current_locator(asset)
    if current.identity() is None:
        raise AssetRuleViolation("Current asset has no storage identifier")

    history = list(asset.version_history or [])
    index = next((i for i, entry in enumerate(history) if _matches(entry, target)), None)
    if index is None:
        raise AssetRuleViolation("Version not found in history")

    restored = history.pop(index)
    history.append(build_entry(current, asset.metadata_json, now or datetime.utcnow()))
    metadata = {**(asset.metadata_json or {}), **(restored.get("metadata") or {})}
    return RestoredContent(locator=entry_locator(restored), metadata=metadata, history=history)


def delete_from_history(asset, target: ContentLocator) -> list[dict[str, Any]]:
    if current_locator(asset).identity() is None:
        raise AssetRuleViolation("Current asset has no storage identifier")
    history = list(asset.version_history or [])
    remaining = [entry for entry in history if not _matches(entry, target)]
    if len(remaining) == len(history):
        raise AssetRuleViolation("Version not found in history")
    return remaining
