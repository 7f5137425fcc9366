import shutil
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO

from fastapi import UploadFile

from ..core.config import get_settings
from ..core.errors import MissingLocatorError, StorageObjectNotFound

_MEDIA_TYPE_PREFIXES = {
    "image/": "image",
    "video/": "video",
    "model/": "3d",
}


def media_type_for(mime_type: str | None) -> str:
    for prefix, media_type in _MEDIA_TYPE_PREFIXES.items():
        if mime_type and mime_type.startswith(prefix):
            return media_type
    return "file"


class MediaStorage:
    """Content-addressed object storage.

    Keys have the shape ``organizationSlug/mediaType/uuid[.ext]`` and map
    one-to-one onto paths below ``base_path``.
    """

    def __init__(self, base_path: Path, public_base_url: str | None = None):
        self.base_path = base_path
        self.public_base_url = public_base_url.rstrip("/") if public_base_url else None
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _path_for(self, key: str) -> Path:
        path = (self.base_path / key).resolve()
        if self.base_path.resolve() not in path.parents:
            raise StorageObjectNotFound(f"Invalid storage key: {key}")
        return path

    def build_key(self, org_slug: str, media_type: str, suffix: str = "") -> str:
        return f"{org_slug}/{media_type}/{uuid.uuid4()}{suffix}"

    def save_upload(self, org_slug: str, upload: UploadFile) -> str:
        suffix = Path(upload.filename or "").suffix
        key = self.build_key(org_slug, media_type_for(upload.content_type), suffix)
        dest_path = self._path_for(key)
        dest_path.parent.mkdir(parents=True, exist_ok=True)
        with dest_path.open("wb") as buffer:
            shutil.copyfileobj(upload.file, buffer)
        upload.file.seek(0)
        return key

    def save_bytes(self, org_slug: str, media_type: str, data: BinaryIO, suffix: str = "") -> str:
        key = self.build_key(org_slug, media_type, suffix)
        dest_path = self._path_for(key)
        dest_path.parent.mkdir(parents=True, exist_ok=True)
        with dest_path.open("wb") as buffer:
            shutil.copyfileobj(data, buffer)
        data.seek(0)
        return key

    def exists(self, key: str) -> bool:
        return self._path_for(key).is_file()

    def url_for(self, key: str) -> str:
        if not self.exists(key):
            raise StorageObjectNotFound(f"No object stored under key {key}")
        if self.public_base_url:
            return f"{self.public_base_url}/{key}"
        return self._path_for(key).as_uri()

    def delete(self, key: str) -> None:
        self._path_for(key).unlink(missing_ok=True)


class LegacyStorage:
    """Opaque-handle storage kept for records written before the key scheme."""

    def __init__(self, base_path: Path, public_base_url: str | None = None):
        self.base_path = base_path
        self.public_base_url = public_base_url.rstrip("/") if public_base_url else None
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _path_for(self, handle: str) -> Path:
        if not handle or "/" in handle or "\\" in handle or handle.startswith("."):
            raise StorageObjectNotFound(f"Invalid storage handle: {handle}")
        return self.base_path / handle

    def save_bytes(self, data: BinaryIO) -> str:
        handle = uuid.uuid4().hex
        with self._path_for(handle).open("wb") as buffer:
            shutil.copyfileobj(data, buffer)
        data.seek(0)
        return handle

    def url_for(self, handle: str) -> str:
        path = self._path_for(handle)
        if not path.is_file():
            raise StorageObjectNotFound(f"No object stored under handle {handle}")
        if self.public_base_url:
            return f"{self.public_base_url}/{handle}"
        return path.resolve().as_uri()

    def delete(self, handle: str) -> None:
        self._path_for(handle).unlink(missing_ok=True)


@dataclass(frozen=True)
class StorageBackends:
    objects: MediaStorage
    legacy: LegacyStorage

    def delete(self, storage_key: str | None = None, storage_id: str | None = None) -> None:
        if storage_key:
            self.objects.delete(storage_key)
        elif storage_id:
            self.legacy.delete(storage_id)


@dataclass(frozen=True)
class ContentLocator:
    url: str | None = None
    storage_key: str | None = None
    storage_id: str | None = None

    @property
    def is_empty(self) -> bool:
        return not (self.url or self.storage_key or self.storage_id)

    def identity(self) -> tuple[str, str] | None:
        if self.storage_key:
            return ("key", self.storage_key)
        if self.storage_id:
            return ("id", self.storage_id)
        if self.url:
            return ("url", self.url)
        return None

    def resolve(self, storage: StorageBackends) -> str:
        if self.url:
            return self.url
        if self.storage_key:
            return storage.objects.url_for(self.storage_key)
        if self.storage_id:
            return storage.legacy.url_for(self.storage_id)
        raise MissingLocatorError("A url, storage key or storage handle is required")


def get_media_storage() -> MediaStorage:
    settings = get_settings()
    return MediaStorage(settings.object_storage_root, settings.object_storage_public_url)


def get_storage_backends() -> StorageBackends:
    settings = get_settings()
    return StorageBackends(
        objects=get_media_storage(),
        legacy=LegacyStorage(settings.legacy_storage_root, settings.legacy_storage_public_url),
    )
