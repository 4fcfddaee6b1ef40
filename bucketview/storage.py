import io
import logging
import posixpath
import time
from typing import BinaryIO

from bucketview.config import Settings
from bucketview.errors import NotFoundError, PayloadTooLargeError, StorageError, ValidationError
from bucketview.folders import FOLDER_MARKER, normalize_key, normalize_path, project
from bucketview.models import FolderView, StoredObject
from bucketview.repository import DEFAULT_CONTENT_TYPE, ObjectStore
from bucketview.signing import InvalidTokenError, ShareTokenCodec, is_expired

logger = logging.getLogger(__name__)


class FileStorageService:
    """Higher-level file operations over a flat object store."""

    def __init__(self, store: ObjectStore, codec: ShareTokenCodec, settings: Settings):
        self.store = store
        self.codec = codec
        self.settings = settings
        self.trash_prefix = normalize_path(settings.trash_prefix)

    def list_folder(self, path: str | None = None) -> FolderView:
        path = normalize_path(path)
        return project(self.store.list(""), path)

    def upload(
        self,
        *,
        filename: str,
        data: BinaryIO,
        size: int,
        content_type: str | None = None,
        path: str | None = None,
    ) -> str:
        name = posixpath.basename(normalize_key(filename or "").strip())
        if not name:
            raise ValidationError("filename is required")
        if size > self.settings.max_upload_size_bytes:
            raise PayloadTooLargeError("File exceeds max upload size")

        key = normalize_path(path) + name
        self.store.put(key, data, size, content_type or DEFAULT_CONTENT_TYPE)
        logger.info("Uploaded %s (%d bytes)", key, size)
        return key

    def create_folder(self, name: str, path: str | None = None) -> str:
        name = (name or "").strip().strip("/")
        if not name:
            raise ValidationError("folder name is required")
        if "/" in normalize_key(name):
            raise ValidationError("folder name must not contain '/'")

        folder = normalize_path(path) + name + "/"
        self.store.put(folder + FOLDER_MARKER, io.BytesIO(b""), 0, DEFAULT_CONTENT_TYPE)
        logger.info("Created folder %s", folder)
        return folder

    def download(self, key: str) -> StoredObject:
        if not key:
            raise ValidationError("key is required")
        return self.store.get(key)

    def delete_object(self, key: str) -> None:
        if not key:
            raise ValidationError("key is required")
        self.store.delete(key)
        logger.info("Deleted %s", key)

    def delete_folder(self, prefix: str) -> int:
        """Delete every object under ``prefix``. Best effort: failed keys are skipped."""
        prefix = normalize_path(prefix)
        if not prefix:
            raise ValidationError("folder prefix is required")

        deleted = 0
        for record in self.store.list(prefix):
            try:
                self.store.delete(record.key)
            except StorageError:
                logger.warning("Failed to delete %s while removing folder %s", record.key, prefix)
                continue
            deleted += 1
        logger.info("Deleted folder %s (%d objects)", prefix, deleted)
        return deleted

    def move_object(self, source: str, destination: str) -> None:
        if not source or not destination:
            raise ValidationError("source and destination are required")
        if source == destination:
            raise ValidationError("source and destination must differ")
        if not self.store.exists(source):
            raise NotFoundError("file not found")

        self.store.copy(source, destination)
        self.store.delete(source)
        logger.info("Moved %s to %s", source, destination)

    def trash_object(self, key: str) -> str:
        if not key:
            raise ValidationError("key is required")
        if key.startswith(self.trash_prefix):
            raise ValidationError("object is already in the trash")
        destination = self.trash_prefix + key
        self.move_object(key, destination)
        return destination

    def restore_object(self, key: str) -> str:
        if not key or not key.startswith(self.trash_prefix):
            raise ValidationError("object is not in the trash")
        destination = key[len(self.trash_prefix):]
        if not destination:
            raise ValidationError("object is not in the trash")
        if self.store.exists(destination):
            raise ValidationError(f"{destination} already exists")
        self.move_object(key, destination)
        return destination

    def share(self, key: str, ttl_seconds: int) -> tuple[str, int]:
        if not key:
            raise ValidationError("key is required")
        if ttl_seconds > self.settings.max_share_ttl_seconds:
            raise ValidationError(f"expiry_seconds must be <= {self.settings.max_share_ttl_seconds}")
        if not self.store.exists(key):
            raise NotFoundError("file not found")

        now = int(time.time())
        try:
            token = self.codec.encode(key, ttl_seconds, now=now)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
        expires_at = self.codec.expires_at(ttl_seconds, now=now)
        logger.info("Shared %s until %d", key, expires_at)
        return token, expires_at

    def open_shared(self, token: str, *, now: int | None = None) -> tuple[str, StoredObject]:
        """Resolve a share token to its object.

        Every rejection (bad token, expired link, missing object) raises the
        same ``NotFoundError`` so callers cannot tell them apart.
        """
        now = int(time.time()) if now is None else now
        try:
            key, expires_at = self.codec.decode(token or "")
        except InvalidTokenError as exc:
            logger.debug("Rejected share token: %s", exc)
            raise NotFoundError("not found") from None
        if is_expired(expires_at, now):
            logger.debug("Rejected expired share token for %s", key)
            raise NotFoundError("not found")

        try:
            return key, self.store.get(key)
        except (NotFoundError, StorageError) as exc:
            logger.debug("Shared object %s unavailable: %s", key, exc)
            raise NotFoundError("not found") from None

