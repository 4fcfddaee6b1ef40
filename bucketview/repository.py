import logging
from collections.abc import Iterator
from datetime import datetime, timezone
from typing import BinaryIO, Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from bucketview.config import Settings
from bucketview.errors import NotFoundError, StorageError
from bucketview.models import StoredObject, StoredObjectRecord

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024
DEFAULT_CONTENT_TYPE = "application/octet-stream"
MISSING_CODES = {"404", "NoSuchKey", "NotFound"}


class ObjectStore(Protocol):
    def init(self) -> None: ...

    def put(self, key: str, data: BinaryIO, size: int, content_type: str) -> None: ...

    def get(self, key: str) -> StoredObject: ...

    def list(self, prefix: str = "") -> list[StoredObjectRecord]: ...

    def exists(self, key: str) -> bool: ...

    def delete(self, key: str) -> None: ...

    def copy(self, source: str, destination: str) -> None: ...


def _error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", ""))


def build_s3_client(settings: Settings):
    client_kwargs = {"region_name": settings.s3_region}
    if settings.s3_endpoint_url:
        client_kwargs["endpoint_url"] = settings.s3_endpoint_url
    if settings.s3_access_key and settings.s3_secret_key:
        client_kwargs["aws_access_key_id"] = settings.s3_access_key
        client_kwargs["aws_secret_access_key"] = settings.s3_secret_key
    return boto3.client("s3", **client_kwargs)


class S3ObjectRepository:
    """Object store backed by an S3-compatible bucket (AWS S3, MinIO, ...)."""

    def __init__(self, client, bucket_name: str):
        self.client = client
        self.bucket_name = bucket_name

    def init(self) -> None:
        try:
            self.client.head_bucket(Bucket=self.bucket_name)
            return
        except ClientError as exc:
            if _error_code(exc) not in MISSING_CODES | {"NoSuchBucket"}:
                raise StorageError(f"failed to access bucket {self.bucket_name}: {exc}") from exc
        except BotoCoreError as exc:
            raise StorageError(f"failed to access bucket {self.bucket_name}: {exc}") from exc

        logger.info("Creating bucket %s", self.bucket_name)
        try:
            self.client.create_bucket(Bucket=self.bucket_name)
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(f"failed to create bucket {self.bucket_name}: {exc}") from exc

    def put(self, key: str, data: BinaryIO, size: int, content_type: str) -> None:
        try:
            self.client.put_object(
                Bucket=self.bucket_name,
                Key=key,
                Body=data,
                ContentLength=size,
                ContentType=content_type or DEFAULT_CONTENT_TYPE,
            )
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(f"failed to upload {key}: {exc}") from exc

    def get(self, key: str) -> StoredObject:
        try:
            response = self.client.get_object(Bucket=self.bucket_name, Key=key)
        except ClientError as exc:
            if _error_code(exc) in MISSING_CODES:
                raise NotFoundError(f"object not found: {key}") from exc
            raise StorageError(f"failed to download {key}: {exc}") from exc
        except BotoCoreError as exc:
            raise StorageError(f"failed to download {key}: {exc}") from exc

        return StoredObject(
            body=self._stream(response["Body"]),
            content_type=response.get("ContentType") or DEFAULT_CONTENT_TYPE,
            size=response.get("ContentLength"),
        )

    @staticmethod
    def _stream(body) -> Iterator[bytes]:
        try:
            yield from body.iter_chunks(CHUNK_SIZE)
        finally:
            body.close()

    def list(self, prefix: str = "") -> list[StoredObjectRecord]:
        records = []
        args = {"Bucket": self.bucket_name, "Prefix": prefix}
        try:
            while True:
                response = self.client.list_objects_v2(**args)
                for obj in response.get("Contents", []):
                    modified_at = obj.get("LastModified") or datetime.min.replace(tzinfo=timezone.utc)
                    records.append(
                        StoredObjectRecord(key=obj["Key"], size=obj.get("Size", 0), modified_at=modified_at)
                    )
                if not response.get("IsTruncated"):
                    break
                args["ContinuationToken"] = response["NextContinuationToken"]
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(f"failed to list {prefix!r}: {exc}") from exc
        return records

    def exists(self, key: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket_name, Key=key)
        except ClientError as exc:
            if _error_code(exc) in MISSING_CODES:
                return False
            raise StorageError(f"failed to stat {key}: {exc}") from exc
        except BotoCoreError as exc:
            raise StorageError(f"failed to stat {key}: {exc}") from exc
        return True

    def delete(self, key: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket_name, Key=key)
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(f"failed to delete {key}: {exc}") from exc

    def copy(self, source: str, destination: str) -> None:
        try:
            self.client.copy_object(
                Bucket=self.bucket_name,
                CopySource={"Bucket": self.bucket_name, "Key": source},
                Key=destination,
            )
        except ClientError as exc:
            if _error_code(exc) in MISSING_CODES:
                raise NotFoundError(f"object not found: {source}") from exc
            raise StorageError(f"failed to copy {source} to {destination}: {exc}") from exc
        except BotoCoreError as exc:
            raise StorageError(f"failed to copy {source} to {destination}: {exc}") from exc
