from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime

from pydantic import BaseModel


class StoredObjectRecord(BaseModel):
    key: str
    size: int
    modified_at: datetime

    model_config = {"frozen": True}


class FolderView(BaseModel):
    files: list[StoredObjectRecord]
    folders: list[str]


@dataclass
class StoredObject:
    body: Iterator[bytes]
    content_type: str
    size: int | None = None


class FolderListResponse(BaseModel):
    path: str
    parent: str | None
    files: list[StoredObjectRecord]
    folders: list[str]


class UploadResponse(BaseModel):
    key: str
    size: int
    content_type: str


class ActionResponse(BaseModel):
    success: bool
    key: str


class ShareLinkResponse(BaseModel):
    success: bool
    url: str
    expires_at: int | None = None
