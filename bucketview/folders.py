"""Folder emulation over a flat object key space.

Object stores have no directories: a "folder" is any key prefix ending in
``/``. Empty folders are kept visible by a zero-byte ``.folder`` marker
object, which is never listed as a file.
"""
from collections.abc import Iterable

from bucketview.models import FolderView, StoredObjectRecord

SEPARATOR = "/"
FOLDER_MARKER = ".folder"


def normalize_key(key: str) -> str:
    return key.replace("\\", SEPARATOR)


def normalize_path(path: str | None) -> str:
    """Return ``path`` as a folder prefix: ``""`` for the root, else ending in ``/``."""
    if not path:
        return ""
    path = normalize_key(path.strip()).lstrip(SEPARATOR)
    if path and not path.endswith(SEPARATOR):
        path += SEPARATOR
    return path


def parent_path(path: str) -> str | None:
    """Return the folder containing ``path``, or None when ``path`` is the root."""
    path = normalize_path(path)
    if not path:
        return None
    head, sep, _ = path.rstrip(SEPARATOR).rpartition(SEPARATOR)
    return head + sep


def project(records: Iterable[StoredObjectRecord], path: str) -> FolderView:
    """Split ``records`` into the files directly under ``path`` and its immediate subfolders.

    ``path`` must already be normalized (see :func:`normalize_path`). Prefix
    matching and folder de-duplication are case-insensitive; when two keys
    differ only by case, the folder name spelled by the lexicographically
    smallest key wins.
    """
    lowered_path = path.lower()
    normalized = []
    for record in records:
        key = normalize_key(record.key)
        if key != record.key:
            record = record.model_copy(update={"key": key})
        normalized.append(record)
    normalized.sort(key=lambda r: r.key)

    files: list[StoredObjectRecord] = []
    folders: dict[str, str] = {}
    for record in normalized:
        key = record.key
        if path:
            if not key.lower().startswith(lowered_path):
                continue
            remainder = key[len(path):]
        else:
            remainder = key
        if not remainder or remainder.lower() == FOLDER_MARKER:
            continue

        head, sep, _ = remainder.partition(SEPARATOR)
        if sep:
            folder = key[:len(path)] + head + sep
            folders.setdefault(folder.lower(), folder)
        else:
            files.append(record)

    files.sort(key=lambda r: r.modified_at, reverse=True)
    return FolderView(files=files, folders=sorted(folders.values()))
