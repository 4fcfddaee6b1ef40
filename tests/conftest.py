from datetime import datetime, timedelta, timezone

import pytest

from bucketview.errors import NotFoundError, StorageError
from bucketview.models import StoredObject, StoredObjectRecord


class InMemoryObjectStore:
    def __init__(self):
        self.objects: dict[str, tuple[bytes, str, datetime]] = {}
        self.failing_deletes: set[str] = set()
        self.initialized = False
        self._clock = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def _tick(self) -> datetime:
        self._clock += timedelta(seconds=1)
        return self._clock

    def init(self) -> None:
        self.initialized = True

    def put(self, key, data, size, content_type):
        payload = data.read()
        assert len(payload) == size
        self.objects[key] = (payload, content_type, self._tick())

    def get(self, key):
        if key not in self.objects:
            raise NotFoundError(f"object not found: {key}")
        payload, content_type, _ = self.objects[key]
        return StoredObject(body=iter([payload]), content_type=content_type, size=len(payload))

    def list(self, prefix=""):
        return [
            StoredObjectRecord(key=key, size=len(payload), modified_at=modified_at)
            for key, (payload, _, modified_at) in self.objects.items()
            if key.startswith(prefix)
        ]

    def exists(self, key):
        return key in self.objects

    def delete(self, key):
        if key in self.failing_deletes:
            raise StorageError(f"failed to delete {key}")
        self.objects.pop(key, None)

    def copy(self, source, destination):
        if source not in self.objects:
            raise NotFoundError(f"object not found: {source}")
        payload, content_type, _ = self.objects[source]
        self.objects[destination] = (payload, content_type, self._tick())


@pytest.fixture
def store():
    return InMemoryObjectStore()
