import base64
import time

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

DEFAULT_TTL_SECONDS = 12 * 60 * 60
FIELD_SEPARATOR = "|"


class InvalidTokenError(Exception):
    pass


def is_expired(expires_at: int, now: int) -> bool:
    return now > expires_at


def derive_key(secret_key: str) -> bytes:
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=32,
        salt=b"bucketview-share-v1",
        info=b"share-token",
    )
    return base64.urlsafe_b64encode(hkdf.derive(secret_key.encode("utf-8")))


class ShareTokenCodec:
    """Seals ``object_key|expires_at`` into an opaque URL-safe token."""

    def __init__(self, secret_key: str, default_ttl_seconds: int = DEFAULT_TTL_SECONDS):
        self._fernet = Fernet(derive_key(secret_key))
        self.default_ttl_seconds = default_ttl_seconds

    def encode(self, object_key: str, ttl_seconds: int, *, now: int | None = None) -> str:
        if not object_key:
            raise ValueError("object key is required")
        if FIELD_SEPARATOR in object_key:
            raise ValueError(f"object key must not contain {FIELD_SEPARATOR!r}")
        expires_at = self.expires_at(ttl_seconds, now=now)
        payload = f"{object_key}{FIELD_SEPARATOR}{expires_at}".encode("utf-8")
        return self._fernet.encrypt(payload).decode("ascii")

    def decode(self, token: str) -> tuple[str, int]:
        try:
            payload = self._fernet.decrypt(token.encode("ascii")).decode("utf-8")
        except (InvalidToken, UnicodeError) as exc:
            raise InvalidTokenError("token could not be authenticated") from exc

        parts = payload.split(FIELD_SEPARATOR)
        if len(parts) != 2 or not parts[0]:
            raise InvalidTokenError("malformed token payload")
        object_key, raw_expiry = parts
        try:
            expires_at = int(raw_expiry)
        except ValueError as exc:
            raise InvalidTokenError("token expiry is not an integer") from exc
        return object_key, expires_at

    def expires_at(self, ttl_seconds: int, *, now: int | None = None) -> int:
        if ttl_seconds <= 0:
            ttl_seconds = self.default_ttl_seconds
        now = int(time.time()) if now is None else now
        return now + ttl_seconds
