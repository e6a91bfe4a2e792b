"""Object storage contract."""

from typing import Protocol


class ObjectStorage(Protocol):
    def put(self, bucket: str, key: str, data: bytes, content_type: str) -> str:
        """Store data under bucket/key and return its public URL."""
        ...
