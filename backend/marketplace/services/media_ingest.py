"""
Media ingestion for catalog uploads.

Uploads the original file, asks the media processor for a preview rendition
and uploads that too. A processor failure never blocks item creation: the
original bytes are used as the preview and the failure is logged.
"""

import logging
import re
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict

from marketplace.config import MEDIA_BUCKET
from marketplace.integrations.media import MediaProcessor
from marketplace.integrations.storage import ObjectStorage
from marketplace.models.catalog import ContentKind
from marketplace.platform.errors import InvalidInputError
from marketplace.schemas.catalog import MEDIA_FIELDS

logger = logging.getLogger(__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass
class IngestedMedia:
    download_url: str
    preview_url: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    preview_generated: bool = True

    def as_attributes(self, kind: ContentKind) -> Dict[str, Any]:
        """The URLs under the kind's attribute names, ready for create_item()."""
        fields = MEDIA_FIELDS[ContentKind(kind)]
        return {fields.preview: self.preview_url, fields.download: self.download_url}


def safe_filename(filename: str) -> str:
    cleaned = _UNSAFE_FILENAME_CHARS.sub("_", (filename or "").strip()).strip("._")
    return cleaned or "upload"


class MediaIngestor:
    def __init__(
        self,
        storage: ObjectStorage,
        processor: MediaProcessor,
        bucket: str = MEDIA_BUCKET,
    ):
        self.storage = storage
        self.processor = processor
        self.bucket = bucket

    def ingest(
        self,
        kind: ContentKind,
        raw: bytes,
        filename: str,
        content_type: str,
    ) -> IngestedMedia:
        """
        Store an uploaded original and its preview.

        Keys are "<kind>-downloads/<uuid>-<name>" and
        "<kind>-previews/<uuid>-<name>".

        Raises:
            InvalidInputError: empty upload
        """
        kind = ContentKind(kind)
        if not raw:
            raise InvalidInputError("Uploaded file is empty", details={"field": "file"})

        stem = f"{uuid.uuid4().hex}-{safe_filename(filename)}"
        download_url = self.storage.put(
            self.bucket, f"{kind.value}-downloads/{stem}", raw, content_type
        )

        preview_bytes = raw
        metadata: Dict[str, Any] = {}
        preview_generated = True
        try:
            processed = self.processor.process(raw, content_type)
            preview_bytes = processed.preview_bytes or raw
            metadata = dict(processed.metadata or {})
        except Exception as exc:
            preview_generated = False
            logger.warning(
                "media.preview_failed",
                extra={
                    "kind": kind.value,
                    "upload_name": filename,
                    "content_type": content_type,
                    "error": str(exc),
                },
            )

        preview_url = self.storage.put(
            self.bucket, f"{kind.value}-previews/{stem}", preview_bytes, content_type
        )

        logger.info(
            "media.ingested",
            extra={
                "kind": kind.value,
                "size": len(raw),
                "preview_generated": preview_generated,
            },
        )
        return IngestedMedia(
            download_url=download_url,
            preview_url=preview_url,
            metadata=metadata,
            preview_generated=preview_generated,
        )
