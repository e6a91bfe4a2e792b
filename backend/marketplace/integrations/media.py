"""
Media processing contract.

A processor turns an uploaded original into a preview rendition
(watermarked, downscaled or truncated, depending on the kind) and reports
whatever metadata it could read (dimensions, duration, bitrate, ...).
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Protocol


@dataclass
class ProcessedMedia:
    preview_bytes: bytes
    metadata: Dict[str, Any] = field(default_factory=dict)


class MediaProcessor(Protocol):
    def process(self, raw: bytes, content_type: str) -> ProcessedMedia:
        """Raise any exception to signal the preview could not be produced."""
        ...
