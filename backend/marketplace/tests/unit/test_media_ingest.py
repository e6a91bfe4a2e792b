"""Media ingestion tests."""

import pytest

from conftest import FakeProcessor, FakeStorage
from marketplace.models.catalog import ContentKind
from marketplace.platform.errors import InvalidInputError
from marketplace.services.media_ingest import MediaIngestor, safe_filename


def test_uploads_original_and_processed_preview():
    storage = FakeStorage()
    ingestor = MediaIngestor(storage, FakeProcessor(), bucket="media")

    media = ingestor.ingest(ContentKind.PICTURE, b"raw-bytes", "beach photo.png", "image/png")

    assert media.preview_generated is True
    assert media.metadata == {"width": 640}
    assert "/media/picture-downloads/" in media.download_url
    assert "/media/picture-previews/" in media.preview_url
    assert media.download_url.endswith("-beach_photo.png")
    previews = [k for k in storage.objects if "picture-previews/" in k]
    assert storage.objects[previews[0]] == b"preview:raw-bytes"


def test_processor_failure_falls_back_to_original():
    storage = FakeStorage()
    ingestor = MediaIngestor(storage, FakeProcessor(fail=True), bucket="media")

    media = ingestor.ingest(ContentKind.AUDIO, b"raw-audio", "song.mp3", "audio/mpeg")

    assert media.preview_generated is False
    assert media.metadata == {}
    previews = [k for k in storage.objects if "audio-previews/" in k]
    assert storage.objects[previews[0]] == b"raw-audio"


def test_as_attributes_uses_kind_field_names():
    ingestor = MediaIngestor(FakeStorage(), FakeProcessor(), bucket="media")

    media = ingestor.ingest(ContentKind.VIDEO, b"raw", "clip.mp4", "video/mp4")
    attributes = media.as_attributes(ContentKind.VIDEO)

    assert attributes == {
        "preview_video_url": media.preview_url,
        "download_video_url": media.download_url,
    }


def test_empty_upload_rejected():
    ingestor = MediaIngestor(FakeStorage(), FakeProcessor(), bucket="media")

    with pytest.raises(InvalidInputError):
        ingestor.ingest(ContentKind.PICTURE, b"", "empty.png", "image/png")


@pytest.mark.parametrize("name,expected", [
    ("photo.png", "photo.png"),
    ("../../etc/passwd", "etc_passwd"),
    ("", "upload"),
])
def test_safe_filename(name, expected):
    assert safe_filename(name) == expected
