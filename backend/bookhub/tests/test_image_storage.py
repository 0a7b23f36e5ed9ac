import io
import os

import pytest
from fastapi import UploadFile
from starlette.datastructures import Headers

from bookhub.core.config import Settings
from bookhub.core.errors import ValidationFailed
from bookhub.services.image_storage import release_image, upload_cover_image
from conftest import PNG_BYTES, FakeImageStorage


def _upload_file(content, filename="cover.png", content_type="image/png"):
    return UploadFile(
        file=io.BytesIO(content),
        filename=filename,
        headers=Headers({"content-type": content_type}),
    )


def test_release_backs_off_between_attempts():
    storage = FakeImageStorage(fail_destroy=True)

    assert release_image(storage, "book-covers/cover-1", attempts=3, backoff_seconds=0.05) is False

    assert storage.destroy_calls == 3
    first_gap, second_gap = (
        later - earlier for earlier, later in zip(storage.destroy_times, storage.destroy_times[1:])
    )
    assert first_gap >= 0.045
    assert second_gap >= 0.09


def test_release_recovers_from_a_transient_failure():
    storage = FakeImageStorage(transient_failures=1)

    assert release_image(storage, "book-covers/cover-1", attempts=3, backoff_seconds=0.01) is True
    assert storage.destroy_calls == 2
    assert storage.destroyed == ["book-covers/cover-1"]


def test_release_without_public_id_does_nothing():
    storage = FakeImageStorage()
    assert release_image(storage, None) is True
    assert storage.destroy_calls == 0


def test_upload_stages_then_removes_the_file(tmp_path):
    storage = FakeImageStorage()
    settings = Settings(upload_dir=str(tmp_path))

    image = upload_cover_image(_upload_file(PNG_BYTES), storage, settings)

    assert image.public_id == "book-covers/cover-1"
    assert storage.uploads[0]["exists"] is True
    assert os.listdir(tmp_path) == []


@pytest.mark.parametrize(
    "content, message",
    [
        (b"", "Cover image is empty"),
        (PNG_BYTES + b"\x00" * (2 * 1024 * 1024), "Cover image must not exceed 2 MB"),
    ],
)
def test_upload_rejects_empty_and_oversized_files(tmp_path, content, message):
    storage = FakeImageStorage()
    settings = Settings(upload_dir=str(tmp_path), max_upload_bytes=2 * 1024 * 1024)

    with pytest.raises(ValidationFailed) as exc_info:
        upload_cover_image(_upload_file(content), storage, settings)

    assert exc_info.value.errors == {"image": message}
    assert storage.uploads == []
    assert os.listdir(tmp_path) == []


def test_upload_rejects_non_image_content_type(tmp_path):
    storage = FakeImageStorage()
    settings = Settings(upload_dir=str(tmp_path))

    with pytest.raises(ValidationFailed) as exc_info:
        upload_cover_image(_upload_file(b"%PDF-1.7", "cover.pdf", "application/pdf"), storage, settings)

    assert exc_info.value.errors == {"image": "Cover image must be an image file"}
    assert storage.uploads == []
