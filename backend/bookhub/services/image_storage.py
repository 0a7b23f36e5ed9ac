"""
Cover image storage backed by Cloudinary.

Uploads are staged on local disk first (size and type checked there), pushed
to the image host and the staged copy is always removed. Releasing an image is
best-effort: it runs after the response as a background task, retries a few
times with exponential backoff and only ever logs failures.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
import logging
import os
from pathlib import Path
from typing import Optional
import uuid

import cloudinary
import cloudinary.uploader
from fastapi import UploadFile
from tenacity import Retrying, before_sleep_log, stop_after_attempt, wait_exponential

from bookhub.core.config import Settings
from bookhub.core.errors import ValidationFailed


logger = logging.getLogger(__name__)

_CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class UploadedImage:
    public_url: str
    public_id: str


class ImageStorage(ABC):
    """Interface of the external image host."""

    @abstractmethod
    def upload(
        self,
        file_path: str,
        folder: str,
        format_hint: Optional[str] = None,
        name_override: Optional[str] = None,
    ) -> UploadedImage:
        """
        Upload a local file and return its public location.

        Failures propagate; the operation that needed the image is aborted.
        """

    @abstractmethod
    def destroy(self, public_id: str) -> None:
        """Delete a previously uploaded image. Raises on failure."""


class CloudinaryImageStorage(ImageStorage):
    def __init__(self, settings: Settings):
        cloudinary.config(
            cloud_name=settings.cloudinary_cloud_name,
            api_key=settings.cloudinary_api_key,
            api_secret=settings.cloudinary_api_secret,
            secure=True,
        )

    def upload(
        self,
        file_path: str,
        folder: str,
        format_hint: Optional[str] = None,
        name_override: Optional[str] = None,
    ) -> UploadedImage:
        options = {"folder": folder, "resource_type": "image"}
        if format_hint:
            options["format"] = format_hint
        if name_override:
            options["filename_override"] = name_override
            options["use_filename"] = True
        result = cloudinary.uploader.upload(file_path, **options)
        return UploadedImage(public_url=result["secure_url"], public_id=result["public_id"])

    def destroy(self, public_id: str) -> None:
        result = cloudinary.uploader.destroy(public_id, resource_type="image")
        outcome = (result or {}).get("result")
        # "not found" means there is nothing left to release
        if outcome not in {"ok", "not found"}:
            raise RuntimeError(f"Cloudinary destroy returned {outcome!r} for {public_id}")


def upload_cover_image(image: UploadFile, storage: ImageStorage, settings: Settings) -> UploadedImage:
    """Validate, stage and upload a cover image received in a multipart request."""
    content_type = image.content_type or ""
    if not content_type.startswith("image/"):
        raise ValidationFailed({"image": "Cover image must be an image file"})

    staged = _stage_upload(image, settings)
    try:
        return storage.upload(
            str(staged),
            folder=settings.cover_image_folder,
            format_hint=content_type.split("/")[-1],
            name_override=image.filename,
        )
    finally:
        try:
            os.remove(staged)
        except OSError:
            logger.warning("Could not remove staged upload %s", staged)


def _stage_upload(image: UploadFile, settings: Settings) -> Path:
    upload_dir = Path(settings.upload_dir)
    upload_dir.mkdir(parents=True, exist_ok=True)
    target = upload_dir / f"{uuid.uuid4().hex}{Path(image.filename or '').suffix}"

    written = 0
    with open(target, "wb") as out:
        while True:
            chunk = image.file.read(_CHUNK_SIZE)
            if not chunk:
                break
            written += len(chunk)
            if written > settings.max_upload_bytes:
                break
            out.write(chunk)

    if written > settings.max_upload_bytes:
        os.remove(target)
        limit_mb = settings.max_upload_bytes // (1024 * 1024)
        raise ValidationFailed({"image": f"Cover image must not exceed {limit_mb} MB"})
    if written == 0:
        os.remove(target)
        raise ValidationFailed({"image": "Cover image is empty"})
    return target


def release_image(
    storage: ImageStorage,
    public_id: Optional[str],
    attempts: int = 3,
    backoff_seconds: float = 0.5,
) -> bool:
    """
    Best-effort deletion of an image from the host.

    Args:
        storage: Image host client
        public_id: Handle returned at upload time; ``None`` is a no-op
        attempts: Number of tries before giving up
        backoff_seconds: Wait before the first retry, doubled on each later one

    Returns:
        True if the image was released, False otherwise. Never raises.
    """
    if not public_id:
        return True
    retrying = Retrying(
        stop=stop_after_attempt(max(attempts, 1)),
        wait=wait_exponential(multiplier=backoff_seconds, min=backoff_seconds, max=30),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    try:
        retrying(storage.destroy, public_id)
    except Exception as exc:
        logger.error("Giving up releasing image %s; it is now orphaned on the image host: %s", public_id, exc)
        return False
    logger.info("Released image %s", public_id)
    return True
