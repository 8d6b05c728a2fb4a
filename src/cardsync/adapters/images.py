"""Card image processing: download from the catalog CDN, store in Cloud Storage."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING, Final, Literal

import httpx
from google.api_core import exceptions as api_exceptions
from google.cloud import storage

from cardsync.adapters.http_resilience import ResilienceConfig, ResilientClient
from cardsync.config.images import ImageStorageConfig, get_image_storage_config
from cardsync.domain.ports.images import CardImageProcessor, ImageResult
from cardsync.domain.reconciliation.normalize import sanitize_key

if TYPE_CHECKING:
    from collections.abc import Callable

log = getLogger(__name__)

MAX_IMAGE_BYTES: Final[int] = 10 * 1024 * 1024
CACHE_CONTROL: Final[str] = "public, max-age=31536000"
_RESIZE_MARKER = "/fit-in/"
_TIER_SIZES: Final[dict[str, str]] = {"400w": "437x437", "200w": "223x223"}

type Resolution = Literal["400w", "200w"]


class ImageUnavailableError(RuntimeError):
    """The source CDN refused to serve the image."""


class InvalidImageError(ValueError):
    """Downloaded bytes are not a JPEG or PNG image."""


def is_image_payload(data: bytes) -> bool:
    if len(data) < 4:  # noqa: PLR2004
        return False
    is_jpeg = data[:3] == b"\xff\xd8\xff"
    is_png = data[:4] == b"\x89PNG"
    return is_jpeg or is_png


def tier_url(source_url: str, resolution: Resolution) -> str:
    return source_url.replace(_RESIZE_MARKER, f"{_RESIZE_MARKER}{_TIER_SIZES[resolution]}/")


def _default_client_factory(config: ResilienceConfig) -> ResilientClient:
    return ResilientClient(config)


@dataclass(slots=True)
class CloudStorageImageProcessor:
    """Mirror catalog images into a bucket at two resolutions.

    Anything that goes wrong on the way ends in the placeholder image rather
    than an exception, so a missing picture never blocks a card update.
    """

    config: ImageStorageConfig
    bucket: storage.Bucket
    client_factory: Callable[[ResilienceConfig], ResilientClient] = field(
        default=_default_client_factory
    )

    async def process_and_store(
        self,
        source_url: str,
        *,
        record_id: str,
        edition_id: str,
        identifier_code: str,
    ) -> ImageResult:
        metadata: dict[str, object] = {
            "recordId": record_id,
            "groupId": edition_id,
            "lastUpdated": datetime.now(UTC).isoformat(),
            "contentType": "image/jpeg",
            "originalUrl": source_url,
        }
        if not self.is_valid_source(source_url):
            log.info("Invalid or missing image URL for card %s, using placeholder", record_id)
            return self._placeholder(metadata, "Invalid or missing image URL")

        paths = {
            resolution: self.object_path(edition_id, identifier_code, resolution)
            for resolution in _TIER_SIZES
        }
        try:
            exists = await asyncio.gather(*(self._exists(path) for path in paths.values()))
            if all(exists):
                log.debug("Using existing images for card %s", record_id)
                return self._result(paths, {**metadata, "existingImage": True})

            async with self.client_factory(self.config.resilience) as client:
                downloads = await asyncio.gather(
                    self._download(client, tier_url(source_url, "400w")),
                    self._download(client, tier_url(source_url, "200w")),
                )
            upload_metadata = {key: str(value) for key, value in metadata.items()}
            await asyncio.gather(
                *(
                    self._upload(path, data, upload_metadata)
                    for path, data in zip(paths.values(), downloads, strict=True)
                )
            )
        except ImageUnavailableError:
            log.info("Image not available from source for card %s: %s", record_id, source_url)
            return self._placeholder(metadata, "Image not available from source")
        except (InvalidImageError, httpx.HTTPError, api_exceptions.GoogleAPICallError) as exc:
            log.error("Failed to process images for card %s: %s", record_id, exc)
            return self._placeholder(metadata, "Image processing failed")

        return self._result(paths, metadata)

    def is_valid_source(self, url: str | None) -> bool:
        if not url:
            return False
        if any(marker in url for marker in self.config.rejected_markers):
            return False
        return any(pattern in url for pattern in self.config.valid_patterns)

    def object_path(self, edition_id: str, identifier_code: str, resolution: Resolution) -> str:
        return (
            f"{self.config.storage_path}/{edition_id}/{sanitize_key(identifier_code)}_{resolution}.jpg"
        )

    def _result(self, paths: dict[str, str], metadata: dict[str, object]) -> ImageResult:
        return ImageResult(
            high_res_url=self.config.public_url(paths["400w"]),
            low_res_url=self.config.public_url(paths["200w"]),
            metadata=metadata,
        )

    def _placeholder(self, metadata: dict[str, object], reason: str) -> ImageResult:
        return ImageResult(
            high_res_url=self.config.placeholder_url,
            low_res_url=self.config.placeholder_url,
            metadata={**metadata, "isPlaceholder": True, "errorMessage": reason},
        )

    async def _exists(self, path: str) -> bool:
        return await asyncio.to_thread(self.bucket.blob(path).exists)

    async def _download(self, client: ResilientClient, url: str) -> bytes:
        response = await client.get(url, headers={"accept": "image/jpeg,image/png,image/*"})
        if response.status_code == httpx.codes.FORBIDDEN:
            raise ImageUnavailableError(url)
        response.raise_for_status()
        data = response.content
        if len(data) > MAX_IMAGE_BYTES:
            raise InvalidImageError(f"Image at {url} exceeds {MAX_IMAGE_BYTES} bytes")
        if not is_image_payload(data):
            raise InvalidImageError(f"Image at {url} is neither JPEG nor PNG")
        return data

    async def _upload(self, path: str, data: bytes, metadata: dict[str, str]) -> None:
        blob = self.bucket.blob(path)
        blob.cache_control = CACHE_CONTROL
        blob.metadata = metadata
        await asyncio.to_thread(blob.upload_from_string, data, content_type="image/jpeg")
        log.debug("Uploaded %s (%d bytes)", path, len(data))


def create_image_processor(
    config: ImageStorageConfig | None = None,
) -> CloudStorageImageProcessor:
    resolved = config or get_image_storage_config()
    bucket = storage.Client().bucket(resolved.bucket_name)
    return CloudStorageImageProcessor(config=resolved, bucket=bucket)


if TYPE_CHECKING:
    _processor_check: CardImageProcessor = CloudStorageImageProcessor(
        config=ImageStorageConfig(bucket_name="bucket"), bucket=storage.Bucket(None, "bucket")
    )
