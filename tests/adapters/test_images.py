from __future__ import annotations

import asyncio
from collections.abc import Callable  # noqa: TC003
from typing import TYPE_CHECKING, cast

import httpx
import pytest

from cardsync.adapters.http_resilience import ResilienceConfig, ResilientClient
from cardsync.adapters.images import CloudStorageImageProcessor, is_image_payload, tier_url
from cardsync.config.images import PLACEHOLDER_IMAGE_URL, ImageStorageConfig

if TYPE_CHECKING:
    from google.cloud import storage

    from cardsync.domain.ports.images import ImageResult

SOURCE = "https://cdn.example/fit-in/images/cards/full/1-001H_eg.jpg"
JPEG = b"\xff\xd8\xff\xe0" + b"\x00" * 32
BASE = "https://storage.googleapis.com/bucket/card-images/23783"


class FakeBlob:
    def __init__(self, bucket: FakeBucket, name: str) -> None:
        self._bucket = bucket
        self.name = name
        self.cache_control: str | None = None
        self.metadata: dict[str, str] | None = None

    def exists(self) -> bool:
        return self.name in self._bucket.objects

    def upload_from_string(self, data: bytes, content_type: str) -> None:
        self._bucket.objects[self.name] = data
        self._bucket.uploads.append((self.name, content_type, self.metadata or {}))


class FakeBucket:
    def __init__(self, *existing: str) -> None:
        self.objects: dict[str, bytes] = dict.fromkeys(existing, b"")
        self.uploads: list[tuple[str, str, dict[str, str]]] = []

    def blob(self, name: str) -> FakeBlob:
        return FakeBlob(self, name)


def _make_client_factory(
    handler: Callable[[httpx.Request], httpx.Response],
) -> Callable[[ResilienceConfig], ResilientClient]:
    async def async_handler(request: httpx.Request) -> httpx.Response:
        return handler(request)

    def factory(resilience: ResilienceConfig) -> ResilientClient:
        client = ResilientClient(resilience)
        client._client = httpx.AsyncClient(transport=httpx.MockTransport(async_handler))  # noqa: SLF001  # type: ignore[reportPrivateUsage]
        return client

    return factory


def _processor(
    bucket: FakeBucket,
    handler: Callable[[httpx.Request], httpx.Response] | None = None,
) -> CloudStorageImageProcessor:
    def unreachable(request: httpx.Request) -> httpx.Response:
        raise AssertionError(f"unexpected request to {request.url}")

    return CloudStorageImageProcessor(
        config=ImageStorageConfig(bucket_name="bucket"),
        bucket=cast("storage.Bucket", bucket),
        client_factory=_make_client_factory(handler or unreachable),
    )


def _process(
    processor: CloudStorageImageProcessor, source: str = SOURCE, code: str = "1-001H"
) -> ImageResult:
    return asyncio.run(
        processor.process_and_store(
            source, record_id="100001", edition_id="23783", identifier_code=code
        )
    )


def test_image_payload_detection() -> None:
    assert is_image_payload(JPEG)
    assert is_image_payload(b"\x89PNG\r\n")
    assert not is_image_payload(b"<html>")
    assert not is_image_payload(b"\xff")


def test_tier_url_inserts_resize_dimensions() -> None:
    assert tier_url(SOURCE, "200w") == (
        "https://cdn.example/fit-in/223x223/images/cards/full/1-001H_eg.jpg"
    )
    plain = "https://cdn.example/images/cards/full/1-001H_eg.jpg"
    assert tier_url(plain, "400w") == plain


@pytest.mark.parametrize(
    "source",
    ["", "https://cdn.example/image-missing.svg", "https://elsewhere.example/card.jpg"],
)
def test_unusable_sources_get_the_placeholder(source: str) -> None:
    bucket = FakeBucket()

    result = _process(_processor(bucket), source=source)

    assert result.high_res_url == PLACEHOLDER_IMAGE_URL
    assert result.low_res_url == PLACEHOLDER_IMAGE_URL
    assert result.metadata["isPlaceholder"] is True
    assert bucket.uploads == []


def test_existing_objects_are_reused() -> None:
    bucket = FakeBucket(
        "card-images/23783/PR-012;1-001H_400w.jpg",
        "card-images/23783/PR-012;1-001H_200w.jpg",
    )

    result = _process(_processor(bucket), code="PR-012/1-001H")

    assert result.high_res_url == f"{BASE}/PR-012;1-001H_400w.jpg"
    assert result.low_res_url == f"{BASE}/PR-012;1-001H_200w.jpg"
    assert result.metadata["existingImage"] is True
    assert bucket.uploads == []


def test_both_tiers_are_downloaded_and_uploaded() -> None:
    requested: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requested.append(str(request.url))
        return httpx.Response(200, content=JPEG)

    bucket = FakeBucket()

    result = _process(_processor(bucket, handler))

    assert sorted(requested) == [
        "https://cdn.example/fit-in/223x223/images/cards/full/1-001H_eg.jpg",
        "https://cdn.example/fit-in/437x437/images/cards/full/1-001H_eg.jpg",
    ]
    assert result.high_res_url == f"{BASE}/1-001H_400w.jpg"
    assert result.low_res_url == f"{BASE}/1-001H_200w.jpg"
    uploads = {name: (content_type, metadata) for name, content_type, metadata in bucket.uploads}
    assert set(uploads) == {
        "card-images/23783/1-001H_400w.jpg",
        "card-images/23783/1-001H_200w.jpg",
    }
    content_type, metadata = uploads["card-images/23783/1-001H_400w.jpg"]
    assert content_type == "image/jpeg"
    assert metadata["recordId"] == "100001"
    assert metadata["originalUrl"] == SOURCE


@pytest.mark.parametrize(
    ("status", "content", "reason"),
    [
        (403, b"", "Image not available from source"),
        (200, b"<html>not an image</html>", "Image processing failed"),
        (404, b"", "Image processing failed"),
    ],
)
def test_download_failures_fall_back_to_the_placeholder(
    status: int, content: bytes, reason: str
) -> None:
    bucket = FakeBucket()

    result = _process(
        _processor(bucket, lambda _request: httpx.Response(status, content=content))
    )

    assert result.high_res_url == PLACEHOLDER_IMAGE_URL
    assert result.metadata["errorMessage"] == reason
    assert bucket.uploads == []
