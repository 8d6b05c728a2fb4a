"""Card image storage configuration values."""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from .env import require_env_vars
from .http_resilience import ResilienceConfig

PLACEHOLDER_IMAGE_URL = "https://fftcgcompanion.com/card-images/image-coming-soon.jpeg"
DEFAULT_STORAGE_PATH = "card-images"
DEFAULT_VALID_IMAGE_PATTERNS: tuple[str, ...] = (
    "_200w.",
    "_400w.",
    "_1000x1000.",
    "/images/cards/",
)
REJECTED_IMAGE_MARKERS: tuple[str, ...] = ("image-missing.svg",)


@dataclass(frozen=True, slots=True)
class ImageStorageConfig:
    """Where processed card images live and how their public URLs are built."""

    bucket_name: str
    storage_path: str = DEFAULT_STORAGE_PATH
    public_base_url: str | None = None
    placeholder_url: str = PLACEHOLDER_IMAGE_URL
    valid_patterns: tuple[str, ...] = DEFAULT_VALID_IMAGE_PATTERNS
    rejected_markers: tuple[str, ...] = REJECTED_IMAGE_MARKERS
    resilience: ResilienceConfig = field(default_factory=lambda: ResilienceConfig(name="images"))

    def public_url(self, object_path: str) -> str:
        base = self.public_base_url or f"https://storage.googleapis.com/{self.bucket_name}"
        return f"{base.rstrip('/')}/{object_path}"


def get_image_storage_config() -> ImageStorageConfig:
    values = require_env_vars(("IMAGE_BUCKET",))
    return ImageStorageConfig(
        bucket_name=values["IMAGE_BUCKET"],
        storage_path=os.getenv("IMAGE_STORAGE_PATH") or DEFAULT_STORAGE_PATH,
        public_base_url=os.getenv("IMAGE_PUBLIC_BASE_URL") or None,
    )
