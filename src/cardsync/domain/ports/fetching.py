"""Ports for fetching the reference catalog."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from cardsync.domain.model import CanonicalCard


class CatalogFetchError(RuntimeError):
    """Raised when the reference catalog cannot be retrieved or parsed."""


@runtime_checkable
class CatalogFetcher(Protocol):
    """Port for retrieving every card the reference catalog currently lists."""

    async def fetch_all(self) -> list[CanonicalCard]: ...


__all__ = ["CatalogFetchError", "CatalogFetcher"]
