"""
Douban integration: subject metadata, gallery scraping and image discovery.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from douban_artwork.integrations.douban.client import (
        DelayedHttpFetcher,
        DoubanClientError,
        DoubanRequestError,
        DoubanSubjectClient,
        FetchFailed,
        MetadataUnavailable,
        RateLimitedFetcher,
        RequestCancelled,
        SubjectMetadataSource,
    )
    from douban_artwork.integrations.douban.images import (
        PROVIDER_NAME,
        BackdropDiscoverer,
        DoubanImageDiscovery,
        SubjectPosterResolver,
    )

_CLIENT_EXPORTS = {
    "DelayedHttpFetcher",
    "DoubanClientError",
    "DoubanRequestError",
    "DoubanSubjectClient",
    "FetchFailed",
    "MetadataUnavailable",
    "RateLimitedFetcher",
    "RequestCancelled",
    "SubjectMetadataSource",
}
_IMAGES_EXPORTS = {
    "PROVIDER_NAME",
    "BackdropDiscoverer",
    "DoubanImageDiscovery",
    "SubjectPosterResolver",
}

__all__ = sorted(_CLIENT_EXPORTS | _IMAGES_EXPORTS)


def __getattr__(name: str):
    if name in _CLIENT_EXPORTS:
        from douban_artwork.integrations.douban import client

        return getattr(client, name)
    if name in _IMAGES_EXPORTS:
        from douban_artwork.integrations.douban import images

        return getattr(images, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
