from __future__ import annotations

import logging
import threading

import requests

from douban_artwork.config import DoubanConfig
from douban_artwork.integrations.douban.client import DelayedHttpFetcher, DoubanClientError, DoubanSubjectClient
from douban_artwork.integrations.douban.images import (
    PROVIDER_NAME,
    BackdropDiscoverer,
    DoubanImageDiscovery,
    SubjectPosterResolver,
)
from douban_artwork.models.images import ImageCandidate, ImageKind, ItemType, MediaItem

logger = logging.getLogger(__name__)

DOUBAN_PROVIDER_ID = "DoubanID"

_SUPPORTED_ITEM_TYPES = frozenset({ItemType.MOVIE, ItemType.SERIES})
_SUPPORTED_IMAGES = (ImageKind.PRIMARY, ImageKind.BACKDROP)


class DoubanImageProvider:
    """
    Remote image provider for a media server library.

    Lookup failures are reported as "no images" to the host and logged with the
    subject id; use `DoubanImageDiscovery` directly to see the exceptions.
    """

    name = PROVIDER_NAME
    order = 3

    def __init__(self, discovery: DoubanImageDiscovery) -> None:
        self._discovery = discovery

    @property
    def discovery(self) -> DoubanImageDiscovery:
        return self._discovery

    @classmethod
    def from_config(cls, config: DoubanConfig, *, session: requests.Session | None = None) -> DoubanImageProvider:
        fetcher = DelayedHttpFetcher(
            session=session,
            min_delay_seconds=config.min_delay_seconds,
            max_delay_seconds=config.max_delay_seconds,
            max_attempts=config.max_attempts,
            timeout_seconds=config.timeout_seconds,
        )
        subjects = DoubanSubjectClient(fetcher, api_base_url=config.api_base_url, api_key=config.api_key)
        discovery = DoubanImageDiscovery(
            SubjectPosterResolver(subjects, provider_name=cls.name),
            BackdropDiscoverer(fetcher, provider_name=cls.name),
            partial_policy=config.partial_policy,
            concurrent=config.concurrent,
        )
        return cls(discovery)

    def supports(self, item: MediaItem) -> bool:
        return item.item_type in _SUPPORTED_ITEM_TYPES

    def get_supported_images(self, item: MediaItem) -> list[ImageKind]:
        return list(_SUPPORTED_IMAGES)

    def get_images(
        self,
        item: MediaItem,
        *,
        cancel_event: threading.Event | None = None,
    ) -> list[ImageCandidate]:
        sid = item.provider_id(DOUBAN_PROVIDER_ID)
        if sid is None:
            logger.warning("GetImages skipped, Douban subject id is empty: %s", item.name)
            return []

        try:
            return self._discovery.get_images(sid, cancel_event=cancel_event)
        except DoubanClientError as exc:
            logger.error(
                "GetImages failed for %s (Douban subject %s): %s",
                item.name,
                sid,
                exc,
                exc_info=True,
            )
            return []
