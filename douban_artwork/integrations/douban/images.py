"""
Poster and backdrop discovery for Douban subjects.

`DoubanImageDiscovery.get_images()` returns the subject's poster (Primary)
followed by the landscape photos of its first gallery page (Backdrop).
Collaborators are injected; nothing here talks to the network directly.
"""

from __future__ import annotations

import logging
import re
import threading
from concurrent.futures import ThreadPoolExecutor

from douban_artwork.config import PartialFailurePolicy
from douban_artwork.integrations.douban.client import (
    DoubanClientError,
    FetchFailed,
    MetadataUnavailable,
    RateLimitedFetcher,
    RequestCancelled,
    SubjectMetadataSource,
)
from douban_artwork.integrations.douban.gallery import (
    BACKDROP_MIN_ASPECT_RATIO,
    GALLERY_ENTRY_PATTERN,
    build_backdrop_url,
    build_gallery_url,
    is_backdrop,
    iter_gallery_entries,
)
from douban_artwork.models.images import DoubanSubjectId, ImageCandidate, ImageKind, normalize_subject_id

logger = logging.getLogger(__name__)

PROVIDER_NAME = "Douban Image Provider"


class SubjectPosterResolver:
    def __init__(self, metadata_source: SubjectMetadataSource, *, provider_name: str = PROVIDER_NAME) -> None:
        self._metadata_source = metadata_source
        self._provider_name = provider_name

    def resolve_primary(
        self,
        subject_id: DoubanSubjectId,
        *,
        cancel_event: threading.Event | None = None,
    ) -> list[ImageCandidate]:
        try:
            subject = self._metadata_source.get_subject(subject_id, cancel_event=cancel_event)
        except (MetadataUnavailable, RequestCancelled):
            raise
        except (DoubanClientError, ValueError) as exc:
            raise MetadataUnavailable(subject_id, f"Douban subject {subject_id} unavailable: {exc}") from exc

        if not subject.large_poster_url:
            raise MetadataUnavailable(subject_id, f"Douban subject {subject_id} has no large poster image.")

        return [
            ImageCandidate(
                provider_name=self._provider_name,
                url=subject.large_poster_url,
                kind=ImageKind.PRIMARY,
            )
        ]


class BackdropDiscoverer:
    def __init__(
        self,
        fetcher: RateLimitedFetcher,
        *,
        provider_name: str = PROVIDER_NAME,
        pattern: re.Pattern[str] = GALLERY_ENTRY_PATTERN,
        min_aspect_ratio: float = BACKDROP_MIN_ASPECT_RATIO,
    ) -> None:
        self._fetcher = fetcher
        self._provider_name = provider_name
        self._pattern = pattern
        self._min_aspect_ratio = min_aspect_ratio

    def discover_backdrops(
        self,
        subject_id: DoubanSubjectId,
        *,
        cancel_event: threading.Event | None = None,
    ) -> list[ImageCandidate]:
        url = build_gallery_url(subject_id)
        try:
            html = self._fetcher.get(url, cancel_event=cancel_event)
        except (FetchFailed, RequestCancelled):
            raise
        except DoubanClientError as exc:
            raise FetchFailed(
                url,
                f"Douban gallery fetch failed for {subject_id}: {exc}",
                status_code=exc.status_code,
                body_snippet=exc.body_snippet,
            ) from exc

        return self.parse_backdrops(html)

    def parse_backdrops(self, html: str) -> list[ImageCandidate]:
        backdrops: list[ImageCandidate] = []
        for entry in iter_gallery_entries(html, pattern=self._pattern):
            logger.info("Found backdrop id %s, size %sx%s", entry.data_id, entry.width, entry.height)
            if not is_backdrop(entry, min_aspect_ratio=self._min_aspect_ratio):
                continue
            backdrops.append(
                ImageCandidate(
                    provider_name=self._provider_name,
                    url=build_backdrop_url(entry.data_id),
                    kind=ImageKind.BACKDROP,
                )
            )
        return backdrops


class DoubanImageDiscovery:
    """
    Combines poster and backdrop lookups for one subject.

    With `PartialFailurePolicy.FAIL_FAST` a failure in either lookup fails the
    whole call. `RETURN_PARTIAL` logs the failure and keeps the other half.
    Cancellation is never downgraded by the policy.
    """

    def __init__(
        self,
        poster_resolver: SubjectPosterResolver,
        backdrop_discoverer: BackdropDiscoverer,
        *,
        partial_policy: PartialFailurePolicy = PartialFailurePolicy.FAIL_FAST,
        concurrent: bool = False,
    ) -> None:
        self._poster_resolver = poster_resolver
        self._backdrop_discoverer = backdrop_discoverer
        self._partial_policy = partial_policy
        self._concurrent = concurrent

    @property
    def partial_policy(self) -> PartialFailurePolicy:
        return self._partial_policy

    @property
    def concurrent(self) -> bool:
        return self._concurrent

    def get_images(
        self,
        subject_id: str | None,
        *,
        cancel_event: threading.Event | None = None,
    ) -> list[ImageCandidate]:
        sid = normalize_subject_id(subject_id)
        if sid is None:
            logger.warning("Skipping image lookup: Douban subject id is empty.")
            return []

        if self._concurrent:
            with ThreadPoolExecutor(max_workers=2) as pool:
                primary_future = pool.submit(
                    self._guarded, self._poster_resolver.resolve_primary, sid, cancel_event
                )
                backdrop_future = pool.submit(
                    self._guarded, self._backdrop_discoverer.discover_backdrops, sid, cancel_event
                )
                primary = primary_future.result()
                backdrops = backdrop_future.result()
        else:
            primary = self._guarded(self._poster_resolver.resolve_primary, sid, cancel_event)
            backdrops = self._guarded(self._backdrop_discoverer.discover_backdrops, sid, cancel_event)

        return [*primary, *backdrops]

    def _guarded(self, lookup, subject_id: DoubanSubjectId, cancel_event: threading.Event | None) -> list[ImageCandidate]:  # noqa: ANN001
        try:
            return lookup(subject_id, cancel_event=cancel_event)
        except RequestCancelled:
            raise
        except DoubanClientError as exc:
            if self._partial_policy is PartialFailurePolicy.FAIL_FAST:
                raise
            logger.warning("Douban %s lookup failed for subject %s: %s", type(exc).__name__, subject_id, exc)
            return []
