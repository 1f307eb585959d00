from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

DoubanSubjectId = str  # e.g. "1292052"


class ImageKind(str, Enum):
    PRIMARY = "Primary"
    BACKDROP = "Backdrop"


class ItemType(str, Enum):
    MOVIE = "Movie"
    SERIES = "Series"
    SEASON = "Season"
    EPISODE = "Episode"
    PERSON = "Person"
    OTHER = "Other"


@dataclass(frozen=True)
class ImageCandidate:
    """One remote image offered to the host; duplicates are not collapsed."""

    provider_name: str
    url: str
    kind: ImageKind

    def to_dict(self) -> dict[str, str]:
        return {
            "provider_name": self.provider_name,
            "url": self.url,
            "type": self.kind.value,
        }


@dataclass(frozen=True)
class SubjectMetadata:
    """
    Subset of a Douban subject record.

    Only `large_poster_url` feeds image discovery; the rest is kept for callers
    and debugging.
    """

    subject_id: DoubanSubjectId
    large_poster_url: str | None
    title: str | None = None
    original_title: str | None = None
    year: int | None = None
    raw: Mapping[str, Any] | None = None


@dataclass(frozen=True)
class MediaItem:
    """Host library entity as seen by the image provider."""

    name: str
    item_type: ItemType
    provider_ids: Mapping[str, str] = field(default_factory=dict)

    def provider_id(self, provider: str) -> str | None:
        return normalize_subject_id(self.provider_ids.get(provider))


def normalize_subject_id(value: Any) -> DoubanSubjectId | None:
    if value is None:
        return None
    stripped = str(value).strip()
    return stripped or None
