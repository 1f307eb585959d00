"""
Douban photo gallery scraping.

The gallery page for a subject lists each photo as an element carrying
`data-id="<digits>"` followed, a few tags later, by a `class="prop">` label
whose next line holds `WIDTHxHEIGHT`. The layout is fixed, so a single DOTALL
regex is used instead of an HTML parser.
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from dataclasses import dataclass

GALLERY_URL_TEMPLATE = (
    "https://movie.douban.com/subject/{subject_id}/photos?type=W&start=0&sortby=size&size=a&subtype=a"
)
BACKDROP_URL_TEMPLATE = "https://img9.doubanio.com/view/photo/l/public/p{data_id}.webp"

GALLERY_ENTRY_PATTERN = re.compile(r'(?s)data-id="(\d+)".*?class="prop">\n\s*(\d+)x(\d+)', re.ASCII)

# Width must exceed height by more than this factor to count as a backdrop.
BACKDROP_MIN_ASPECT_RATIO = 1.3


@dataclass(frozen=True)
class GalleryEntry:
    data_id: str
    width: str
    height: str

    @property
    def width_value(self) -> float:
        return float(self.width)

    @property
    def height_value(self) -> float:
        return float(self.height)


def build_gallery_url(subject_id: str) -> str:
    return GALLERY_URL_TEMPLATE.format(subject_id=subject_id)


def build_backdrop_url(data_id: str) -> str:
    return BACKDROP_URL_TEMPLATE.format(data_id=data_id)


def iter_gallery_entries(
    html: str,
    *,
    pattern: re.Pattern[str] = GALLERY_ENTRY_PATTERN,
) -> Iterator[GalleryEntry]:
    """Yield entries in document order; the pattern must capture id, width and height."""
    for match in pattern.finditer(html or ""):
        data_id, width, height = match.group(1, 2, 3)
        yield GalleryEntry(data_id=data_id, width=width, height=height)


def is_backdrop(entry: GalleryEntry, *, min_aspect_ratio: float = BACKDROP_MIN_ASPECT_RATIO) -> bool:
    return entry.width_value > entry.height_value * min_aspect_ratio
