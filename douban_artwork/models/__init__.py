from douban_artwork.models.images import (
    DoubanSubjectId,
    ImageCandidate,
    ImageKind,
    ItemType,
    MediaItem,
    SubjectMetadata,
    normalize_subject_id,
)

__all__ = [
    "DoubanSubjectId",
    "ImageCandidate",
    "ImageKind",
    "ItemType",
    "MediaItem",
    "SubjectMetadata",
    "normalize_subject_id",
]
