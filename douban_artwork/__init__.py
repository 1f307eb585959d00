"""
Douban artwork resolution library.

This package holds the image-discovery code reused by:
- host integrations in `douban_artwork.providers`
- CLI scripts in `scripts/`

Entry points (CLI scripts, host adapters) should import from `douban_artwork`
rather than the other way around.
"""
