"""
External catalog integrations.

Catalog clients live under this namespace so they stay decoupled from host
adapters (`douban_artwork.providers`) and CLI scripts (`scripts/`).
"""
