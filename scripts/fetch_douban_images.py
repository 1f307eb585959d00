#!/usr/bin/env python3
from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import sys

from douban_artwork.config import DoubanConfig, PartialFailurePolicy
from douban_artwork.integrations.douban.client import DoubanClientError
from douban_artwork.models.images import ImageKind
from douban_artwork.providers.image_provider import DoubanImageProvider
from douban_artwork.utils.env import load_env

logger = logging.getLogger("fetch_douban_images")


def _parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="fetch_douban_images",
        description="Print poster and backdrop image URLs for a Douban subject as JSON.",
    )
    parser.add_argument("subject_id", help="Douban subject id (e.g. 1292052).")
    only = parser.add_mutually_exclusive_group()
    only.add_argument("--primary-only", action="store_true", help="Only print the poster image.")
    only.add_argument("--backdrops-only", action="store_true", help="Only print backdrop images.")
    parser.add_argument(
        "--partial",
        action="store_true",
        help="Return whichever lookup succeeded instead of failing the whole call.",
    )
    parser.add_argument("--concurrent", action="store_true", help="Run poster and backdrop lookups in parallel.")
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging.")
    return parser.parse_args(argv)


def _build_config(args: argparse.Namespace) -> DoubanConfig:
    config = DoubanConfig.from_env()
    overrides: dict[str, object] = {}
    if args.partial:
        overrides["partial_policy"] = PartialFailurePolicy.RETURN_PARTIAL
    if args.concurrent:
        overrides["concurrent"] = True
    return dataclasses.replace(config, **overrides) if overrides else config


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(sys.argv[1:] if argv is None else argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    env_path = load_env()
    if env_path is not None:
        logger.info("Loaded settings from %s", env_path)

    try:
        config = _build_config(args)
    except RuntimeError as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return 2

    provider = DoubanImageProvider.from_config(config)
    try:
        images = provider.discovery.get_images(args.subject_id)
    except DoubanClientError as exc:
        print(f"Douban lookup failed for {args.subject_id}: {exc}", file=sys.stderr)
        return 1

    if args.primary_only:
        images = [image for image in images if image.kind is ImageKind.PRIMARY]
    elif args.backdrops_only:
        images = [image for image in images if image.kind is ImageKind.BACKDROP]

    logger.info("subject=%s images=%s", args.subject_id, len(images))
    print(json.dumps([image.to_dict() for image in images], ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
