"""Batch entry point: generate every hairstyle for one photo.

Usage:
    # All women's styles, two at a time, saved under ./out
    stylestudio photo.jpg --category female --out out

    # Men's styles, four concurrent requests, debug logging
    stylestudio photo.png --category male --out out --concurrency 4 -v
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from config.settings import settings
from .errors import AlbumIncomplete, StudioError
from .model import Category
from .utils import encode_data_uri, file_extension, image_bytes, image_from_file, safe_filename
from .worker import StyleOrchestrator

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False):
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


async def run_batch(orchestrator: StyleOrchestrator, photo: Path, category: Category, out_dir: Path) -> int:
    """Run one generation pass and write results. Returns the number of failed styles."""
    source = image_from_file(photo)
    await orchestrator.start_run(category, encode_data_uri(source))

    out_dir.mkdir(parents=True, exist_ok=True)
    failed = 0
    for label, item in orchestrator.items().items():
        if item.status == "done" and item.image is not None:
            path = out_dir / f"hairstyle-studio-{safe_filename(label)}.{file_extension(item.image)}"
            path.write_bytes(image_bytes(item.image))
            print(f"  {label}: OK -> {path}")
        else:
            failed += 1
            print(f"  {label}: FAIL: {item.error_message}")

    try:
        album = orchestrator.album()
    except AlbumIncomplete as e:
        logger.warning("Album skipped: %s", e)
    else:
        album_path = out_dir / "hairstyle-studio-album.jpg"
        album_path.write_bytes(image_bytes(album))
        print(f"Album -> {album_path}")
    return failed


def main(argv=None):
    parser = argparse.ArgumentParser(description="Try modern hairstyles on a photo")
    parser.add_argument("photo", type=Path, help="Source photo (png, jpeg, webp)")
    parser.add_argument(
        "--category", choices=[c.value for c in Category], required=True,
        help="Which hairstyle set to generate",
    )
    parser.add_argument("--out", type=Path, default=Path("output"), help="Output directory")
    parser.add_argument(
        "--concurrency", type=int, default=settings.CONCURRENCY_LIMIT,
        help="Concurrent generation requests",
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args(argv)
    if args.concurrency < 1:
        parser.error("--concurrency must be at least 1")

    setup_logging(args.verbose)

    try:
        orchestrator = StyleOrchestrator.from_settings(settings)
        orchestrator.concurrency_limit = args.concurrency
        failed = asyncio.run(run_batch(orchestrator, args.photo, Category(args.category), args.out))
    except (StudioError, OSError) as e:
        logger.error("%s", e)
        sys.exit(1)

    if failed:
        sys.exit(2)


if __name__ == "__main__":
    main()
