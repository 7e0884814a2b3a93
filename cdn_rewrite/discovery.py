"""Asset and page discovery for CDN Rewrite.

Finds image files under the configured asset directories and HTML pages
under the publish directory.
"""

from pathlib import Path

from .models import AssetReference
from .storage import normalize_publish_path, publish_path_for
from .utils import is_html_page, is_supported_image


def find_assets_by_path(publish_dir: Path, images_path: str | list[str] | tuple[str, ...]) -> list[AssetReference]:
    """Find image assets under one or more asset directories.

    Directories that overlap yield each asset once, in first-seen order.

    Args:
        publish_dir: Site publish directory
        images_path: Rooted directory or directories relative to publish_dir

    Returns:
        AssetReferences sorted by publish path within each directory
    """
    if isinstance(images_path, str):
        images_path = [images_path]

    assets = []
    seen = set()

    for media_path in images_path:
        directory = publish_dir / normalize_publish_path(media_path).lstrip("/")
        if not directory.is_dir():
            continue

        files = sorted(
            (p for p in directory.rglob("*") if p.is_file() and is_supported_image(p)),
            key=lambda p: p.as_posix(),
        )
        for file_path in files:
            publish_path = publish_path_for(file_path, publish_dir)
            if publish_path not in seen:
                assets.append(AssetReference(publish_path=publish_path))
                seen.add(publish_path)

    return assets


def find_pages(publish_dir: Path) -> list[Path]:
    """Find all HTML pages under the publish directory.

    Args:
        publish_dir: Site publish directory

    Returns:
        Sorted list of page paths
    """
    return sorted(p for p in publish_dir.rglob("*") if p.is_file() and is_html_page(p))
