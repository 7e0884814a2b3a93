"""Path and identifier helpers for CDN Rewrite.

Handles publish path normalization, public ID generation, shadow path
generation and resolution of page-relative references.
"""

import posixpath
from pathlib import Path, PurePosixPath
from urllib.parse import unquote


# Prefix of the on-origin paths the CDN fetches originals from
PUBLIC_ASSET_PATH = "cld-assets"


def normalize_publish_path(path: str) -> str:
    """Normalize a path to be rooted at / with no dot segments.

    Args:
        path: Path relative to the publish root (leading slash optional)

    Returns:
        Normalized path (e.g., images/../img/cat.png -> /img/cat.png)
    """
    normalized = posixpath.normpath("/" + path.replace("\\", "/").lstrip("/"))
    # normpath keeps a leading double slash
    return "/" + normalized.lstrip("/")


def publish_path_for(file_path: Path, publish_dir: Path) -> str:
    """Get the publish path of a file inside the publish directory.

    Args:
        file_path: Path to a file under publish_dir
        publish_dir: Site publish directory

    Returns:
        Rooted publish path (e.g., /images/cat.png)
    """
    relative = file_path.relative_to(publish_dir)
    return normalize_publish_path(relative.as_posix())


def resolve_page_reference(ref: str, page_path: str) -> str:
    """Resolve a reference found in a page to a publish path.

    Query strings and fragments are dropped and percent-escapes decoded,
    so the result matches the file name on disk.

    Args:
        ref: Local reference (relative or rooted)
        page_path: Publish path of the page containing the reference

    Returns:
        Rooted publish path of the referenced asset
    """
    ref = unquote(ref.split("#", 1)[0].split("?", 1)[0])

    if ref.startswith("/"):
        return normalize_publish_path(ref)

    page_dir = posixpath.dirname(normalize_publish_path(page_path))
    return normalize_publish_path(posixpath.join(page_dir, ref))


def build_public_id(folder: str, publish_path: str) -> str:
    """Build a stable public ID for an uploaded asset.

    The same folder and publish path always give the same ID, so repeated
    runs reuse the stored asset. The extension is kept as a _<ext> suffix, so
    hero.png and hero.svg stay distinct assets.

    Args:
        folder: Target folder on the CDN
        publish_path: Rooted publish path of the asset

    Returns:
        Public ID (e.g., cool-site/images/cat_png)
    """
    path = PurePosixPath(normalize_publish_path(publish_path))
    stem = str(path.with_suffix(""))
    if path.suffix:
        stem = f"{stem}_{path.suffix[1:]}"
    folder = folder.strip("/")
    if not folder:
        return stem.lstrip("/")
    return f"{folder}{stem}"


def build_shadow_path(publish_path: str) -> str:
    """Build the on-origin path that keeps serving the original asset.

    Args:
        publish_path: Rooted publish path or asset directory

    Returns:
        Shadow path (e.g., /images/cat.png -> /cld-assets/images/cat.png)
    """
    return f"/{PUBLIC_ASSET_PATH}{normalize_publish_path(publish_path)}"
