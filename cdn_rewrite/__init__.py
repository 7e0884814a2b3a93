"""CDN Rewrite - Serve a static site's images from Cloudinary.

Rewrites image references in published HTML and plans redirect rules so
images are delivered by Cloudinary, by remote fetch or by upload.
"""

__version__ = "0.1.0"
__author__ = "CDN Rewrite"

from .models import AssetReference, ResolvedAsset, RedirectRule, Settings, TransformationSpec

__all__ = [
    "__version__",
    "AssetReference",
    "ResolvedAsset",
    "RedirectRule",
    "Settings",
    "TransformationSpec",
]
