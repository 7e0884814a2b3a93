"""Data models for CDN Rewrite.

Contains data classes for asset references, transformations, resolved assets,
redirect rules, run errors and the validated run settings.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Optional, Union


DeliveryType = Literal["fetch", "upload"]
ErrorSource = Literal["resolution", "rewrite"]


@dataclass(frozen=True)
class MaxSize:
    """Sizing constraints applied to every delivered image.

    Attributes:
        width: Maximum width in pixels
        height: Maximum height in pixels
        dpr: Device pixel ratio (number or numeric string, passed through verbatim)
        crop: Named crop strategy (default: limit, when any sizing field is set)
    """
    width: Optional[Union[int, str]] = None
    height: Optional[Union[int, str]] = None
    dpr: Optional[Union[float, int, str]] = None
    crop: Optional[str] = None

    @property
    def has_sizing(self) -> bool:
        return any(v is not None for v in (self.width, self.height, self.dpr))


@dataclass(frozen=True)
class TransformationSpec:
    """Ordered transformation parameters embedded in a delivery URL.

    Attributes:
        defaults: Format/quality parameters, always first
        sizing: Crop and sizing parameters in lexical order
    """
    defaults: tuple[str, ...] = ("f_auto", "q_auto")
    sizing: tuple[str, ...] = ()

    def serialize(self) -> str:
        groups = [",".join(self.defaults)]
        if self.sizing:
            groups.append(",".join(self.sizing))
        return "/".join(groups)

    def __str__(self) -> str:
        return self.serialize()


@dataclass(frozen=True)
class AssetReference:
    """One discovered or referenced asset.

    Attributes:
        publish_path: Path relative to the publish root, always rooted at /
        original_path: Path exactly as it appeared in the source HTML
    """
    publish_path: str
    original_path: str = ""

    def __post_init__(self):
        if not self.publish_path.startswith("/"):
            raise ValueError(f"Publish path must be rooted at /: {self.publish_path}")
        if not self.original_path:
            object.__setattr__(self, "original_path", self.publish_path)


@dataclass(frozen=True)
class ResolvedAsset:
    """Result of resolving an asset to its CDN URL.

    Attributes:
        publish_path: Path relative to the publish root
        cloudinary_url: Final CDN delivery URL
        shadow_path: On-origin path serving the original (fetch mode only)
        public_id: Stable public identifier (upload mode only)
    """
    publish_path: str
    cloudinary_url: str
    shadow_path: Optional[str] = None
    public_id: Optional[str] = None


@dataclass(frozen=True)
class RedirectRule:
    """A single redirect rule for the host router."""
    from_path: str
    to: str
    status: int = 302
    force: bool = False

    def to_line(self) -> str:
        status = f"{self.status}!" if self.force else str(self.status)
        return f"{self.from_path}  {self.to}  {status}"


@dataclass(frozen=True)
class UploadResult:
    """Result of pushing an asset to CDN storage.

    Attributes:
        public_id: Identifier assigned by the CDN
        delivery_url: Untransformed delivery URL reported by the CDN
        version: Asset version reported by the CDN, if any
    """
    public_id: str
    delivery_url: str
    version: Optional[str] = None


@dataclass(frozen=True)
class RunError:
    """A recoverable error recorded during a run."""
    source: ErrorSource
    detail: str
    page: Optional[str] = None


@dataclass(frozen=True)
class StatusPayload:
    """End-of-run status shown by the host."""
    title: str
    summary: str
    text: str


@dataclass(frozen=True)
class Settings:
    """Validated configuration for one delivery run.

    Attributes:
        cloud_name: Cloudinary cloud (account) name
        delivery_type: fetch or upload
        folder: Target folder on the CDN, also the public ID prefix
        publish_dir: Directory holding the built site
        images_path: Rooted asset directories under the publish dir
        max_size: Optional sizing constraints
        host: Public origin of the site, used for fetch delivery
        api_key: Cloudinary API key (signed uploads)
        api_secret: Cloudinary API secret (signed uploads)
        upload_preset: Preset for unsigned uploads
        cname: Custom delivery domain
        private_cdn: Use the account's private CDN distribution
        loading_strategy: Value for the img loading attribute, if any
    """
    cloud_name: str
    delivery_type: DeliveryType
    folder: str
    publish_dir: Path
    images_path: tuple[str, ...] = ("/images",)
    max_size: Optional[MaxSize] = None
    host: Optional[str] = None
    api_key: Optional[str] = None
    api_secret: Optional[str] = None
    upload_preset: Optional[str] = None
    cname: Optional[str] = None
    private_cdn: bool = False
    loading_strategy: Optional[str] = None

    @property
    def can_sign_upload(self) -> bool:
        return bool(self.api_key and self.api_secret)
