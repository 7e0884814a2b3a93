"""Cloudinary backend and delivery URL building.

Manages Cloudinary SDK configuration, signed and unsigned uploads,
connection checks, and delivery URL generation.
"""

from pathlib import Path
from typing import Any, Protocol
from urllib.parse import quote

import cloudinary
import cloudinary.api
import cloudinary.exceptions
import cloudinary.uploader

from .models import DeliveryType, Settings, TransformationSpec, UploadResult


SHARED_CDN = "res.cloudinary.com"

# Characters encodeURI leaves alone, minus ? and # which would end the source
FETCH_SAFE_CHARS = "/:@&=+$,;-_.!~*'()%"


class CdnBackend(Protocol):
    """Capability the resolver needs from the CDN."""

    def upload(self, file_path: Path, options: dict[str, Any]) -> UploadResult:
        ...

    def build_url(
        self,
        identifier: str,
        transformation: TransformationSpec,
        delivery_type: DeliveryType,
        version: str | None = None,
    ) -> str:
        ...


def escape_fetch_source(url: str) -> str:
    """Percent-escape a remote URL for use as a fetch source.

    Existing escapes are kept, so escaping twice is a no-op.

    Args:
        url: Absolute remote URL

    Returns:
        Escaped URL
    """
    return quote(url, safe=FETCH_SAFE_CHARS)


def build_delivery_url(
    source: str,
    transformation: TransformationSpec,
    *,
    cloud_name: str,
    delivery_type: DeliveryType,
    private_cdn: bool = False,
    cname: str | None = None,
    version: str | None = None,
    resource_type: str = "image",
) -> str:
    """Build a Cloudinary delivery URL. Pure string construction.

    Args:
        source: Public ID (upload) or remote URL (fetch)
        transformation: Transformation spec to embed
        cloud_name: Cloudinary cloud name
        delivery_type: fetch or upload
        private_cdn: Use <cloud>-res.cloudinary.com
        cname: Custom delivery domain, takes priority over private_cdn
        version: Asset version, prefixed with v
        resource_type: Resource type segment

    Returns:
        Delivery URL, e.g.
        https://res.cloudinary.com/demo/image/fetch/f_auto,q_auto/https://example.com/a.png
    """
    if cname:
        prefix = f"https://{cname.strip('/')}"
    elif private_cdn:
        prefix = f"https://{cloud_name}-res.cloudinary.com"
    else:
        prefix = f"https://{SHARED_CDN}/{cloud_name}"

    if delivery_type == "fetch":
        source = escape_fetch_source(source)
    else:
        source = quote(source.lstrip("/"), safe="/")

    parts = [prefix, resource_type, delivery_type, transformation.serialize()]
    if version:
        parts.append(f"v{version}")
    parts.append(source)

    return "/".join(parts)


def init_cloudinary(settings: Settings) -> Any:
    """Configure the Cloudinary SDK for this run.

    Args:
        settings: Validated run settings

    Returns:
        The SDK configuration object
    """
    cloudinary.config(
        cloud_name=settings.cloud_name,
        api_key=settings.api_key,
        api_secret=settings.api_secret,
        secure=True,
        private_cdn=settings.private_cdn,
        secure_distribution=settings.cname,
    )
    return cloudinary.config()


class CloudinaryBackend:
    """CdnBackend backed by the Cloudinary SDK."""

    def __init__(self, settings: Settings):
        self.settings = settings
        init_cloudinary(settings)

    def upload(self, file_path: Path, options: dict[str, Any]) -> UploadResult:
        """Upload a file, signed when credentials exist, else with the preset.

        Args:
            file_path: Local file to upload
            options: Upload options (public_id, overwrite, resource_type)

        Returns:
            UploadResult with the stored public ID
        """
        if not file_path.exists():
            raise FileNotFoundError(f"Asset not found: {file_path}")

        if self.settings.can_sign_upload:
            response = cloudinary.uploader.upload(str(file_path), **options)
        else:
            # Unsigned uploads cannot set overwrite
            unsigned_options = {k: v for k, v in options.items() if k != "overwrite"}
            response = cloudinary.uploader.unsigned_upload(
                str(file_path),
                self.settings.upload_preset,
                **unsigned_options,
            )

        version = response.get("version")
        return UploadResult(
            public_id=response["public_id"],
            delivery_url=response.get("secure_url") or response.get("url", ""),
            version=str(version) if version else None,
        )

    def build_url(
        self,
        identifier: str,
        transformation: TransformationSpec,
        delivery_type: DeliveryType,
        version: str | None = None,
    ) -> str:
        return build_delivery_url(
            identifier,
            transformation,
            cloud_name=self.settings.cloud_name,
            delivery_type=delivery_type,
            private_cdn=self.settings.private_cdn,
            cname=self.settings.cname,
            version=version,
        )


def verify_connection(settings: Settings) -> bool:
    """Verify Cloudinary credentials with an API ping.

    Args:
        settings: Validated run settings

    Returns:
        True if connection successful

    Raises:
        RuntimeError: If the ping fails or no credentials are configured
    """
    if not settings.can_sign_upload:
        raise RuntimeError("API key and secret are required to check the connection")

    init_cloudinary(settings)

    try:
        cloudinary.api.ping()
        return True
    except cloudinary.exceptions.AuthorizationRequired as e:
        raise RuntimeError(f"Access denied to cloud '{settings.cloud_name}'. Check your credentials.") from e
    except cloudinary.exceptions.Error as e:
        raise RuntimeError(f"Failed to connect to Cloudinary: {e}") from e
