"""Asset URL resolution for CDN Rewrite.

Turns publish paths into CDN delivery URLs for both delivery types, caching
each resolution for the rest of the run.
"""

import asyncio
from typing import Any

from .models import AssetReference, DeliveryType, ResolvedAsset, Settings, TransformationSpec
from .storage import build_public_id, build_shadow_path
from .upload import CdnBackend


CacheKey = tuple[str, str, str]


class ResolutionError(Exception):
    """Raised when an asset's CDN URL could not be built."""

    def __init__(self, asset: AssetReference, cause: BaseException | str):
        self.original_path = asset.original_path
        self.publish_path = asset.publish_path
        self.cause = cause
        super().__init__(f"Failed to resolve {asset.original_path}: {cause}")


class AssetUrlResolver:
    """Resolves assets to CDN URLs with a run-scoped cache.

    Cache keys are (delivery type, publish path, serialized transformation).
    Concurrent lookups of the same key share one backend call, and a failed
    resolution fails the same way for every later lookup in the run.
    """

    def __init__(self, settings: Settings, backend: CdnBackend):
        self.settings = settings
        self.backend = backend
        self._tasks: dict[CacheKey, asyncio.Future] = {}

    def __len__(self) -> int:
        return len(self._tasks)

    async def resolve(
        self,
        asset: AssetReference,
        mode: DeliveryType,
        transformation: TransformationSpec,
        remote_url: str | None = None,
    ) -> ResolvedAsset:
        """Resolve an asset, reusing any earlier result for the same key.

        Args:
            asset: Asset to resolve
            mode: fetch or upload
            transformation: Transformation spec for the run
            remote_url: Explicit remote URL for fetch mode

        Returns:
            ResolvedAsset for the asset

        Raises:
            ResolutionError: If the backend fails or fetch has no host
        """
        key = (mode, asset.publish_path, transformation.serialize())

        task = self._tasks.get(key)
        if task is None:
            task = asyncio.ensure_future(self._resolve(asset, mode, transformation, remote_url))
            self._tasks[key] = task

        return await task

    async def _resolve(
        self,
        asset: AssetReference,
        mode: DeliveryType,
        transformation: TransformationSpec,
        remote_url: str | None,
    ) -> ResolvedAsset:
        if mode == "fetch":
            return self._resolve_fetch(asset, transformation, remote_url)
        elif mode == "upload":
            return await self._resolve_upload(asset, transformation)
        else:
            raise ResolutionError(asset, f"Unknown delivery type: {mode}")

    def _resolve_fetch(
        self,
        asset: AssetReference,
        transformation: TransformationSpec,
        remote_url: str | None,
    ) -> ResolvedAsset:
        if remote_url is None:
            if not self.settings.host:
                raise ResolutionError(asset, "Unable to determine remote host for fetch delivery")
            remote_url = f"{self.settings.host}{asset.publish_path}"

        try:
            url = self.backend.build_url(remote_url, transformation, "fetch")
        except Exception as e:
            raise ResolutionError(asset, e) from e

        return ResolvedAsset(
            publish_path=asset.publish_path,
            cloudinary_url=url,
            shadow_path=build_shadow_path(asset.publish_path),
        )

    async def _resolve_upload(self, asset: AssetReference, transformation: TransformationSpec) -> ResolvedAsset:
        public_id = build_public_id(self.settings.folder, asset.publish_path)
        file_path = self.settings.publish_dir / asset.publish_path.lstrip("/")
        options: dict[str, Any] = {
            "public_id": public_id,
            "overwrite": False,
            "resource_type": "image",
        }

        try:
            result = await asyncio.to_thread(self.backend.upload, file_path, options)
            url = self.backend.build_url(result.public_id, transformation, "upload", result.version)
        except Exception as e:
            raise ResolutionError(asset, e) from e

        return ResolvedAsset(
            publish_path=asset.publish_path,
            cloudinary_url=url,
            public_id=result.public_id,
        )
