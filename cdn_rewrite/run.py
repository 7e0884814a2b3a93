"""Run orchestration for CDN Rewrite.

A DeliveryRun holds everything one build invocation owns: settings,
transformation, resolver cache, asset map and errors. Create a new one for
every invocation; nothing is shared between runs.
"""

import asyncio
from dataclasses import dataclass, field
from pathlib import Path

import aiofiles

from .config import ERROR_HOST_UNKNOWN
from .discovery import find_assets_by_path, find_pages
from .models import RedirectRule, ResolvedAsset, Settings, StatusPayload, TransformationSpec
from .parser import CDN_DOMAINS, RewriteContext, RewriteResult, rewrite_html
from .redirects import plan_redirects
from .resolver import AssetUrlResolver, ResolutionError
from .storage import publish_path_for
from .summary import RunErrors, summarize
from .transform import build_transformation
from .upload import CdnBackend, CloudinaryBackend
from .utils import print_info, print_warning


@dataclass
class PageResult:
    """Outcome of rewriting one page."""
    page: Path
    result: RewriteResult | None = None


@dataclass
class DeliveryRun:
    """Run-scoped context threaded through both passes."""
    settings: Settings
    backend: CdnBackend
    transformation: TransformationSpec
    resolver: AssetUrlResolver
    assets: dict[str, ResolvedAsset] = field(default_factory=dict)
    errors: RunErrors = field(default_factory=RunErrors)

    @classmethod
    def start(cls, settings: Settings, backend: CdnBackend | None = None) -> "DeliveryRun":
        """Create a fresh run for one build invocation.

        Args:
            settings: Validated run settings
            backend: CDN backend (defaults to the Cloudinary SDK backend)

        Returns:
            New DeliveryRun with empty cache, asset map and errors
        """
        if backend is None:
            backend = CloudinaryBackend(settings)
        return cls(
            settings=settings,
            backend=backend,
            transformation=build_transformation(settings.max_size),
            resolver=AssetUrlResolver(settings, backend),
        )

    @property
    def host_missing(self) -> bool:
        return self.settings.delivery_type == "fetch" and not self.settings.host

    async def resolve_assets(self) -> dict[str, ResolvedAsset]:
        """Discover assets and resolve them all concurrently.

        Failures are recorded and skipped. The asset map keeps discovery
        order regardless of completion order.

        Returns:
            Publish path -> ResolvedAsset for every asset that resolved
        """
        settings = self.settings
        discovered = find_assets_by_path(settings.publish_dir, settings.images_path)

        if not discovered:
            print_warning(f"No image files found in {', '.join(settings.images_path)}")
            print_info("Did you update your images path? You can set the imagesPath input.")
            return self.assets

        results = await asyncio.gather(
            *(self.resolver.resolve(asset, settings.delivery_type, self.transformation) for asset in discovered),
            return_exceptions=True,
        )

        for asset, result in zip(discovered, results):
            if isinstance(result, ResolutionError):
                self.errors.add("resolution", str(result))
            elif isinstance(result, BaseException):
                raise result
            else:
                self.assets[asset.publish_path] = result

        return self.assets

    async def build(self) -> list[RedirectRule]:
        """Run the build pass: resolve assets, then plan redirects.

        Returns:
            Redirect rules in evaluation order (empty if the pass was skipped)
        """
        settings = self.settings
        print_info("Creating redirects...")

        if self.host_missing:
            print_warning(ERROR_HOST_UNKNOWN)
            return []

        if settings.host:
            print_info(f"Using host: {settings.host}")

        await self.resolve_assets()

        return plan_redirects(
            list(self.assets.values()),
            settings.delivery_type,
            images_path=settings.images_path,
            host=settings.host,
            transformation=self.transformation,
            backend=self.backend,
        )

    def rewrite_context(self, page_path: str) -> RewriteContext:
        cdn_domains = CDN_DOMAINS
        if self.settings.cname:
            cdn_domains = cdn_domains + (self.settings.cname.lower(),)

        return RewriteContext(
            resolver=self.resolver,
            mode=self.settings.delivery_type,
            transformation=self.transformation,
            assets=self.assets,
            host=self.settings.host,
            page_path=page_path,
            loading_strategy=self.settings.loading_strategy,
            cdn_domains=cdn_domains,
        )

    async def rewrite_page(self, page: Path) -> PageResult:
        """Rewrite one page in place.

        Args:
            page: Path to an HTML file under the publish dir

        Returns:
            PageResult for the page
        """
        page_path = publish_path_for(page, self.settings.publish_dir)

        try:
            async with aiofiles.open(page, "r", encoding="utf-8", newline="") as f:
                source = await f.read()
        except (OSError, UnicodeDecodeError) as e:
            self.errors.add("rewrite", f"Failed to read page: {e}", page=page_path)
            return PageResult(page=page)

        result = await rewrite_html(source, self.rewrite_context(page_path))

        for error in result.errors:
            self.errors.add("rewrite", str(error), page=page_path)

        try:
            async with aiofiles.open(page, "w", encoding="utf-8", newline="") as f:
                await f.write(result.html)
        except OSError as e:
            self.errors.add("rewrite", f"Failed to write page: {e}", page=page_path)
            return PageResult(page=page)

        return PageResult(page=page, result=result)

    async def post_build(self) -> list[PageResult]:
        """Run the post-build pass over every page.

        Returns:
            One PageResult per page (empty if the pass was skipped)
        """
        print_info("Replacing on-page images with Cloudinary URLs...")

        if self.host_missing:
            print_warning(ERROR_HOST_UNKNOWN)
            return []

        if self.settings.host:
            print_info(f"Using host: {self.settings.host}")

        pages = find_pages(self.settings.publish_dir)
        return list(await asyncio.gather(*(self.rewrite_page(page) for page in pages)))

    def finish(self) -> StatusPayload:
        return summarize(self.errors)
