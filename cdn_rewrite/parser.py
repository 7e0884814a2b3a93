"""HTML parsing and rewriting for CDN Rewrite.

Handles image reference extraction, reference categorization, srcset
parsing, and in-place rewriting of image sources with CDN URLs.
"""

import asyncio
import html as html_lib
import re
from dataclasses import dataclass, field
from typing import Literal, Mapping, Optional
from urllib.parse import urlsplit

from bs4 import BeautifulSoup, Tag

from .models import AssetReference, DeliveryType, ResolvedAsset, TransformationSpec
from .resolver import AssetUrlResolver, ResolutionError
from .storage import resolve_page_reference


ReferenceType = Literal["local", "external", "cdn", "data", "empty"]

TAG_NAME_PATTERN = re.compile(r"<([a-zA-Z][^\s/>]*)")
ATTRIBUTE_PATTERN = re.compile(
    r"""(?:\s|/(?!>))*([^\s/>=][^\s/=>]*)(?:\s*=\s*('[^']*'|"[^"]*"|(?!['"])[^\s>]*))?"""
)

CDN_DOMAINS = ("res.cloudinary.com",)


@dataclass
class RewriteError:
    """An image source that could not be rewritten.

    Attributes:
        path: The source value as it appeared in the page
        attribute: Attribute holding the source (src, srcset, href)
        reason: Why the source was left unmodified
    """
    path: str
    attribute: str
    reason: str

    def __str__(self) -> str:
        return f"{self.attribute}={self.path!r}: {self.reason}"


@dataclass
class RewriteContext:
    """Everything a page rewrite needs from the run.

    Attributes:
        resolver: Run-scoped resolver for assets missing from the map
        mode: Delivery type of the run
        transformation: Transformation spec of the run
        assets: Precomputed publish path -> resolved asset map
        host: Public origin of the site, URLs on it count as local
        page_path: Publish path of the page being rewritten
        loading_strategy: Value for an added img loading attribute
        cdn_domains: Hosts that already serve CDN URLs
    """
    resolver: AssetUrlResolver
    mode: DeliveryType
    transformation: TransformationSpec
    assets: Mapping[str, ResolvedAsset] = field(default_factory=dict)
    host: Optional[str] = None
    page_path: str = "/index.html"
    loading_strategy: Optional[str] = None
    cdn_domains: tuple[str, ...] = CDN_DOMAINS


@dataclass
class RewriteResult:
    """Rewritten page markup and the errors found along the way."""
    html: str
    errors: list[RewriteError] = field(default_factory=list)
    replaced: int = 0


@dataclass
class _AttributeSpan:
    name: str
    start: int
    end: int
    quote: str


def categorize_reference(
    ref: str,
    host: str | None = None,
    cdn_domains: tuple[str, ...] = CDN_DOMAINS,
) -> ReferenceType:
    """Determine what kind of image reference a source value is.

    Args:
        ref: Image reference (path or URL)
        host: Public origin of the site; URLs on this host are local
        cdn_domains: Hosts that already serve CDN URLs

    Returns:
        Reference type: 'local', 'external', 'cdn', 'data' or 'empty'
    """
    ref = ref.strip()

    if not ref:
        return "empty"

    if ref.lower().startswith("data:"):
        return "data"

    parsed = urlsplit(ref)
    if parsed.scheme or ref.startswith("//"):
        netloc = parsed.netloc.lower()
        if host and netloc == urlsplit(host).netloc.lower():
            return "local"
        if any(netloc.endswith(domain) for domain in cdn_domains):
            return "cdn"
        return "external"

    return "local"


def parse_srcset(value: str) -> list[tuple[str, str]]:
    """Split a srcset value into (url, descriptor) candidates.

    URLs run until whitespace, so commas inside a URL are kept.

    Args:
        value: Raw srcset attribute value

    Returns:
        List of (url, descriptor) pairs; descriptor may be empty
    """
    candidates = []
    pos = 0
    length = len(value)

    while pos < length:
        while pos < length and (value[pos].isspace() or value[pos] == ","):
            pos += 1
        if pos >= length:
            break

        start = pos
        while pos < length and not value[pos].isspace():
            pos += 1
        url = value[start:pos]

        descriptor = ""
        if url.endswith(","):
            url = url.rstrip(",")
        else:
            start = pos
            while pos < length and value[pos] != ",":
                pos += 1
            descriptor = value[start:pos].strip()

        candidates.append((url, descriptor))

    return candidates


def format_srcset(candidates: list[tuple[str, str]]) -> str:
    return ", ".join(f"{url} {descriptor}" if descriptor else url for url, descriptor in candidates)


def find_image_sources(soup: BeautifulSoup) -> list[tuple[Tag, str, bool]]:
    """Find every attribute that carries an image source.

    Covers img src/srcset, source srcset, and image preload links.

    Args:
        soup: Parsed document

    Returns:
        List of (tag, attribute name, is srcset) in document order
    """
    sources = []

    for tag in soup.find_all(["img", "source", "link"]):
        if tag.name == "img":
            attributes = [("src", False), ("srcset", True)]
        elif tag.name == "source":
            attributes = [("srcset", True)]
        else:
            rel = tag.get("rel") or []
            if "preload" not in rel or (tag.get("as") or "").lower() != "image":
                continue
            attributes = [("href", False), ("imagesrcset", True)]

        for name, is_srcset in attributes:
            if tag.get(name) is not None:
                sources.append((tag, name, is_srcset))

    return sources


def extract_images(content: str) -> list[str]:
    """Find all image references in a page.

    Args:
        content: Page markup

    Returns:
        List of image paths/URLs found (unique, preserving order)
    """
    soup = BeautifulSoup(content, "html.parser")
    images = []
    seen = set()

    for tag, name, is_srcset in find_image_sources(soup):
        value = tag.get(name, "")
        refs = [url for url, _ in parse_srcset(value)] if is_srcset else [value]
        for ref in refs:
            if ref and ref not in seen:
                images.append(ref)
                seen.add(ref)

    return images


async def resolve_reference(ref: str, context: RewriteContext) -> str | None:
    """Get the CDN URL for one source value.

    Args:
        ref: Source value from the page
        context: Rewrite context for the run

    Returns:
        CDN URL, or None when the reference is left untouched

    Raises:
        ResolutionError: If the asset could not be resolved
    """
    ref = ref.strip()
    if categorize_reference(ref, context.host, context.cdn_domains) != "local":
        return None

    path = ref
    if urlsplit(ref).netloc:
        path = urlsplit(ref).path or "/"

    publish_path = resolve_page_reference(path, context.page_path)

    asset = context.assets.get(publish_path)
    if asset is not None:
        return asset.cloudinary_url

    resolved = await context.resolver.resolve(
        AssetReference(publish_path=publish_path, original_path=ref),
        context.mode,
        context.transformation,
    )
    return resolved.cloudinary_url


async def _rewrite_value(value: str, is_srcset: bool, attribute: str, context: RewriteContext) -> tuple[str | None, list[RewriteError]]:
    if not is_srcset:
        try:
            return await resolve_reference(value, context), []
        except ResolutionError as e:
            return None, [RewriteError(path=value, attribute=attribute, reason=str(e.cause))]

    candidates = parse_srcset(value)
    results = await asyncio.gather(
        *(resolve_reference(url, context) for url, _ in candidates),
        return_exceptions=True,
    )

    errors = []
    for (url, _), result in zip(candidates, results):
        if isinstance(result, ResolutionError):
            errors.append(RewriteError(path=url, attribute=attribute, reason=str(result.cause)))
        elif isinstance(result, BaseException):
            raise result

    if errors or all(result is None for result in results):
        return None, errors

    rewritten = [
        (result if result is not None else url, descriptor)
        for (url, descriptor), result in zip(candidates, results)
    ]
    return format_srcset(rewritten), []


def _line_offsets(content: str) -> list[int]:
    return [0] + [m.end() for m in re.finditer("\n", content)]


def locate_attributes(content: str, offset: int) -> tuple[str, dict[str, _AttributeSpan], int] | None:
    """Scan the start tag at offset and record where each attribute value sits.

    Args:
        content: Page markup
        offset: Index of the tag's opening <

    Returns:
        (tag name, attribute spans by lowercase name, index after the last
        attribute), or None if no start tag begins at offset
    """
    match = TAG_NAME_PATTERN.match(content, offset)
    if match is None:
        return None

    spans: dict[str, _AttributeSpan] = {}
    pos = match.end()

    while True:
        attr = ATTRIBUTE_PATTERN.match(content, pos)
        if attr is None:
            break
        name = attr.group(1).lower()
        # Later duplicates win, as they do in the parsed tree
        if attr.group(2) is None:
            spans[name] = _AttributeSpan(name, attr.end(1), attr.end(1), "")
        else:
            raw = attr.group(2)
            quote = raw[0] if raw[:1] in ("'", '"') else ""
            start, end = attr.span(2)
            if quote:
                start, end = start + 1, end - 1
            spans[name] = _AttributeSpan(name, start, end, quote)
        pos = attr.end()

    return match.group(1).lower(), spans, pos


def _value_edit(span: _AttributeSpan, value: str) -> tuple[int, int, str]:
    if span.quote == "'":
        return span.start, span.end, html_lib.escape(value, quote=False).replace("'", "&#x27;")
    if span.quote == '"':
        return span.start, span.end, html_lib.escape(value, quote=False).replace('"', "&quot;")
    if span.start == span.end:
        # Bare attribute with no value
        return span.start, span.end, f'="{html_lib.escape(value)}"'
    return span.start, span.end, f'"{html_lib.escape(value)}"'


async def rewrite_html(content: str, context: RewriteContext) -> RewriteResult:
    """Rewrite every image source in a page to its CDN URL.

    Only the rewritten attribute values change; all other markup is kept
    byte for byte. A source that fails to resolve is left as it was and
    reported in the result; the rest of the page is still rewritten.

    Args:
        content: Page markup
        context: Rewrite context for the run

    Returns:
        RewriteResult with the new markup and any errors
    """
    soup = BeautifulSoup(content, "html.parser")
    sources = find_image_sources(soup)

    if not sources:
        return RewriteResult(html=content)

    outcomes = await asyncio.gather(*(
        _rewrite_value(tag.get(name, ""), is_srcset, name, context)
        for tag, name, is_srcset in sources
    ))

    errors: list[RewriteError] = []
    changes: dict[int, tuple[Tag, dict[str, str]]] = {}
    for (tag, name, _), (new_value, value_errors) in zip(sources, outcomes):
        errors.extend(value_errors)
        if new_value is not None:
            changes.setdefault(id(tag), (tag, {}))[1][name] = new_value

    line_offsets = _line_offsets(content)
    edits: list[tuple[int, int, str]] = []
    replaced = 0

    for tag, values in changes.values():
        located = None
        if tag.sourceline is not None:
            offset = line_offsets[tag.sourceline - 1] + tag.sourcepos
            located = locate_attributes(content, offset)

        if located is None or located[0] != tag.name:
            for name, value in values.items():
                errors.append(RewriteError(path=tag.get(name, ""), attribute=name, reason="Element not found in markup"))
            continue

        _, spans, attributes_end = located
        for name, value in values.items():
            edits.append(_value_edit(spans[name], value))
            replaced += 1

        if tag.name == "img" and context.loading_strategy and "loading" not in spans:
            loading = html_lib.escape(context.loading_strategy)
            edits.append((attributes_end, attributes_end, f' loading="{loading}"'))

    result = content
    for start, end, text in sorted(edits, key=lambda e: e[0], reverse=True):
        result = result[:start] + text + result[end:]

    return RewriteResult(html=result, errors=errors, replaced=replaced)
