"""Tests for parser.py module.

Tests image extraction, reference categorization, srcset parsing,
and byte-preserving page rewriting.
"""

import asyncio

import pytest

from cdn_rewrite.models import ResolvedAsset
from cdn_rewrite.parser import (
    RewriteContext,
    categorize_reference,
    extract_images,
    format_srcset,
    locate_attributes,
    parse_srcset,
    rewrite_html,
)
from cdn_rewrite.resolver import AssetUrlResolver
from cdn_rewrite.transform import build_transformation

from conftest import FakeBackend


FETCH_PREFIX = "https://res.cloudinary.com/testcloud/image/fetch/f_auto,q_auto/https://example.com"


@pytest.fixture
def make_context(make_settings):
    """Factory for a RewriteContext over a fake backend."""
    def factory(backend=None, mode="fetch", **overrides):
        backend = backend or FakeBackend()
        settings = make_settings(delivery_type=mode)
        values = {
            "resolver": AssetUrlResolver(settings, backend),
            "mode": mode,
            "transformation": build_transformation(settings.max_size),
            "host": settings.host,
        }
        values.update(overrides)
        return RewriteContext(**values)
    return factory


def rewrite(content, context):
    return asyncio.run(rewrite_html(content, context))


class TestExtractImages:
    """Tests for extract_images function."""

    def test_extracts_img_sources(self):
        """Should find src and srcset candidates."""
        content = """
<html>
<body>
    <img src="images/hero.jpg" alt="Hero">
    <img srcset="/a.png 1x, /b.png 2x">
</body>
</html>
"""
        images = extract_images(content)

        assert images == ["images/hero.jpg", "/a.png", "/b.png"]

    def test_extracts_picture_sources_and_preloads(self):
        """Should find picture sources and image preloads."""
        content = """
<head><link rel="preload" as="image" href="/hero.webp"><link rel="stylesheet" href="/s.css"></head>
<picture><source srcset="/wide.avif 1200w"><img src="/narrow.png"></picture>
"""
        images = extract_images(content)

        assert images == ["/hero.webp", "/wide.avif", "/narrow.png"]

    def test_deduplicates_images(self):
        """Should return unique images only."""
        content = '<img src="a.png"><img src="a.png"><img src="b.png">'

        assert extract_images(content) == ["a.png", "b.png"]


class TestCategorizeReference:
    """Tests for categorize_reference function."""

    def test_identifies_local_paths(self):
        assert categorize_reference("images/photo.jpg") == "local"
        assert categorize_reference("/photo.jpg") == "local"
        assert categorize_reference("../assets/photo.jpg") == "local"

    def test_identifies_external_urls(self):
        assert categorize_reference("https://other.com/image.jpg", "https://example.com") == "external"

    def test_same_host_is_local(self):
        assert categorize_reference("https://example.com/images/a.png", "https://example.com") == "local"

    def test_identifies_cdn_urls(self):
        assert categorize_reference("https://res.cloudinary.com/demo/image/upload/a") == "cdn"
        assert categorize_reference("https://demo-res.cloudinary.com/image/upload/a") == "cdn"

    def test_data_and_empty(self):
        assert categorize_reference("data:image/png;base64,AAAA") == "data"
        assert categorize_reference("   ") == "empty"

    def test_protocol_relative_urls(self):
        assert categorize_reference("//other.com/image.jpg", "https://example.com") == "external"


class TestParseSrcset:
    """Tests for parse_srcset and format_srcset."""

    def test_descriptors(self):
        assert parse_srcset("a.png 1x, b.png 2x") == [("a.png", "1x"), ("b.png", "2x")]

    def test_width_descriptors_and_whitespace(self):
        assert parse_srcset("  a.png   480w ,\n b.png 800w") == [("a.png", "480w"), ("b.png", "800w")]

    def test_candidate_without_descriptor(self):
        assert parse_srcset("a.png, b.png 2x") == [("a.png", ""), ("b.png", "2x")]

    def test_commas_inside_url(self):
        url = "https://res.cloudinary.com/x/image/fetch/f_auto,q_auto/https://e.com/a.png"
        assert parse_srcset(f"{url} 2x") == [(url, "2x")]

    def test_format(self):
        assert format_srcset([("a.png", "1x"), ("b.png", "")]) == "a.png 1x, b.png"


class TestLocateAttributes:
    """Tests for locate_attributes function."""

    def test_spans_of_quoted_values(self):
        content = '<img src="a.png" alt=\'x\'>'

        name, spans, end = locate_attributes(content, 0)

        assert name == "img"
        assert content[spans["src"].start:spans["src"].end] == "a.png"
        assert content[spans["alt"].start:spans["alt"].end] == "x"
        assert content[end:] == ">"

    def test_duplicate_attribute_keeps_last(self):
        content = '<img src="a.png" src="b.png">'

        _, spans, _ = locate_attributes(content, 0)

        assert content[spans["src"].start:spans["src"].end] == "b.png"

    def test_not_a_tag(self):
        assert locate_attributes("plain text", 0) is None


class TestRewriteHtml:
    """Tests for rewrite_html function."""

    def test_rewrites_img_src(self, make_context):
        """Should replace a local src with the fetch URL."""
        result = rewrite('<img src="/images/cat.png">', make_context())

        assert result.html == f'<img src="{FETCH_PREFIX}/images/cat.png">'
        assert result.replaced == 1
        assert result.errors == []

    def test_preserves_surrounding_markup(self, make_context):
        """Should change nothing but the attribute value."""
        content = (
            '<!DOCTYPE html>\n<html>\n<head>\n  <title>Cats &amp; Dogs</title>\n</head>\r\n'
            '<body>\n  <IMG  class="hero"   SRC="/images/cat.png" alt=\'A cat\' >\n'
            '  <p>Text <b>bold</b></p><!-- <img src="/images/ignored.png"> -->\n</body>\n</html>\n'
        )

        result = rewrite(content, make_context())

        assert result.html == content.replace('SRC="/images/cat.png"', f'SRC="{FETCH_PREFIX}/images/cat.png"')

    def test_leaves_data_uri_and_external(self, make_context):
        """Should not touch data URIs, other hosts or empty sources."""
        content = (
            '<img src="data:image/png;base64,iVBORw0KGgo=">'
            '<img src="https://other.com/pic.png">'
            '<img src="">'
            '<img src="https://res.cloudinary.com/demo/image/upload/a.png">'
        )

        result = rewrite(content, make_context())

        assert result.html == content
        assert result.errors == []

    def test_rewrites_srcset_keeping_descriptors(self, make_context):
        """Should resolve each candidate and keep its descriptor."""
        content = '<img srcset="/images/cat.png 1x, /images/cat@2x.png 2x">'

        result = rewrite(content, make_context())

        assert result.html == (
            f'<img srcset="{FETCH_PREFIX}/images/cat.png 1x, {FETCH_PREFIX}/images/cat@2x.png 2x">'
        )

    def test_rewrites_picture_source_and_preload(self, make_context):
        """Should rewrite source srcset and image preload href."""
        content = (
            '<link rel="preload" as="image" href="/images/hero.png">'
            '<link rel="stylesheet" href="/style.css">'
            '<picture><source srcset="/images/wide.png 1200w"></picture>'
        )

        result = rewrite(content, make_context())

        assert f'href="{FETCH_PREFIX}/images/hero.png"' in result.html
        assert 'href="/style.css"' in result.html
        assert f'srcset="{FETCH_PREFIX}/images/wide.png 1200w"' in result.html

    def test_relative_path_resolved_against_page(self, make_context):
        """Should resolve relative sources from the page location."""
        result = rewrite('<img src="../images/cat.png">', make_context(page_path="/blog/post.html"))

        assert result.html == f'<img src="{FETCH_PREFIX}/images/cat.png">'

    def test_same_host_absolute_url(self, make_context):
        """Should treat absolute URLs on the site host as local."""
        result = rewrite('<img src="https://example.com/images/cat.png">', make_context())

        assert result.html == f'<img src="{FETCH_PREFIX}/images/cat.png">'

    def test_uses_asset_map(self, make_context):
        """Should substitute from the asset map without resolving."""
        backend = FakeBackend()
        assets = {"/images/cat.png": ResolvedAsset("/images/cat.png", "https://res.cloudinary.com/mapped/cat")}

        result = rewrite('<img src="/images/cat.png">', make_context(backend=backend, assets=assets))

        assert result.html == '<img src="https://res.cloudinary.com/mapped/cat">'
        assert backend.urls == []

    def test_unquoted_and_self_closing(self, make_context):
        """Should quote unquoted values and keep self-closing tags."""
        content = '<img src=/images/a.png><img src="/images/b.png"/>'

        result = rewrite(content, make_context())

        assert result.html == f'<img src="{FETCH_PREFIX}/images/a.png"><img src="{FETCH_PREFIX}/images/b.png"/>'

    def test_adds_loading_strategy(self, make_context):
        """Should add a loading attribute when configured."""
        content = '<img src="/images/a.png"><img src="/images/b.png" loading="eager">'

        result = rewrite(content, make_context(loading_strategy="lazy"))

        assert result.html == (
            f'<img src="{FETCH_PREFIX}/images/a.png" loading="lazy">'
            f'<img src="{FETCH_PREFIX}/images/b.png" loading="eager">'
        )

    def test_escapes_ampersands(self, make_context):
        """Should HTML-escape the new value."""
        result = rewrite('<img src="/images/a&amp;b.png">', make_context())

        assert result.html == f'<img src="{FETCH_PREFIX}/images/a&amp;b.png">'

    def test_isolates_failures(self, make_context):
        """Should leave only the failing source unmodified."""
        backend = FakeBackend(fail={"cool-site/images/broken_png"})
        context = make_context(backend=backend, mode="upload")
        content = '<img src="/images/a.png"><img src="/images/broken.png"><img src="/images/c.png">'

        result = rewrite(content, context)

        upload_prefix = "https://res.cloudinary.com/testcloud/image/upload/f_auto,q_auto/v1/cool-site/images"
        assert result.html == (
            f'<img src="{upload_prefix}/a_png"><img src="/images/broken.png"><img src="{upload_prefix}/c_png">'
        )
        assert result.replaced == 2
        assert len(result.errors) == 1
        assert result.errors[0].path == "/images/broken.png"
        assert result.errors[0].attribute == "src"

    def test_srcset_failure_keeps_whole_attribute(self, make_context):
        """Should leave a srcset unmodified if any candidate fails."""
        backend = FakeBackend(fail={"cool-site/images/broken_png"})
        content = '<img srcset="/images/a.png 1x, /images/broken.png 2x">'

        result = rewrite(content, make_context(backend=backend, mode="upload"))

        assert result.html == content
        assert [e.path for e in result.errors] == ["/images/broken.png"]

    def test_duplicate_src_rewrites_last(self, make_context):
        """Should rewrite the attribute the parser actually used."""
        content = '<img src="/images/a.png" src="/images/b.png">'

        result = rewrite(content, make_context())

        assert result.html == f'<img src="/images/a.png" src="{FETCH_PREFIX}/images/b.png">'

    def test_no_images(self, make_context):
        content = "<p>No pictures here</p>"

        assert rewrite(content, make_context()).html == content
