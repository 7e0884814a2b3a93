"""Shared fixtures for CDN Rewrite tests."""

import pytest

from cdn_rewrite.models import Settings, UploadResult
from cdn_rewrite.upload import build_delivery_url


class FakeBackend:
    """In-memory CdnBackend that records every call."""

    def __init__(self, fail=()):
        self.fail = set(fail)
        self.uploads = []
        self.urls = []

    def upload(self, file_path, options):
        self.uploads.append((file_path, options))
        if options["public_id"] in self.fail:
            raise RuntimeError(f"Upload rejected for {options['public_id']}")
        return UploadResult(
            public_id=options["public_id"],
            delivery_url=f"https://res.cloudinary.com/testcloud/image/upload/{options['public_id']}.png",
            version="1",
        )

    def build_url(self, identifier, transformation, delivery_type, version=None):
        self.urls.append(identifier)
        return build_delivery_url(
            identifier,
            transformation,
            cloud_name="testcloud",
            delivery_type=delivery_type,
            version=version,
        )


@pytest.fixture
def backend():
    """Fake CDN backend."""
    return FakeBackend()


@pytest.fixture
def make_settings(tmp_path):
    """Factory for Settings pointing at a temporary publish dir."""
    def factory(**overrides):
        values = {
            "cloud_name": "testcloud",
            "delivery_type": "fetch",
            "folder": "cool-site",
            "publish_dir": tmp_path,
            "host": "https://example.com",
        }
        values.update(overrides)
        return Settings(**values)
    return factory


@pytest.fixture
def publish_dir(tmp_path):
    """Publish directory with a few images and pages."""
    images = tmp_path / "images"
    (images / "gallery").mkdir(parents=True)
    (images / "cat.png").write_bytes(b"cat")
    (images / "dog.jpg").write_bytes(b"dog")
    (images / "gallery" / "bird.webp").write_bytes(b"bird")
    (images / "notes.txt").write_text("not an image")

    (tmp_path / "index.html").write_text(
        '<!DOCTYPE html>\n<html>\n<body>\n  <img src="/images/cat.png" alt="Cat">\n</body>\n</html>\n',
        encoding="utf-8",
    )
    blog = tmp_path / "blog"
    blog.mkdir()
    (blog / "post.html").write_text(
        '<html><body><img src="../images/dog.jpg"><img src="https://other.com/x.png"></body></html>',
        encoding="utf-8",
    )
    return tmp_path
