"""Tests for upload.py module.

Tests delivery URL building, SDK uploads, and connection checks.
"""

from unittest.mock import patch

import cloudinary.exceptions
import pytest

from cdn_rewrite.models import TransformationSpec
from cdn_rewrite.transform import build_transformation
from cdn_rewrite.upload import (
    CloudinaryBackend,
    build_delivery_url,
    escape_fetch_source,
    verify_connection,
)


DEFAULT = TransformationSpec()


class TestBuildDeliveryUrl:
    """Tests for build_delivery_url function."""

    def test_fetch_url(self):
        url = build_delivery_url(
            "https://example.com/images/cat.png", DEFAULT, cloud_name="demo", delivery_type="fetch",
        )

        assert url == "https://res.cloudinary.com/demo/image/fetch/f_auto,q_auto/https://example.com/images/cat.png"

    def test_upload_url_with_version(self):
        url = build_delivery_url("cool-site/images/cat", DEFAULT, cloud_name="demo", delivery_type="upload", version="12")

        assert url == "https://res.cloudinary.com/demo/image/upload/f_auto,q_auto/v12/cool-site/images/cat"

    def test_sizing_group(self):
        transformation = build_transformation({"width": 800, "height": 600})

        url = build_delivery_url("a/b", transformation, cloud_name="demo", delivery_type="upload")

        assert url == "https://res.cloudinary.com/demo/image/upload/f_auto,q_auto/c_limit,h_600,w_800/a/b"

    def test_private_cdn(self):
        url = build_delivery_url("a", DEFAULT, cloud_name="demo", delivery_type="upload", private_cdn=True)

        assert url.startswith("https://demo-res.cloudinary.com/image/upload/")

    def test_cname(self):
        url = build_delivery_url(
            "a", DEFAULT, cloud_name="demo", delivery_type="upload", private_cdn=True, cname="images.example.com",
        )

        assert url == "https://images.example.com/image/upload/f_auto,q_auto/a"


class TestEscapeFetchSource:
    """Tests for escape_fetch_source function."""

    def test_escapes_spaces_and_query_marks(self):
        assert escape_fetch_source("https://e.com/my cat.png?v=1#x") == "https://e.com/my%20cat.png%3Fv=1%23x"

    def test_keeps_existing_escapes(self):
        assert escape_fetch_source("https://e.com/my%20cat.png") == "https://e.com/my%20cat.png"


class TestCloudinaryBackend:
    """Tests for CloudinaryBackend class."""

    def test_signed_upload(self, make_settings, tmp_path):
        settings = make_settings(delivery_type="upload", api_key="key", api_secret="secret")
        image = tmp_path / "cat.png"
        image.write_bytes(b"cat")
        response = {"public_id": "cool-site/cat", "secure_url": "https://res.cloudinary.com/testcloud/cat.png", "version": 42}

        with patch("cdn_rewrite.upload.cloudinary.uploader.upload", return_value=response) as mock_upload:
            result = CloudinaryBackend(settings).upload(image, {"public_id": "cool-site/cat", "overwrite": False})

        mock_upload.assert_called_once_with(str(image), public_id="cool-site/cat", overwrite=False)
        assert result.public_id == "cool-site/cat"
        assert result.version == "42"
        assert result.delivery_url == "https://res.cloudinary.com/testcloud/cat.png"

    def test_unsigned_upload_with_preset(self, make_settings, tmp_path):
        settings = make_settings(delivery_type="upload", upload_preset="preset")
        image = tmp_path / "cat.png"
        image.write_bytes(b"cat")
        response = {"public_id": "cool-site/cat", "url": "http://res.cloudinary.com/testcloud/cat.png"}

        with patch("cdn_rewrite.upload.cloudinary.uploader.unsigned_upload", return_value=response) as mock_upload:
            result = CloudinaryBackend(settings).upload(image, {"public_id": "cool-site/cat", "overwrite": False})

        mock_upload.assert_called_once_with(str(image), "preset", public_id="cool-site/cat")
        assert result.version is None

    def test_missing_file(self, make_settings, tmp_path):
        backend = CloudinaryBackend(make_settings(api_key="key", api_secret="secret"))

        with pytest.raises(FileNotFoundError):
            backend.upload(tmp_path / "missing.png", {"public_id": "x"})

    def test_build_url_uses_settings(self, make_settings):
        backend = CloudinaryBackend(make_settings(cname="images.example.com"))

        url = backend.build_url("https://example.com/a.png", DEFAULT, "fetch")

        assert url == "https://images.example.com/image/fetch/f_auto,q_auto/https://example.com/a.png"


class TestVerifyConnection:
    """Tests for verify_connection function."""

    def test_successful_ping(self, make_settings):
        settings = make_settings(api_key="key", api_secret="secret")

        with patch("cdn_rewrite.upload.cloudinary.api.ping", return_value={"status": "ok"}):
            assert verify_connection(settings) is True

    def test_access_denied(self, make_settings):
        settings = make_settings(api_key="key", api_secret="bad")

        with patch(
            "cdn_rewrite.upload.cloudinary.api.ping",
            side_effect=cloudinary.exceptions.AuthorizationRequired("denied"),
        ):
            with pytest.raises(RuntimeError, match="Access denied"):
                verify_connection(settings)

    def test_requires_credentials(self, make_settings):
        with pytest.raises(RuntimeError, match="required"):
            verify_connection(make_settings())
