"""Configuration and secrets management for CDN Rewrite.

Handles loading the inputs file and secrets.json, reading the deploy
environment, and validating everything into a single Settings object.
"""

import json
import os
from pathlib import Path
from typing import Any, Mapping

from .models import MaxSize, Settings
from .transform import coerce_max_size


DELIVERY_TYPES = ("fetch", "upload")
DEFAULT_IMAGES_PATH = "/images"
DEFAULT_INPUTS_FILE = "cloudinary.json"

ERROR_CLOUD_NAME_REQUIRED = (
    "A Cloudinary Cloud Name is required. Please set cloudName input or use "
    "the environment variable CLOUDINARY_CLOUD_NAME"
)
ERROR_SITE_NAME_REQUIRED = (
    "Cloudinary requires a folder to store assets in. Please set the folder "
    "input or use the environment variable SITE_NAME"
)
ERROR_API_CREDENTIALS_REQUIRED = (
    "Uploading requires either a Cloudinary API Key and Secret "
    "(CLOUDINARY_API_KEY, CLOUDINARY_API_SECRET) or an uploadPreset"
)
ERROR_INVALID_IMAGES_PATH = "The imagesPath input must be a path or a list of paths"
ERROR_HOST_UNKNOWN = (
    "Unable to determine the site host. Fetch delivery needs the public URL "
    "of the site (URL or DEPLOY_PRIME_URL, or the host input)"
)


class ConfigError(Exception):
    """Raised when configuration is invalid or missing."""
    pass


def get_config_dir() -> Path:
    """Get the config directory.

    Returns:
        Path to config directory (~/.config/cdn-rewrite/)
    """
    return Path.home() / ".config" / "cdn-rewrite"


def _load_json(path: Path) -> dict[str, Any]:
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {path}: {e}")

    if not isinstance(data, dict):
        raise ConfigError(f"Expected a JSON object in {path}")
    return data


def load_inputs(inputs_path: Path | None = None) -> dict[str, Any]:
    """Load the plugin inputs file.

    Uses the explicit path if given, else ./cloudinary.json if it exists.

    Args:
        inputs_path: Optional explicit path to the inputs file

    Returns:
        Dictionary of inputs (empty if no file was found)

    Raises:
        ConfigError: If an explicit file is missing or any file is invalid
    """
    if inputs_path is not None:
        if not inputs_path.exists():
            raise ConfigError(f"Inputs file not found at {inputs_path}")
        return _load_json(inputs_path)

    local_path = Path(DEFAULT_INPUTS_FILE)
    if local_path.exists():
        return _load_json(local_path)

    return {}


def load_secrets(secrets_path: Path | None = None) -> dict[str, Any]:
    """Load secrets.json if present.

    Searches for secrets.json in the following order:
    1. Explicit path if provided
    2. ~/.config/cdn-rewrite/secrets.json (recommended)
    3. ./secrets.json (current directory)

    Args:
        secrets_path: Optional explicit path to secrets.json

    Returns:
        Dictionary containing all secrets (empty if none found)

    Raises:
        ConfigError: If an explicit file is missing or any file is invalid
    """
    if secrets_path is not None:
        if not secrets_path.exists():
            raise ConfigError(f"secrets.json not found at {secrets_path}")
        return _load_json(secrets_path)

    for candidate in (get_config_dir() / "secrets.json", Path("secrets.json")):
        if candidate.exists():
            return _load_json(candidate)

    return {}


def get_host(inputs: Mapping[str, Any], env: Mapping[str, str]) -> str | None:
    """Determine the public origin of the site.

    Branch deploys and deploy previews use DEPLOY_PRIME_URL; everything
    else uses URL. An explicit host input wins. A bare domain is taken to
    be served over https.

    Args:
        inputs: Plugin inputs
        env: Environment variables

    Returns:
        Origin with scheme and no trailing slash, or None if unknown
    """
    host = inputs.get("host")

    if not host:
        host = env.get("URL")
        if env.get("CONTEXT") in ("branch-deploy", "deploy-preview"):
            host = env.get("DEPLOY_PRIME_URL")

    host = (host or "").strip().rstrip("/")
    if not host:
        return None

    if "//" not in host:
        host = f"https://{host}"
    elif host.startswith("//"):
        host = f"https:{host}"
    return host


def normalize_images_path(value: Any) -> tuple[str, ...]:
    """Normalize the imagesPath input to rooted, unique directories.

    Args:
        value: String, list of strings, or None

    Returns:
        Tuple of rooted paths in input order

    Raises:
        ConfigError: If the value is not a path or list of paths
    """
    if value is None:
        value = [DEFAULT_IMAGES_PATH]
    elif isinstance(value, str):
        value = [value]

    if not isinstance(value, (list, tuple)) or not value:
        raise ConfigError(ERROR_INVALID_IMAGES_PATH)

    paths = []
    for item in value:
        if not isinstance(item, str) or not item.strip("/ "):
            raise ConfigError(ERROR_INVALID_IMAGES_PATH)
        path = "/" + item.strip().strip("/")
        if path not in paths:
            paths.append(path)

    return tuple(paths)


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def get_max_size(inputs: Mapping[str, Any]) -> MaxSize | None:
    value = inputs.get("maxSize")
    if value is not None and not isinstance(value, (Mapping, MaxSize)):
        raise ConfigError("The maxSize input must be an object with width, height, dpr and crop")
    return coerce_max_size(value)


def build_settings(
    inputs: Mapping[str, Any],
    publish_dir: Path,
    env: Mapping[str, str] | None = None,
    secrets: Mapping[str, Any] | None = None,
) -> Settings:
    """Validate inputs, environment and secrets into run settings.

    Defaults are applied here once; nothing downstream re-derives them.

    Args:
        inputs: Plugin inputs (camelCase keys)
        publish_dir: Site publish directory
        env: Environment variables (defaults to os.environ)
        secrets: Loaded secrets.json contents

    Returns:
        Validated Settings

    Raises:
        ConfigError: If required values are missing or invalid
    """
    if env is None:
        env = os.environ
    cloudinary_secrets = (secrets or {}).get("cloudinary", {})

    delivery_type = inputs.get("deliveryType") or "fetch"
    if delivery_type not in DELIVERY_TYPES:
        raise ConfigError(f"Invalid deliveryType '{delivery_type}'. Use fetch or upload")

    folder = inputs.get("folder") or env.get("SITE_NAME")
    if not folder:
        raise ConfigError(ERROR_SITE_NAME_REQUIRED)

    cloud_name = env.get("CLOUDINARY_CLOUD_NAME") or inputs.get("cloudName") or cloudinary_secrets.get("cloud_name")
    if not cloud_name:
        raise ConfigError(ERROR_CLOUD_NAME_REQUIRED)

    api_key = env.get("CLOUDINARY_API_KEY") or cloudinary_secrets.get("api_key")
    api_secret = env.get("CLOUDINARY_API_SECRET") or cloudinary_secrets.get("api_secret")
    upload_preset = inputs.get("uploadPreset")

    if delivery_type == "upload" and not (api_key and api_secret) and not upload_preset:
        raise ConfigError(ERROR_API_CREDENTIALS_REQUIRED)

    return Settings(
        cloud_name=cloud_name,
        delivery_type=delivery_type,
        folder=folder,
        publish_dir=Path(publish_dir),
        images_path=normalize_images_path(inputs.get("imagesPath")),
        max_size=get_max_size(inputs),
        host=get_host(inputs, env),
        api_key=api_key,
        api_secret=api_secret,
        upload_preset=upload_preset,
        cname=inputs.get("cname") or None,
        private_cdn=_as_bool(inputs.get("privateCdn", False)),
        loading_strategy=inputs.get("loadingStrategy") or None,
    )
