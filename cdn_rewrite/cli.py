"""CLI interface for CDN Rewrite using Typer.

Main entry point for the application. Drives the build and post-build
passes over a published site and reports the run status with Rich.
"""

import asyncio
from pathlib import Path
from typing import Any, Optional

import typer
from rich.console import Console
from rich.table import Table

from .config import ConfigError, build_settings, load_inputs, load_secrets
from .models import AssetReference, RedirectRule, Settings
from .redirects import REDIRECTS_FILE, prepend_redirects
from .resolver import ResolutionError
from .run import DeliveryRun
from .storage import normalize_publish_path
from .upload import verify_connection
from .utils import print_error, print_success, print_warning


app = typer.Typer(
    name="cdn-rewrite",
    help="Serve a static site's images from Cloudinary by rewriting pages and redirects",
    add_completion=False,
)
console = Console()

PUBLISH_DIR_ARGUMENT = typer.Argument(
    ...,
    help="Publish directory of the built site",
    exists=True,
    file_okay=False,
    dir_okay=True,
)
INPUTS_OPTION = typer.Option(None, "--inputs", "-i", help="Inputs JSON file (default: ./cloudinary.json)")
SECRETS_OPTION = typer.Option(None, "--secrets", help="secrets.json with a cloudinary section")
DELIVERY_TYPE_OPTION = typer.Option(None, "--delivery-type", "-d", help="Delivery type: fetch|upload")
FOLDER_OPTION = typer.Option(None, "--folder", "-f", help="Cloudinary folder (default: SITE_NAME)")
CLOUD_NAME_OPTION = typer.Option(None, "--cloud-name", help="Cloudinary cloud name")
IMAGES_PATH_OPTION = typer.Option(None, "--images-path", help="Asset directory under the publish dir (repeatable)")
HOST_OPTION = typer.Option(None, "--host", help="Public URL of the site (default: URL / DEPLOY_PRIME_URL)")
WIDTH_OPTION = typer.Option(None, "--max-width", help="Maximum image width")
HEIGHT_OPTION = typer.Option(None, "--max-height", help="Maximum image height")
DPR_OPTION = typer.Option(None, "--dpr", help="Device pixel ratio, e.g. 2.0")
CROP_OPTION = typer.Option(None, "--crop", help="Crop mode (default: limit)")


def collect_inputs(
    inputs_path: Optional[Path],
    delivery_type: Optional[str] = None,
    folder: Optional[str] = None,
    cloud_name: Optional[str] = None,
    images_path: Optional[list[str]] = None,
    host: Optional[str] = None,
    max_width: Optional[int] = None,
    max_height: Optional[int] = None,
    dpr: Optional[str] = None,
    crop: Optional[str] = None,
) -> dict[str, Any]:
    """Merge the inputs file with command line overrides.

    Returns:
        Inputs dictionary with camelCase keys
    """
    inputs = dict(load_inputs(inputs_path))

    overrides = {
        "deliveryType": delivery_type,
        "folder": folder,
        "cloudName": cloud_name,
        "imagesPath": images_path or None,
        "host": host,
    }
    inputs.update({key: value for key, value in overrides.items() if value is not None})

    sizing = {"width": max_width, "height": max_height, "dpr": dpr, "crop": crop}
    if any(value is not None for value in sizing.values()):
        max_size = dict(inputs.get("maxSize") or {})
        max_size.update({key: value for key, value in sizing.items() if value is not None})
        inputs["maxSize"] = max_size

    return inputs


def load_settings(publish_dir: Path, inputs: dict[str, Any], secrets_path: Optional[Path]) -> Settings:
    """Build settings or stop the command on a configuration error."""
    try:
        return build_settings(inputs, publish_dir, secrets=load_secrets(secrets_path))
    except ConfigError as e:
        print_error(f"Configuration error: {e}")
        raise typer.Exit(1)


def print_rules(rules: list[RedirectRule]) -> None:
    table = Table(title="Redirects (evaluation order)")
    table.add_column("From", style="cyan")
    table.add_column("To", style="green")
    table.add_column("Status", justify="right")

    for rule in rules:
        table.add_row(rule.from_path, rule.to, f"{rule.status}{'!' if rule.force else ''}")

    console.print(table)


def report(run: DeliveryRun, strict: bool = False) -> None:
    """Print the end-of-run status and any recorded errors."""
    status = run.finish()

    if len(run.errors) > 0:
        table = Table(title="Errors")
        table.add_column("Source", style="dim")
        table.add_column("Page", style="cyan")
        table.add_column("Detail", style="red")
        for error in run.errors:
            table.add_row(error.source, error.page or "", error.detail)
        console.print(table)
        print_warning(status.summary)
    else:
        print_success(status.summary)

    console.print(f"[bold]{status.title}[/bold] {status.text}")

    if strict and len(run.errors) > 0:
        raise typer.Exit(1)


async def _build(run: DeliveryRun, redirects_path: Path) -> list[RedirectRule]:
    rules = await run.build()
    if rules:
        prepend_redirects(redirects_path, rules)
    return rules


@app.command()
def build(
    publish_dir: Path = PUBLISH_DIR_ARGUMENT,
    inputs_path: Optional[Path] = INPUTS_OPTION,
    secrets_path: Optional[Path] = SECRETS_OPTION,
    delivery_type: Optional[str] = DELIVERY_TYPE_OPTION,
    folder: Optional[str] = FOLDER_OPTION,
    cloud_name: Optional[str] = CLOUD_NAME_OPTION,
    images_path: Optional[list[str]] = IMAGES_PATH_OPTION,
    host: Optional[str] = HOST_OPTION,
    max_width: Optional[int] = WIDTH_OPTION,
    max_height: Optional[int] = HEIGHT_OPTION,
    dpr: Optional[str] = DPR_OPTION,
    crop: Optional[str] = CROP_OPTION,
    show: bool = typer.Option(False, "--show", "-s", help="Print the planned redirects"),
) -> None:
    """Resolve assets and write CDN redirects to _redirects."""
    inputs = collect_inputs(inputs_path, delivery_type, folder, cloud_name, images_path, host, max_width, max_height, dpr, crop)
    settings = load_settings(publish_dir, inputs, secrets_path)
    run = DeliveryRun.start(settings)

    rules = asyncio.run(_build(run, publish_dir / REDIRECTS_FILE))

    if rules:
        print_success(f"Added {len(rules)} redirects to {REDIRECTS_FILE}")
        if show:
            print_rules(rules)

    report(run)


@app.command("post-build")
def post_build(
    publish_dir: Path = PUBLISH_DIR_ARGUMENT,
    inputs_path: Optional[Path] = INPUTS_OPTION,
    secrets_path: Optional[Path] = SECRETS_OPTION,
    delivery_type: Optional[str] = DELIVERY_TYPE_OPTION,
    folder: Optional[str] = FOLDER_OPTION,
    cloud_name: Optional[str] = CLOUD_NAME_OPTION,
    images_path: Optional[list[str]] = IMAGES_PATH_OPTION,
    host: Optional[str] = HOST_OPTION,
    max_width: Optional[int] = WIDTH_OPTION,
    max_height: Optional[int] = HEIGHT_OPTION,
    dpr: Optional[str] = DPR_OPTION,
    crop: Optional[str] = CROP_OPTION,
) -> None:
    """Rewrite image sources in every HTML page to Cloudinary URLs."""
    inputs = collect_inputs(inputs_path, delivery_type, folder, cloud_name, images_path, host, max_width, max_height, dpr, crop)
    settings = load_settings(publish_dir, inputs, secrets_path)
    run = DeliveryRun.start(settings)

    pages = asyncio.run(run.post_build())
    replaced = sum(p.result.replaced for p in pages if p.result is not None)
    print_success(f"Rewrote {replaced} image sources across {len(pages)} pages")

    report(run)


@app.command()
def deploy(
    publish_dir: Path = PUBLISH_DIR_ARGUMENT,
    inputs_path: Optional[Path] = INPUTS_OPTION,
    secrets_path: Optional[Path] = SECRETS_OPTION,
    delivery_type: Optional[str] = DELIVERY_TYPE_OPTION,
    folder: Optional[str] = FOLDER_OPTION,
    cloud_name: Optional[str] = CLOUD_NAME_OPTION,
    images_path: Optional[list[str]] = IMAGES_PATH_OPTION,
    host: Optional[str] = HOST_OPTION,
    max_width: Optional[int] = WIDTH_OPTION,
    max_height: Optional[int] = HEIGHT_OPTION,
    dpr: Optional[str] = DPR_OPTION,
    crop: Optional[str] = CROP_OPTION,
    strict: bool = typer.Option(False, "--strict", help="Exit with status 1 if any errors were recorded"),
) -> None:
    """Run both passes in one run: redirects first, then page rewriting."""
    inputs = collect_inputs(inputs_path, delivery_type, folder, cloud_name, images_path, host, max_width, max_height, dpr, crop)
    settings = load_settings(publish_dir, inputs, secrets_path)
    run = DeliveryRun.start(settings)

    async def both():
        rules = await _build(run, publish_dir / REDIRECTS_FILE)
        pages = await run.post_build()
        return rules, pages

    rules, pages = asyncio.run(both())

    replaced = sum(p.result.replaced for p in pages if p.result is not None)
    print_success(f"Added {len(rules)} redirects, rewrote {replaced} image sources across {len(pages)} pages")

    report(run, strict=strict)


@app.command()
def url(
    path: str = typer.Argument(..., help="Publish path of an asset, e.g. /images/cat.png"),
    publish_dir: Path = typer.Option(Path("."), "--publish-dir", "-p", help="Publish directory of the built site"),
    inputs_path: Optional[Path] = INPUTS_OPTION,
    secrets_path: Optional[Path] = SECRETS_OPTION,
    delivery_type: Optional[str] = DELIVERY_TYPE_OPTION,
    folder: Optional[str] = FOLDER_OPTION,
    cloud_name: Optional[str] = CLOUD_NAME_OPTION,
    host: Optional[str] = HOST_OPTION,
    max_width: Optional[int] = WIDTH_OPTION,
    max_height: Optional[int] = HEIGHT_OPTION,
    dpr: Optional[str] = DPR_OPTION,
    crop: Optional[str] = CROP_OPTION,
) -> None:
    """Print the Cloudinary URL for a single asset."""
    inputs = collect_inputs(inputs_path, delivery_type, folder, cloud_name, None, host, max_width, max_height, dpr, crop)
    settings = load_settings(publish_dir, inputs, secrets_path)
    run = DeliveryRun.start(settings)

    asset = AssetReference(publish_path=normalize_publish_path(path), original_path=path)
    try:
        resolved = asyncio.run(run.resolver.resolve(asset, settings.delivery_type, run.transformation))
    except ResolutionError as e:
        print_error(str(e))
        raise typer.Exit(1)

    console.print(resolved.cloudinary_url, highlight=False, soft_wrap=True)


@app.command()
def auth(
    inputs_path: Optional[Path] = INPUTS_OPTION,
    secrets_path: Optional[Path] = SECRETS_OPTION,
    cloud_name: Optional[str] = CLOUD_NAME_OPTION,
) -> None:
    """Validate configuration and test the Cloudinary connection."""
    inputs = collect_inputs(inputs_path, cloud_name=cloud_name)

    with console.status("[bold green]Validating configuration..."):
        settings = load_settings(Path("."), inputs, secrets_path)

    print_success("Configuration valid")
    console.print(f"  Cloud: {settings.cloud_name}")
    console.print(f"  Delivery: {settings.delivery_type}")
    console.print(f"  Folder: {settings.folder}")

    if not settings.can_sign_upload:
        print_warning("API key and secret not configured (signed uploads disabled)")
        return

    try:
        with console.status("[bold green]Testing Cloudinary connection..."):
            verify_connection(settings)
    except RuntimeError as e:
        print_error(f"Connection error: {e}")
        raise typer.Exit(1)

    print_success("Cloudinary connection successful")


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
