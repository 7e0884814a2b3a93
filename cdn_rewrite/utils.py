"""Utility functions for CDN Rewrite.

Provides console output helpers and file type detection.
"""

from pathlib import Path

from rich.console import Console


console = Console()

LOG_PREFIX = "[Cloudinary]"


def print_info(message: str) -> None:
    """Print a plain progress message.

    Args:
        message: Message to print
    """
    console.print(f"{LOG_PREFIX} {message}", highlight=False)


def print_success(message: str) -> None:
    """Print a success message with checkmark.

    Args:
        message: Message to print
    """
    console.print(f"[green]✓[/green] {LOG_PREFIX} {message}", highlight=False)


def print_error(message: str) -> None:
    """Print an error message with X mark.

    Args:
        message: Message to print
    """
    console.print(f"[red]✗[/red] {LOG_PREFIX} {message}", highlight=False)


def print_warning(message: str) -> None:
    """Print a warning message with exclamation mark.

    Args:
        message: Message to print
    """
    console.print(f"[yellow]![/yellow] {LOG_PREFIX} {message}", highlight=False)


def is_supported_image(path: Path) -> bool:
    """Check if file is a supported image format.

    Args:
        path: Path to file

    Returns:
        True if supported image format
    """
    return path.suffix.lower() in {
        '.jpg', '.jpeg', '.png', '.gif', '.webp',
        '.avif', '.svg', '.bmp', '.tiff', '.tif', '.ico'
    }


def is_html_page(path: Path) -> bool:
    return path.suffix.lower() in {'.html', '.htm'}
