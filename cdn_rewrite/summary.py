"""Run error collection and end-of-run reporting for CDN Rewrite."""

from typing import Iterator

from .models import ErrorSource, RunError, StatusPayload


STATUS_TITLE = "[Cloudinary] Done."


class RunErrors:
    """Append-only list of recoverable errors for one run."""

    def __init__(self):
        self._errors: list[RunError] = []

    def __len__(self) -> int:
        return len(self._errors)

    def __iter__(self) -> Iterator[RunError]:
        return iter(self._errors)

    def add(self, source: ErrorSource, detail: str, page: str | None = None) -> RunError:
        error = RunError(source=source, detail=detail, page=page)
        self._errors.append(error)
        return error

    def by_source(self, source: ErrorSource) -> list[RunError]:
        return [e for e in self._errors if e.source == source]


def summarize(errors: RunErrors) -> StatusPayload:
    """Build the status payload shown at the end of a run.

    Args:
        errors: Errors recorded during the run

    Returns:
        StatusPayload stating whether any errors occurred
    """
    count = len(errors)

    if count > 0:
        summary = f"Cloudinary build plugin completed with {count} errors"
        text = f"The build process found {count} errors. Check build logs for more information"
    else:
        summary = "Cloudinary build plugin completed successfully"
        text = "No errors found during build"

    return StatusPayload(title=STATUS_TITLE, summary=summary, text=text)
