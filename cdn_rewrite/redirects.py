"""Redirect planning for CDN Rewrite.

Builds the ordered redirect rules that send asset requests to the CDN, and
writes them ahead of any existing rules in the site's _redirects file.
"""

from pathlib import Path
from typing import Iterable
from urllib.parse import quote

from .models import DeliveryType, RedirectRule, ResolvedAsset, TransformationSpec
from .storage import build_shadow_path, normalize_publish_path
from .upload import CdnBackend


REDIRECTS_FILE = "_redirects"


def rule_path(path: str) -> str:
    """Percent-escape a publish path so it stays one whitespace-separated field."""
    return quote(path, safe="/")


class RedirectPlan:
    """Ordered rule builder.

    Rules added later take precedence: rules() returns them most recent
    first, which is the order the router evaluates them in.
    """

    def __init__(self):
        self._added: list[RedirectRule] = []

    def __len__(self) -> int:
        return len(self._added)

    def add(self, rule: RedirectRule) -> None:
        self._added.append(rule)

    def rules(self) -> list[RedirectRule]:
        return list(reversed(self._added))

    def apply(self, existing: Iterable[RedirectRule]) -> list[RedirectRule]:
        """Place the planned rules ahead of existing ones."""
        return self.rules() + list(existing)


def plan_upload_redirects(assets: Iterable[ResolvedAsset]) -> RedirectPlan:
    """One forced temporary redirect per uploaded asset.

    Args:
        assets: Resolved assets in discovery order

    Returns:
        RedirectPlan with the last discovered asset evaluated first
    """
    plan = RedirectPlan()
    for asset in assets:
        plan.add(RedirectRule(
            from_path=f"{rule_path(asset.publish_path)}*",
            to=asset.cloudinary_url,
            status=302,
            force=True,
        ))
    return plan


def plan_fetch_redirects(
    images_path: Iterable[str],
    host: str,
    transformation: TransformationSpec,
    backend: CdnBackend,
) -> RedirectPlan:
    """Two rules per asset directory for fetch delivery.

    Requests for /images/* go to the CDN, which fetches the original from
    /cld-assets/images/*. That shadow path is served from the real file with
    a 200 rewrite, and is evaluated ahead of the redirect so the CDN's fetch
    never loops back to itself.

    Args:
        images_path: Rooted asset directories
        host: Public origin of the site
        transformation: Transformation spec for the run
        backend: Backend used to build the fetch URL

    Returns:
        RedirectPlan for all directories
    """
    plan = RedirectPlan()
    seen = set()

    for media_path in images_path:
        media_path = normalize_publish_path(media_path)
        if media_path in seen:
            continue
        seen.add(media_path)

        shadow_path = build_shadow_path(media_path)
        fetch_url = backend.build_url(f"{host}{shadow_path}/:splat", transformation, "fetch")

        plan.add(RedirectRule(
            from_path=f"{rule_path(media_path)}/*",
            to=fetch_url,
            status=302,
            force=True,
        ))
        plan.add(RedirectRule(
            from_path=f"{rule_path(shadow_path)}/*",
            to=f"{rule_path(media_path)}/:splat",
            status=200,
            force=True,
        ))

    return plan


def plan_redirects(
    resolved_assets: Iterable[ResolvedAsset],
    mode: DeliveryType,
    *,
    images_path: Iterable[str] = (),
    host: str | None = None,
    transformation: TransformationSpec | None = None,
    backend: CdnBackend | None = None,
) -> list[RedirectRule]:
    """Plan the redirect rules for a delivery type.

    An empty asset list is not an error; fetch mode only needs directories.

    Args:
        resolved_assets: Resolved assets in discovery order (upload mode)
        mode: fetch or upload
        images_path: Asset directories (fetch mode)
        host: Public origin of the site (fetch mode)
        transformation: Transformation spec (fetch mode)
        backend: Backend used to build fetch URLs (fetch mode)

    Returns:
        Rules in evaluation order
    """
    if mode == "upload":
        return plan_upload_redirects(resolved_assets).rules()

    if mode == "fetch":
        if not host or backend is None:
            raise ValueError("Fetch redirects need a host and a backend")
        return plan_fetch_redirects(
            images_path,
            host,
            transformation or TransformationSpec(),
            backend,
        ).rules()

    raise ValueError(f"Unknown delivery type: {mode}")


def parse_redirect_line(line: str) -> RedirectRule | None:
    """Parse one line of a _redirects file.

    Args:
        line: Raw line

    Returns:
        RedirectRule, or None for blank lines and comments
    """
    stripped = line.strip()
    if not stripped or stripped.startswith("#"):
        return None

    parts = stripped.split()
    if len(parts) < 2:
        raise ValueError(f"Invalid redirect rule: {line!r}")

    status = 301
    force = False
    if len(parts) >= 3 and parts[2].rstrip("!").isdigit():
        status_field = parts[2]
        force = status_field.endswith("!")
        status = int(status_field.rstrip("!"))

    return RedirectRule(from_path=parts[0], to=parts[1], status=status, force=force)


def render_redirects(rules: Iterable[RedirectRule]) -> str:
    return "".join(f"{rule.to_line()}\n" for rule in rules)


def _is_planned(line: str, planned: set[RedirectRule]) -> bool:
    try:
        return parse_redirect_line(line) in planned
    except ValueError:
        return False


def prepend_redirects(redirects_path: Path, rules: list[RedirectRule]) -> Path:
    """Write rules ahead of whatever the _redirects file already holds.

    Existing lines are kept verbatim, except copies of the planned rules left
    by an earlier run, which are dropped so running twice gives the same file.

    Args:
        redirects_path: Path to the _redirects file (created if missing)
        rules: Rules in evaluation order

    Returns:
        Path to the written file
    """
    existing = ""
    if redirects_path.exists():
        existing = redirects_path.read_text(encoding="utf-8")

    planned = set(rules)
    kept = [line for line in existing.splitlines(keepends=True) if not _is_planned(line, planned)]

    with open(redirects_path, "w", encoding="utf-8") as f:
        f.write(render_redirects(rules))
        f.writelines(kept)

    return redirects_path


def read_redirects(redirects_path: Path) -> list[RedirectRule]:
    """Read all rules from a _redirects file, in evaluation order."""
    if not redirects_path.exists():
        return []

    rules = []
    for line in redirects_path.read_text(encoding="utf-8").splitlines():
        rule = parse_redirect_line(line)
        if rule is not None:
            rules.append(rule)
    return rules
