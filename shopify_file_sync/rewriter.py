from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Callable, Iterable

from shopify_file_sync.config import StoreCredentials
from shopify_file_sync.duplicates import DuplicateMatcher, FilenameDuplicateMatcher
from shopify_file_sync.schemas import RewriteReport, ThemeReference
from shopify_file_sync.shopify_api import ShopifyAdminClient, ShopifyApiError

logger = logging.getLogger(__name__)

THEME_DIRECTORIES = ("templates", "sections", "snippets", "layout", "config")
THEME_FILE_EXTENSIONS = (".json", ".liquid")
SHOPIFY_REFERENCE_RE = re.compile(r"shopify://(shop_images|files|videos)/[^\"'\s]+")


def find_theme_files(root: Path) -> list[Path]:
    files: list[Path] = []
    for directory in THEME_DIRECTORIES:
        base = root / directory
        if not base.is_dir():
            continue
        files.extend(
            sorted(
                path
                for path in base.rglob("*")
                if path.is_file() and path.name.endswith(THEME_FILE_EXTENSIONS)
            )
        )
    return files


def find_references(content: str) -> list[ThemeReference]:
    """Distinct `shopify://` references in first-seen order."""
    seen: dict[str, ThemeReference] = {}
    for match in SHOPIFY_REFERENCE_RE.finditer(content):
        token = match.group(0)
        if token in seen:
            continue
        category = match.group(1)
        seen[token] = ThemeReference(
            raw_token=token,
            category=category,
            filename=token[len(f"shopify://{category}/"):],
        )
    return list(seen.values())


class ReferenceRewriter:
    """Replace `shopify://` file references in theme sources with CDN URLs."""

    def __init__(
        self,
        client: ShopifyAdminClient,
        store: StoreCredentials,
        *,
        matcher: DuplicateMatcher | None = None,
        progress: Callable[[str], None] = print,
    ) -> None:
        self.client = client
        self.store = store
        self.matcher = matcher or FilenameDuplicateMatcher()
        self.progress = progress

    async def rewrite(self, root: Path) -> RewriteReport:
        return await self.rewrite_files(find_theme_files(root))

    async def rewrite_files(self, paths: Iterable[Path]) -> RewriteReport:
        report = RewriteReport()
        for path in paths:
            report.files_scanned += 1
            try:
                await self._rewrite_file(path, report)
            except (OSError, UnicodeDecodeError) as exc:
                logger.warning("Skipping unreadable theme file", extra={"path": str(path)}, exc_info=exc)
                self.progress(f"Error processing {path}: {exc}")
        return report

    async def _rewrite_file(self, path: Path, report: RewriteReport) -> None:
        original = path.read_bytes().decode("utf-8")
        references = find_references(original)
        if not references:
            return

        self.progress(f"\nProcessing: {path}")
        self.progress(f"   Found {len(references)} shopify:// reference(s)")
        resolved: dict[str, str] = {}
        for reference in references:
            self.progress(f"   Looking up: {reference.filename}")
            reference.resolved_url = await self._resolve(reference.filename)
            if reference.resolved_url:
                resolved[reference.raw_token] = reference.resolved_url
                self.progress(f"   Replaced with: {reference.resolved_url}")
            else:
                report.unresolved.append(reference)
                self.progress("   Not found on target store")

        content = SHOPIFY_REFERENCE_RE.sub(lambda match: resolved.get(match.group(0), match.group(0)), original)
        if content != original:
            path.write_bytes(content.encode("utf-8"))
            report.files_modified += 1
            report.references_resolved += len(resolved)

    async def _resolve(self, filename: str) -> str | None:
        try:
            return await self.matcher.resolve_url(self.client, self.store, filename)
        except ShopifyApiError as exc:
            logger.warning("File lookup failed", extra={"file_name": filename, "error": str(exc)})
            return None
