from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import AsyncIterable, Callable, Iterable

from pydantic import ValidationError

from shopify_file_sync.config import ConfigurationError, StoreCredentials
from shopify_file_sync.duplicates import DuplicateMatcher, FilenameDuplicateMatcher
from shopify_file_sync.files import kind_for_filename, list_files
from shopify_file_sync.materializer import FileMaterializer
from shopify_file_sync.schemas import (
    FILE_METADATA_INDEX,
    FileDescriptor,
    FileFailure,
    FileKind,
    SyncMode,
    SyncReport,
)
from shopify_file_sync.shopify_api import ShopifyAdminClient, ShopifyApiError

logger = logging.getLogger(__name__)

METADATA_FILENAME = "files-metadata.json"


class SyncOrchestrator:
    """Copy files onto the target store one at a time.

    A failing file is recorded in the report and the run moves on; only a
    failure of the source listing itself ends the run early.
    """

    def __init__(
        self,
        client: ShopifyAdminClient,
        target: StoreCredentials,
        *,
        matcher: DuplicateMatcher | None = None,
        materializer: FileMaterializer | None = None,
        progress: Callable[[str], None] = print,
    ) -> None:
        self.client = client
        self.target = target
        self.matcher = matcher or FilenameDuplicateMatcher()
        self.materializer = materializer or FileMaterializer(client, target)
        self.progress = progress

    async def run(
        self,
        source: StoreCredentials,
        *,
        mode: SyncMode = SyncMode.OVERWRITE,
        media_only: bool = False,
    ) -> SyncReport:
        self.progress(f"Source: {source.shop_domain}")
        self.progress(f"Target: {self.target.shop_domain}\n")
        descriptors = list_files(self.client, source, media_only=media_only)
        return await self.sync_descriptors(descriptors, mode=mode)

    async def sync_descriptors(
        self,
        descriptors: AsyncIterable[FileDescriptor] | Iterable[FileDescriptor],
        *,
        mode: SyncMode = SyncMode.OVERWRITE,
    ) -> SyncReport:
        report = SyncReport()
        if isinstance(descriptors, AsyncIterable):
            async for descriptor in descriptors:
                await self._sync_one(descriptor, mode=mode, report=report)
        else:
            for descriptor in descriptors:
                await self._sync_one(descriptor, mode=mode, report=report)
        return report

    async def _sync_one(self, descriptor: FileDescriptor, *, mode: SyncMode, report: SyncReport) -> None:
        self.progress(f"Syncing: {descriptor.filename} ({descriptor.kind.value})")
        try:
            if mode is SyncMode.DEDUPE and await self.matcher.exists(
                self.client, self.target, descriptor.filename
            ):
                report.skipped += 1
                report.skipped_files.append({"filename": descriptor.filename, "type": descriptor.kind.value})
                self.progress("   Skipped (already exists)")
                return
            result = await self.materializer.materialize(descriptor)
        except (ShopifyApiError, OSError, ValueError) as exc:
            report.failed += 1
            report.failures.append(FileFailure(filename=descriptor.filename, kind=descriptor.kind, error=str(exc)))
            logger.warning("File sync failed", extra={"file_name": descriptor.filename, "error": str(exc)})
            self.progress(f"   Failed: {exc}")
            return

        report.succeeded += 1
        report.synced.append({"filename": descriptor.filename, "type": descriptor.kind.value, "url": result.url})
        self.progress("   Success")
        self.progress(f"   New URL: {result.url or 'URL not available'}")
        if result.format_changed:
            self.progress(f"   Format changed: {result.original_extension} -> {result.new_extension}")


def load_local_descriptors(directory: Path) -> list[FileDescriptor]:
    """Describe every non-JSON file in a download directory for staged upload."""
    if not directory.is_dir():
        raise ConfigurationError(f"Directory not found: {directory}")

    alt_by_filename: dict[str, str] = {}
    metadata_path = directory / METADATA_FILENAME
    if metadata_path.is_file():
        try:
            records = FILE_METADATA_INDEX.validate_json(metadata_path.read_bytes())
        except ValidationError as exc:
            logger.warning("Ignoring invalid metadata index", extra={"path": str(metadata_path)}, exc_info=exc)
        else:
            alt_by_filename = {record.filename: record.alt for record in records if record.alt}

    descriptors: list[FileDescriptor] = []
    for path in sorted(directory.iterdir()):
        if not path.is_file() or path.suffix.lower() == ".json":
            continue
        descriptors.append(
            FileDescriptor(
                filename=path.name,
                kind=kind_for_filename(path.name),
                local_path=path,
                alt=alt_by_filename.get(path.name),
            )
        )
    return descriptors


def print_summary(report: SyncReport, *, progress: Callable[[str], None] = print, by_kind: bool = False) -> None:
    progress("\nSync Summary:")
    progress(f"Successfully synced: {report.succeeded} files")
    if report.skipped:
        progress(f"Skipped (duplicates): {report.skipped} files")
    progress(f"Failed: {report.failed} files")

    if by_kind:
        progress("\nBreakdown by type:")
        for kind in FileKind:
            progress(
                f"   {kind.value}: {report.count_synced(kind)} synced, {report.count_skipped(kind)} skipped"
            )

    if report.failures:
        progress("\nFailed files:")
        for failure in report.failures:
            progress(f"   - {failure.filename}: {failure.error}")


def write_github_output(report: SyncReport, output_path: Path) -> None:
    lines = [
        f"synced_count={report.succeeded}",
        f"skipped_count={report.skipped}",
        f"failed_count={report.failed}",
        f"synced_images={report.count_synced(FileKind.IMAGE)}",
        f"synced_videos={report.count_synced(FileKind.VIDEO)}",
        f"results={json.dumps(report.as_results_payload())}",
    ]
    with output_path.open("a", encoding="utf-8") as handle:
        for line in lines:
            handle.write(f"{line}\n")
