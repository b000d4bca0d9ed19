from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from shopify_file_sync.config import StoreCredentials
from shopify_file_sync.files import list_files
from shopify_file_sync.schemas import FILE_METADATA_INDEX, FileMetadataRecord
from shopify_file_sync.shopify_api import ShopifyAdminClient, ShopifyApiError
from shopify_file_sync.sync import METADATA_FILENAME

logger = logging.getLogger(__name__)

DEFAULT_DOWNLOAD_DIRECTORY = Path("shopify-admin-files")


@dataclass
class DownloadReport:
    directory: Path
    metadata_path: Path
    records: list[FileMetadataRecord] = field(default_factory=list)

    @property
    def downloaded(self) -> int:
        return sum(1 for record in self.records if record.downloaded)

    @property
    def failed(self) -> int:
        return sum(1 for record in self.records if not record.downloaded)


async def download_files(
    client: ShopifyAdminClient,
    source: StoreCredentials,
    directory: Path = DEFAULT_DOWNLOAD_DIRECTORY,
    *,
    progress: Callable[[str], None] = print,
) -> DownloadReport:
    """Download every file on the store and write the JSON index next to them.

    The listing is collected up front. The index is written once every
    download has been attempted, including failed ones.
    """
    directory.mkdir(parents=True, exist_ok=True)
    descriptors = [descriptor async for descriptor in list_files(client, source)]
    progress(f"Found {len(descriptors)} files\n")

    report = DownloadReport(directory=directory, metadata_path=directory / METADATA_FILENAME)
    claimed: set[str] = set()
    for index, descriptor in enumerate(descriptors, start=1):
        record = FileMetadataRecord.from_descriptor(descriptor)
        destination = directory / _unique_filename(descriptor.filename, claimed)
        claimed.add(destination.name)
        record.filename = destination.name
        partial = destination.with_name(f"{destination.name}.part")
        progress(f"[{index}/{len(descriptors)}] Downloading: {descriptor.filename}")
        try:
            await client.download_file(url=record.url, destination=partial)
            partial.replace(destination)
        except (ShopifyApiError, OSError) as exc:
            partial.unlink(missing_ok=True)
            record.error = str(exc)
            logger.warning("Download failed", extra={"file_name": descriptor.filename, "error": str(exc)})
            progress(f"  Error: {exc}")
        else:
            record.downloaded = True
            progress(f"  Saved to: {destination}")
        report.records.append(record)

    report.metadata_path.write_bytes(FILE_METADATA_INDEX.dump_json(report.records, indent=2))
    progress(f"\nDownload complete! Files saved to: {directory}/")
    progress(f"Metadata saved to: {report.metadata_path}")
    return report


def _unique_filename(filename: str, claimed: set[str]) -> str:
    """Same-named files from different CDN paths get `-2`, `-3`... before the extension."""
    if filename not in claimed:
        return filename
    path = Path(filename)
    counter = 2
    while f"{path.stem}-{counter}{path.suffix}" in claimed:
        counter += 1
    return f"{path.stem}-{counter}{path.suffix}"
