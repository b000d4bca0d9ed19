from __future__ import annotations

import logging
from pathlib import PurePosixPath
from typing import Any

from shopify_file_sync.config import StoreCredentials
from shopify_file_sync.files import filename_from_url
from shopify_file_sync.schemas import FileDescriptor, MaterializeResult
from shopify_file_sync.shopify_api import ShopifyAdminClient, guess_mime_type, node_delivery_url

logger = logging.getLogger(__name__)


def file_extension(filename: str) -> str:
    return PurePosixPath(filename).suffix.lstrip(".").lower()


class FileMaterializer:
    """Create a file on the target store, by URL reference or by staged upload.

    Descriptors with a `source_url` are created directly from that URL and
    Shopify fetches the bytes itself. Descriptors that only have a
    `local_path` go through `stagedUploadsCreate`, a streamed multipart
    upload, and then `fileCreate` with the returned resource URL.

    `ShopifyApiError` is raised on transport failures and on any userErrors;
    callers decide whether that is fatal.
    """

    def __init__(self, client: ShopifyAdminClient, target: StoreCredentials) -> None:
        self.client = client
        self.target = target

    async def materialize(self, descriptor: FileDescriptor) -> MaterializeResult:
        if descriptor.source_url:
            created = await self._create_from_url(descriptor)
        else:
            created = await self._create_from_staged_upload(descriptor)

        url = node_delivery_url(created)
        new_extension = file_extension(filename_from_url(url)) if url else None
        result = MaterializeResult(
            filename=descriptor.filename,
            url=url,
            original_extension=file_extension(descriptor.filename),
            new_extension=new_extension,
        )
        if result.format_changed:
            logger.info(
                "Shopify re-encoded file",
                extra={
                    "file_name": descriptor.filename,
                    "from": result.original_extension,
                    "to": result.new_extension,
                },
            )
        return result

    async def _create_from_url(self, descriptor: FileDescriptor) -> dict[str, Any]:
        file_input = {
            "alt": descriptor.alt_text,
            "contentType": descriptor.kind.value,
            "originalSource": descriptor.source_url,
            "filename": descriptor.filename,
        }
        created = await self.client.create_files(
            shop_domain=self.target.shop_domain,
            access_token=self.target.access_token,
            files=[file_input],
        )
        return created[0]

    async def _create_from_staged_upload(self, descriptor: FileDescriptor) -> dict[str, Any]:
        path = descriptor.local_path
        if path is None:
            raise ValueError(f"File {descriptor.filename!r} has no local path to upload")
        mime_type = guess_mime_type(descriptor.filename)
        file_size = path.stat().st_size

        target = await self.client.create_staged_upload(
            shop_domain=self.target.shop_domain,
            access_token=self.target.access_token,
            filename=descriptor.filename,
            mime_type=mime_type,
            file_size=file_size,
            resource=descriptor.kind.value,
        )
        resource_url = await self.client.upload_to_staged_target(
            target=target,
            path=path,
            mime_type=mime_type,
        )
        # An upload that lands but is never registered stays orphaned on Shopify.
        created = await self.client.create_files(
            shop_domain=self.target.shop_domain,
            access_token=self.target.access_token,
            files=[
                {
                    "alt": descriptor.alt_text,
                    "contentType": descriptor.kind.value,
                    "originalSource": resource_url,
                }
            ],
        )
        return created[0]
