from __future__ import annotations

import logging
from typing import Any, AsyncIterator
from urllib.parse import urlsplit

from shopify_file_sync.config import StoreCredentials
from shopify_file_sync.schemas import FileDescriptor, FileKind
from shopify_file_sync.shopify_api import ShopifyAdminClient, guess_mime_type

logger = logging.getLogger(__name__)

MEDIA_ONLY_QUERY = "media_type:IMAGE OR media_type:VIDEO"
UNNAMED_FILE = "unnamed-file"


def filename_from_url(url: str) -> str:
    path = urlsplit(url).path
    filename = path.rsplit("/", 1)[-1]
    return filename or UNNAMED_FILE


def kind_for_filename(filename: str) -> FileKind:
    mime_type = guess_mime_type(filename)
    if mime_type.startswith("image/") and mime_type != "image/svg+xml":
        return FileKind.IMAGE
    if mime_type.startswith("video/"):
        return FileKind.VIDEO
    return FileKind.FILE


def descriptor_from_node(node: dict[str, Any]) -> FileDescriptor | None:
    """Classify a `files` node as image, generic file or video, in that order.

    Nodes carrying none of the three payloads (e.g. still processing) yield None.
    """
    url: str | None = None
    kind: FileKind | None = None

    image = node.get("image")
    original_source = node.get("originalSource")
    if isinstance(image, dict) and image.get("url"):
        url, kind = image["url"], FileKind.IMAGE
    elif isinstance(node.get("url"), str) and node["url"]:
        url, kind = node["url"], FileKind.FILE
    elif isinstance(original_source, dict) and original_source.get("url"):
        url, kind = original_source["url"], FileKind.VIDEO

    if url is None or kind is None:
        return None

    alt = node.get("alt")
    return FileDescriptor(
        filename=filename_from_url(url),
        kind=kind,
        source_url=url,
        alt=alt if isinstance(alt, str) and alt else None,
        created_at=node.get("createdAt"),
        id=node.get("id"),
        status=node.get("fileStatus"),
    )


async def list_files(
    client: ShopifyAdminClient,
    store: StoreCredentials,
    *,
    media_only: bool = False,
) -> AsyncIterator[FileDescriptor]:
    """Yield every file on the store, one page request at a time.

    Restarting means calling again; there is no durable cursor. Errors from any
    page propagate and end the listing.
    """
    cursor: str | None = None
    page_number = 0
    while True:
        nodes, last_cursor, has_next_page = await client.list_files_page(
            shop_domain=store.shop_domain,
            access_token=store.access_token,
            cursor=cursor,
            query=MEDIA_ONLY_QUERY if media_only else None,
        )
        page_number += 1
        logger.debug(
            "Fetched files page",
            extra={"shop_domain": store.shop_domain, "page": page_number, "count": len(nodes)},
        )
        for node in nodes:
            descriptor = descriptor_from_node(node)
            if descriptor is None:
                logger.debug("Dropping file node without a url", extra={"node_id": node.get("id")})
                continue
            yield descriptor

        if not has_next_page or not nodes or last_cursor is None:
            return
        cursor = last_cursor
