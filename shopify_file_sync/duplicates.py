from __future__ import annotations

import logging
import re
from typing import Protocol

from shopify_file_sync.config import StoreCredentials
from shopify_file_sync.shopify_api import ShopifyAdminClient, node_delivery_url

logger = logging.getLogger(__name__)

_EXTENSION_RE = re.compile(r"\.[^/.]+$")
_DIMENSION_SUFFIX_RE = re.compile(r"_\d+x\d+$")
_QUALITY_SUFFIX_RE = re.compile(r"_(hd|sd|720p|1080p|4k)$", re.IGNORECASE)


def duplicate_key(filename: str) -> str:
    """Normalize a filename to the identity used for duplicate detection.

    Strips one extension, then a trailing `_<W>x<H>` size suffix or, failing
    that, one video quality suffix: "photo_1024x1024.jpg" and "photo.png" both
    become "photo".
    """
    base = _EXTENSION_RE.sub("", filename)
    stripped = _DIMENSION_SUFFIX_RE.sub("", base)
    if stripped == base:
        stripped = _QUALITY_SUFFIX_RE.sub("", base)
    return stripped


class DuplicateMatcher(Protocol):
    async def exists(
        self,
        client: ShopifyAdminClient,
        store: StoreCredentials,
        filename: str,
    ) -> bool: ...

    async def resolve_url(
        self,
        client: ShopifyAdminClient,
        store: StoreCredentials,
        filename: str,
    ) -> str | None: ...


class FilenameDuplicateMatcher:
    """Approximate matching on the Shopify filename search; not a content hash."""

    def __init__(self, *, search_limit: int = 10) -> None:
        self._search_limit = search_limit

    @staticmethod
    def search_query(filename: str) -> str:
        # An empty key would turn into `filename:*` and match every file.
        return f"filename:{duplicate_key(filename) or filename}*"

    async def exists(
        self,
        client: ShopifyAdminClient,
        store: StoreCredentials,
        filename: str,
    ) -> bool:
        matches = await client.search_files(
            shop_domain=store.shop_domain,
            access_token=store.access_token,
            query=self.search_query(filename),
            first=self._search_limit,
        )
        return len(matches) > 0

    async def resolve_url(
        self,
        client: ShopifyAdminClient,
        store: StoreCredentials,
        filename: str,
    ) -> str | None:
        matches = await client.search_files(
            shop_domain=store.shop_domain,
            access_token=store.access_token,
            query=filename,
            first=1,
        )
        if not matches:
            return None
        return node_delivery_url(matches[0])
