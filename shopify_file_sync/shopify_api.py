from __future__ import annotations

import logging
import mimetypes
from pathlib import Path
from typing import Any

import httpx

from shopify_file_sync.schemas import StagedUploadTarget

logger = logging.getLogger(__name__)

FILES_PAGE_SIZE = 50
STAGED_UPLOAD_SUCCESS_STATUSES = frozenset({200, 201, 204})

_FILE_NODE_FIELDS = """
                alt
                createdAt
                fileStatus
                ... on MediaImage {
                    id
                    image {
                        url
                        width
                        height
                    }
                }
                ... on GenericFile {
                    id
                    url
                }
                ... on Video {
                    id
                    originalSource {
                        url
                    }
                }
"""

_MIME_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".svg": "image/svg+xml",
    ".webp": "image/webp",
    ".avif": "image/avif",
    ".mp4": "video/mp4",
    ".pdf": "application/pdf",
    ".csv": "text/csv",
}


class ShopifyApiError(RuntimeError):
    def __init__(self, *, message: str, status_code: int = 502) -> None:
        super().__init__(message)
        self.status_code = status_code


def guess_mime_type(filename: str) -> str:
    suffix = Path(filename).suffix.lower()
    if suffix in _MIME_TYPES:
        return _MIME_TYPES[suffix]
    guessed, _ = mimetypes.guess_type(filename)
    return guessed or "application/octet-stream"


def node_delivery_url(node: dict[str, Any]) -> str | None:
    image = node.get("image")
    if isinstance(image, dict) and isinstance(image.get("url"), str):
        return image["url"]
    if isinstance(node.get("url"), str):
        return node["url"]
    original_source = node.get("originalSource")
    if isinstance(original_source, dict) and isinstance(original_source.get("url"), str):
        return original_source["url"]
    sources = node.get("sources")
    if isinstance(sources, list) and sources:
        first = sources[0]
        if isinstance(first, dict) and isinstance(first.get("url"), str):
            return first["url"]
    return None


class ShopifyAdminClient:
    def __init__(
        self,
        *,
        api_version: str,
        timeout: float | None = 20.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_version = api_version
        self._timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    def admin_graphql_url(self, shop_domain: str) -> str:
        return f"https://{shop_domain}/admin/api/{self._api_version}/graphql.json"

    async def list_files_page(
        self,
        *,
        shop_domain: str,
        access_token: str,
        cursor: str | None = None,
        query: str | None = None,
        first: int = FILES_PAGE_SIZE,
    ) -> tuple[list[dict[str, Any]], str | None, bool]:
        graphql_query = f"""
        query getFiles($first: Int!, $cursor: String, $query: String) {{
            files(first: $first, after: $cursor, query: $query) {{
                edges {{
                    node {{{_FILE_NODE_FIELDS}
                    }}
                    cursor
                }}
                pageInfo {{
                    hasNextPage
                }}
            }}
        }}
        """
        payload = {
            "query": graphql_query,
            "variables": {"first": first, "cursor": cursor, "query": query},
        }
        response = await self._admin_graphql(
            shop_domain=shop_domain,
            access_token=access_token,
            payload=payload,
        )
        files = response.get("files")
        if not isinstance(files, dict):
            raise ShopifyApiError(message="Files response is missing files")
        edges = files.get("edges")
        if not isinstance(edges, list):
            raise ShopifyApiError(message="Files response is missing files.edges")
        page_info = files.get("pageInfo") or {}
        has_next_page = bool(page_info.get("hasNextPage"))

        nodes: list[dict[str, Any]] = []
        last_cursor: str | None = None
        for edge in edges:
            if not isinstance(edge, dict):
                continue
            node = edge.get("node")
            if isinstance(node, dict):
                nodes.append(node)
            edge_cursor = edge.get("cursor")
            if isinstance(edge_cursor, str) and edge_cursor:
                last_cursor = edge_cursor
        return nodes, last_cursor, has_next_page

    async def search_files(
        self,
        *,
        shop_domain: str,
        access_token: str,
        query: str,
        first: int = 10,
    ) -> list[dict[str, Any]]:
        graphql_query = f"""
        query searchFiles($first: Int!, $query: String!) {{
            files(first: $first, query: $query) {{
                edges {{
                    node {{{_FILE_NODE_FIELDS}
                    }}
                }}
            }}
        }}
        """
        payload = {"query": graphql_query, "variables": {"first": first, "query": query}}
        response = await self._admin_graphql(
            shop_domain=shop_domain,
            access_token=access_token,
            payload=payload,
        )
        edges = ((response.get("files") or {}).get("edges")) or []
        if not isinstance(edges, list):
            raise ShopifyApiError(message="File search response is invalid")
        return [edge["node"] for edge in edges if isinstance(edge, dict) and isinstance(edge.get("node"), dict)]

    async def create_files(
        self,
        *,
        shop_domain: str,
        access_token: str,
        files: list[dict[str, Any]],
    ) -> list[dict[str, Any]]:
        query = """
        mutation fileCreate($files: [FileCreateInput!]!) {
            fileCreate(files: $files) {
                files {
                    id
                    alt
                    createdAt
                    ... on MediaImage {
                        image {
                            url
                        }
                    }
                    ... on GenericFile {
                        url
                    }
                    ... on Video {
                        originalSource {
                            url
                        }
                        sources {
                            url
                        }
                    }
                }
                userErrors {
                    field
                    message
                }
            }
        }
        """
        payload = {"query": query, "variables": {"files": files}}
        response = await self._admin_graphql(
            shop_domain=shop_domain,
            access_token=access_token,
            payload=payload,
        )
        create_data = response.get("fileCreate")
        if not isinstance(create_data, dict):
            raise ShopifyApiError(message="Invalid fileCreate response")
        self._assert_no_user_errors(
            user_errors=create_data.get("userErrors") or [],
            mutation_name="fileCreate",
        )
        created = create_data.get("files") or []
        if not isinstance(created, list) or not created:
            raise ShopifyApiError(message="fileCreate returned no files")
        return created

    async def create_staged_upload(
        self,
        *,
        shop_domain: str,
        access_token: str,
        filename: str,
        mime_type: str,
        file_size: int,
        resource: str = "FILE",
    ) -> StagedUploadTarget:
        query = """
        mutation stagedUploadsCreate($input: [StagedUploadInput!]!) {
            stagedUploadsCreate(input: $input) {
                stagedTargets {
                    url
                    resourceUrl
                    parameters {
                        name
                        value
                    }
                }
                userErrors {
                    field
                    message
                }
            }
        }
        """
        payload = {
            "query": query,
            "variables": {
                "input": [
                    {
                        "filename": filename,
                        "mimeType": mime_type,
                        "resource": resource,
                        "fileSize": str(file_size),
                        "httpMethod": "POST",
                    }
                ]
            },
        }
        response = await self._admin_graphql(
            shop_domain=shop_domain,
            access_token=access_token,
            payload=payload,
        )
        staged_data = response.get("stagedUploadsCreate")
        if not isinstance(staged_data, dict):
            raise ShopifyApiError(message="Invalid staged upload response")
        self._assert_no_user_errors(
            user_errors=staged_data.get("userErrors") or [],
            mutation_name="stagedUploadsCreate",
        )
        targets = staged_data.get("stagedTargets") or []
        if not isinstance(targets, list) or not targets or not isinstance(targets[0], dict):
            raise ShopifyApiError(message="stagedUploadsCreate returned no staged targets")
        target = targets[0]
        url = target.get("url")
        resource_url = target.get("resourceUrl")
        if not isinstance(url, str) or not url:
            raise ShopifyApiError(message="Staged target is missing url")
        if not isinstance(resource_url, str) or not resource_url:
            raise ShopifyApiError(message="Staged target is missing resourceUrl")

        parameters: list[tuple[str, str]] = []
        for parameter in target.get("parameters") or []:
            name = parameter.get("name") if isinstance(parameter, dict) else None
            value = parameter.get("value") if isinstance(parameter, dict) else None
            if not isinstance(name, str) or not isinstance(value, str):
                raise ShopifyApiError(message="Staged target has an invalid parameter")
            parameters.append((name, value))
        return StagedUploadTarget(url=url, resource_url=resource_url, parameters=tuple(parameters))

    async def upload_to_staged_target(
        self,
        *,
        target: StagedUploadTarget,
        path: Path,
        mime_type: str,
    ) -> str:
        # httpx emits data fields in insertion order, then the file part, and
        # reads the file object in chunks. Repeated names become list values so
        # every occurrence is sent.
        form_fields: dict[str, str | list[str]] = {}
        for name, value in target.parameters:
            existing = form_fields.get(name)
            if existing is None:
                form_fields[name] = value
            elif isinstance(existing, list):
                existing.append(value)
            else:
                form_fields[name] = [existing, value]
        logger.debug("Uploading to staged target", extra={"url": target.url, "file": path.name})
        try:
            with path.open("rb") as stream:
                async with self._client() as client:
                    response = await client.post(
                        target.url,
                        data=form_fields,
                        files={"file": (path.name, stream, mime_type)},
                    )
        except httpx.RequestError as exc:
            raise ShopifyApiError(message=f"Network error while uploading {path.name}: {exc}") from exc

        if response.status_code not in STAGED_UPLOAD_SUCCESS_STATUSES:
            raise ShopifyApiError(
                message=f"Upload failed ({response.status_code}): {response.text}",
                status_code=response.status_code,
            )
        return target.resource_url

    async def download_file(self, *, url: str, destination: Path) -> int:
        written = 0
        try:
            async with self._client() as client:
                async with client.stream("GET", url, follow_redirects=True) as response:
                    if response.status_code >= 400:
                        raise ShopifyApiError(
                            message=f"Download failed ({response.status_code}) for {url}",
                            status_code=response.status_code,
                        )
                    with destination.open("wb") as handle:
                        async for chunk in response.aiter_bytes():
                            handle.write(chunk)
                            written += len(chunk)
        except httpx.RequestError as exc:
            raise ShopifyApiError(message=f"Network error while downloading {url}: {exc}") from exc
        return written

    @staticmethod
    def _assert_no_user_errors(*, user_errors: list[dict[str, Any]], mutation_name: str) -> None:
        if not user_errors:
            return
        messages = "; ".join(
            f"{'.'.join(str(part) for part in error.get('field') or [])}: {error.get('message')}"
            if error.get("field")
            else str(error.get("message"))
            for error in user_errors
        )
        raise ShopifyApiError(message=f"{mutation_name} failed: {messages}", status_code=409)

    async def _admin_graphql(
        self,
        *,
        shop_domain: str,
        access_token: str,
        payload: dict[str, Any],
    ) -> dict[str, Any]:
        url = self.admin_graphql_url(shop_domain)
        headers = {
            "Content-Type": "application/json",
            "X-Shopify-Access-Token": access_token,
        }
        response = await self._post_json(url=url, payload=payload, headers=headers)
        data = response.get("data")
        errors = response.get("errors")
        if errors:
            raise ShopifyApiError(message=f"Admin GraphQL errors: {errors}")
        if not isinstance(data, dict):
            raise ShopifyApiError(message="Admin GraphQL response is missing data")
        return data

    async def _post_json(
        self,
        *,
        url: str,
        payload: dict[str, Any],
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        try:
            async with self._client() as client:
                response = await client.post(url, json=payload, headers=headers)
        except httpx.RequestError as exc:
            raise ShopifyApiError(message=f"Network error while calling Shopify: {exc}") from exc

        if response.status_code >= 400:
            raise ShopifyApiError(
                message=f"Shopify API call failed ({response.status_code}): {response.text}",
                status_code=502,
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise ShopifyApiError(message="Shopify API returned invalid JSON") from exc

        if not isinstance(body, dict):
            raise ShopifyApiError(message="Shopify API response must be a JSON object")
        return body

