from __future__ import annotations

import asyncio
from pathlib import Path

import httpx
import pytest

from shopify_file_sync.config import StoreCredentials
from shopify_file_sync.materializer import FileMaterializer, file_extension
from shopify_file_sync.schemas import FileDescriptor, FileKind, StagedUploadTarget
from shopify_file_sync.shopify_api import ShopifyAdminClient, ShopifyApiError

TARGET = StoreCredentials(role="target", shop_domain="staging.myshopify.com", access_token="shpat_staging")


def test_file_extension_is_lowercase_without_dot():
    assert file_extension("Photo.JPG") == "jpg"
    assert file_extension("README") == ""


def test_direct_reference_strategy_creates_from_source_url_without_upload(monkeypatch):
    client = ShopifyAdminClient(api_version="2025-01")
    created_inputs: list[dict] = []

    async def fake_create_files(*, shop_domain: str, access_token: str, files: list[dict]):
        created_inputs.extend(files)
        return [{"id": "gid://shopify/MediaImage/9", "image": {"url": "https://cdn.example/Ocean.avif?v=2"}}]

    async def forbidden(**kwargs):
        raise AssertionError("staged upload must not be used for URL-backed files")

    def forbidden_open(self, *args, **kwargs):
        raise AssertionError(f"no local file may be opened, tried {self}")

    client.create_files = fake_create_files  # type: ignore[method-assign]
    client.create_staged_upload = forbidden  # type: ignore[method-assign]
    client.upload_to_staged_target = forbidden  # type: ignore[method-assign]
    monkeypatch.setattr(Path, "open", forbidden_open)

    descriptor = FileDescriptor(
        filename="Ocean.avif",
        kind=FileKind.IMAGE,
        source_url="https://cdn.prod.example/Ocean.avif?v=1",
    )
    result = asyncio.run(FileMaterializer(client, TARGET).materialize(descriptor))

    assert created_inputs == [
        {
            "alt": "Ocean.avif",
            "contentType": "IMAGE",
            "originalSource": "https://cdn.prod.example/Ocean.avif?v=1",
            "filename": "Ocean.avif",
        }
    ]
    assert result.url == "https://cdn.example/Ocean.avif?v=2"
    assert result.format_changed is False


def test_direct_reference_reports_format_change_without_failing():
    client = ShopifyAdminClient(api_version="2025-01")

    async def fake_create_files(*, shop_domain: str, access_token: str, files: list[dict]):
        return [{"image": {"url": "https://cdn.example/banner.webp"}}]

    client.create_files = fake_create_files  # type: ignore[method-assign]

    descriptor = FileDescriptor(filename="banner.PNG", kind=FileKind.IMAGE, source_url="https://cdn/banner.PNG")
    result = asyncio.run(FileMaterializer(client, TARGET).materialize(descriptor))

    assert result.format_changed is True
    assert (result.original_extension, result.new_extension) == ("png", "webp")


def test_missing_delivery_url_is_not_a_format_change():
    client = ShopifyAdminClient(api_version="2025-01")

    async def fake_create_files(*, shop_domain: str, access_token: str, files: list[dict]):
        return [{"id": "gid://shopify/Video/1", "originalSource": None, "sources": []}]

    client.create_files = fake_create_files  # type: ignore[method-assign]

    descriptor = FileDescriptor(filename="clip.mp4", kind=FileKind.VIDEO, source_url="https://cdn/clip.mp4")
    result = asyncio.run(FileMaterializer(client, TARGET).materialize(descriptor))

    assert result.url is None
    assert result.format_changed is False


def test_staged_upload_strategy_uses_server_field_order(tmp_path):
    local_file = tmp_path / "brochure.pdf"
    local_file.write_bytes(b"%PDF-1.7 brochure")
    server_parameters = (
        ("Content-Type", "application/pdf"),
        ("success_action_status", "201"),
        ("acl", "private"),
        ("key", "tmp/77/brochure.pdf"),
        ("x-goog-date", "20250101T000000Z"),
        ("x-goog-credential", "cred"),
        ("x-goog-algorithm", "GOOG4-RSA-SHA256"),
        ("x-goog-signature", "sig"),
        ("policy", "pol"),
    )
    uploads: list[bytes] = []

    def upload_handler(request: httpx.Request) -> httpx.Response:
        uploads.append(request.content)
        return httpx.Response(201)

    client = ShopifyAdminClient(api_version="2025-01", transport=httpx.MockTransport(upload_handler))
    staged_requests: list[dict] = []
    created_inputs: list[dict] = []

    async def fake_create_staged_upload(**kwargs):
        staged_requests.append(kwargs)
        return StagedUploadTarget(
            url="https://storage.example/upload",
            resource_url="https://storage.example/upload/tmp/77/brochure.pdf",
            parameters=server_parameters,
        )

    async def fake_create_files(*, shop_domain: str, access_token: str, files: list[dict]):
        created_inputs.extend(files)
        return [{"id": "gid://shopify/GenericFile/5", "url": "https://cdn.example/brochure.pdf"}]

    client.create_staged_upload = fake_create_staged_upload  # type: ignore[method-assign]
    client.create_files = fake_create_files  # type: ignore[method-assign]

    descriptor = FileDescriptor(filename="brochure.pdf", kind=FileKind.FILE, local_path=local_file, alt="Spring brochure")
    result = asyncio.run(FileMaterializer(client, TARGET).materialize(descriptor))

    assert staged_requests[0]["filename"] == "brochure.pdf"
    assert staged_requests[0]["mime_type"] == "application/pdf"
    assert staged_requests[0]["file_size"] == len(b"%PDF-1.7 brochure")
    assert staged_requests[0]["resource"] == "FILE"

    body = uploads[0]
    names = [name for name, _ in server_parameters] + ["file"]
    positions = [body.index(f'name="{name}"'.encode()) for name in names]
    assert positions == sorted(positions)

    assert created_inputs == [
        {
            "alt": "Spring brochure",
            "contentType": "FILE",
            "originalSource": "https://storage.example/upload/tmp/77/brochure.pdf",
        }
    ]
    assert result.url == "https://cdn.example/brochure.pdf"


def test_staged_upload_failure_skips_registration(tmp_path):
    local_file = tmp_path / "clip.mp4"
    local_file.write_bytes(b"\x00\x01")

    def upload_handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, text="EntityTooLarge")

    client = ShopifyAdminClient(api_version="2025-01", transport=httpx.MockTransport(upload_handler))

    async def fake_create_staged_upload(**kwargs):
        return StagedUploadTarget(url="https://storage.example/upload", resource_url="https://r", parameters=())

    async def forbidden_create_files(**kwargs):
        raise AssertionError("fileCreate must not run after a failed upload")

    client.create_staged_upload = fake_create_staged_upload  # type: ignore[method-assign]
    client.create_files = forbidden_create_files  # type: ignore[method-assign]

    descriptor = FileDescriptor(filename="clip.mp4", kind=FileKind.VIDEO, local_path=local_file)

    with pytest.raises(ShopifyApiError, match=r"Upload failed \(400\)"):
        asyncio.run(FileMaterializer(client, TARGET).materialize(descriptor))


def test_descriptor_requires_url_or_local_path():
    with pytest.raises(ValueError):
        FileDescriptor(filename="orphan.png", kind=FileKind.IMAGE)
