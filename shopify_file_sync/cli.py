from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Sequence

from pydantic import ValidationError

from shopify_file_sync.config import ConfigurationError, Settings, get_settings
from shopify_file_sync.download import DEFAULT_DOWNLOAD_DIRECTORY, download_files
from shopify_file_sync.files import descriptor_from_node, list_files
from shopify_file_sync.rewriter import ReferenceRewriter
from shopify_file_sync.schemas import SyncMode
from shopify_file_sync.shopify_api import ShopifyAdminClient, ShopifyApiError, node_delivery_url
from shopify_file_sync.sync import SyncOrchestrator, load_local_descriptors, print_summary, write_github_output

logger = logging.getLogger(__name__)

USAGE_HINT = """Set the store configuration through environment variables (or .env):
  export SOURCE_STORE="your-production-store.myshopify.com"    # or PRODUCTION_STORE
  export SOURCE_ACCESS_TOKEN="shpat_xxxxx"                      # or PRODUCTION_ACCESS_TOKEN
  export TARGET_STORE="your-staging-store.myshopify.com"       # or STAGING_STORE
  export TARGET_ACCESS_TOKEN="shpat_xxxxx"                      # or STAGING_ACCESS_TOKEN"""


def _admin_client(settings: Settings) -> ShopifyAdminClient:
    return ShopifyAdminClient(
        api_version=settings.SHOPIFY_ADMIN_API_VERSION,
        timeout=settings.SHOPIFY_REQUEST_TIMEOUT_SECONDS,
    )


async def _run_sync(args: argparse.Namespace, settings: Settings) -> int:
    source = settings.source()
    target = settings.target()
    mode = SyncMode(args.mode)
    client = _admin_client(settings)

    print(f"File Sync ({mode.value}): {source.role} -> {target.role}\n")
    report = await SyncOrchestrator(client, target).run(source, mode=mode, media_only=args.media_only)
    print_summary(report, by_kind=mode is SyncMode.DEDUPE)
    if settings.GITHUB_OUTPUT:
        write_github_output(report, settings.GITHUB_OUTPUT)
    print("\nSync complete!")
    return 0


async def _run_upload(args: argparse.Namespace, settings: Settings) -> int:
    target = settings.target()
    descriptors = load_local_descriptors(Path(args.directory))
    print(f"Uploading files to: {target.shop_domain}")
    print(f"From directory: {args.directory}\n")
    print(f"Found {len(descriptors)} files to upload\n")

    report = await SyncOrchestrator(_admin_client(settings), target).sync_descriptors(descriptors)
    print("=" * 60)
    print(f"Upload complete! {report.succeeded}/{len(descriptors)} files uploaded successfully")
    print_summary(report)
    if settings.GITHUB_OUTPUT:
        write_github_output(report, settings.GITHUB_OUTPUT)
    return 0


async def _run_download(args: argparse.Namespace, settings: Settings) -> int:
    source = settings.source()
    print(f"Fetching files from {source.shop_domain}...\n")
    report = await download_files(_admin_client(settings), source, Path(args.directory))
    if report.failed:
        print(f"{report.failed} of {len(report.records)} downloads failed")
    return 0


async def _run_rewrite(args: argparse.Namespace, settings: Settings) -> int:
    target = settings.target()
    root = Path(args.root)
    if not root.is_dir():
        raise ConfigurationError(f"Theme directory not found: {root}")

    print(f"Replace shopify:// URLs with CDN URLs from {target.shop_domain}\n")
    report = await ReferenceRewriter(_admin_client(settings), target).rewrite(root)
    print("\n" + "=" * 60)
    print("Processing complete!")
    print(f"   Files scanned: {report.files_scanned}")
    print(f"   Files modified: {report.files_modified}")
    print(f"   URLs replaced: {report.references_resolved}")
    if report.unresolved:
        print(f"   Unresolved references: {len(report.unresolved)}")
        for reference in report.unresolved:
            print(f"     - {reference.raw_token}")
    if report.files_modified:
        print("\nTheme files have been modified locally. Review them and push with `shopify theme push`.")
    return 0


async def _run_lookup(args: argparse.Namespace, settings: Settings) -> int:
    target = settings.target()
    client = _admin_client(settings)
    for filename in args.names:
        print(f"\nSearching for: {filename}")
        try:
            nodes = await client.search_files(
                shop_domain=target.shop_domain,
                access_token=target.access_token,
                query=filename,
            )
        except ShopifyApiError as exc:
            logger.warning("File lookup failed", extra={"file_name": filename, "error": str(exc)})
            print(f"  Error searching for {filename}: {exc}")
            continue
        if not nodes:
            print(f"  Not found: {filename}")
            continue
        for position, node in enumerate(nodes, start=1):
            descriptor = descriptor_from_node(node)
            print(f"  File {position}:")
            print(f"  - ID: {node.get('id')}")
            print(f"  - Type: {descriptor.kind.value if descriptor else 'UNKNOWN'}")
            print(f"  - URL: {node_delivery_url(node) or 'URL not available'}")
            print(f"  - Alt: {node.get('alt') or '(no alt text)'}")
    return 0


async def _run_list(args: argparse.Namespace, settings: Settings) -> int:
    source = settings.source()
    lines = []
    async for descriptor in list_files(_admin_client(settings), source):
        created = (descriptor.created_at or "").split("T")[0]
        lines.append(f"{created} - {descriptor.source_url}")
    for line in sorted(lines):
        print(line)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="shopify-file-sync",
        description="Keep Shopify Content > Files and theme file references in sync between stores.",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    sync_parser = subparsers.add_parser("sync", help="Create every source file on the target store by URL.")
    sync_parser.add_argument(
        "--mode",
        choices=[mode.value for mode in SyncMode],
        default=SyncMode.OVERWRITE.value,
        help="overwrite always creates; dedupe skips files whose name already exists on the target.",
    )
    sync_parser.add_argument("--media-only", action="store_true", help="Only sync images and videos.")
    sync_parser.set_defaults(handler=_run_sync)

    upload_parser = subparsers.add_parser("upload", help="Upload a local directory to the target store.")
    upload_parser.add_argument("directory", nargs="?", default=str(DEFAULT_DOWNLOAD_DIRECTORY))
    upload_parser.set_defaults(handler=_run_upload)

    download_parser = subparsers.add_parser("download", help="Download every source file to a directory.")
    download_parser.add_argument("directory", nargs="?", default=str(DEFAULT_DOWNLOAD_DIRECTORY))
    download_parser.set_defaults(handler=_run_download)

    rewrite_parser = subparsers.add_parser(
        "rewrite-references",
        help="Replace shopify:// references in theme files with target store CDN URLs.",
    )
    rewrite_parser.add_argument("root", nargs="?", default=".", help="Theme root directory.")
    rewrite_parser.set_defaults(handler=_run_rewrite)

    lookup_parser = subparsers.add_parser("lookup", help="Show target store URLs for the given filenames.")
    lookup_parser.add_argument("--name", dest="names", action="append", required=True)
    lookup_parser.set_defaults(handler=_run_lookup)

    list_parser = subparsers.add_parser("list", help="List every file on the source store.")
    list_parser.set_defaults(handler=_run_list)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        settings = get_settings()
        return asyncio.run(args.handler(args, settings))
    except (ConfigurationError, ValidationError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        print(USAGE_HINT, file=sys.stderr)
        return 1
    except ShopifyApiError as exc:
        logger.error("Shopify request failed", extra={"status_code": exc.status_code})
        print(f"\nFailed: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
