from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, TypeAdapter


class FileKind(str, Enum):
    IMAGE = "IMAGE"
    FILE = "FILE"
    VIDEO = "VIDEO"


class SyncMode(str, Enum):
    OVERWRITE = "overwrite"
    DEDUPE = "dedupe"


@dataclass(frozen=True)
class FileDescriptor:
    """One remote (or previously downloaded) file, normalized across Shopify file types."""

    filename: str
    kind: FileKind
    source_url: str | None = None
    local_path: Path | None = None
    alt: str | None = None
    created_at: str | None = None
    id: str | None = None
    status: str | None = None

    def __post_init__(self) -> None:
        if not self.source_url and self.local_path is None:
            raise ValueError(f"File {self.filename!r} needs a source_url or a local_path")

    @property
    def alt_text(self) -> str:
        return self.alt or self.filename


@dataclass(frozen=True)
class StagedUploadTarget:
    url: str
    resource_url: str
    # Presigned form fields; order is significant.
    parameters: tuple[tuple[str, str], ...]


@dataclass(frozen=True)
class MaterializeResult:
    filename: str
    url: str | None
    original_extension: str
    new_extension: str | None

    @property
    def format_changed(self) -> bool:
        return self.new_extension is not None and self.new_extension != self.original_extension


@dataclass
class ThemeReference:
    raw_token: str
    category: str
    filename: str
    resolved_url: str | None = None


@dataclass(frozen=True)
class FileFailure:
    filename: str
    kind: FileKind
    error: str


@dataclass
class SyncReport:
    succeeded: int = 0
    skipped: int = 0
    failed: int = 0
    synced: list[dict[str, Any]] = field(default_factory=list)
    skipped_files: list[dict[str, Any]] = field(default_factory=list)
    failures: list[FileFailure] = field(default_factory=list)

    def count_synced(self, kind: FileKind) -> int:
        return sum(1 for item in self.synced if item["type"] == kind.value)

    def count_skipped(self, kind: FileKind) -> int:
        return sum(1 for item in self.skipped_files if item["type"] == kind.value)

    def as_results_payload(self) -> dict[str, list[dict[str, Any]]]:
        return {
            "synced": list(self.synced),
            "skipped": list(self.skipped_files),
            "failed": [
                {"filename": failure.filename, "type": failure.kind.value, "error": failure.error}
                for failure in self.failures
            ],
        }


@dataclass
class RewriteReport:
    files_scanned: int = 0
    files_modified: int = 0
    references_resolved: int = 0
    unresolved: list[ThemeReference] = field(default_factory=list)


class FileMetadataRecord(BaseModel):
    """Entry of the JSON index written next to downloaded files."""

    id: str | None = None
    url: str
    type: FileKind
    filename: str
    alt: str | None = None
    createdAt: str | None = None
    status: str | None = None
    downloaded: bool = False
    error: str | None = None

    @classmethod
    def from_descriptor(cls, descriptor: FileDescriptor) -> "FileMetadataRecord":
        return cls(
            id=descriptor.id,
            url=descriptor.source_url or "",
            type=descriptor.kind,
            filename=descriptor.filename,
            alt=descriptor.alt,
            createdAt=descriptor.created_at,
            status=descriptor.status,
        )


FILE_METADATA_INDEX = TypeAdapter(list[FileMetadataRecord])
