from __future__ import annotations

import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

from .errors import BucketFSError, ExtensionNotAllowedError, FileTooLargeError
from .paths import extension

UPLOAD_PENDING = "pending"
UPLOAD_ACCEPTED = "accepted"
UPLOAD_REJECTED = "rejected"
UPLOAD_FAILED = "failed"
UPLOAD_SKIPPED = "skipped"


@dataclass
class UploadItem:
    name: str
    tmp_path: Optional[Path] = None
    content: Optional[bytes] = None
    size: Optional[int] = None
    error: int = 0
    status: str = UPLOAD_PENDING
    reason: Optional[BucketFSError] = None
    key: Optional[str] = None

    @classmethod
    def from_path(cls, path: Path, name: Optional[str] = None) -> "UploadItem":
        return cls(name=name or path.name, tmp_path=path)

    @property
    def extension(self) -> str:
        return extension(self.name)

    @property
    def content_type(self) -> str:
        guessed, _encoding = mimetypes.guess_type(self.name)
        return guessed or "application/octet-stream"

    def measured_size(self) -> int:
        if self.size is not None:
            return self.size
        if self.content is not None:
            return len(self.content)
        if self.tmp_path is not None:
            try:
                return self.tmp_path.stat().st_size
            except OSError:
                return 0
        return 0

    def read(self) -> bytes:
        if self.content is not None:
            return self.content
        if self.tmp_path is None:
            return b""
        return self.tmp_path.read_bytes()

    def reject(self, reason: BucketFSError) -> None:
        self.status = UPLOAD_REJECTED
        self.reason = reason

    def fail(self, reason: BucketFSError) -> None:
        self.status = UPLOAD_FAILED
        self.reason = reason


def validate_upload(
    item: UploadItem, allowed: Iterable[str], max_size: int
) -> Optional[BucketFSError]:
    ext = item.extension
    if not ext or ext not in set(allowed):
        return ExtensionNotAllowedError(item.name, ext)
    size = item.measured_size()
    if size > max_size:
        return FileTooLargeError(item.name, size, max_size)
    return None


def summarize(items: Iterable[UploadItem]) -> dict[str, int]:
    counts: dict[str, int] = {}
    for item in items:
        counts[item.status] = counts.get(item.status, 0) + 1
    return counts
